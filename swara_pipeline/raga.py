"""
Raga module: raga database, rule-based scoring, and ranking.

Provides:
- RagaDefinition: Validated, read-only raga reference entry
- RagaDatabase: Load and query raga definitions (JSON or CSV)
- ScoringParams: Scoring weights and thresholds
- score_ragas: Rank every raga against observed note statistics and phrases
- RagaScorer: Binds a database and parameters to score_ragas
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple
import json
import os
import re
import pandas as pd

from .sequence import DetectedNote, NoteStat, SWARAS, normalize_swara, note_tokens


# =============================================================================
# SCORING PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class ScoringParams:
    """Weights and thresholds for rule-based raga scoring."""

    VAADI_WEIGHT: float = 10.0
    SAMVAADI_WEIGHT: float = 10.0
    PRESENT_NOTE_WEIGHT: float = 2.0      # significant note inside the raga scale
    FORBIDDEN_NOTE_PENALTY: float = 5.0   # significant note outside the raga scale (-ve)
    PHRASE_WEIGHT: float = 20.0           # per pakad/phrase found in the note stream
    DOMINANT_COUNT: int = 3               # top-N notes searched for vaadi/samvaadi
    SIGNIFICANCE_THRESHOLD: float = 0.05  # normalized duration for "significant presence"
    DISPLAY_MAX: float = 100.0


DEFAULT_SCORING_PARAMS = ScoringParams()


# =============================================================================
# DATA CLASSES
# =============================================================================

Pattern = Tuple[str, ...]

REQUIRED_FIELDS = ("id", "name", "thaat", "aaroh", "avaroh", "vaadi", "samvaadi", "pakad")


def _split_sequence(raw: Any) -> Pattern:
    """Swara sequence from a list or a space/comma separated string."""
    if isinstance(raw, str):
        tokens = [t for t in re.split(r"[\s,]+", raw) if t]
    else:
        tokens = [str(t) for t in raw]
    return tuple(normalize_swara(t) for t in tokens)


def _split_patterns(raw: Any) -> Tuple[Pattern, ...]:
    """
    Normalize one pattern or a set of alternatives to a tuple of patterns.

    Accepts ["Sa", "Re"], [["Sa", "Re"], ["Pa", "Sa"]], "Sa Re" or "Sa Re | Pa Sa".
    """
    if raw is None:
        return tuple()
    if isinstance(raw, str):
        parts = [p for p in raw.split("|") if p.strip()]
        return tuple(_split_sequence(p) for p in parts)
    items = list(raw)
    if not items:
        return tuple()
    if all(isinstance(item, str) for item in items):
        return (_split_sequence(items),)
    return tuple(_split_sequence(item) for item in items if len(item) > 0)


@dataclass(frozen=True)
class RagaDefinition:
    """A raga reference entry."""

    id: str
    name: str
    thaat: str
    aaroh: Pattern
    avaroh: Pattern
    vaadi: str
    samvaadi: str
    pakad: Tuple[Pattern, ...]                        # one or more alternative pakads
    phrases: Tuple[Pattern, ...] = field(default_factory=tuple)
    identifying_feature: Optional[str] = None

    @property
    def scale_notes(self) -> frozenset:
        """Union of aaroh and avaroh swaras."""
        return frozenset(self.aaroh) | frozenset(self.avaroh)

    @property
    def patterns(self) -> List[Pattern]:
        """Pakad alternatives followed by phrases."""
        return list(self.pakad) + list(self.phrases)

    @classmethod
    def from_dict(cls, entry: Dict[str, Any], index: int = 0) -> "RagaDefinition":
        """
        Build and validate a definition from a raw corpus entry.

        Raises:
            ValueError: Missing required field or unknown swara
        """
        label = entry.get("id") or entry.get("name") or f"#{index}"
        missing = [f for f in REQUIRED_FIELDS if _is_blank(entry.get(f))]
        # pakad may legitimately be an empty list, but must be present
        if "pakad" in missing and "pakad" in entry and entry["pakad"] is not None:
            missing.remove("pakad")
        if missing:
            raise ValueError(f"Raga entry {label}: missing required field(s) {', '.join(missing)}")

        try:
            aaroh = _split_sequence(entry["aaroh"])
            avaroh = _split_sequence(entry["avaroh"])
            vaadi = normalize_swara(entry["vaadi"])
            samvaadi = normalize_swara(entry["samvaadi"])
            pakad = _split_patterns(entry["pakad"])
            phrases = _split_patterns(entry.get("phrases"))
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Raga entry {label}: {exc}") from exc

        if not aaroh or not avaroh:
            raise ValueError(f"Raga entry {label}: aaroh and avaroh must not be empty")

        feature = entry.get("identifying_feature", entry.get("identifyingFeature"))
        return cls(
            id=str(entry["id"]).strip(),
            name=str(entry["name"]).strip(),
            thaat=str(entry["thaat"]).strip(),
            aaroh=aaroh,
            avaroh=avaroh,
            vaadi=vaadi,
            samvaadi=samvaadi,
            pakad=pakad,
            phrases=phrases,
            identifying_feature=None if _is_blank(feature) else str(feature).strip(),
        )


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


@dataclass(frozen=True)
class MatchDetails:
    """Per-raga breakdown of the score."""

    vaadi_match: bool
    samvaadi_match: bool
    phrase_matches: int
    note_overlap_score: float   # present-note score minus forbidden penalty, may be negative


@dataclass(frozen=True)
class RagaScore:
    """Scoring result for a single raga."""

    raga_id: str
    raga_name: str
    score: float                # unclamped
    match_details: MatchDetails

    @property
    def display_score(self) -> float:
        """Score clamped to [0, DISPLAY_MAX] for presentation; ranking uses score."""
        return max(0.0, min(DEFAULT_SCORING_PARAMS.DISPLAY_MAX, self.score))


# =============================================================================
# RAGA DATABASE
# =============================================================================

class RagaDatabase:
    """
    Load and query raga definitions from JSON or CSV.

    JSON: {"ragas": [{...}, ...]} or a bare list of entries.
    CSV: one row per raga; sequences are space separated, alternative
    pakads/phrases are separated by "|".
    """

    def __init__(self, path: Optional[str] = None, ragas: Optional[Sequence[RagaDefinition]] = None):
        self.path = path
        self.ragas: List[RagaDefinition] = []
        self._by_key: Dict[str, RagaDefinition] = {}

        if path is not None:
            entries = self._read_entries(path)
            ragas = [RagaDefinition.from_dict(entry, i) for i, entry in enumerate(entries)]
        for raga in ragas or []:
            self._add(raga)

    @classmethod
    def from_definitions(cls, ragas: Sequence[RagaDefinition]) -> "RagaDatabase":
        return cls(path=None, ragas=ragas)

    def _read_entries(self, path: str) -> List[Dict[str, Any]]:
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Raga database not found: {path}")

        ext = os.path.splitext(path)[1].lower()
        if ext == ".json":
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            entries = data.get("ragas", []) if isinstance(data, dict) else data
            if not isinstance(entries, list):
                raise ValueError(f"Raga database {path}: expected a list of ragas")
            return entries
        if ext == ".csv":
            df = pd.read_csv(path, dtype=str, keep_default_na=False)
            df.columns = [c.strip() for c in df.columns]
            return df.to_dict(orient="records")
        raise ValueError(f"Unsupported raga database format: {path}")

    def _add(self, raga: RagaDefinition) -> None:
        key = raga.id.lower()
        if key in self._by_key:
            raise ValueError(f"Duplicate raga id: {raga.id}")
        self._by_key[key] = raga
        self.ragas.append(raga)

    def __len__(self) -> int:
        return len(self.ragas)

    def __iter__(self) -> Iterator[RagaDefinition]:
        return iter(self.ragas)

    def get(self, key: str) -> Optional[RagaDefinition]:
        """Look up a raga by id or name (case-insensitive)."""
        k = key.strip().lower()
        if k in self._by_key:
            return self._by_key[k]
        for raga in self.ragas:
            if raga.name.lower() == k:
                return raga
        return None

    def search(self, text: str) -> List[RagaDefinition]:
        """Ragas whose name, thaat or id contains the text (case-insensitive)."""
        q = text.strip().lower()
        return [
            r for r in self.ragas
            if q in r.name.lower() or q in r.thaat.lower() or q in r.id.lower()
        ]

    def thaats(self) -> List[str]:
        """Distinct thaats in corpus order."""
        seen: List[str] = []
        for r in self.ragas:
            if r.thaat not in seen:
                seen.append(r.thaat)
        return seen


# =============================================================================
# SCORING
# =============================================================================

def find_dominant_notes(stats: Sequence[NoteStat], count: int = 3) -> List[str]:
    """
    The `count` longest-sounding swaras, longest first.

    Ties keep SWARAS order, so silent swaras fill the remaining slots.
    An empty trace has no dominant notes.
    """
    if not any(s.total_duration_ms > 0 for s in stats):
        return []
    ranked = sorted(stats, key=lambda s: s.total_duration_ms, reverse=True)
    return [s.note for s in ranked[:count]]


def contains_pattern(tokens: Sequence[str], pattern: Sequence[str]) -> bool:
    """True if pattern occurs as a contiguous run inside tokens."""
    m = len(pattern)
    if m == 0 or m > len(tokens):
        return False
    pattern = list(pattern)
    first = pattern[0]
    for i in range(len(tokens) - m + 1):
        if tokens[i] == first and list(tokens[i:i + m]) == pattern:
            return True
    return False


def score_raga(
    raga: RagaDefinition,
    stats: Sequence[NoteStat],
    tokens: Sequence[str],
    dominant: Sequence[str],
    params: ScoringParams = DEFAULT_SCORING_PARAMS,
) -> RagaScore:
    """Score one raga against precomputed dominant notes and note tokens."""
    score = 0.0

    vaadi_match = raga.vaadi in dominant
    if vaadi_match:
        score += params.VAADI_WEIGHT
    samvaadi_match = raga.samvaadi in dominant
    if samvaadi_match:
        score += params.SAMVAADI_WEIGHT

    scale = raga.scale_notes
    present_score = 0.0
    forbidden_penalty = 0.0
    for s in stats:
        if s.normalized_duration > params.SIGNIFICANCE_THRESHOLD:
            if s.note in scale:
                present_score += params.PRESENT_NOTE_WEIGHT
            else:
                forbidden_penalty += params.FORBIDDEN_NOTE_PENALTY
    note_overlap_score = present_score - forbidden_penalty
    score += note_overlap_score

    phrase_matches = 0
    for pattern in raga.patterns:
        if contains_pattern(tokens, pattern):
            phrase_matches += 1
            score += params.PHRASE_WEIGHT

    return RagaScore(
        raga_id=raga.id,
        raga_name=raga.name,
        score=score,
        match_details=MatchDetails(
            vaadi_match=vaadi_match,
            samvaadi_match=samvaadi_match,
            phrase_matches=phrase_matches,
            note_overlap_score=note_overlap_score,
        ),
    )


def score_ragas(
    stats: Sequence[NoteStat],
    notes: Sequence[DetectedNote],
    ragas: Sequence[RagaDefinition],
    params: ScoringParams = DEFAULT_SCORING_PARAMS,
) -> List[RagaScore]:
    """
    Score every raga and rank by descending score.

    Args:
        stats: The 12 NoteStat entries of the clip
        notes: Filtered note stream (for phrase matching)
        ragas: Reference corpus
        params: Scoring parameters

    Returns:
        RagaScore list, highest first; ties keep corpus order
    """
    if len(stats) != len(SWARAS):
        raise ValueError(f"Expected {len(SWARAS)} note stats, got {len(stats)}")

    dominant = find_dominant_notes(stats, params.DOMINANT_COUNT)
    tokens = note_tokens(notes)

    scores = [score_raga(raga, stats, tokens, dominant, params) for raga in ragas]
    # sorted() is stable, so equal scores stay in corpus order
    return sorted(scores, key=lambda s: s.score, reverse=True)


def scores_to_dataframe(scores: Sequence[RagaScore]) -> pd.DataFrame:
    """Ranking table with a 1-based rank column."""
    df = pd.DataFrame(
        [
            {
                "raga_id": s.raga_id,
                "raga": s.raga_name,
                "score": s.score,
                "display_score": s.display_score,
                "vaadi_match": s.match_details.vaadi_match,
                "samvaadi_match": s.match_details.samvaadi_match,
                "phrase_matches": s.match_details.phrase_matches,
                "note_overlap_score": s.match_details.note_overlap_score,
            }
            for s in scores
        ],
        columns=[
            "raga_id", "raga", "score", "display_score", "vaadi_match",
            "samvaadi_match", "phrase_matches", "note_overlap_score",
        ],
    )
    df.insert(0, "rank", range(1, len(df) + 1))
    return df


class RagaScorer:
    """Score note statistics against every raga of a database."""

    def __init__(self, raga_db: RagaDatabase, params: ScoringParams = DEFAULT_SCORING_PARAMS):
        self.raga_db = raga_db
        self.params = params

    def score(self, stats: Sequence[NoteStat], notes: Sequence[DetectedNote]) -> List[RagaScore]:
        """Return RagaScores sorted by score."""
        return score_ragas(stats, notes, self.raga_db.ragas, self.params)

    def score_dataframe(self, stats: Sequence[NoteStat], notes: Sequence[DetectedNote]) -> pd.DataFrame:
        return scores_to_dataframe(self.score(stats, notes))
