"""
Product matching service.

Resolves free-text spreadsheet names to catalog products through an
ordered cascade of strategies; the first strategy that finds a product
wins:

    1. exact           normalized name equals a normalized title
    2. prefix_removed  equal after dropping a vendor prefix ("ав ...")
    3. keywords        equal after dropping pack-size annotations
    4. partial         one name contains the other, similar length
    5. similarity      best token-overlap score above 0.4
    6. edit distance   Levenshtein fallback above 0.75 (sync only)

A CatalogIndex is built once per job from a catalog snapshot and is
read-only afterwards. Nothing here is cached across jobs.
"""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional
import structlog

from models.product import CatalogRecord
from models.stock_sync import MatchType, Suggestion
from utils.text_utils import normalize_product_name, strip_common_prefixes, extract_keywords
from utils.similarity import similarity, edit_distance_similarity, tokenize

logger = structlog.get_logger(__name__)


class MatchStrategy(str, Enum):
    """Matcher tiers, in cascade order."""
    EXACT = "exact"
    PREFIX_REMOVED = "prefix_removed"
    KEYWORDS = "keywords"
    PARTIAL = "partial"
    SIMILARITY = "similarity"
    EDIT_DISTANCE = "edit_distance"


# Preview analysis shows what the lenient cascade would do
PREVIEW_STRATEGIES = (
    MatchStrategy.EXACT,
    MatchStrategy.PREFIX_REMOVED,
    MatchStrategy.KEYWORDS,
    MatchStrategy.PARTIAL,
    MatchStrategy.SIMILARITY,
)
# Applied sync additionally falls back to edit distance
SYNC_STRATEGIES = PREVIEW_STRATEGIES + (MatchStrategy.EDIT_DISTANCE,)


@dataclass(frozen=True)
class MatcherThresholds:
    """Tunable cut-offs for the cascade."""
    keyword_min_length: int = 5
    partial_max_length_ratio: float = 0.6
    similarity_min: float = 0.4
    # Edit distance runs when token similarity found nothing or scored below this
    edit_distance_trigger: float = 0.6
    edit_distance_min: float = 0.75
    suggestion_min: float = 0.3
    suggestion_limit: int = 3


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of matching one spreadsheet name.

    record is None exactly when match_type is NONE; similarity is set only
    for MatchType.SIMILARITY.
    """
    incoming_name: str
    normalized_name: str
    record: Optional[CatalogRecord]
    match_type: MatchType
    similarity: Optional[float] = None

    @property
    def matched(self) -> bool:
        return self.record is not None

    @classmethod
    def no_match(cls, incoming_name: str, normalized_name: str) -> "MatchResult":
        return cls(incoming_name, normalized_name, None, MatchType.NONE)


# ===================
# CATALOG INDEX
# ===================

class CatalogIndex:
    """
    Per-job lookup structure over a catalog snapshot.

    Holds:
        buckets: normalized title → records sharing it (file order kept)
        records: every record once, in storage order
    plus normalized titles, keyword residues and a token → position map,
    all computed once at build time.
    """

    def __init__(self, records: Iterable[CatalogRecord]):
        self.records: tuple[CatalogRecord, ...] = tuple(records)
        self.normalized_titles: list[str] = []
        self.keyword_titles: list[str] = []
        self.buckets: dict[str, list[CatalogRecord]] = {}
        self._stripped_keys: list[tuple[str, str]] = []
        self._token_positions: dict[str, list[int]] = defaultdict(list)
        self._tokenless_positions: list[int] = []

        for position, record in enumerate(self.records):
            normalized = normalize_product_name(record.title)
            self.normalized_titles.append(normalized)
            self.keyword_titles.append(extract_keywords(normalized))
            self.buckets.setdefault(normalized, []).append(record)

            tokens = set(tokenize(normalized))
            if tokens:
                for token in tokens:
                    self._token_positions[token].append(position)
            else:
                self._tokenless_positions.append(position)

        self._stripped_keys = [
            (strip_common_prefixes(key), key) for key in self.buckets
        ]

    @classmethod
    def build(cls, records: Iterable[CatalogRecord]) -> "CatalogIndex":
        index = cls(records)
        logger.info(
            "catalog_index_built",
            records=len(index),
            distinct_titles=len(index.buckets)
        )
        return index

    def __len__(self) -> int:
        return len(self.records)

    def bucket(self, normalized: str) -> list[CatalogRecord]:
        return self.buckets.get(normalized, [])

    def stripped_keys(self) -> list[tuple[str, str]]:
        """(prefix-stripped key, original key) pairs in bucket order."""
        return self._stripped_keys

    def candidate_positions(self, normalized: str) -> list[int]:
        """
        Positions of records that can score above zero on token similarity.

        Records sharing no word with the name score 0 unless either side has
        no usable words, in which case the substring fallback applies.
        """
        tokens = set(tokenize(normalized))
        if not tokens:
            return list(range(len(self.records)))

        positions = set(self._tokenless_positions)
        for token in tokens:
            positions.update(self._token_positions.get(token, ()))
        return sorted(positions)


# ===================
# MATCHER
# ===================

class ProductMatcher:
    """
    Cascading product matcher.

    The strategy list fixes which tiers run and in which order. Absence of
    a match is a normal outcome, never an exception.

    Usage:
        matcher = ProductMatcher(SYNC_STRATEGIES)
        result = matcher.match("АВ Дрожжи спиртовые Турбо", index)
        result.match_type  # MatchType.PREFIX_REMOVED
    """

    def __init__(
        self,
        strategies: tuple[MatchStrategy, ...] = SYNC_STRATEGIES,
        thresholds: Optional[MatcherThresholds] = None
    ):
        self.strategies = tuple(strategies)
        self.thresholds = thresholds or MatcherThresholds()

    def match(
        self,
        raw_name: str,
        index: CatalogIndex,
        normalized: Optional[str] = None
    ) -> MatchResult:
        """
        Match one spreadsheet name against the catalog.

        Args:
            raw_name: Name as it appears in the file
            index: Catalog index for this job
            normalized: Pre-normalized name, if the caller already has it

        Returns:
            MatchResult (match_type NONE when nothing qualifies)
        """
        if normalized is None:
            normalized = normalize_product_name(raw_name)
        if not normalized:
            return MatchResult.no_match(raw_name, normalized)

        # Weak token-similarity hit kept while edit distance gets a chance
        provisional: Optional[MatchResult] = None

        for strategy in self.strategies:
            if strategy == MatchStrategy.EXACT:
                found = self._match_exact(normalized, index)
            elif strategy == MatchStrategy.PREFIX_REMOVED:
                found = self._match_prefix_removed(normalized, index)
            elif strategy == MatchStrategy.KEYWORDS:
                found = self._match_keywords(normalized, index)
            elif strategy == MatchStrategy.PARTIAL:
                found = self._match_partial(normalized, index)
            elif strategy == MatchStrategy.SIMILARITY:
                best = self._best_token_similarity(normalized, index)
                found = None
                if best is not None:
                    record, score = best
                    candidate = MatchResult(raw_name, normalized, record, MatchType.SIMILARITY, score)
                    if (
                        MatchStrategy.EDIT_DISTANCE in self.strategies
                        and score < self.thresholds.edit_distance_trigger
                    ):
                        provisional = candidate
                    else:
                        return candidate
            elif strategy == MatchStrategy.EDIT_DISTANCE:
                floor = provisional.similarity if provisional else 0.0
                best = self._best_edit_distance(normalized, index)
                if best is not None and best[1] > floor:
                    record, score = best
                    return MatchResult(raw_name, normalized, record, MatchType.SIMILARITY, score)
                found = None
            else:
                found = None

            if found is not None:
                record, match_type = found
                return MatchResult(raw_name, normalized, record, match_type)

        if provisional is not None:
            return provisional

        return MatchResult.no_match(raw_name, normalized)

    # ===================
    # TIERS
    # ===================

    def _match_exact(self, normalized: str, index: CatalogIndex):
        records = index.bucket(normalized)
        if records:
            return records[0], MatchType.EXACT
        return None

    def _match_prefix_removed(self, normalized: str, index: CatalogIndex):
        stripped = strip_common_prefixes(normalized)
        if stripped == normalized or not stripped:
            return None

        for stripped_key, key in index.stripped_keys():
            if stripped_key == stripped:
                return index.bucket(key)[0], MatchType.PREFIX_REMOVED
        return None

    def _match_keywords(self, normalized: str, index: CatalogIndex):
        keywords = extract_keywords(normalized)
        if keywords == normalized or len(keywords) <= self.thresholds.keyword_min_length:
            return None

        for position, title_keywords in enumerate(index.keyword_titles):
            if title_keywords == keywords:
                return index.records[position], MatchType.KEYWORDS
        return None

    def _match_partial(self, normalized: str, index: CatalogIndex):
        for key, records in index.buckets.items():
            if not key:
                continue
            if key in normalized or normalized in key:
                length_diff = abs(len(key) - len(normalized))
                avg_length = (len(key) + len(normalized)) / 2
                if length_diff / avg_length < self.thresholds.partial_max_length_ratio:
                    return records[0], MatchType.PARTIAL
        return None

    def _best_token_similarity(self, normalized: str, index: CatalogIndex):
        best_record = None
        best_score = self.thresholds.similarity_min

        for position in index.candidate_positions(normalized):
            score = similarity(normalized, index.normalized_titles[position])
            if score > best_score:
                best_score = score
                best_record = index.records[position]

        if best_record is None:
            return None
        return best_record, best_score

    def _best_edit_distance(self, normalized: str, index: CatalogIndex):
        best_position = None
        best_score = self.thresholds.edit_distance_min

        for position, title in enumerate(index.normalized_titles):
            score = edit_distance_similarity(normalized, title)
            if score > best_score:
                best_score = score
                best_position = position

        if best_position is None:
            return None
        return index.records[best_position], best_score

    # ===================
    # SUGGESTIONS
    # ===================

    def suggest(self, normalized: str, index: CatalogIndex) -> list[Suggestion]:
        """
        Closest catalog titles for an unmatched name, best first.

        Only titles scoring above suggestion_min are offered.
        """
        scored = []
        for position in index.candidate_positions(normalized):
            score = similarity(normalized, index.normalized_titles[position])
            if score > self.thresholds.suggestion_min:
                scored.append((score, position))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            Suggestion(title=index.records[position].title, similarity=round(score, 3))
            for score, position in scored[: self.thresholds.suggestion_limit]
        ]
