"""
triage/stores/clusters.py
Cluster membership, scores and signatures, plus the session-only
triage state (qualifiers and per-cluster event sub-filters).

Filter operations never mutate: they take an ordered id list and
return the matching ids in the same order.

NOTE ON LITERALS:
  An unparsable count/score literal is read as zero, and an unparsable
  qualifier literal as UNKNOWN. Existing sessions rely on this, so the
  command parser validates literals before they get here.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from triage.models.record import (
    OUTLIERS_CLUSTER_ID,
    ClusterId,
    ClusterRecord,
    FilterKind,
    FilterOp,
    MessageId,
    Qualifier,
)
from triage.models.schemas import SavedClusters, load_json_model
from triage.stores.events import EventStore
from triage.stores.labels import LabelStore

logger = logging.getLogger(__name__)

# Single-precision machine epsilon; score equality is approximate
SCORE_EPSILON = 1.1920929e-07

# Field of a raw outlier entry that holds its message id
OUTLIER_MESSAGE_ID_FIELD = 1

NEGATE_PREFIX = '!'


class ClusterStore:

    def __init__(self, clusters: Dict[ClusterId, ClusterRecord], order: List[ClusterId]):
        self._clusters = clusters
        self._order = order
        self._token_index: Dict[str, List[ClusterId]] = {}

    @classmethod
    def load(
        cls,
        path:        Union[str, Path],
        label_store: LabelStore,
        delimiter:   str = ',',
    ) -> 'ClusterStore':
        saved = load_json_model(SavedClusters, path)
        logger.info(
            f"{path} loaded. detector {saved.detector_id}, {saved.events_count} events, "
            f"{saved.clusters_count} clusters, {saved.outlier_count} outliers"
        )

        clusters: Dict[ClusterId, ClusterRecord] = {}
        for m in saved.clusters:
            qualifier = Qualifier.SUSPICIOUS if label_store.is_labeled(m.cluster_id) else Qualifier.UNKNOWN
            clusters[m.cluster_id] = ClusterRecord(
                id            = m.cluster_id,
                size          = m.cluster_size,
                score         = m.score if m.score is not None else 0.0,
                qualifier     = qualifier,
                new_qualifier = qualifier,
                signature     = m.signature,
                event_ids     = tuple(m.events),
            )
        order = sorted(clusters)

        if saved.outliers:
            clusters[OUTLIERS_CLUSTER_ID] = cls._outlier_cluster(saved.outliers, delimiter)
            order.append(OUTLIERS_CLUSTER_ID)

        return cls(clusters, order)

    @staticmethod
    def _outlier_cluster(outliers: List[str], delimiter: str) -> ClusterRecord:
        event_ids: List[MessageId] = []
        unparsed = 0
        for raw in outliers:
            fields = raw.split(delimiter)
            if len(fields) > OUTLIER_MESSAGE_ID_FIELD:
                event_ids.append(fields[OUTLIER_MESSAGE_ID_FIELD])
            else:
                unparsed += 1
        if unparsed:
            logger.warning(f"{unparsed} outlier entries without a message id")

        return ClusterRecord(
            id            = OUTLIERS_CLUSTER_ID,
            size          = len(outliers),
            score         = 0.0,
            qualifier     = Qualifier.UNKNOWN,
            new_qualifier = Qualifier.UNKNOWN,
            event_ids     = tuple(event_ids),
        )

    # ── ACCESS ───────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._order)

    @property
    def cluster_ids(self) -> List[ClusterId]:
        return list(self._order)

    def get(self, cluster_id: ClusterId) -> Optional[ClusterRecord]:
        return self._clusters.get(cluster_id)

    def size(self, cluster_id: ClusterId) -> int:
        c = self._clusters.get(cluster_id)
        return c.size if c else 0

    def event_ids(self) -> List[MessageId]:
        return [mid for c in self._clusters.values() for mid in c.event_ids]

    # ── TOKEN INDEX ──────────────────────────────────────────

    def build_token_index(self, events: EventStore) -> None:
        """Full rebuild of token → sorted unique cluster ids."""
        index: Dict[str, set] = defaultdict(set)
        for c in self._clusters.values():
            for message_id in c.event_ids:
                for token in events.tokens(message_id) or ():
                    index[token].add(c.id)
        self._token_index = {token: sorted(ids) for token, ids in index.items()}
        logger.info(f"{len(self._token_index)} distinct tokens indexed")

    @property
    def token_index(self) -> Dict[str, List[ClusterId]]:
        return self._token_index

    def clusters_with_token(self, token: str) -> List[ClusterId]:
        return list(self._token_index.get(token.lower(), []))

    # ── FILTERS ──────────────────────────────────────────────

    def filter_by_numeric(
        self,
        ids:     Iterable[ClusterId],
        kind:    FilterKind,
        op:      FilterOp,
        literal: str,
    ) -> List[ClusterId]:
        if kind == FilterKind.COUNT:
            value = _parse_count(literal)
            return [cid for cid in ids if cid in self._clusters
                    and _compare(self._clusters[cid].size, op, value)]
        if kind == FilterKind.SCORE:
            value = _parse_score(literal)
            return [cid for cid in ids if cid in self._clusters
                    and _compare_score(self._clusters[cid].score, op, value)]
        raise ValueError(f"not a numeric filter: {kind}")

    def filter_by_qualifier(self, ids: Iterable[ClusterId], literal: str) -> List[ClusterId]:
        qualifier = Qualifier.parse(literal) or Qualifier.UNKNOWN
        return [cid for cid in ids if cid in self._clusters
                and self._clusters[cid].new_qualifier == qualifier]

    def filter_by_regex(
        self,
        ids:     Iterable[ClusterId],
        pattern: str,
        events:  EventStore,
    ) -> List[ClusterId]:
        """Clusters with at least one member event matching. re.error propagates."""
        regex = re.compile(pattern)
        return [cid for cid in ids if cid in self._clusters
                and _any_match(events, regex, self._clusters[cid].event_ids)]

    # ── EVENT SUB-FILTERS ────────────────────────────────────

    def regex_within_cluster(
        self,
        cluster_id: ClusterId,
        pattern:    str,
        events:     EventStore,
    ) -> Optional[List[MessageId]]:
        """
        Events of the cluster's innermost subset matching `pattern`, or not
        matching it when prefixed with '!'. None for an unknown cluster or a
        bare '!'. Does not record the result; see push_filtered().
        """
        negate = pattern.startswith(NEGATE_PREFIX)
        if negate:
            pattern = pattern[len(NEGATE_PREFIX):]
            if not pattern:
                return None

        regex = re.compile(pattern)
        c = self._clusters.get(cluster_id)
        if c is None:
            return None

        candidates = c.active_event_ids
        matched = events.regex_match(regex, candidates)
        if negate:
            hit = set(matched)
            return [mid for mid in candidates if mid not in hit]
        return matched

    def push_filtered(self, cluster_id: ClusterId, ids: List[MessageId], pattern: str) -> None:
        c = self._clusters.get(cluster_id)
        if c is not None:
            c.filters.append(pattern)
            c.filtered_events.append(list(ids))

    def clear_filter(self, cluster_id: ClusterId) -> None:
        c = self._clusters.get(cluster_id)
        if c is not None:
            c.filtered_events.clear()
            c.filters.clear()

    # ── QUALIFIERS ───────────────────────────────────────────

    def set_qualifier(self, cluster_id: ClusterId, qualifier: Qualifier) -> bool:
        """Returns True only if the pending qualifier actually changed."""
        c = self._clusters.get(cluster_id)
        if c is None or c.new_qualifier == qualifier:
            return False
        c.new_qualifier = qualifier
        return True


def _parse_count(literal: str) -> int:
    try:
        value = int(literal)
    except ValueError:
        return 0
    return value if value >= 0 else 0


def _parse_score(literal: str) -> float:
    try:
        return float(literal)
    except ValueError:
        return 0.0


def _compare(actual, op: FilterOp, value) -> bool:
    if op == FilterOp.LT: return actual < value
    if op == FilterOp.LE: return actual <= value
    if op == FilterOp.GT: return actual > value
    if op == FilterOp.GE: return actual >= value
    if op == FilterOp.EQ: return actual == value
    return actual != value


def _compare_score(actual: float, op: FilterOp, value: float) -> bool:
    if op == FilterOp.EQ:
        return abs(actual - value) < SCORE_EPSILON
    if op == FilterOp.NE:
        return abs(actual - value) > SCORE_EPSILON
    return _compare(actual, op, value)


def _any_match(events: EventStore, regex, event_ids: Iterable[MessageId]) -> bool:
    for message_id in event_ids:
        content = events.content(message_id)
        if content is not None and regex.search(content):
            return True
    return False
