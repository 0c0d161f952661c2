"""
triage/stores/labels.py
Rule hits applied to clusters by the labeling pass.

Built once from a flat list of (cluster, event, pattern, score)
assignments into three indices:
  cluster → sorted unique patterns
  cluster → raw per-event assignments
  pattern → sorted unique clusters
Never mutated after construction.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from triage.models.record import (
    CatalogId,
    ClusterId,
    LabelAssignment,
    MessageId,
    PatternId,
    RepresentativeLabel,
    RuleId,
)
from triage.models.schemas import SavedLabels, load_json_model

logger = logging.getLogger(__name__)


def pack_pattern_id(pattern: PatternId) -> int:
    """Catalog id in the high 32 bits, rule id in the low 32 bits."""
    catalog_id, rule_id = pattern
    return ((catalog_id & 0xFFFFFFFF) << 32) | (rule_id & 0xFFFFFFFF)


@dataclass
class LabelStatistics:
    labeled_clusters: int
    labeled_events:   int
    representatives:  int


class LabelStore:

    def __init__(
        self,
        representative:       Dict[ClusterId, List[RepresentativeLabel]],
        assignments:          Iterable[LabelAssignment],
        listed_events:        Optional[Iterable[MessageId]] = None,
        representative_count: Optional[int] = None,
    ):
        """
        listed_events and representative_count default to what the
        assignments and the representative map hold. load() passes the
        file's own lists, which may name events without hits or repeat
        a cluster.
        """
        self._representative = dict(representative)
        assignments = list(assignments)
        if listed_events is None:
            listed_events = (a.message_id for a in assignments)
        self._listed_events = set(listed_events)
        self._representative_count = (
            len(self._representative) if representative_count is None else representative_count
        )
        self._assignments: Dict[ClusterId, List[LabelAssignment]] = defaultdict(list)

        cluster_patterns: Dict[ClusterId, set] = defaultdict(set)
        pattern_clusters: Dict[PatternId, set] = defaultdict(set)
        for a in assignments:
            self._assignments[a.cluster_id].append(a)
            cluster_patterns[a.cluster_id].add(a.pattern)
            pattern_clusters[a.pattern].add(a.cluster_id)

        self._assignments = dict(self._assignments)
        self._cluster_patterns: Dict[ClusterId, List[PatternId]] = {
            cid: sorted(patterns, key=pack_pattern_id)
            for cid, patterns in cluster_patterns.items()
        }
        self._pattern_clusters: Dict[PatternId, List[ClusterId]] = {
            pattern: sorted(clusters)
            for pattern, clusters in pattern_clusters.items()
        }

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'LabelStore':
        saved = load_json_model(SavedLabels, path)

        representative: Dict[ClusterId, List[RepresentativeLabel]] = {}
        for cluster_id, entries in saved.representative:
            # first entry for a cluster wins
            representative.setdefault(cluster_id, [
                RepresentativeLabel(catalog_id=c, rule_id=r, count=n, score=s)
                for c, r, n, s in entries
            ])

        assignments: List[LabelAssignment] = []
        listed_events: List[MessageId] = []
        for cluster_id, events in saved.events:
            for message_id, hits in events:
                listed_events.append(message_id)
                for catalog_id, rule_id, score in hits:
                    assignments.append(LabelAssignment(
                        cluster_id = cluster_id,
                        message_id = message_id,
                        pattern    = (catalog_id, rule_id),
                        score      = score,
                    ))

        store = cls(representative, assignments, listed_events, len(saved.representative))
        logger.info(
            f"{path} loaded. {len(store._cluster_patterns)} labeled clusters, "
            f"{len(assignments)} event labels"
        )
        return store

    # ── QUERIES ──────────────────────────────────────────────

    def is_labeled(self, cluster_id: ClusterId) -> bool:
        return cluster_id in self._cluster_patterns

    def patterns(self, cluster_id: ClusterId) -> List[PatternId]:
        return list(self._cluster_patterns.get(cluster_id, []))

    def find_clusters(self, catalog_id: CatalogId, rule_id: RuleId) -> List[ClusterId]:
        """Clusters carrying a matching label. 0 on either axis means any."""
        found = set()
        for (c, r), clusters in self._pattern_clusters.items():
            if catalog_id in (0, c) and rule_id in (0, r):
                found.update(clusters)
        return sorted(found)

    def representative_labels(self, cluster_id: ClusterId) -> Optional[List[RepresentativeLabel]]:
        return self._representative.get(cluster_id)

    def event_labels(self, cluster_id: ClusterId) -> Optional[List[Tuple[PatternId, int]]]:
        """
        Per-pattern hit counts across the cluster's events, in packed-key
        order. None when the cluster has no event labels.
        """
        counts = Counter(a.pattern for a in self._assignments.get(cluster_id, []))
        if not counts:
            return None
        return sorted(counts.items(), key=lambda item: pack_pattern_id(item[0]))

    def statistics(self) -> LabelStatistics:
        """
        Labeled events counts every distinct event id the label file lists,
        hit or not. Representatives counts the entries of the file.
        """
        return LabelStatistics(
            labeled_clusters = len(self._cluster_patterns),
            labeled_events   = len(self._listed_events),
            representatives  = self._representative_count,
        )
