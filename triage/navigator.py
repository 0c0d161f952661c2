"""
triage/navigator.py
Drill-down engine for one triage session.

Owns the four stores and a stack of FilterRounds. The bottom round is
always the full cluster list; every successful filter pushes a narrower
list computed from the current top, and exit() pops back one layer.

  apply()          filter the visible clusters (None = no match, stack unchanged)
  exit()           back out one layer
  goto/next/prev   move the cursor within the visible clusters (clamped)
  set_qualifier()  triage one cluster or the whole visible list
  filter_events()  narrow the events shown for the cluster under the cursor

Invalid regular expressions raise re.error before anything is pushed.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from triage.catalog import RuleCatalog
from triage.config import TriageConfig
from triage.models.record import (
    ORDERED_QUALIFIERS,
    CatalogId,
    ClusterId,
    ClusterRecord,
    EventType,
    FilterKind,
    FilterOp,
    FilterRound,
    Qualifier,
    RuleId,
)
from triage.stores.clusters import NEGATE_PREFIX, ClusterStore
from triage.stores.events import EventStore
from triage.stores.labels import LabelStore

logger = logging.getLogger(__name__)

BASE_TITLE = 'Clusters'
ALL_LABELS = 'All'


@dataclass
class SessionStatistics:
    clusters:         int
    labeled_clusters: int
    labeled_events:   int
    representatives:  int


def parse_pattern_id(pattern_id: Optional[str]) -> Tuple[CatalogId, RuleId]:
    """'<catalog>[:<rule>]' → (catalog, rule). Missing or bad parts are 0 (any)."""
    catalog_id, rule_id = 0, 0
    if pattern_id:
        parts = pattern_id.split(':')
        try:
            catalog_id = int(parts[0])
        except ValueError:
            pass
        if len(parts) > 1:
            try:
                rule_id = int(parts[1])
            except ValueError:
                pass
    return max(catalog_id, 0), max(rule_id, 0)


class Navigator:

    def __init__(
        self,
        clusters: ClusterStore,
        events:   EventStore,
        labels:   LabelStore,
        catalog:  RuleCatalog,
    ):
        self.clusters = clusters
        self.events   = events
        self.labels   = labels
        self.catalog  = catalog
        self.rounds: List[FilterRound] = [FilterRound(
            kind     = FilterKind.NONE,
            op       = FilterOp.EQ,
            pattern  = BASE_TITLE,
            clusters = clusters.cluster_ids,
            title    = BASE_TITLE,
        )]

    @classmethod
    def load(cls, config: TriageConfig) -> 'Navigator':
        """
        Build every store from the config. Raises OSError / ValueError on
        any load failure; nothing interactive exists until this returns.
        """
        if config.event_type == EventType.PACKET:
            raise ValueError(f"unsupported log type {config.event_type.value}")
        key_index = config.key_field()
        if key_index is None:
            raise ValueError(f"key column {config.key_column!r} not found in column format")

        logger.info("loading labels")
        labels = LabelStore.load(config.input_labels)

        logger.info("loading clusters")
        clusters = ClusterStore.load(config.input_clusters, labels, config.delimiter)
        if len(clusters) == 0:
            raise ValueError("clusters not found.")
        logger.info(f"{len(clusters)} clusters are loaded.")

        logger.info("loading events")
        events = EventStore.load(
            config.input_log,
            delimiter       = config.delimiter,
            key_index       = key_index,
            feature_indices = config.features(),
            column_count    = config.column_count,
            restrict_to     = clusters.event_ids(),
        )
        if len(events) == 0:
            raise ValueError("events not found.")
        logger.info(f"{len(events)} events are loaded.")

        clusters.build_token_index(events)

        logger.info("loading tidb")
        catalog = RuleCatalog.load(config.tidb)

        return cls(clusters, events, labels, catalog)

    # ── STATE ────────────────────────────────────────────────

    @property
    def current(self) -> FilterRound:
        return self.rounds[-1]

    @property
    def depth(self) -> int:
        return len(self.rounds)

    @property
    def title(self) -> str:
        return self.current.title

    @property
    def visible(self) -> List[ClusterId]:
        return self.current.clusters

    @property
    def cursor(self) -> Optional[int]:
        return self.current.cursor

    def current_cluster(self) -> Optional[ClusterRecord]:
        idx = self.current.cursor
        if idx is None or idx >= len(self.visible):
            return None
        return self.clusters.get(self.visible[idx])

    # ── FILTER STACK ─────────────────────────────────────────

    def apply(self, kind: FilterKind, op: FilterOp, pattern: Optional[str]) -> Optional[int]:
        """
        Filter the visible clusters. Pushes a round and returns its size,
        or returns None (and pushes nothing) when nothing matches.
        """
        last = self.visible
        if kind in (FilterKind.COUNT, FilterKind.SCORE):
            found = self.clusters.filter_by_numeric(last, kind, op, pattern or '')
        elif kind == FilterKind.QUALIFIER:
            found = self.clusters.filter_by_qualifier(last, pattern or '')
        elif kind == FilterKind.LABEL:
            found = self._filter_by_label(last, pattern)
        elif kind == FilterKind.REGEX:
            found = self._filter_by_regex(last, pattern or '')
        elif kind == FilterKind.TOKEN:
            indexed = set(self.clusters.clusters_with_token(pattern or ''))
            found = [cid for cid in last if cid in indexed]
        else:
            found = []

        shown = pattern if pattern is not None else ALL_LABELS
        logger.info(f'filtering by "{kind.title} {op} {shown}". {len(found)} clusters')
        if not found:
            return None

        self.rounds.append(FilterRound(
            kind     = kind,
            op       = op,
            pattern  = shown,
            clusters = found,
            title    = f"{self.title}({kind.title} {op} {shown})",
        ))
        return len(found)

    def _filter_by_label(self, last: List[ClusterId], pattern: Optional[str]) -> List[ClusterId]:
        catalog_id, rule_id = parse_pattern_id(pattern)
        labeled = set(self.labels.find_clusters(catalog_id, rule_id))
        return [cid for cid in last if cid in labeled]

    def _filter_by_regex(self, last: List[ClusterId], pattern: str) -> List[ClusterId]:
        negate = pattern.startswith(NEGATE_PREFIX)
        if negate:
            pattern = pattern[len(NEGATE_PREFIX):]
            if not pattern:
                return []
        matched = self.clusters.filter_by_regex(last, pattern, self.events)
        if negate:
            hit = set(matched)
            return [cid for cid in last if cid not in hit]
        return matched

    def exit(self) -> FilterRound:
        """Pop the top round. Raises IndexError on the base round."""
        if len(self.rounds) <= 1:
            raise IndexError("cannot exit the full cluster list")
        return self.rounds.pop()

    # ── CURSOR ───────────────────────────────────────────────

    def goto(self, index: int) -> int:
        last = len(self.visible) - 1
        self.current.cursor = max(0, min(index, last))
        return self.current.cursor

    def next(self, reverse: bool = False) -> int:
        return self._step(-1 if reverse else 1)

    def prev(self, reverse: bool = False) -> int:
        return self._step(1 if reverse else -1)

    def _step(self, delta: int) -> int:
        cursor = self.current.cursor
        if cursor is None:
            return self.goto(0)
        return self.goto(cursor + delta)

    def settle(self) -> int:
        """Make sure the cursor points at a visible cluster."""
        return self.goto(self.current.cursor or 0)

    def enter_cluster(self, cluster_id: ClusterId) -> Optional[int]:
        try:
            idx = self.visible.index(cluster_id)
        except ValueError:
            return None
        return self.goto(idx)

    # ── TRIAGE ───────────────────────────────────────────────

    def set_qualifier(
        self,
        qualifier:    Qualifier,
        index:        Optional[int] = None,
        all_clusters: bool = False,
    ) -> int:
        """
        Number of clusters whose qualifier actually changed. Without an
        index this targets the cluster under the cursor, and does nothing
        until a cluster of the layer has been shown.
        """
        if all_clusters:
            count = sum(1 for cid in self.visible if self.clusters.set_qualifier(cid, qualifier))
            logger.info(f"{count} clusters updated to {qualifier}")
            return count

        if index is None:
            index = self.current.cursor
            if index is None:
                return 0
        if index < 0 or index >= len(self.visible):
            logger.warning(f"cluster index {index} not found")
            return 0
        cid = self.visible[index]
        if self.clusters.set_qualifier(cid, qualifier):
            logger.info(f"cluster #{cid} updated to {qualifier}")
            return 1
        return 0

    def filter_events(self, pattern: str) -> int:
        """
        Narrow the events of the cluster under the cursor. Returns the
        number of events kept (0 when nothing was recorded).
        """
        c = self.current_cluster()
        if c is None:
            return 0
        matched = self.clusters.regex_within_cluster(c.id, pattern, self.events)
        if matched is None:
            return 0
        self.clusters.push_filtered(c.id, matched, pattern)
        return len(matched)

    def clear_events(self) -> None:
        c = self.current_cluster()
        if c is not None:
            self.clusters.clear_filter(c.id)

    # ── LOOKUPS ──────────────────────────────────────────────

    def catalog_name(self, catalog_id: CatalogId) -> Optional[str]:
        return self.catalog.name_of(catalog_id)

    def label_name(self, catalog_id: CatalogId, rule_id: RuleId) -> Optional[str]:
        return self.catalog.label_name(catalog_id, rule_id)

    def statistics(self) -> SessionStatistics:
        s = self.labels.statistics()
        return SessionStatistics(
            clusters         = len(self.clusters),
            labeled_clusters = s.labeled_clusters,
            labeled_events   = s.labeled_events,
            representatives  = s.representatives,
        )

    def qualifier_counts(self) -> Dict[Qualifier, int]:
        """Pending qualifiers of the visible clusters, every qualifier present."""
        counts = Counter(
            c.new_qualifier
            for c in (self.clusters.get(cid) for cid in self.visible)
            if c is not None
        )
        return {q: counts.get(q, 0) for q in ORDERED_QUALIFIERS}

    def changed_count(self) -> int:
        records = (self.clusters.get(cid) for cid in self.clusters.cluster_ids)
        return sum(1 for c in records if c is not None and c.changed)
