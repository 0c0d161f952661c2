"""
triage/models/record.py
Shared dataclass schema. Stores, the navigator and the display layer
all use these types. Keep logic here to a minimum — data only.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional, Tuple

ClusterId = int
MessageId = str
CatalogId = int
RuleId = int
PatternId = Tuple[CatalogId, RuleId]

# Synthetic cluster that collects every event the clustering pass left over
OUTLIERS_CLUSTER_ID: ClusterId = 1_000_000

SIGNATURE_DISPLAY_LENGTH = 200


class Qualifier(IntEnum):
    """Analyst verdict on a cluster. Ordered for stable display."""
    BENIGN     = 1
    UNKNOWN    = 2
    SUSPICIOUS = 3
    MIXED      = 4

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str) -> Optional['Qualifier']:
        """Exact lower-case name → Qualifier. None if unrecognized."""
        for q in cls:
            if str(q) == value:
                return q
        return None


ORDERED_QUALIFIERS: Tuple[Qualifier, ...] = tuple(sorted(Qualifier))


class FilterOp(Enum):
    LT = '<'
    LE = '<='
    GT = '>'
    GE = '>='
    EQ = '='
    NE = '<>'

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> Optional['FilterOp']:
        try:
            return cls(value)
        except ValueError:
            return None


class FilterKind(Enum):
    NONE      = 'none'
    COUNT     = 'count'
    SCORE     = 'score'
    QUALIFIER = 'qualifier'
    LABEL     = 'label'
    REGEX     = 'regex'
    TOKEN     = 'token'

    @property
    def title(self) -> str:
        return self.name.capitalize()


class EventType(Enum):
    CSV    = 'csv'
    LOG    = 'log'
    PACKET = 'packet'


@dataclass
class ClusterRecord:
    """One cluster as loaded, plus the session-only triage state."""
    id:            ClusterId
    size:          int
    score:         float
    qualifier:     Qualifier
    new_qualifier: Qualifier
    signature:     Optional[str]          = None
    event_ids:     Tuple[MessageId, ...]  = ()

    # Event sub-filters. filtered_events[i] was produced by filters[i].
    filtered_events: List[List[MessageId]] = field(default_factory=list)
    filters:         List[str]             = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.qualifier != self.new_qualifier

    @property
    def active_event_ids(self) -> List[MessageId]:
        """Innermost filtered subset, or every member when unfiltered."""
        if self.filtered_events:
            return self.filtered_events[-1]
        return list(self.event_ids)

    def display_signature(self) -> Optional[str]:
        if self.signature is None:
            return None
        if len(self.signature) > SIGNATURE_DISPLAY_LENGTH:
            return f"{self.signature[:SIGNATURE_DISPLAY_LENGTH]}... ({len(self.signature)})"
        return self.signature


@dataclass
class FilterRound:
    """One layer of the drill-down stack."""
    kind:     FilterKind
    op:       FilterOp
    pattern:  str
    clusters: List[ClusterId]
    title:    str           = 'Clusters'
    cursor:   Optional[int] = None     # position within clusters, None until shown


@dataclass
class LabelAssignment:
    """A single rule hit on a single event of a cluster."""
    cluster_id: ClusterId
    message_id: MessageId
    pattern:    PatternId
    score:      float


@dataclass
class RepresentativeLabel:
    catalog_id: CatalogId
    rule_id:    RuleId
    count:      int
    score:      float


@dataclass
class EventRecord:
    """Raw event line plus its feature tokens."""
    message_id: MessageId
    content:    str
    tokens:     List[str] = field(default_factory=list)
