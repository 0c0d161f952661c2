"""
triage/stores — loaded inputs, built once per session.
"""

from triage.stores.clusters import ClusterStore
from triage.stores.events import EventStore
from triage.stores.labels import LabelStore, LabelStatistics, pack_pattern_id

__all__ = [
    "ClusterStore",
    "EventStore",
    "LabelStore",
    "LabelStatistics",
    "pack_pattern_id",
]
