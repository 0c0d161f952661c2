"""
triage/models/schemas.py
On-disk input formats, validated with pydantic.

These mirror the files written by the clustering and labeling passes.
Stores convert them into the dataclasses in triage.models.record.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Annotated, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError


M = TypeVar('M', bound=BaseModel)


def load_json_model(model: Type[M], path: Union[str, Path]) -> M:
    """
    Read and validate a JSON file.
    OSError propagates when the file cannot be opened; malformed content
    is raised as ValueError naming the file.
    """
    path = Path(path)
    text = path.read_text(encoding='utf-8')
    try:
        return model.model_validate_json(text)
    except ValidationError as e:
        raise ValueError(f"cannot load {path}: {e}") from e


# ── CLUSTERS ─────────────────────────────────────────────────

class ClusterMember(BaseModel):
    cluster_id:   int = Field(..., ge=0)
    cluster_size: int = Field(..., ge=0)
    signature:    Optional[str]   = None
    score:        Optional[float] = None
    events:       List[str]       = Field(default_factory=list)


class SavedClusters(BaseModel):
    detector_id:    int
    events_count:   int = 0
    clusters_count: int = 0
    outlier_count:  int = 0
    clusters:       List[ClusterMember] = Field(default_factory=list)
    outliers:       List[str]           = Field(default_factory=list)


# ── LABELS ───────────────────────────────────────────────────

# Catalog and rule ids are unsigned 32-bit; they are packed into one sort key
LabelId = Annotated[int, Field(ge=0, le=0xFFFFFFFF)]

# (catalog_id, rule_id, count, score)
RepresentativeEntry = Tuple[LabelId, LabelId, Annotated[int, Field(ge=0)], float]
# (catalog_id, rule_id, score)
EventLabelEntry = Tuple[LabelId, LabelId, float]


class SavedLabels(BaseModel):
    representative_labels: int = 0
    event_labels:          int = 0
    representative: List[Tuple[int, List[RepresentativeEntry]]] = Field(default_factory=list)
    events:         List[Tuple[int, List[Tuple[str, List[EventLabelEntry]]]]] = Field(default_factory=list)


# ── RULE PACKS ───────────────────────────────────────────────

class RuleKind(str, Enum):
    IP    = 'ip'
    URL   = 'url'
    TOKEN = 'token'
    REGEX = 'regex'


class Rule(BaseModel):
    rule_id:     LabelId
    name:        str
    description: Optional[str]       = None
    references:  Optional[List[str]] = None
    samples:     Optional[List[str]] = None
    signatures:  Optional[List[str]] = None


class RulePack(BaseModel):
    id:          LabelId
    name:        str
    description: Optional[str] = None
    kind:        RuleKind      = RuleKind.IP
    version:     str
    rules:       List[Rule]    = Field(default_factory=list)

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'RulePack':
        return cls.model_validate(json.loads(raw.decode('utf-8')))
