"""
triage/config.py
Session configuration.

TriageConfig is the JSON file passed with --config: where the inputs
live and what the event file's columns look like. DisplayOptions holds
the /set toggles for the running session and is never persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from triage.models.record import EventType
from triage.models.schemas import load_json_model

logger = logging.getLogger(__name__)


class ColumnType(str, Enum):
    DATETIME = 'datetime'
    ENUM     = 'enum'
    FLOAT64  = 'float64'
    INT64    = 'int64'
    IPADDR   = 'ipaddr'
    UTF8     = 'utf8'
    BINARY   = 'binary'


class ColumnFormat(BaseModel):
    data_type: ColumnType
    weight:    float         = 0.0
    format:    Optional[str] = None
    alias:     str


class TriageConfig(BaseModel):
    event_type:     EventType = EventType.CSV
    time_column:    int       = 0
    format:         List[ColumnFormat]
    input_log:      str
    input_clusters: str
    input_labels:   str
    tidb:           str                  # glob of rule pack files
    key_column:     str = 'uid'          # must match a column alias
    delimiter:      str = Field(default=',', min_length=1, max_length=1)

    @field_validator('event_type', mode='before')
    @classmethod
    def _lower_event_type(cls, v):
        return v.lower() if isinstance(v, str) else v

    @property
    def column_count(self) -> int:
        return len(self.format)

    def features(self) -> List[int]:
        """Indices of weighted columns; only these are tokenized."""
        return [idx for idx, col in enumerate(self.format) if col.weight > 0.0]

    def key_field(self) -> Optional[int]:
        for idx, col in enumerate(self.format):
            if col.alias == self.key_column:
                return idx
        return None


def load_config(path: Union[str, Path]) -> TriageConfig:
    """Raises OSError if unreadable, ValueError if malformed."""
    config = load_json_model(TriageConfig, path)
    logger.debug(f"Config loaded from {path}: {config.event_type.value}, {config.column_count} columns")
    return config


# ── DISPLAY OPTIONS ──────────────────────────────────────────

DEFAULT_SAMPLES_DISPLAY_COUNT = 30

SWITCH_VALUES = {'on': True, 'off': False}


@dataclass
class DisplayOptions:
    samples_count:  int  = DEFAULT_SAMPLES_DISPLAY_COUNT
    show_samples:   bool = True
    reverse:        bool = False
    show_signature: bool = True
    show_tokens:    bool = False

    # toggle name → attribute. samplescount takes a count, the rest on|off.
    SWITCHES = {
        'reverse':   'reverse',
        'samples':   'show_samples',
        'signature': 'show_signature',
        'tokens':    'show_tokens',
    }

    def set(self, name: str, value: str) -> None:
        """Apply `/set <name> <value>`. Raises ValueError on anything unknown."""
        if name == 'samplescount':
            try:
                count = int(value)
            except ValueError:
                raise ValueError(f"samplescount needs a number, got {value!r}") from None
            if count < 0:
                raise ValueError(f"samplescount must not be negative, got {count}")
            self.samples_count = count
            return

        attr = self.SWITCHES.get(name)
        if attr is None:
            raise ValueError(f"unknown option {name!r}")
        if value not in SWITCH_VALUES:
            raise ValueError(f"{name} takes on|off, got {value!r}")
        setattr(self, attr, SWITCH_VALUES[value])
