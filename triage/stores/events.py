"""
triage/stores/events.py
Raw event records, restricted to the ids that appear in some cluster.

Each line of the event file is one record, split on a single-character
delimiter (no quoting). Lines with the wrong column count, or whose key
is missing or not wanted, are skipped and counted — never fatal.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Set, Union

from triage.models.record import EventRecord, MessageId
from triage.parsers.tokenizer import extract_tokens

logger = logging.getLogger(__name__)


class EventStore:
    """MessageId → EventRecord. Immutable after load."""

    def __init__(self, events: Dict[MessageId, EventRecord]):
        self._events = events
        self.skipped   = 0
        self.not_found = 0

    @classmethod
    def load(
        cls,
        path:            Union[str, Path],
        delimiter:       str,
        key_index:       int,
        feature_indices: Sequence[int],
        column_count:    int,
        restrict_to:     Iterable[MessageId],
    ) -> 'EventStore':
        """
        Read the event file. Raises OSError only if it cannot be opened.
        """
        wanted: Set[MessageId] = set(restrict_to)
        events: Dict[MessageId, EventRecord] = {}
        skipped = 0
        not_found = 0

        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            for line in f:
                line = line.rstrip('\r\n')
                fields = line.split(delimiter)
                if len(fields) != column_count:
                    skipped += 1
                    continue
                if key_index >= len(fields) or fields[key_index] not in wanted:
                    not_found += 1
                    continue

                key = fields[key_index]
                tokens: List[str] = []
                for idx in feature_indices:
                    if idx < len(fields):
                        tokens.extend(extract_tokens(fields[idx]))

                events[key] = EventRecord(message_id=key, content=line, tokens=tokens)

        logger.info(f"{skipped} skipped events, {not_found} not found")
        store = cls(events)
        store.skipped = skipped
        store.not_found = not_found
        return store

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._events

    def tokens(self, message_id: MessageId) -> Optional[List[str]]:
        event = self._events.get(message_id)
        return event.tokens if event else None

    def content(self, message_id: MessageId) -> Optional[str]:
        event = self._events.get(message_id)
        return event.content if event else None

    def regex_match(
        self,
        pattern:       Union[str, Pattern],
        candidate_ids: Iterable[MessageId],
    ) -> List[MessageId]:
        """
        Candidates whose raw line matches, in candidate order.
        Unknown ids never match. re.error propagates for a bad pattern.
        """
        regex = re.compile(pattern)
        matched: List[MessageId] = []
        for message_id in candidate_ids:
            event = self._events.get(message_id)
            if event is not None and regex.search(event.content):
                matched.append(message_id)
        return matched
