"""
tests/test_navigator.py
Filter-round stack, cursor movement and triage actions.
Most tests drive a Navigator built from in-memory stores; TestNavigatorLoad
writes real input files to tmp_path.
"""

import json
import re

import pytest

from triage.catalog import RuleCatalog
from triage.config import load_config
from triage.models.record import (
    ORDERED_QUALIFIERS,
    OUTLIERS_CLUSTER_ID,
    ClusterRecord,
    EventRecord,
    FilterKind,
    FilterOp,
    LabelAssignment,
    Qualifier,
    RepresentativeLabel,
)
from triage.models.schemas import Rule, RulePack
from triage.navigator import Navigator, parse_pattern_id
from triage.parsers.tokenizer import extract_tokens
from triage.stores.clusters import ClusterStore
from triage.stores.events import EventStore
from triage.stores.labels import LabelStore


# ── FIXTURES: in-memory session ──────────────────────────────

EVENTS = {
    'a1': 'GET /login failed for admin',
    'a2': 'GET /login ok for guest',
    'a3': 'GET /logout for admin',
    'b1': 'GET /index.html ok',
    'c1': 'POST /upload shell.php',
    'c2': 'POST /upload image.png',
}


def _cluster(cid, size, score, events, qualifier=Qualifier.UNKNOWN):
    return ClusterRecord(
        id=cid, size=size, score=score, qualifier=qualifier,
        new_qualifier=qualifier, event_ids=tuple(events),
    )


@pytest.fixture
def nav():
    records = {
        3: _cluster(3, 50, 0.9, ['c1', 'c2'], Qualifier.SUSPICIOUS),
        1: _cluster(1, 10, 0.5, ['a1', 'a2', 'a3']),
        2: _cluster(2, 2, 0.1, ['b1']),
    }
    clusters = ClusterStore(records, [3, 1, 2])
    events = EventStore({
        mid: EventRecord(message_id=mid, content=text, tokens=extract_tokens(text))
        for mid, text in EVENTS.items()
    })
    labels = LabelStore(
        {3: [RepresentativeLabel(catalog_id=20, rule_id=5, count=2, score=1.4)]},
        [
            LabelAssignment(3, 'c1', (20, 5), 0.7),
            LabelAssignment(3, 'c2', (20, 6), 0.5),
            LabelAssignment(1, 'a1', (10, 100), 0.9),
        ],
    )
    catalog = RuleCatalog([RulePack(
        id=20, name='webshells', version='1',
        rules=[Rule(rule_id=5, name='PHP upload')],
    )])
    clusters.build_token_index(events)
    return Navigator(clusters, events, labels, catalog)


# ── PATTERN IDS ──────────────────────────────────────────────

class TestParsePatternId:

    @pytest.mark.parametrize('text,expected', [
        ('10:100', (10, 100)),
        ('10',     (10, 0)),
        (None,     (0, 0)),
        ('',       (0, 0)),
        ('x:5',    (0, 5)),
        ('7:y',    (7, 0)),
        ('-3:-1',  (0, 0)),
    ])
    def test_parse(self, text, expected):
        assert parse_pattern_id(text) == expected


# ── FILTER STACK ─────────────────────────────────────────────

class TestFilterStack:

    def test_initial_round(self, nav):
        assert nav.depth == 1
        assert nav.title == 'Clusters'
        assert nav.visible == [3, 1, 2]
        assert nav.cursor is None

    def test_count_filter_pushes_round(self, nav):
        assert nav.apply(FilterKind.COUNT, FilterOp.GE, '10') == 2
        assert nav.depth == 2
        assert nav.visible == [3, 1]
        assert nav.title == 'Clusters(Count >= 10)'
        assert nav.current.pattern == '10'
        assert nav.current.kind == FilterKind.COUNT

    def test_filters_chain_on_top_round(self, nav):
        nav.apply(FilterKind.COUNT, FilterOp.GE, '10')
        assert nav.apply(FilterKind.SCORE, FilterOp.LT, '0.6') == 1
        assert nav.visible == [1]
        assert nav.title == 'Clusters(Count >= 10)(Score < 0.6)'
        assert nav.depth == 3

    def test_no_match_leaves_stack(self, nav):
        assert nav.apply(FilterKind.COUNT, FilterOp.GT, '1000') is None
        assert nav.depth == 1
        assert nav.visible == [3, 1, 2]

    def test_exit_base_round_raises(self, nav):
        with pytest.raises(IndexError):
            nav.exit()
        assert nav.depth == 1

    @pytest.mark.parametrize('kind,op,pattern,expected', [
        (FilterKind.COUNT,     FilterOp.GE, '10',        [3, 1]),
        (FilterKind.SCORE,     FilterOp.GT, '0.2',       [3, 1]),
        (FilterKind.QUALIFIER, FilterOp.EQ, 'unknown',   [1, 2]),
        (FilterKind.LABEL,     FilterOp.EQ, None,        [3, 1]),
        (FilterKind.LABEL,     FilterOp.EQ, '20',        [3]),
        (FilterKind.LABEL,     FilterOp.EQ, '0:100',     [1]),
        (FilterKind.REGEX,     FilterOp.EQ, 'login',     [1]),
        (FilterKind.REGEX,     FilterOp.EQ, '!upload',   [1, 2]),
        (FilterKind.TOKEN,     FilterOp.EQ, 'upload',    [3]),
    ])
    def test_apply_then_exit_round_trip(self, nav, kind, op, pattern, expected):
        before = list(nav.visible)
        assert nav.apply(kind, op, pattern) == len(expected)
        assert nav.visible == expected
        assert set(nav.visible) <= set(before)
        nav.exit()
        assert nav.depth == 1
        assert nav.visible == before

    def test_label_without_argument_titled_all(self, nav):
        nav.apply(FilterKind.LABEL, FilterOp.EQ, None)
        assert nav.title == 'Clusters(Label = All)'
        assert nav.current.pattern == 'All'

    def test_unknown_label_no_match(self, nav):
        assert nav.apply(FilterKind.LABEL, FilterOp.EQ, '99:1') is None

    def test_invalid_regex_raises_without_push(self, nav):
        with pytest.raises(re.error):
            nav.apply(FilterKind.REGEX, FilterOp.EQ, '(unclosed')
        assert nav.depth == 1

    def test_bare_negation_matches_nothing(self, nav):
        assert nav.apply(FilterKind.REGEX, FilterOp.EQ, '!') is None

    def test_token_lookup_case_insensitive(self, nav):
        assert nav.apply(FilterKind.TOKEN, FilterOp.EQ, 'UPLOAD') == 1

    def test_none_kind_matches_nothing(self, nav):
        assert nav.apply(FilterKind.NONE, FilterOp.EQ, 'x') is None

    def test_qualifier_filter_sees_pending_changes(self, nav):
        nav.set_qualifier(Qualifier.BENIGN, index=2)
        assert nav.apply(FilterKind.QUALIFIER, FilterOp.EQ, 'benign') == 1
        assert nav.visible == [2]


# ── CURSOR ───────────────────────────────────────────────────

class TestCursor:

    def test_next_walks_and_clamps(self, nav):
        assert nav.next() == 0
        assert nav.next() == 1
        assert nav.next() == 2
        assert nav.next() == 2

    def test_prev_clamps_at_start(self, nav):
        nav.goto(1)
        assert nav.prev() == 0
        assert nav.prev() == 0

    def test_reverse_swaps_direction(self, nav):
        nav.goto(2)
        assert nav.next(reverse=True) == 1
        assert nav.prev(reverse=True) == 2

    def test_first_step_lands_on_start(self, nav):
        assert nav.prev() == 0

    def test_goto_clamps(self, nav):
        assert nav.goto(99) == 2
        assert nav.goto(-5) == 0

    def test_settle(self, nav):
        assert nav.settle() == 0
        nav.goto(2)
        assert nav.settle() == 2

    def test_enter_cluster(self, nav):
        nav.goto(0)
        assert nav.enter_cluster(2) == 2
        assert nav.enter_cluster(42) is None
        assert nav.cursor == 2

    def test_current_cluster(self, nav):
        assert nav.current_cluster() is None
        nav.goto(1)
        assert nav.current_cluster().id == 1

    def test_cursor_per_round(self, nav):
        nav.goto(2)
        nav.apply(FilterKind.COUNT, FilterOp.GE, '10')
        assert nav.cursor is None
        nav.next()
        nav.next()
        assert nav.cursor == 1
        nav.exit()
        assert nav.cursor == 2


# ── TRIAGE ───────────────────────────────────────────────────

class TestSetQualifier:

    def test_single_cluster(self, nav):
        nav.goto(1)
        assert nav.set_qualifier(Qualifier.BENIGN) == 1
        assert nav.set_qualifier(Qualifier.BENIGN) == 0
        c = nav.clusters.get(1)
        assert c.new_qualifier == Qualifier.BENIGN
        assert c.qualifier == Qualifier.UNKNOWN
        assert nav.changed_count() == 1

    def test_explicit_index(self, nav):
        assert nav.set_qualifier(Qualifier.MIXED, index=2) == 1
        assert nav.clusters.get(2).new_qualifier == Qualifier.MIXED

    def test_index_out_of_range(self, nav):
        assert nav.set_qualifier(Qualifier.MIXED, index=3) == 0
        assert nav.set_qualifier(Qualifier.MIXED, index=-1) == 0
        assert nav.changed_count() == 0

    def test_nothing_changes_before_a_cluster_is_shown(self, nav):
        assert nav.set_qualifier(Qualifier.BENIGN) == 0
        assert nav.changed_count() == 0
        nav.apply(FilterKind.COUNT, FilterOp.GE, '10')
        assert nav.set_qualifier(Qualifier.BENIGN) == 0
        nav.next()
        assert nav.set_qualifier(Qualifier.BENIGN) == 1
        assert nav.clusters.get(3).new_qualifier == Qualifier.BENIGN

    def test_all_visible(self, nav):
        n = nav.set_qualifier(Qualifier.MIXED, all_clusters=True)
        assert n == 3
        assert nav.set_qualifier(Qualifier.MIXED, all_clusters=True) == 0

    def test_all_limited_to_layer(self, nav):
        nav.apply(FilterKind.COUNT, FilterOp.GE, '10')
        assert nav.set_qualifier(Qualifier.BENIGN, all_clusters=True) == 2
        assert nav.clusters.get(2).new_qualifier == Qualifier.UNKNOWN

    def test_all_counts_only_changes(self, nav):
        # cluster 3 is already suspicious
        assert nav.set_qualifier(Qualifier.SUSPICIOUS, all_clusters=True) == 2


class TestEventFilters:

    def test_no_cursor(self, nav):
        assert nav.filter_events('admin') == 0

    def test_stacked_sub_filters(self, nav):
        nav.goto(1)
        assert nav.filter_events('admin') == 2
        assert nav.filter_events('!failed') == 1
        c = nav.clusters.get(1)
        assert c.filters == ['admin', '!failed']
        assert c.active_event_ids == ['a3']

    def test_empty_result_still_recorded(self, nav):
        nav.goto(1)
        assert nav.filter_events('nothing-here') == 0
        c = nav.clusters.get(1)
        assert c.filters == ['nothing-here']
        assert c.active_event_ids == []

    def test_bare_negation_not_recorded(self, nav):
        nav.goto(1)
        assert nav.filter_events('!') == 0
        assert nav.clusters.get(1).filters == []

    def test_invalid_regex(self, nav):
        nav.goto(1)
        with pytest.raises(re.error):
            nav.filter_events('[')
        assert nav.clusters.get(1).filters == []

    def test_clear_events(self, nav):
        nav.goto(1)
        nav.filter_events('admin')
        nav.clear_events()
        c = nav.clusters.get(1)
        assert c.filters == []
        assert c.active_event_ids == ['a1', 'a2', 'a3']

    def test_sub_filters_do_not_touch_stack(self, nav):
        nav.goto(0)
        nav.filter_events('shell')
        assert nav.depth == 1
        assert nav.visible == [3, 1, 2]


class TestLookups:

    def test_statistics(self, nav):
        s = nav.statistics()
        assert s.clusters == 3
        assert s.labeled_clusters == 2
        assert s.labeled_events == 3
        assert s.representatives == 1

    def test_qualifier_counts(self, nav):
        counts = nav.qualifier_counts()
        assert list(counts) == list(ORDERED_QUALIFIERS)
        assert counts[Qualifier.UNKNOWN] == 2
        assert counts[Qualifier.SUSPICIOUS] == 1
        assert counts[Qualifier.BENIGN] == 0

    def test_qualifier_counts_follow_layer(self, nav):
        nav.apply(FilterKind.COUNT, FilterOp.GE, '10')
        counts = nav.qualifier_counts()
        assert sum(counts.values()) == 2

    def test_names(self, nav):
        assert nav.catalog_name(20) == 'webshells'
        assert nav.label_name(20, 5) == 'PHP upload'
        assert nav.label_name(20, 6) == 'webshells'
        assert nav.label_name(10, 100) is None


# ── LOAD FROM FILES ──────────────────────────────────────────

COLUMN_FORMAT = [
    {"data_type": "datetime", "alias": "time"},
    {"data_type": "utf8", "alias": "uid"},
    {"data_type": "utf8", "weight": 1.0, "alias": "message"},
]

EVENT_LINES = [
    't0,e1,GET /login failed for admin',
    't1,e2,GET /login ok for guest',
    't2,e3,GET /index.html ok',
    't3,e4,POST /upload shell.php',
    't4,e5,odd thing happened',
    't5,e9,not in any cluster',
]

CLUSTERS = {
    "detector_id": 1,
    "events_count": 5,
    "clusters_count": 3,
    "outlier_count": 1,
    "clusters": [
        {"cluster_id": 1, "cluster_size": 10, "signature": "GET login", "score": 0.5, "events": ["e1", "e2"]},
        {"cluster_id": 2, "cluster_size": 2, "score": 0.1, "events": ["e3"]},
        {"cluster_id": 3, "cluster_size": 50, "score": 0.9, "events": ["e4"]},
    ],
    "outliers": ["t4,e5,odd thing happened"],
}

LABELS = {
    "representative": [],
    "events": [[3, [["e4", [[20, 5, 0.7]]]]]],
}


def _write_inputs(tmp_path, clusters=None, config=None):
    (tmp_path / 'events.csv').write_text('\n'.join(EVENT_LINES) + '\n', encoding='utf-8')
    (tmp_path / 'clusters.json').write_text(json.dumps(clusters or CLUSTERS), encoding='utf-8')
    (tmp_path / 'labels.json').write_text(json.dumps(LABELS), encoding='utf-8')
    settings = {
        "event_type":     "CSV",
        "format":         COLUMN_FORMAT,
        "input_log":      str(tmp_path / 'events.csv'),
        "input_clusters": str(tmp_path / 'clusters.json'),
        "input_labels":   str(tmp_path / 'labels.json'),
        "tidb":           str(tmp_path / '*.tidb'),
        "key_column":     "uid",
    }
    settings.update(config or {})
    path = tmp_path / 'triage.json'
    path.write_text(json.dumps(settings), encoding='utf-8')
    return load_config(path)


class TestNavigatorLoad:

    def test_end_to_end(self, tmp_path):
        nav = Navigator.load(_write_inputs(tmp_path))
        assert nav.visible == [1, 2, 3, OUTLIERS_CLUSTER_ID]
        assert len(nav.events) == 5
        assert 'e9' not in nav.events
        assert nav.clusters.get(3).qualifier == Qualifier.SUSPICIOUS
        assert len(nav.catalog) == 0

        assert nav.depth == 1
        assert nav.apply(FilterKind.COUNT, FilterOp.GE, '10') == 2
        assert nav.visible == [1, 3]
        assert nav.depth == 2

    def test_token_index_built(self, tmp_path):
        nav = Navigator.load(_write_inputs(tmp_path))
        assert nav.clusters.clusters_with_token('odd') == [OUTLIERS_CLUSTER_ID]
        assert nav.clusters.clusters_with_token('login') == [1]

    def test_packet_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            Navigator.load(_write_inputs(tmp_path, config={"event_type": "packet"}))

    def test_missing_key_column(self, tmp_path):
        with pytest.raises(ValueError):
            Navigator.load(_write_inputs(tmp_path, config={"key_column": "nope"}))

    def test_missing_cluster_file(self, tmp_path):
        config = _write_inputs(tmp_path, config={"input_clusters": str(tmp_path / 'absent.json')})
        with pytest.raises(OSError):
            Navigator.load(config)

    def test_no_clusters(self, tmp_path):
        empty = dict(CLUSTERS, clusters=[], outliers=[])
        with pytest.raises(ValueError, match='clusters not found'):
            Navigator.load(_write_inputs(tmp_path, clusters=empty))

    def test_no_events(self, tmp_path):
        unknown = dict(CLUSTERS, clusters=[{"cluster_id": 1, "cluster_size": 1, "events": ["zz"]}], outliers=[])
        with pytest.raises(ValueError, match='events not found'):
            Navigator.load(_write_inputs(tmp_path, clusters=unknown))
