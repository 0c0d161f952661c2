"""
triage/display.py
Text rendering for the REPL. Every function returns lines; cli.py prints them.
"""

from typing import List

from triage.config import DisplayOptions
from triage.models.record import ClusterRecord
from triage.navigator import Navigator

# ANSI colors
GREEN   = '\033[92m'
RED     = '\033[91m'
CYAN    = '\033[96m'
RESET   = '\033[0m'
BOLD    = '\033[1m'
REVERSE = '\033[7m'

QUALIFIER_COLOR = {
    'benign':     BOLD + GREEN,
    'suspicious': BOLD + RED,
}


def qualifier_text(q) -> str:
    color = QUALIFIER_COLOR.get(str(q))
    return f"{color}{q}{RESET}" if color else str(q)


def cluster_header(c: ClusterRecord) -> str:
    if c.changed:
        verdict = f"{qualifier_text(c.new_qualifier)}<-{qualifier_text(c.qualifier)}"
    else:
        verdict = qualifier_text(c.new_qualifier)
    return f" cluster {c.id}, {verdict}, {c.size} events, score = {c.score}"


def render_cluster(nav: Navigator, index: int, options: DisplayOptions) -> List[str]:
    if index < 0 or index >= len(nav.visible):
        return []
    c = nav.clusters.get(nav.visible[index])
    if c is None:
        return []

    lines = [f"[{index}]{cluster_header(c)}"]

    if options.show_signature:
        sig = c.display_signature()
        if sig is not None:
            lines.append(f"signature = {sig}")

    if c.filters:
        lines.append(f"Event Filter: {c.filters}")

    if options.show_samples:
        lines.extend(_samples(nav, c, options))

    lines.extend(_representative_labels(nav, c))
    lines.extend(_event_labels(nav, c))
    return lines


def _samples(nav: Navigator, c: ClusterRecord, options: DisplayOptions) -> List[str]:
    event_ids = c.active_event_ids
    lines = ['']
    for message_id in event_ids[:options.samples_count]:
        lines.append(nav.events.content(message_id) or message_id)
        if options.show_tokens:
            tokens = nav.events.tokens(message_id) or []
            lines.append(f"    {CYAN}tokens: {' '.join(tokens)}{RESET}")
    remaining = len(event_ids) - options.samples_count
    if remaining > 0:
        lines.append(f"... {remaining} more events")
    return lines


def _representative_labels(nav: Navigator, c: ClusterRecord) -> List[str]:
    matched = nav.labels.representative_labels(c.id)
    if not matched or c.size <= 0:
        return []
    lines = ['', f"{BOLD}Cluster label(s):{RESET}"]
    for label in matched:
        name = nav.label_name(label.catalog_id, label.rule_id)
        if name is None:
            continue
        lines.append(
            f"{label.score / c.size:.3f} {label.count}/{c.size} "
            f"{label.catalog_id}:{label.rule_id} {name}"
        )
    return lines


def _event_labels(nav: Navigator, c: ClusterRecord) -> List[str]:
    matched = nav.labels.event_labels(c.id)
    if matched is None:
        return []
    lines = ['', f"{BOLD}Event label(s):{RESET}"]
    unknowns = set()
    for (catalog_id, rule_id), count in matched:
        name = nav.label_name(catalog_id, rule_id)
        if name is None:
            unknowns.add(catalog_id)
            continue
        lines.append(f"{count:>4} {catalog_id}:{rule_id} {name}")
    for catalog_id in sorted(unknowns):
        lines.append(f"{catalog_id:>8}:")
    return lines


def render_statistics(nav: Navigator) -> List[str]:
    s = nav.statistics()
    return [
        f"{s.clusters:>6} clusters",
        f"{s.labeled_clusters:>6} labeled clusters",
        f"{s.labeled_events:>6} labeled events",
        f"{s.representatives:>6} representatives",
    ]


def render_status(nav: Navigator) -> List[str]:
    counts = ', '.join(f"{q} = {n}" for q, n in nav.qualifier_counts().items())
    return [
        f"Layer   : {nav.depth} ({nav.title})",
        f"Visible : {len(nav.visible)} clusters",
        f"Qualifiers: {counts}",
        f"Changed this session: {nav.changed_count()}",
    ]


def prompt(nav: Navigator) -> str:
    limit = len(nav.visible)
    position = f"[{limit}]" if nav.cursor is None else f"[{nav.cursor + 1}/{limit}]"
    return f"\n{REVERSE}{nav.title}{RESET} {position}# "
