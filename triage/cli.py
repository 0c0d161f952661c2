"""
triage/cli.py
Interactive triage prompt.

USAGE:
  python -m triage.cli --config ./triage.json
  python -m triage.cli --config ./triage.json --verbose
  triage -c ./triage.json

The config names the cluster, event and label files and the rule pack
glob. Everything is loaded up front; a load failure exits before the
prompt appears. Qualifier changes live only for the session. TAB
completes commands, and the command history is kept in
.cli_history.txt in the working directory.
"""

import argparse
import logging
import re
import readline
import sys
from pathlib import Path

from triage.commands import HELP_TEXT, Command, CommandKind, complete, parse_command
from triage.config import DisplayOptions, load_config
from triage.display import (
    BOLD,
    CYAN,
    RED,
    RESET,
    prompt,
    render_cluster,
    render_statistics,
    render_status,
)
from triage.models.record import FilterKind
from triage.navigator import Navigator, parse_pattern_id

logger = logging.getLogger(__name__)

# Command history, kept in the working directory across sessions
HISTORY_FILE = '.cli_history.txt'


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog        = 'triage',
        description = 'Cluster triage — drill into precomputed event clusters and qualify them',
    )
    parser.add_argument(
        '--config', '-c',
        required = True,
        type     = Path,
        help     = 'JSON config naming the cluster, event, label and rule pack inputs',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    args = parser.parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    # ── LOAD ─────────────────────────────────────────────────
    try:
        config = load_config(args.config)
        nav    = Navigator.load(config)
    except (OSError, ValueError) as e:
        logger.error(e)
        _print(f"{RED}Error: {e}{RESET}")
        sys.exit(1)

    for line in render_statistics(nav):
        _print(line)

    setup_readline(HISTORY_FILE)
    try:
        run(nav, DisplayOptions())
    finally:
        save_history(HISTORY_FILE)


def setup_readline(history_file):
    """TAB completion over the command list, plus the saved history."""
    readline.set_completer(complete)
    readline.set_completer_delims('')
    if 'libedit' in (readline.__doc__ or ''):
        readline.parse_and_bind('bind ^I rl_complete')
    else:
        readline.parse_and_bind('tab: complete')
    try:
        readline.read_history_file(history_file)
    except OSError:
        logger.debug(f"No command history at {history_file}")


def save_history(history_file):
    try:
        readline.write_history_file(history_file)
    except OSError as e:
        logger.warning(f"Cannot save command history to {history_file}: {e}")


def run(nav: Navigator, options: DisplayOptions, read=input):
    """Read-evaluate-print loop. Returns on /quit, EOF or Ctrl-C."""
    while True:
        try:
            line = read(prompt(nav))
        except (EOFError, KeyboardInterrupt):
            _print('')
            break

        cmd = parse_command(line)
        logger.debug(f"Command: {cmd.kind.name}, option: {cmd.arg}")
        if cmd.kind == CommandKind.QUIT:
            break
        if execute(nav, cmd, options):
            idx = nav.settle()
            for out in render_cluster(nav, idx, options):
                _print(out)


def execute(nav: Navigator, cmd: Command, options: DisplayOptions) -> bool:
    """
    Apply one command. Returns True when the cluster under the cursor
    should be shown afterwards.
    """
    kind = cmd.kind

    if kind == CommandKind.GO_NEXT:
        nav.next(reverse=options.reverse)
        return True

    if kind == CommandKind.GO_PREV:
        nav.prev(reverse=options.reverse)
        return True

    if kind == CommandKind.JUMP:
        position = int(cmd.arg)
        if position > 0:
            nav.goto(position - 1)
        return True

    if kind == CommandKind.CLUSTER_ID:
        if nav.enter_cluster(int(cmd.arg)) is None:
            _print(f"Cluster #{cmd.arg} not in this layer.")
        return True

    if kind == CommandKind.FILTER:
        _filter(nav, cmd)
        return False

    if kind == CommandKind.EXIT:
        try:
            nav.exit()
        except IndexError as e:
            _print(f"Error: {e}")
        return False

    if kind == CommandKind.EVENT:
        _event_filter(nav, cmd)
        return True

    if kind == CommandKind.SET_QUALIFIER:
        count = nav.set_qualifier(cmd.qualifier, all_clusters=cmd.all)
        _print(f"{count} clusters updated to {cmd.qualifier}")
        return not cmd.all

    if kind == CommandKind.SET_OPTION:
        try:
            options.set(cmd.arg, cmd.value)
            _print(f"set {cmd.arg} {cmd.value}\n")
        except ValueError as e:
            _print(f"Error: {e}")
        return False

    if kind == CommandKind.STATUS:
        for line in render_status(nav):
            _print(line)
        return False

    if kind == CommandKind.STATISTICS:
        for line in render_statistics(nav):
            _print(line)
        return False

    if kind == CommandKind.RULE:
        catalog_id, rule_id = parse_pattern_id(cmd.arg)
        lines = nav.catalog.describe_rule(catalog_id, rule_id)
        if lines is None:
            _print(f"Rule {cmd.arg} not found.")
        for line in lines or []:
            _print(line)
        return False

    if kind == CommandKind.HELP:
        _print(HELP_TEXT)
        return False

    _print("Undefined command!\n")
    return False


def _filter(nav: Navigator, cmd: Command):
    try:
        count = nav.apply(cmd.filter_kind, cmd.op, cmd.arg)
    except re.error as e:
        _print(f"{RED}Error: {e}{RESET}")
        return
    if count is None:
        _print("No matched clusters.\n")
    else:
        _print(f"Matched clusters = {BOLD}{count}{RESET}\n")


def _event_filter(nav: Navigator, cmd: Command):
    nav.settle()
    if cmd.filter_kind == FilterKind.NONE:
        nav.clear_events()
        return
    try:
        count = nav.filter_events(cmd.arg)
    except re.error as e:
        _print(f"{RED}Error: {e}{RESET}")
        return
    _print(f"  {CYAN}→{RESET} {count} events matched")


def _print(msg): print(msg)


if __name__ == '__main__':
    main()
