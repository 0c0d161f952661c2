"""
triage/commands.py
REPL command grammar. parse_command() turns one input line into a Command;
it never touches session state.

Literals are validated here (count must be an integer, score a float,
qualifier a known name) so the navigator's lenient parsing is never hit
from the prompt.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional

from triage.models.record import FilterKind, FilterOp, Qualifier


class CommandKind(Enum):
    CLUSTER_ID    = auto()
    EVENT         = auto()
    EXIT          = auto()
    FILTER        = auto()
    GO_NEXT       = auto()
    GO_PREV       = auto()
    HELP          = auto()
    JUMP          = auto()
    QUIT          = auto()
    RULE          = auto()
    SET_OPTION    = auto()
    SET_QUALIFIER = auto()
    STATISTICS    = auto()
    STATUS        = auto()
    UNDEFINED     = auto()


@dataclass
class Command:
    kind:        CommandKind
    filter_kind: FilterKind          = FilterKind.NONE
    op:          FilterOp            = FilterOp.EQ
    arg:         Optional[str]       = None
    value:       Optional[str]       = None     # second argument of /set <option> <value>
    qualifier:   Optional[Qualifier] = None
    all:         bool                = False


UNDEFINED = Command(CommandKind.UNDEFINED)

# Completion candidates, matched against the whole input line
COMMANDS = [
    '/event clear',
    '/event regex',
    '/filter count',
    '/filter label',
    '/filter qualifier benign',
    '/filter qualifier mixed',
    '/filter qualifier suspicious',
    '/filter qualifier unknown',
    '/filter regex',
    '/filter score',
    '/filter token',
    '/help',
    '/quit',
    '/rule',
    '/set benign',
    '/set benign all',
    '/set mixed',
    '/set mixed all',
    '/set reverse off',
    '/set reverse on',
    '/set samples off',
    '/set samples on',
    '/set samplescount',
    '/set signature off',
    '/set signature on',
    '/set suspicious',
    '/set suspicious all',
    '/set tokens off',
    '/set tokens on',
    '/set unknown',
    '/set unknown all',
    '/stats',
    '/status',
    '/x',
]

NUMERIC_FILTERS = {'count': FilterKind.COUNT, 'score': FilterKind.SCORE}
OPTION_NAMES = {'reverse', 'samples', 'samplescount', 'signature', 'tokens'}

HELP_TEXT = """
<enter key>                                        go to next cluster.
b or p                                             go back to previous cluster.
<n>                                                jump to the n-th cluster of the current layer.
#<cluster-id>                                      jump to the cluster with that id.
/x                                                 exit from the current filter layer.

/event clear                                       clear event filters of the current cluster.
/event regex [!]<pattern>                          filter events in current cluster by regular expression.
/filter label                                      filter clusters having any label.
/filter label <catalog-id>[:<rule-id>]             filter clusters by the specified label.
/filter count|score >|>=|=|<>|<=|< <value>         filter clusters by number of events or score.
/filter qualifier benign|mixed|suspicious|unknown  filter clusters by their qualifier.
/filter regex [!]<pattern>                         filter clusters whose events match a regular expression.
/filter token <token>                              filter clusters containing an event token.
/rule <catalog-id>:<rule-id>                       show a rule of the loaded catalogs.
/set reverse on|off                                navigate in reverse direction.
/set samples on|off                                show samples.
/set samplescount <count>                          change sample display count.
/set signature on|off                              show signature of cluster.
/set tokens on|off                                 show tokens of each sample.
/set benign|mixed|suspicious|unknown [all]         set qualifier of the cluster or all clusters of the layer.
/stats                                             show load statistics.
/status                                            show layer and qualifier status.
/quit or /q                                        quit this program.
/help or /? or ? or h                              show this message.
<tab>                                              complete a command. History is kept in .cli_history.txt.
"""


def parse_command(line: str) -> Command:
    line = line.strip()
    if not line:
        return Command(CommandKind.GO_NEXT)

    if line in ('b', 'p'):
        return Command(CommandKind.GO_PREV)
    if line in ('h', '?'):
        return Command(CommandKind.HELP)

    if line.isdecimal():
        return Command(CommandKind.JUMP, arg=line)
    if line.startswith('#') and line[1:].isdecimal():
        return Command(CommandKind.CLUSTER_ID, arg=line[1:])

    words = line.split()
    head = words[0]

    if head in ('/h', '/help', '/?') and len(words) == 1:
        return Command(CommandKind.HELP)
    if head in ('/q', '/quit') and len(words) == 1:
        return Command(CommandKind.QUIT)
    if head == '/x' and len(words) == 1:
        return Command(CommandKind.EXIT)
    if head == '/status' and len(words) == 1:
        return Command(CommandKind.STATUS)
    if head == '/stats' and len(words) == 1:
        return Command(CommandKind.STATISTICS)
    if head == '/rule' and len(words) == 2:
        return Command(CommandKind.RULE, arg=words[1])
    if head == '/event':
        return _parse_event(line, words)
    if head == '/filter':
        return _parse_filter(line, words)
    if head == '/set':
        return _parse_set(words)
    return UNDEFINED


def _parse_event(line: str, words) -> Command:
    if words[1:] == ['clear']:
        return Command(CommandKind.EVENT, filter_kind=FilterKind.NONE)
    if len(words) >= 3 and words[1] == 'regex':
        return Command(CommandKind.EVENT, filter_kind=FilterKind.REGEX, arg=line.split(None, 2)[2])
    return UNDEFINED


def _parse_filter(line: str, words) -> Command:
    if len(words) < 2:
        return UNDEFINED
    what = words[1]

    if what in NUMERIC_FILTERS and len(words) == 4:
        op = FilterOp.parse(words[2])
        if op is None or not _valid_number(NUMERIC_FILTERS[what], words[3]):
            return UNDEFINED
        return Command(CommandKind.FILTER, filter_kind=NUMERIC_FILTERS[what], op=op, arg=words[3])

    if what == 'label' and len(words) <= 3:
        arg = words[2] if len(words) == 3 else None
        return Command(CommandKind.FILTER, filter_kind=FilterKind.LABEL, arg=arg)

    if what == 'qualifier' and len(words) == 3:
        if Qualifier.parse(words[2]) is None:
            return UNDEFINED
        return Command(CommandKind.FILTER, filter_kind=FilterKind.QUALIFIER, arg=words[2])

    if what == 'regex' and len(words) >= 3:
        # keep the pattern's inner spacing
        pattern = line.split(None, 2)[2]
        return Command(CommandKind.FILTER, filter_kind=FilterKind.REGEX, arg=pattern)

    if what == 'token' and len(words) == 3:
        return Command(CommandKind.FILTER, filter_kind=FilterKind.TOKEN, arg=words[2])

    return UNDEFINED


def _parse_set(words) -> Command:
    if len(words) not in (2, 3):
        return UNDEFINED
    name = words[1]
    value = words[2] if len(words) == 3 else None

    qualifier = Qualifier.parse(name)
    if qualifier is not None:
        if value not in (None, 'all'):
            return UNDEFINED
        return Command(CommandKind.SET_QUALIFIER, qualifier=qualifier, all=value == 'all')

    if name in OPTION_NAMES and value is not None:
        return Command(CommandKind.SET_OPTION, arg=name, value=value)
    return UNDEFINED


def _valid_number(kind: FilterKind, literal: str) -> bool:
    try:
        if kind == FilterKind.COUNT:
            return int(literal) >= 0
        float(literal)
        return True
    except ValueError:
        return False


def completions(line: str) -> List[str]:
    return [cmd for cmd in COMMANDS if cmd.startswith(line)]


def complete(text: str, state: int) -> Optional[str]:
    """readline completer: the state-th command starting with text."""
    matches = completions(text)
    return matches[state] if state < len(matches) else None
