import re
import threading
from re import Pattern

_MUNGE_REPLACEMENTS = {
    "+": "_PLUS_",
    "-": "_",
    "*": "_STAR_",
    "/": "_SLASH_",
    ">": "_GT_",
    "<": "_LT_",
    "!": "_BANG_",
    "=": "_EQ_",
    "?": "_QMARK_",
    "\\": "_BSLASH_",
    "&": "_AMPERSAND_",
    "%": "_PERCENT_",
    "'": "_SINGLEQUOTE_",
    ":": "_COLON_",
    "#": "_SHARP_",
    "|": "_BAR_",
    "@": "_CIRCA_",
    "^": "_CARET_",
    "~": "_TILDE_",
    ".": "_DOT_",
}

JS_RESERVED_WORDS = frozenset(
    """
    arguments await break case catch class const continue debugger default delete do
    else enum eval export extends false finally for function if implements import in
    instanceof interface let new null package private protected public return static
    super switch this throw true try typeof undefined var void while with yield
    """.split()
)


def munge(s: str, allow_reserved: bool = False) -> str:
    """Replace characters which are not valid in JavaScript identifiers with valid
    replacement strings.

    Reserved words are suffixed with an underscore unless `allow_reserved` is True,
    which callers use for property names and for the names of real globals."""
    new_s = "".join(_MUNGE_REPLACEMENTS.get(c, c) for c in s)

    if not allow_reserved and new_s in JS_RESERVED_WORDS:
        return f"{new_s}_"

    return new_s


# Use an atomically incremented integer as a suffix for all local names compiled
# into JavaScript so no two bindings ever share a name
_NAME_LOCK = threading.Lock()
_NAME_COUNTER = 0


def next_name_id() -> int:
    """Increment the name counter and return the next value."""
    global _NAME_COUNTER

    with _NAME_LOCK:
        _NAME_COUNTER += 1
        return _NAME_COUNTER


def genname(prefix: str) -> str:
    """Generate a unique name with the given prefix."""
    i = next_name_id()
    return f"{prefix}_{i}"


def regex_from_str(regex_str: str) -> Pattern:
    """Create a new regex pattern from the input string."""
    return re.compile(regex_str)
