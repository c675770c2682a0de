from glint.lang import keyword as kw
from glint.lang import symbol as sym


class SpecialForm:
    AWAIT = sym.symbol("js-await")
    CATCH = sym.symbol("catch")
    DEF = sym.symbol("def")
    DEFCLASS = sym.symbol("defclass")
    DEFMACRO = sym.symbol("defmacro")
    DO = sym.symbol("do")
    FINALLY = sym.symbol("finally")
    FN = sym.symbol("fn*")
    FOR_OF = sym.symbol("js-for-of")
    IF = sym.symbol("if")
    INTEROP_CALL = sym.symbol(".")
    JS_STAR = sym.symbol("js*")
    LET = sym.symbol("let*")
    LOOP = sym.symbol("loop*")
    NEW = sym.symbol("new")
    NS = sym.symbol("ns")
    QUOTE = sym.symbol("quote")
    RECUR = sym.symbol("recur")
    REQUIRE = sym.symbol("require")
    SET_BANG = sym.symbol("set!")
    SYNTAX_QUOTE = sym.symbol("syntax-quote")
    THROW = sym.symbol("throw")
    TRY = sym.symbol("try")
    UNQUOTE = sym.symbol("unquote")
    UNQUOTE_SPLICING = sym.symbol("unquote-splicing")
    YIELD = sym.symbol("js-yield")


AMPERSAND = sym.symbol("&")
SUPER = sym.symbol("super")

DEFAULT_COMPILER_FILE_PATH = "<Compiler Input>"

SYM_ASYNC_META_KEY = kw.keyword("async")
SYM_GEN_META_KEY = kw.keyword("gen")
SYM_PRIVATE_META_KEY = kw.keyword("private")
SYM_STATIC_META_KEY = kw.keyword("static")
SYM_TAG_META_KEY = kw.keyword("tag")
SYM_MACRO_META_KEY = kw.keyword("macro")

DOC_KW = kw.keyword("doc")
LINE_KW = kw.keyword("line")
COL_KW = kw.keyword("col")
END_LINE_KW = kw.keyword("end-line")
END_COL_KW = kw.keyword("end-col")

# Keywords of the `ns` form and of require specs
AS_KW = kw.keyword("as")
DEFAULT_KW = kw.keyword("default")
EXCLUDE_KW = kw.keyword("exclude")
REFER_KW = kw.keyword("refer")
REFER_CLOJURE_KW = kw.keyword("refer-clojure")
REFER_MACROS_KW = kw.keyword("refer-macros")
REQUIRE_KW = kw.keyword("require")
REQUIRE_MACROS_KW = kw.keyword("require-macros")
INCLUDE_MACROS_KW = kw.keyword("include-macros")

# Keywords of JSX props with JavaScript names which differ from their HTML names
JSX_SPREAD_KW = kw.keyword("&")
JSX_FRAGMENT_KW = kw.keyword("<>")
JSX_PROP_RENAMES = {"class": "className", "for": "htmlFor"}

# Heads which the analyzer handles itself. `catch` and `finally` are only valid
# within a `try` form, so they are not included.
SPECIAL_FORMS = frozenset(
    v
    for k, v in vars(SpecialForm).items()
    if not k.startswith("_") and v not in {SpecialForm.CATCH, SpecialForm.FINALLY}
)
