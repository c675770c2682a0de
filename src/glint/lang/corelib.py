"""Names exported by the glint core library and the facts the emitter needs about
them. The bodies of these functions live in the JavaScript core module; the compiler
only needs to know how calls to them are emitted."""

import posixpath

import attr

CORE_NS = "glint.core"

# Qualified references to these namespaces resolve to the core library
CORE_NS_ALIASES = frozenset([CORE_NS, "clojure.core", "cljs.core"])

CORE_FUNCTIONS = frozenset(
    """
    * + - / < <= = == > >= aget alength apply array array? aset assoc assoc!
    assoc-in assoc-in! atom boolean boolean? butlast clj->js coll? comp complement
    concat conj conj! constantly contains? copy count cycle dec dedupe deref
    disj disj! dissoc dissoc! distinct doall dorun drop drop-last drop-while empty
    empty? even? every? false? ffirst filter filterv find first flatten fn? fnext
    frequencies gensym get get-in group-by hash-map hash-set identical? identity
    inc instance? int interleave interpose into iterable iterate js->clj js-keys
    js-obj juxt keep keep-indexed key keys keyword keyword? last lazy list list?
    map map-indexed map? mapcat mapv max max-key merge merge-with min min-key mod
    name neg? next nil? nnext not not-any? not-empty not-every? not= nth nthnext
    number? object? odd? partial partition partition-all partition-by peek pop
    pos? pr-str println prn quot rand rand-int rand-nth range re-find re-matches
    re-pattern re-seq reduce reduce-kv reduced rem remove repeat repeatedly reset!
    rest reverse second select-keys seq seq? sequential? set set? shuffle some
    some-fn some? sort sort-by split-at split-with str string? subs subvec swap!
    symbol symbol? take take-last take-nth take-while transduce true? truth_
    type unreduced update update! update-in val vals vec vector vector? volatile!
    vreset! vswap! zero? zipmap
    """.split()
)

# Functions whose results are always JavaScript booleans, so the results may be
# used as a test without going through the truthiness helper
BOOLEAN_FUNCTIONS = frozenset(
    """
    < <= = == > >= array? boolean? coll? contains? empty? even? every? false? fn?
    identical? instance? keyword? list? map? neg? nil? not not-any? not-every? not=
    number? object? odd? pos? seq? sequential? set? some? string? symbol? true?
    vector? zero?
    """.split()
)

# Arithmetic and comparison functions which are emitted as infix JavaScript
# operators when called directly with a fixed number of arguments
INLINE_OPERATORS = {
    "+": "+",
    "-": "-",
    "*": "*",
    "/": "/",
    "<": "<",
    ">": ">",
    "<=": "<=",
    ">=": ">=",
    "==": "==",
    "identical?": "===",
}

COMPARISON_OPERATORS = frozenset(["<", ">", "<=", ">=", "==", "identical?"])


@attr.frozen
class CollectionOpInfo:
    """Emission details for a core collection operation.

    The mutating variant of each operation (named with a trailing `!`) modifies its
    receiver in place and returns it. The copying variant applies the same helper
    to a shallow copy of its receiver."""

    helper: str
    mutates: bool


COLLECTION_OPS = {
    "assoc!": CollectionOpInfo("assoc!", True),
    "assoc": CollectionOpInfo("assoc!", False),
    "conj!": CollectionOpInfo("conj!", True),
    "conj": CollectionOpInfo("conj!", False),
    "dissoc!": CollectionOpInfo("dissoc!", True),
    "dissoc": CollectionOpInfo("dissoc!", False),
}

# Helpers the emitter calls directly rather than in response to a source reference
TRUTH_HELPER = "truth_"
COPY_HELPER = "copy"
LAZY_HELPER = "lazy"
GET_HELPER = "get"
LIST_HELPER = "list"
VEC_HELPER = "vec"
TAKE_HELPER = "take"
NTHNEXT_HELPER = "nthnext"
ITERABLE_HELPER = "iterable"
DISSOC_HELPER = "dissoc!"

# Library namespaces bundled alongside the core module
STDLIB_NAMESPACES = {
    "clojure.string": "string",
    "clojure.set": "set",
    "glint.string": "string",
    "glint.set": "set",
}

# Ambient JavaScript globals which may be referenced without the `js/` prefix
AMBIENT_GLOBALS = frozenset(
    """
    Array ArrayBuffer BigInt Boolean DataView Date Error EvalError Float32Array
    Float64Array Infinity Int16Array Int32Array Int8Array Intl JSON Map Math NaN
    Number Object Promise Proxy RangeError ReferenceError Reflect RegExp Set String
    Symbol SyntaxError TypeError URL URLSearchParams Uint16Array Uint32Array
    Uint8Array WeakMap WeakRef WeakSet clearInterval clearTimeout console
    decodeURIComponent document encodeURIComponent fetch globalThis isFinite isNaN
    parseFloat parseInt queueMicrotask setInterval setTimeout structuredClone
    undefined window
    """.split()
)


def is_core_function(name: str) -> bool:
    return name in CORE_FUNCTIONS


def stdlib_module(ns_name: str, core_module: str) -> str:
    """Return the module path of the bundled library namespace `ns_name`, which is
    located next to the core module `core_module`."""
    lib = STDLIB_NAMESPACES[ns_name]
    base, ext = posixpath.splitext(core_module)
    if ext in {".js", ".mjs"}:
        return posixpath.join(posixpath.dirname(base), f"{lib}{ext}")
    return f"{core_module}/{lib}"
