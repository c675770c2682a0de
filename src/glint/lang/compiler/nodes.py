from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar, Union

import attr

from glint.lang import keyword as kw
from glint.lang import symbol as sym
from glint.lang import vector as vec
from glint.lang.compiler.destructure import PathOp
from glint.lang.corelib import CollectionOpInfo
from glint.lang.interfaces import IPersistentMap, IPersistentSet, IPersistentVector
from glint.lang.namespace import LocalBinding
from glint.lang.namespace import Require as RequireSpec
from glint.lang.typing import LispForm
from glint.lang.typing import ReaderForm as ReaderLispForm
from glint.lang.typing import SpecialForm
from glint.lang.util import munge

ARGS = kw.keyword("args")
ARITIES = kw.keyword("arities")
BASE = kw.keyword("base")
BINDINGS = kw.keyword("bindings")
BODY = kw.keyword("body")
CATCHES = kw.keyword("catches")
CLASS = kw.keyword("class")
COLL = kw.keyword("coll")
COMPONENT = kw.keyword("component")
CONTENTS = kw.keyword("contents")
DEFAULT = kw.keyword("default")
DESTRUCTURES = kw.keyword("destructures")
ELSE = kw.keyword("else")
EXCEPTION = kw.keyword("exception")
EXPR = kw.keyword("expr")
EXPRS = kw.keyword("exprs")
FIELDS = kw.keyword("fields")
FINALLY = kw.keyword("finally")
FN = kw.keyword("fn")
INIT = kw.keyword("init")
ITEMS = kw.keyword("items")
KEYS = kw.keyword("keys")
LOCAL = kw.keyword("local")
MEMBERS = kw.keyword("members")
PARAMS = kw.keyword("params")
PROPS = kw.keyword("props")
RET = kw.keyword("ret")
STATEMENTS = kw.keyword("statements")
TARGET = kw.keyword("target")
TEST = kw.keyword("test")
THEN = kw.keyword("then")
VAL = kw.keyword("val")
VALS = kw.keyword("vals")
VALUE = kw.keyword("value")


class NodeOp(Enum):
    AWAIT = kw.keyword("await")
    BINDING = kw.keyword("binding")
    CATCH = kw.keyword("catch")
    COLLECTION_OP = kw.keyword("collection-op")
    CONST = kw.keyword("const")
    DEF = kw.keyword("def")
    DEFCLASS = kw.keyword("defclass")
    DEFCLASS_FIELD = kw.keyword("defclass-field")
    DEFCLASS_METHOD = kw.keyword("defclass-method")
    DEFMACRO = kw.keyword("defmacro")
    DESTRUCTURE_PATH = kw.keyword("destructure-path")
    DO = kw.keyword("do")
    FN = kw.keyword("fn")
    FN_ARITY = kw.keyword("fn-arity")
    FOR_OF = kw.keyword("js-for-of")
    HOST_CALL = kw.keyword("host-call")
    HOST_FIELD = kw.keyword("host-field")
    IF = kw.keyword("if")
    INVOKE = kw.keyword("invoke")
    JS_GLOBAL = kw.keyword("js-global")
    JS_STAR = kw.keyword("js*")
    JSX_ELEMENT = kw.keyword("jsx-element")
    JSX_PROP = kw.keyword("jsx-prop")
    LET = kw.keyword("let")
    LOCAL = kw.keyword("local")
    LOOP = kw.keyword("loop")
    MAP = kw.keyword("map")
    NEW = kw.keyword("new")
    QUOTE = kw.keyword("quote")
    RECUR = kw.keyword("recur")
    REQUIRE = kw.keyword("require")
    SET = kw.keyword("set")
    SET_BANG = kw.keyword("set!")
    SUPER_CALL = kw.keyword("super-call")
    THROW = kw.keyword("throw")
    TRY = kw.keyword("try")
    VAR = kw.keyword("var")
    VECTOR = kw.keyword("vector")
    YIELD = kw.keyword("yield")


T = TypeVar("T")


class Node(ABC, Generic[T]):
    __slots__ = ()

    @property
    @abstractmethod
    def op(self) -> NodeOp:
        """Enumerated keyword uniquely identifying this type of Node.

        The type and NodeOp should always be in sync.

        Having a simple enum value in addition to the type allows the generator to
        dispatch on node type with a dictionary rather than with isinstance checks."""

    @property
    @abstractmethod
    def form(self) -> T:
        """The original form corresponding to this Node."""

    @property
    @abstractmethod
    def children(self) -> Iterable[kw.Keyword]:
        """An iterable of keywords naming the attributes on the node which contain
        child nodes used for visiting all nodes in a tree.

        In most cases, children are safely defaulted at class definition. For nodes
        with optional children, the children must be set at construction."""

    @property
    @abstractmethod
    def top_level(self) -> bool:
        """True if this node is the root of a top level form in a compilation unit,
        False otherwise."""

    @property
    @abstractmethod
    def env(self) -> "NodeEnv":
        """Details about the environment of the original form such as line and
        column numbers."""

    def assoc(self, **kwargs):
        return attr.evolve(self, **kwargs)

    def visit(self, f: Callable[..., None], *args, **kwargs):
        """Visit all immediate children of this node, calling
        f(child, *args, **kwargs) on each child."""
        for child_kw in self.children:
            child_attr = munge(child_kw.name)

            if child_attr.endswith("s"):
                iter_child: Iterable[Node] = getattr(self, child_attr)
                assert iter_child is not None, "Listed child must not be none"
                for item in iter_child:
                    f(item, *args, **kwargs)
            else:
                child: Node = getattr(self, child_attr)
                assert child is not None, "Listed child must not be none"
                f(child, *args, **kwargs)


def walk(node: Node, f: Callable[[Node], bool]) -> bool:
    """Return True if `f` returns True for `node` or any node beneath it.

    Function and class bodies are not entered, since their contents execute in a
    different JavaScript function than `node`."""
    if f(node):
        return True
    if node.op in {NodeOp.FN, NodeOp.DEFCLASS}:
        return False

    found = False

    def _visit(child: Node) -> None:
        nonlocal found
        if not found:
            found = walk(child, f)

    node.visit(_visit)
    return found


class Assignable(ABC):
    __slots__ = ()

    @property
    @abstractmethod
    def is_assignable(self) -> bool:
        """True if this Node can be assigned in a set! form, False otherwise."""


class NodeSyntacticPosition(Enum):
    STMT = kw.keyword("stmt")
    EXPR = kw.keyword("expr")
    RETURN = kw.keyword("return")


class ConstType(Enum):
    NIL = kw.keyword("nil")
    BOOL = kw.keyword("bool")
    NUMBER = kw.keyword("number")
    STRING = kw.keyword("string")
    KEYWORD = kw.keyword("keyword")
    SYMBOL = kw.keyword("symbol")
    REGEX = kw.keyword("regex")
    VECTOR = kw.keyword("vector")
    MAP = kw.keyword("map")
    SET = kw.keyword("set")
    SEQ = kw.keyword("seq")
    UNKNOWN = kw.keyword("unknown")


class LocalType(Enum):
    ARG = kw.keyword("arg")
    CATCH = kw.keyword("catch")
    DESTRUCTURE = kw.keyword("destructure")
    FN = kw.keyword("fn")
    FOR_OF = kw.keyword("for-of")
    LET = kw.keyword("let")
    LOOP = kw.keyword("loop")
    THIS = kw.keyword("this")


class MethodKind(Enum):
    CONSTRUCTOR = kw.keyword("constructor")
    METHOD = kw.keyword("method")


LoopID = str


@attr.s(auto_attribs=True, frozen=True, slots=True)
class NodeEnv:
    ns: str
    file: str
    line: Optional[int] = None
    col: Optional[int] = None
    pos: Optional[NodeSyntacticPosition] = None


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Await(Node[SpecialForm]):
    form: SpecialForm
    expr: Node
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(EXPR)
    op: NodeOp = NodeOp.AWAIT
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Binding(Node[LispForm]):
    form: LispForm
    binding: LocalBinding
    local: LocalType
    env: NodeEnv
    init: Optional[Node] = None
    is_variadic: bool = False
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.BINDING
    top_level: bool = False

    @property
    def js_name(self) -> str:
        return self.binding.js_name


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Catch(Node[SpecialForm]):
    form: SpecialForm
    local: Binding
    body: "Do"
    env: NodeEnv
    class_: Optional[Node] = None
    children: Sequence[kw.Keyword] = vec.v(LOCAL, BODY)
    op: NodeOp = NodeOp.CATCH
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class CollectionOp(Node[SpecialForm]):
    form: SpecialForm
    name: str
    info: CollectionOpInfo
    target: Node
    args: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(TARGET, ARGS)
    op: NodeOp = NodeOp.COLLECTION_OP
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Const(Node[ReaderLispForm]):
    form: ReaderLispForm
    type: ConstType
    val: ReaderLispForm
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.CONST
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Def(Node[SpecialForm]):
    form: SpecialForm
    name: sym.Symbol
    js_name: str
    env: NodeEnv
    init: Optional[Node] = None
    doc: Optional[str] = None
    is_private: bool = False
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.DEF
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class DefClassField(Node[SpecialForm]):
    form: SpecialForm
    name: str
    env: NodeEnv
    init: Optional[Node] = None
    is_static: bool = False
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.DEFCLASS_FIELD
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class DefClassMethod(Node[SpecialForm]):
    form: SpecialForm
    name: str
    kind: MethodKind
    params: Iterable[Binding]
    destructures: Iterable[Binding]
    body: "Do"
    loop_id: LoopID
    env: NodeEnv
    this_local: Optional[Binding] = None
    fixed_arity: int = 0
    is_variadic: bool = False
    is_static: bool = False
    is_async: bool = False
    is_generator: bool = False
    has_recur: bool = False
    children: Sequence[kw.Keyword] = vec.v(PARAMS, DESTRUCTURES, BODY)
    op: NodeOp = NodeOp.DEFCLASS_METHOD
    top_level: bool = False


DefClassMember = Union[DefClassField, DefClassMethod]


@attr.s(auto_attribs=True, frozen=True, slots=True)
class DefClass(Node[SpecialForm]):
    form: SpecialForm
    name: sym.Symbol
    js_name: str
    fields: Iterable[DefClassField]
    members: Iterable[DefClassMethod]
    env: NodeEnv
    base: Optional[Node] = None
    children: Sequence[kw.Keyword] = vec.v(FIELDS, MEMBERS)
    op: NodeOp = NodeOp.DEFCLASS
    top_level: bool = False

    @property
    def constructor(self) -> Optional[DefClassMethod]:
        return next(
            (m for m in self.members if m.kind == MethodKind.CONSTRUCTOR), None
        )


@attr.s(auto_attribs=True, frozen=True, slots=True)
class DefMacro(Node[SpecialForm]):
    form: SpecialForm
    name: sym.Symbol
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.DEFMACRO
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class DestructurePath(Node[LispForm]):
    """Extraction of one value from a previously bound local, as one step of a
    destructuring binding plan."""

    form: LispForm
    source: LocalBinding
    path: PathOp
    env: NodeEnv
    default_: Optional[Node] = None
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.DESTRUCTURE_PATH
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Do(Node[SpecialForm]):
    form: SpecialForm
    statements: Iterable[Node]
    ret: Node
    env: NodeEnv
    is_body: bool = False
    children: Sequence[kw.Keyword] = vec.v(STATEMENTS, RET)
    op: NodeOp = NodeOp.DO
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Fn(Node[SpecialForm]):
    form: SpecialForm
    max_fixed_arity: int
    arities: IPersistentVector["FnArity"]
    env: NodeEnv
    local: Optional[Binding] = None
    is_variadic: bool = False
    is_async: bool = False
    is_generator: bool = False
    children: Sequence[kw.Keyword] = vec.v(ARITIES)
    op: NodeOp = NodeOp.FN
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class FnArity(Node[SpecialForm]):
    form: SpecialForm
    loop_id: LoopID
    params: Iterable[Binding]
    destructures: Iterable[Binding]
    fixed_arity: int
    body: Do
    env: NodeEnv
    is_variadic: bool = False
    has_recur: bool = False
    children: Sequence[kw.Keyword] = vec.v(PARAMS, DESTRUCTURES, BODY)
    op: NodeOp = NodeOp.FN_ARITY
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class ForOf(Node[SpecialForm]):
    form: SpecialForm
    local: Binding
    destructures: Iterable[Binding]
    coll: Node
    body: Do
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(COLL, LOCAL, DESTRUCTURES, BODY)
    op: NodeOp = NodeOp.FOR_OF
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class HostCall(Node[SpecialForm]):
    form: SpecialForm
    method: str
    target: Node
    args: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(TARGET, ARGS)
    op: NodeOp = NodeOp.HOST_CALL
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class HostField(Node[Union[SpecialForm, sym.Symbol]], Assignable):
    form: Union[SpecialForm, sym.Symbol]
    field: str
    target: Node
    env: NodeEnv
    is_assignable: bool = True
    children: Sequence[kw.Keyword] = vec.v(TARGET)
    op: NodeOp = NodeOp.HOST_FIELD
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class If(Node[SpecialForm]):
    form: SpecialForm
    test: Node
    then: Node
    env: NodeEnv
    else_: Node
    children: Sequence[kw.Keyword] = vec.v(TEST, THEN, ELSE)
    op: NodeOp = NodeOp.IF
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Invoke(Node[SpecialForm]):
    form: SpecialForm
    fn: Node
    args: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(FN, ARGS)
    op: NodeOp = NodeOp.INVOKE
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class JSGlobal(Node[sym.Symbol], Assignable):
    form: sym.Symbol
    path: tuple[str, ...]
    env: NodeEnv
    is_assignable: bool = True
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.JS_GLOBAL
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class JSStar(Node[SpecialForm]):
    form: SpecialForm
    template: str
    args: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(ARGS)
    op: NodeOp = NodeOp.JS_STAR
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class JSXProp(Node[LispForm]):
    """A single JSX prop. Props with no name spread the entries of their value."""

    form: LispForm
    name: Optional[str]
    value: Node
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(VALUE)
    op: NodeOp = NodeOp.JSX_PROP
    top_level: bool = False

    @property
    def is_spread(self) -> bool:
        return self.name is None


@attr.s(auto_attribs=True, frozen=True, slots=True)
class JSXElement(Node[IPersistentVector]):
    """A JSX element.

    Intrinsic elements have a `tag_name`, component elements have a `component`
    node, and fragments have neither."""

    form: IPersistentVector
    props: Iterable[JSXProp]
    contents: Iterable[Node]
    env: NodeEnv
    tag_name: Optional[str] = None
    component: Optional[Node] = None
    has_props: bool = False
    children: Sequence[kw.Keyword] = vec.v(PROPS, CONTENTS)
    op: NodeOp = NodeOp.JSX_ELEMENT
    top_level: bool = False

    @property
    def is_fragment(self) -> bool:
        return self.tag_name is None and self.component is None


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Let(Node[SpecialForm]):
    form: SpecialForm
    bindings: Iterable[Binding]
    body: Do
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(BINDINGS, BODY)
    op: NodeOp = NodeOp.LET
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Local(Node[sym.Symbol], Assignable):
    form: sym.Symbol
    binding: LocalBinding
    env: NodeEnv
    members: tuple[str, ...] = ()
    is_assignable: bool = True
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.LOCAL
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Loop(Node[SpecialForm]):
    form: SpecialForm
    bindings: Iterable[Binding]
    destructures: Iterable[Binding]
    body: Do
    loop_id: LoopID
    env: NodeEnv
    has_recur: bool = False
    children: Sequence[kw.Keyword] = vec.v(BINDINGS, DESTRUCTURES, BODY)
    op: NodeOp = NodeOp.LOOP
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Map(Node[IPersistentMap]):
    form: IPersistentMap
    keys: Iterable[Node]
    vals: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(KEYS, VALS)
    op: NodeOp = NodeOp.MAP
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class New(Node[SpecialForm]):
    form: SpecialForm
    class_: Node
    args: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(CLASS, ARGS)
    op: NodeOp = NodeOp.NEW
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Quote(Node[SpecialForm]):
    form: SpecialForm
    expr: Const
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(EXPR)
    op: NodeOp = NodeOp.QUOTE
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Recur(Node[SpecialForm]):
    form: SpecialForm
    exprs: Iterable[Node]
    loop_id: LoopID
    targets: tuple[LocalBinding, ...]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(EXPRS)
    op: NodeOp = NodeOp.RECUR
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Require(Node[SpecialForm]):
    """Requires introduced by an `ns` or `require` form.

    `ns_name` is set for `ns` forms, which also switch the current namespace."""

    form: SpecialForm
    requires: Iterable[RequireSpec]
    env: NodeEnv
    ns_name: Optional[str] = None
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.REQUIRE
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Set(Node[IPersistentSet]):
    form: IPersistentSet
    items: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(ITEMS)
    op: NodeOp = NodeOp.SET
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class SetBang(Node[SpecialForm]):
    form: SpecialForm
    target: Union[Assignable, Node]
    val: Node
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(TARGET, VAL)
    op: NodeOp = NodeOp.SET_BANG
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class SuperCall(Node[SpecialForm]):
    form: SpecialForm
    args: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(ARGS)
    op: NodeOp = NodeOp.SUPER_CALL
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Throw(Node[SpecialForm]):
    form: SpecialForm
    exception: Node
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(EXCEPTION)
    op: NodeOp = NodeOp.THROW
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Try(Node[SpecialForm]):
    form: SpecialForm
    body: Do
    catches: Iterable[Catch]
    children: Sequence[kw.Keyword]
    env: NodeEnv
    finally_: Optional[Do] = None
    op: NodeOp = NodeOp.TRY
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class VarRef(Node[sym.Symbol], Assignable):
    """A reference to a def in some namespace.

    `module` names the import binding for references through a required
    namespace alias, and is None for references within the current namespace."""

    form: sym.Symbol
    ns: str
    name: str
    env: NodeEnv
    module: Optional[str] = None
    members: tuple[str, ...] = ()
    is_core: bool = False
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.VAR
    top_level: bool = False

    @property
    def is_assignable(self) -> bool:
        return self.module is None and not self.is_core


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Vector(Node[IPersistentVector]):
    form: IPersistentVector
    items: Iterable[Node]
    env: NodeEnv
    children: Sequence[kw.Keyword] = vec.v(ITEMS)
    op: NodeOp = NodeOp.VECTOR
    top_level: bool = False


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Yield(Node[SpecialForm]):
    form: SpecialForm
    env: NodeEnv
    expr: Optional[Node] = None
    children: Sequence[kw.Keyword] = vec.EMPTY
    op: NodeOp = NodeOp.YIELD
    top_level: bool = False


SpecialFormNode = Union[
    Await,
    Def,
    DefClass,
    DefMacro,
    Do,
    Fn,
    ForOf,
    HostCall,
    HostField,
    If,
    Invoke,
    JSStar,
    Let,
    Loop,
    New,
    Quote,
    Recur,
    Require,
    SetBang,
    SuperCall,
    Throw,
    Try,
]
