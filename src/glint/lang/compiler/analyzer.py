import collections
import contextlib
import functools
import logging
import re
from collections.abc import Iterator, Mapping, Sequence
from functools import partial, wraps
from typing import Any, Callable, Optional, TypeVar, Union

import attr

from glint.lang import keyword as kw
from glint.lang import list as llist
from glint.lang import map as lmap
from glint.lang import namespace
from glint.lang import set as lset
from glint.lang import symbol as sym
from glint.lang import vector as vec
from glint.lang.compiler import destructure
from glint.lang.compiler.constants import (
    AMPERSAND,
    AS_KW,
    DEFAULT_COMPILER_FILE_PATH,
    DEFAULT_KW,
    DOC_KW,
    EXCLUDE_KW,
    INCLUDE_MACROS_KW,
    JSX_FRAGMENT_KW,
    JSX_PROP_RENAMES,
    JSX_SPREAD_KW,
    REFER_CLOJURE_KW,
    REFER_KW,
    REFER_MACROS_KW,
    REQUIRE_KW,
    REQUIRE_MACROS_KW,
    SUPER,
    SYM_ASYNC_META_KEY,
    SYM_GEN_META_KEY,
    SYM_PRIVATE_META_KEY,
    SYM_STATIC_META_KEY,
    SpecialForm,
)
from glint.lang.compiler.exception import (
    AwaitContextError,
    CompilerException,
    CompilerPhase,
    DestructureShapeError,
    IllegalRecurError,
    MacroError,
    UnresolvedSymbolError,
    UnsupportedFormError,
)
from glint.lang.compiler.expander import (
    DEFAULT_MAX_MACROEXPAND_DEPTH,
    ExpansionContext,
    FormKind,
    expand,
)
from glint.lang.compiler.expander import macroexpand as _macroexpand
from glint.lang.compiler.expander import macroexpand_1 as _macroexpand_1
from glint.lang.compiler.macros import CoreMacroEvaluator, MacroEvaluator
from glint.lang.compiler.nodes import (
    BASE,
    BODY,
    CATCHES,
    CLASS,
    DEFAULT,
    EXPR,
    FIELDS,
    FINALLY,
    INIT,
    LOCAL,
    MEMBERS,
    Await,
    Binding,
    Catch,
    CollectionOp,
    Const,
    ConstType,
    Def,
    DefClass,
    DefClassField,
    DefClassMethod,
    DefMacro,
    DestructurePath,
    Do,
    Fn,
    FnArity,
    ForOf,
    HostCall,
    HostField,
    If,
    Invoke,
    JSGlobal,
    JSStar,
    JSXElement,
    JSXProp,
    Let,
    Local,
    LocalType,
    Loop,
)
from glint.lang.compiler.nodes import Map as MapNode
from glint.lang.compiler.nodes import (
    MethodKind,
    New,
    Node,
    NodeEnv,
    NodeOp,
    NodeSyntacticPosition,
    Quote,
    Recur,
    Require,
)
from glint.lang.compiler.nodes import Set as SetNode
from glint.lang.compiler.nodes import (
    SetBang,
    SpecialFormNode,
    SuperCall,
    Throw,
    Try,
    VarRef,
)
from glint.lang.compiler.nodes import Vector as VectorNode
from glint.lang.compiler.nodes import Yield, walk
from glint.lang.corelib import COLLECTION_OPS
from glint.lang.interfaces import IMeta
from glint.lang.namespace import (
    LocalBinding,
    Namespace,
    NamespaceRegistry,
    RequireKind,
    SymbolTable,
)
from glint.lang.namespace import Require as RequireSpec
from glint.lang.reader import (
    READER_COL_KW,
    READER_END_COL_KW,
    READER_END_LINE_KW,
    READER_LINE_KW,
)
from glint.lang.tagged import TaggedLiteral
from glint.lang.typing import CompilerOpts, LispForm, ReaderForm
from glint.lang.util import genname, munge
from glint.logconfig import TRACE
from glint.util import Maybe, partition

logger = logging.getLogger(__name__)

# Analyzer options
REPL_MODE = kw.keyword("repl")
MAX_MACROEXPAND_DEPTH = kw.keyword("max-macroexpand-depth")

# Symbols which begin defclass member clauses
_EXTENDS = sym.symbol("extends")
_FIELD = sym.symbol("field")
_CONSTRUCTOR = sym.symbol("constructor")

_JS_STAR_PLACEHOLDER = re.compile(r"~\{\}")

T_form = TypeVar("T_form")
T_node = TypeVar("T_node", bound=Node)
LispAnalyzer = Callable[[T_form, "AnalyzerContext"], T_node]


@attr.define
class RecurPoint:
    loop_id: str
    args: tuple[LocalBinding, ...] = ()


@attr.define
class FunctionContext:
    """Details of the function (or class method) enclosing the current node.

    `method_kind` is set only for the bodies of defclass methods, where `super` may
    be referenced."""

    is_async: bool = False
    is_generator: bool = False
    method_kind: Optional[MethodKind] = None


class AnalyzerContext:
    __slots__ = (
        "_evaluator",
        "_filename",
        "_func_ctx",
        "_opts",
        "_recur_points",
        "_registry",
        "_st",
        "_syntax_pos",
    )

    def __init__(
        self,
        registry: Optional[NamespaceRegistry] = None,
        evaluator: Optional[MacroEvaluator] = None,
        filename: Optional[str] = None,
        opts: Optional[CompilerOpts] = None,
    ) -> None:
        self._evaluator: MacroEvaluator = Maybe(evaluator).or_else(CoreMacroEvaluator)
        self._filename = Maybe(filename).or_else_get(DEFAULT_COMPILER_FILE_PATH)
        self._func_ctx: collections.deque[FunctionContext] = collections.deque([])
        self._opts = lmap.EMPTY if opts is None else lmap.map(opts)
        self._recur_points: collections.deque[RecurPoint] = collections.deque([])
        self._registry = Maybe(registry).or_else(NamespaceRegistry)
        self._st = collections.deque([SymbolTable("<Top>")])
        self._syntax_pos = collections.deque([NodeSyntacticPosition.STMT])

    @property
    def registry(self) -> NamespaceRegistry:
        return self._registry

    @property
    def evaluator(self) -> MacroEvaluator:
        return self._evaluator

    @property
    def current_ns(self) -> Namespace:
        return self._registry.current_ns

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def should_allow_unresolved_symbols(self) -> bool:
        """If True, unresolved symbols are compiled as plain JavaScript identifiers,
        as is done for REPL input. Otherwise, they are compile errors."""
        return self._opts.val_at(REPL_MODE, False)

    @property
    def max_macroexpand_depth(self) -> int:
        return self._opts.val_at(MAX_MACROEXPAND_DEPTH, DEFAULT_MAX_MACROEXPAND_DEPTH)

    @property
    def func_ctx(self) -> Optional[FunctionContext]:
        """Return the context of the function enclosing the current node, if there
        is one. Return None for nodes at the top level of a module."""
        try:
            return self._func_ctx[-1]
        except IndexError:
            return None

    @property
    def is_async_ctx(self) -> bool:
        """Return True if `js-await` may appear at the current node.

        Modules are implicitly async, so this is True both inside of async functions
        and outside of any function."""
        func_ctx = self.func_ctx
        return func_ctx is None or func_ctx.is_async

    @property
    def is_generator_ctx(self) -> bool:
        func_ctx = self.func_ctx
        return func_ctx is not None and func_ctx.is_generator

    @contextlib.contextmanager
    def new_func_ctx(self, func_ctx: FunctionContext) -> Iterator[FunctionContext]:
        """Context manager which sets the function context for child nodes. A new
        function context is pushed each time the Analyzer finds a function or
        method definition, so there may be many nested function contexts."""
        self._func_ctx.append(func_ctx)
        try:
            yield func_ctx
        finally:
            self._func_ctx.pop()

    @property
    def recur_point(self) -> Optional[RecurPoint]:
        """Return the current recur point which applies to the current node, if there
        is one."""
        try:
            return self._recur_points[-1]
        except IndexError:
            return None

    @contextlib.contextmanager
    def new_recur_point(self, loop_id: str, args: tuple[LocalBinding, ...] = ()):
        """Context manager which sets a recur point for child nodes. A new recur
        point is pushed each time the Analyzer finds a form which supports recursion
        (such as `fn*` or `loop*`), so only the innermost recur point may be the
        target of any given `recur` form."""
        self._recur_points.append(RecurPoint(loop_id, args=args))
        try:
            yield
        finally:
            self._recur_points.pop()

    @property
    def symbol_table(self) -> SymbolTable:
        return self._st[-1]

    def put_new_symbol(self, s: sym.Symbol, binding: LocalBinding) -> LocalBinding:
        return self.symbol_table.new_symbol(s, binding)

    @contextlib.contextmanager
    def new_symbol_table(self, name: str):
        st = self.symbol_table.append_frame(name)
        self._st.append(st)
        try:
            yield st
        finally:
            self._st.pop()

    @contextlib.contextmanager
    def _push_pos(self, pos: NodeSyntacticPosition):
        self._syntax_pos.append(pos)
        try:
            yield
        finally:
            self._syntax_pos.pop()

    def expr_pos(self):
        """Context manager which indicates to immediate child nodes that they
        are in an expression syntactic position."""
        return self._push_pos(NodeSyntacticPosition.EXPR)

    def stmt_pos(self):
        """Context manager which indicates to immediate child nodes that they
        are in a statement syntactic position."""
        return self._push_pos(NodeSyntacticPosition.STMT)

    def ret_pos(self):
        """Context manager which indicates to immediate child nodes that their
        value is returned from the enclosing function."""
        return self._push_pos(NodeSyntacticPosition.RETURN)

    def parent_pos(self):
        """Context manager which indicates to immediate child nodes that they
        are in an equivalent syntactic position as their parent node."""
        return self._push_pos(self.syntax_position)

    def body_pos(self):
        """Context manager for the bodies of forms which can only be emitted as
        JavaScript statements.

        Such forms are wrapped in a function when they appear in an expression
        position, so their bodies return their value. Otherwise their bodies share
        the position of the form itself."""
        if self.syntax_position == NodeSyntacticPosition.EXPR:
            return self.ret_pos()
        return self.parent_pos()

    @property
    def syntax_position(self) -> NodeSyntacticPosition:
        """Return the syntax position of the current node as indicated by its
        parent node."""
        return self._syntax_pos[-1]

    def get_node_env(self, pos: Optional[NodeSyntacticPosition] = None) -> NodeEnv:
        """Return the current Node environment.

        If a syntax position is given, it will be included in the environment.
        Otherwise, the position will be set to None."""
        return NodeEnv(ns=self.current_ns.name, file=self.filename, pos=pos)

    def expansion_context(self) -> ExpansionContext:
        return ExpansionContext(
            registry=self._registry,
            evaluator=self._evaluator,
            scope=self.symbol_table,
            filename=self.filename,
            max_depth=self.max_macroexpand_depth,
        )

    def AnalyzerException(
        self,
        msg: str,
        form: Optional[ReaderForm] = None,
        node: Optional[Node] = None,
        exc_type: type[CompilerException] = CompilerException,
    ) -> CompilerException:
        """Return a CompilerException (or the subclass `exc_type`) annotated with
        the current filename and :analyzing compiler phase set."""
        return exc_type(
            msg,
            phase=CompilerPhase.ANALYZING,
            filename=self.filename,
            form=form,
            node=node,
        )


####################
# Private Utilities
####################


BoolMetaGetter = Callable[[Any], bool]


def _bool_meta_getter(meta_kw: kw.Keyword) -> BoolMetaGetter:
    """Return a function which checks an object with metadata for a boolean
    value by meta_kw."""

    def has_meta_prop(o) -> bool:
        if not isinstance(o, IMeta) or o.meta is None:
            return False
        return bool(o.meta.val_at(meta_kw, False))

    return has_meta_prop


_is_async = _bool_meta_getter(SYM_ASYNC_META_KEY)
_is_generator = _bool_meta_getter(SYM_GEN_META_KEY)
_is_private = _bool_meta_getter(SYM_PRIVATE_META_KEY)
_is_static = _bool_meta_getter(SYM_STATIC_META_KEY)


def _loc(form) -> Optional[tuple[int, int]]:
    """Fetch the location of the form in the original filename from the
    input form, if it has metadata."""
    if isinstance(form, TaggedLiteral):
        form = form.form
    if isinstance(form, IMeta) and form.meta is not None:
        line = form.meta.val_at(READER_LINE_KW)
        col = form.meta.val_at(READER_COL_KW)
        if isinstance(line, int) and isinstance(col, int):
            return line, col
    return None


def _with_loc(f: LispAnalyzer[T_form, T_node]) -> LispAnalyzer[T_form, T_node]:
    """Attach any available location information from the input form to
    the node environment returned from the parsing function."""

    @wraps(f)
    def _analyze_form(form: T_form, ctx: AnalyzerContext) -> T_node:
        node = f(form, ctx)
        form_loc = _loc(form)
        if form_loc is None or node.env.line is not None:
            return node
        line, col = form_loc
        return node.assoc(env=attr.evolve(node.env, line=line, col=col))

    return _analyze_form


def _clean_meta(meta: Optional[lmap.PersistentMap]) -> Optional[lmap.PersistentMap]:
    """Remove reader metadata from the form's meta map."""
    if meta is None:
        return None
    else:
        new_meta = meta.dissoc(
            READER_LINE_KW, READER_COL_KW, READER_END_LINE_KW, READER_END_COL_KW
        )
        return None if len(new_meta) == 0 else new_meta


def _body_ast(
    forms: Sequence[ReaderForm], ctx: AnalyzerContext
) -> tuple[list[Node], Node]:
    """Analyze the forms and produce a body of statement nodes and a single
    return expression node.

    If the body is empty, return a constant node containing nil.

    Every form but the last is analyzed in a statement position. The last form is
    analyzed in the position of the parent node."""
    body_list = list(forms)
    if not body_list:
        return [], _const_node(None, ctx)

    *stmt_forms, ret_form = body_list

    with ctx.stmt_pos():
        body_stmts = list(map(lambda form: _analyze_form(form, ctx), stmt_forms))

    with ctx.parent_pos():
        body_expr = _analyze_form(ret_form, ctx)

    return body_stmts, body_expr


def _body_node(form: ReaderForm, forms: Sequence[ReaderForm], ctx) -> Do:
    stmts, ret = _body_ast(forms, ctx)
    return Do(
        form=form,
        statements=vec.vector(stmts),
        ret=ret,
        is_body=True,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _has_recur(node: Node, loop_id: str) -> bool:
    return walk(
        node,
        lambda n: n.op == NodeOp.RECUR and n.loop_id == loop_id,  # type: ignore
    )


def _assert_local_name(ctx: AnalyzerContext, s: sym.Symbol, what: str) -> None:
    if s.ns is not None:
        raise ctx.AnalyzerException(
            f"{what} name must be an unqualified symbol", form=s
        )
    if s == AMPERSAND:
        raise ctx.AnalyzerException(f"{what} name may not be '&'", form=s)


def _destructure_bindings(
    ctx: AnalyzerContext, pattern: LispForm, source: LocalBinding
) -> list[Binding]:
    """Return a Binding node for every step of the destructuring plan of `pattern`,
    binding the names in the pattern in the current symbol table.

    Intermediate values are bound to locals which are not visible to user code."""
    source_sym = sym.symbol(source.js_name)
    try:
        binding_plan = destructure.plan(pattern, source_sym)
    except destructure.PatternError as e:
        raise ctx.AnalyzerException(
            e.msg, form=e.form, exc_type=DestructureShapeError
        ) from e

    temps: dict[sym.Symbol, LocalBinding] = {source_sym: source}
    nodes = []
    for step in binding_plan.steps:
        default = None
        if isinstance(step.path, destructure.Get) and step.path.has_default:
            with ctx.expr_pos():
                default = _analyze_form(step.path.default, ctx)

        binding = LocalBinding.new(step.target.name)
        path_node = DestructurePath(
            form=pattern,
            source=temps[step.source],
            path=step.path,
            default_=default,
            children=vec.v(DEFAULT) if default is not None else vec.EMPTY,
            env=ctx.get_node_env(pos=NodeSyntacticPosition.EXPR),
        )
        nodes.append(
            Binding(
                form=step.target,
                binding=binding,
                local=LocalType.DESTRUCTURE,
                init=path_node,
                children=vec.v(INIT),
                env=ctx.get_node_env(),
            )
        )
        if step.is_temp:
            temps[step.target] = binding
        else:
            ctx.put_new_symbol(step.target, binding)

    return nodes


def _pattern_binding_name(pattern: LispForm) -> str:
    return "vec" if isinstance(pattern, vec.PersistentVector) else "map"


@functools.singledispatch
def _analyze_form(form: Union[ReaderForm, TaggedLiteral], ctx: AnalyzerContext):
    raise ctx.AnalyzerException(f"Unexpected form type {type(form)}", form=form)


################
# Special Forms
################


def _await_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Await:
    assert form.first == SpecialForm.AWAIT

    if len(form) != 2:
        raise ctx.AnalyzerException(
            "js-await forms must contain 2 elements, as in: (js-await expr)", form=form
        )

    if not ctx.is_async_ctx:
        raise ctx.AnalyzerException(
            "js-await forms may only appear in async function definitions",
            form=form,
            exc_type=AwaitContextError,
        )

    with ctx.expr_pos():
        expr = _analyze_form(form[1], ctx)

    return Await(
        form=form,
        expr=expr,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _def_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Def:
    assert form.first == SpecialForm.DEF

    nelems = len(form)
    if nelems < 2 or nelems > 4:
        raise ctx.AnalyzerException(
            "def forms must have between 2 and 4 elements, as in: "
            "(def name docstring? init?)",
            form=form,
        )

    name = form[1]
    if not isinstance(name, sym.Symbol):
        raise ctx.AnalyzerException(
            f"def names must be symbols, not {type(name)}", form=name
        )
    elif name.ns is not None:
        raise ctx.AnalyzerException("def names must not be namespaced", form=name)

    doc: Optional[str] = None
    init_form: ReaderForm = None
    if nelems == 4:
        doc = form[2]
        if not isinstance(doc, str):
            raise ctx.AnalyzerException("def docstring must be a string", form=doc)
        init_form = form[3]
    elif nelems == 3:
        init_form = form[2]

    meta = _clean_meta(name.meta)
    if doc is None and meta is not None:
        doc = meta.val_at(DOC_KW)
    elif doc is not None:
        meta = Maybe(meta).or_else_get(lmap.EMPTY).assoc(DOC_KW, doc)

    # Register the name before analyzing the init so recursive references resolve
    ctx.registry.add_def(name.name, meta)
    logger.log(TRACE, f"Defining {ctx.current_ns.name}/{name.name}")

    init: Optional[Node] = None
    if nelems > 2:
        with ctx.expr_pos():
            init = _analyze_form(init_form, ctx)

    return Def(
        form=form,
        name=name,
        js_name=munge(name.name),
        init=init,
        doc=doc,
        is_private=_is_private(name),
        children=vec.v(INIT) if init is not None else vec.EMPTY,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def __fn_params(
    ctx: AnalyzerContext, params: Sequence[LispForm]
) -> tuple[list[Binding], list[Binding], bool]:
    """Bind the parameters of a function arity or class method.

    Return the parameter bindings, the bindings produced by destructuring any
    parameter patterns, and whether the final parameter is a rest parameter."""
    positional = list(params)
    vargs: Optional[LispForm] = None
    for i, param in enumerate(positional):
        if param == AMPERSAND:
            rest = positional[i + 1 :]
            if len(rest) != 1:
                raise ctx.AnalyzerException(
                    "expected exactly one rest parameter after '&'", form=params
                )
            positional, vargs = positional[:i], rest[0]
            break

    param_nodes: list[Binding] = []
    patterns: list[tuple[LispForm, LocalBinding]] = []

    def bind_param(param: LispForm, is_variadic: bool) -> None:
        if isinstance(param, sym.Symbol):
            _assert_local_name(ctx, param, "function parameter")
            binding = LocalBinding.new(param.name)
            ctx.put_new_symbol(param, binding)
        elif destructure.is_pattern(param):
            binding = LocalBinding.new(_pattern_binding_name(param))
            patterns.append((param, binding))
        else:
            raise ctx.AnalyzerException(
                "function parameters must be symbols or destructuring patterns",
                form=param,
                exc_type=DestructureShapeError,
            )
        param_nodes.append(
            Binding(
                form=param,
                binding=binding,
                local=LocalType.ARG,
                is_variadic=is_variadic,
                env=ctx.get_node_env(),
            )
        )

    for param in positional:
        bind_param(param, False)
    if vargs is not None:
        bind_param(vargs, True)

    destructures = [
        node
        for pattern, binding in patterns
        for node in _destructure_bindings(ctx, pattern, binding)
    ]
    return param_nodes, destructures, vargs is not None


def __fn_method_ast(
    form: llist.PersistentList,
    ctx: AnalyzerContext,
    fnname: Optional[sym.Symbol] = None,
    is_async: bool = False,
    is_generator: bool = False,
) -> FnArity:
    with ctx.new_symbol_table("fn-arity"):
        params = form.first
        if not isinstance(params, vec.PersistentVector):
            raise ctx.AnalyzerException(
                "function arity arguments must be a vector", form=params
            )

        fn_loop_id = genname("fn_arity" if fnname is None else munge(fnname.name))
        with ctx.new_func_ctx(
            FunctionContext(is_async=is_async, is_generator=is_generator)
        ):
            param_nodes, destructures, has_vargs = __fn_params(ctx, params)
            recur_args = tuple(node.binding for node in param_nodes)
            with ctx.new_recur_point(fn_loop_id, recur_args), ctx.ret_pos():
                body = _body_node(form.rest, form.rest, ctx)

        method = FnArity(
            form=form,
            loop_id=fn_loop_id,
            params=vec.vector(param_nodes),
            destructures=vec.vector(destructures),
            is_variadic=has_vargs,
            fixed_arity=len(param_nodes) - int(has_vargs),
            body=body,
            has_recur=_has_recur(body, fn_loop_id),
            env=ctx.get_node_env(),
        )
        method.visit(partial(_assert_recur_is_tail, ctx))
        return method


def _fn_ast(  # pylint: disable=too-many-branches
    form: llist.PersistentList, ctx: AnalyzerContext
) -> Fn:
    assert form.first == SpecialForm.FN

    if len(form) < 2:
        raise ctx.AnalyzerException(
            "fn forms must contain at least 2 elements, as in: (fn* [args] body*)",
            form=form,
        )

    pos = ctx.syntax_position
    with ctx.new_symbol_table("fn"):
        idx = 1
        name = form[1]
        name_node: Optional[Binding] = None
        if isinstance(name, sym.Symbol):
            _assert_local_name(ctx, name, "fn")
            binding = LocalBinding.new(name.name)
            name_node = Binding(
                form=name,
                binding=binding,
                local=LocalType.FN,
                env=ctx.get_node_env(),
            )
            ctx.put_new_symbol(name, binding)
            idx += 1
        elif not isinstance(name, (llist.PersistentList, vec.PersistentVector)):
            raise ctx.AnalyzerException(
                "fn form must match: (fn* name? [arg*] body*) or (fn* name? method*)",
                form=form,
            )

        fnname = name if name_node is not None else None
        is_async = _is_async(form) or _is_async(fnname)
        is_generator = _is_generator(form) or _is_generator(fnname)

        rest = list(form)[idx:]
        if not rest:
            raise ctx.AnalyzerException(
                "fn forms must contain a parameter vector or arities", form=form
            )

        if isinstance(rest[0], vec.PersistentVector):
            arity_forms = [llist.list(rest)]
        else:
            arity_forms = rest
            for arity_form in arity_forms:
                if not isinstance(arity_form, llist.PersistentList):
                    raise ctx.AnalyzerException(
                        "fn arities must be lists, as in: ([arg*] body*)",
                        form=arity_form,
                    )

        arities = [
            __fn_method_ast(
                arity_form,
                ctx,
                fnname=fnname,
                is_async=is_async,
                is_generator=is_generator,
            )
            for arity_form in arity_forms
        ]

    variadic_arities = [arity for arity in arities if arity.is_variadic]
    fixed_arities = [arity.fixed_arity for arity in arities if not arity.is_variadic]
    if len(variadic_arities) > 1:
        raise ctx.AnalyzerException(
            "fn may have at most 1 variadic arity", form=form
        )
    if len(set(fixed_arities)) != len(fixed_arities):
        raise ctx.AnalyzerException(
            "fn may not have multiple arities with the same number of fixed arguments",
            form=form,
        )
    if variadic_arities and fixed_arities:
        if max(fixed_arities) > variadic_arities[0].fixed_arity:
            raise ctx.AnalyzerException(
                "fn may not have a fixed arity with more arguments than its variadic "
                "arity",
                form=form,
            )

    return Fn(
        form=form,
        max_fixed_arity=max(arity.fixed_arity for arity in arities),
        arities=vec.vector(arities),
        local=name_node,
        is_variadic=len(variadic_arities) == 1,
        is_async=is_async,
        is_generator=is_generator,
        env=ctx.get_node_env(pos=pos),
    )


def __class_method_ast(  # pylint: disable=too-many-locals
    form: llist.PersistentList, ctx: AnalyzerContext, kind: MethodKind
) -> DefClassMethod:
    name: sym.Symbol = form.first
    if len(form) < 2 or not isinstance(form[1], vec.PersistentVector):
        raise ctx.AnalyzerException(
            f"defclass method {name} must match: (name [this arg*] body*)", form=form
        )

    params: vec.PersistentVector = form[1]
    if len(params) < 1 or not isinstance(params[0], sym.Symbol):
        raise ctx.AnalyzerException(
            f"defclass method {name} must name its `this` parameter", form=params
        )

    is_async, is_generator = _is_async(name), _is_generator(name)
    is_static = _is_static(name)
    if kind == MethodKind.CONSTRUCTOR and (is_async or is_generator or is_static):
        raise ctx.AnalyzerException(
            "defclass constructors may not be async, generators, or static",
            form=form,
        )

    with ctx.new_symbol_table(f"method-{name.name}"):
        this_sym: sym.Symbol = params[0]
        _assert_local_name(ctx, this_sym, "this")
        if kind == MethodKind.CONSTRUCTOR:
            # Derived class constructors may not alias `this` before calling super
            this_binding = LocalBinding(this_sym.name, "this", is_this=True)
        else:
            this_binding = LocalBinding.new(this_sym.name, is_this=True)
        ctx.put_new_symbol(this_sym, this_binding)
        this_node = Binding(
            form=this_sym,
            binding=this_binding,
            local=LocalType.THIS,
            env=ctx.get_node_env(),
        )

        loop_id = genname(munge(name.name))
        with ctx.new_func_ctx(
            FunctionContext(
                is_async=is_async, is_generator=is_generator, method_kind=kind
            )
        ):
            param_nodes, destructures, has_vargs = __fn_params(ctx, params[1:])
            recur_args = tuple(node.binding for node in param_nodes)
            with ctx.new_recur_point(loop_id, recur_args), ctx.ret_pos():
                body = _body_node(form, list(form)[2:], ctx)

    method = DefClassMethod(
        form=form,
        name=munge(name.name, allow_reserved=True),
        kind=kind,
        params=vec.vector(param_nodes),
        destructures=vec.vector(destructures),
        body=body,
        loop_id=loop_id,
        this_local=this_node,
        fixed_arity=len(param_nodes) - int(has_vargs),
        is_variadic=has_vargs,
        is_static=is_static,
        is_async=is_async,
        is_generator=is_generator,
        has_recur=_has_recur(body, loop_id),
        env=ctx.get_node_env(),
    )
    method.visit(partial(_assert_recur_is_tail, ctx))
    return method


def _defclass_ast(  # pylint: disable=too-many-branches
    form: llist.PersistentList, ctx: AnalyzerContext
) -> DefClass:
    assert form.first == SpecialForm.DEFCLASS

    if len(form) < 2:
        raise ctx.AnalyzerException(
            "defclass forms must match: (defclass Name member*)", form=form
        )

    name = form[1]
    if not isinstance(name, sym.Symbol) or name.ns is not None:
        raise ctx.AnalyzerException(
            "defclass names must be unqualified symbols", form=name
        )

    pos = ctx.syntax_position
    ctx.registry.add_def(name.name, _clean_meta(name.meta))

    base: Optional[Node] = None
    fields: list[DefClassField] = []
    methods: list[DefClassMethod] = []
    for clause in list(form)[2:]:
        if (
            not isinstance(clause, llist.PersistentList)
            or clause.is_empty
            or not isinstance(clause.first, sym.Symbol)
        ):
            raise ctx.AnalyzerException(
                "defclass members must be lists beginning with a symbol", form=clause
            )

        head: sym.Symbol = clause.first
        if head == _EXTENDS:
            if base is not None or len(clause) != 2:
                raise ctx.AnalyzerException(
                    "defclass may extend exactly one base class, as in: "
                    "(extends Base)",
                    form=clause,
                )
            with ctx.expr_pos():
                base = _analyze_form(clause[1], ctx)
        elif head == _FIELD:
            if len(clause) not in {2, 3} or not isinstance(clause[1], sym.Symbol):
                raise ctx.AnalyzerException(
                    "defclass fields must match: (field name init?)", form=clause
                )
            field_name: sym.Symbol = clause[1]
            init = None
            if len(clause) == 3:
                with ctx.expr_pos():
                    init = _analyze_form(clause[2], ctx)
            fields.append(
                DefClassField(
                    form=clause,
                    name=munge(field_name.name, allow_reserved=True),
                    init=init,
                    is_static=_is_static(field_name),
                    children=vec.v(INIT) if init is not None else vec.EMPTY,
                    env=ctx.get_node_env(),
                )
            )
        elif head == _CONSTRUCTOR:
            if any(m.kind == MethodKind.CONSTRUCTOR for m in methods):
                raise ctx.AnalyzerException(
                    "defclass may define only one constructor", form=clause
                )
            methods.append(__class_method_ast(clause, ctx, MethodKind.CONSTRUCTOR))
        else:
            methods.append(__class_method_ast(clause, ctx, MethodKind.METHOD))

    return DefClass(
        form=form,
        name=name,
        js_name=munge(name.name),
        fields=vec.vector(fields),
        members=vec.vector(methods),
        base=base,
        children=(
            vec.v(BASE, FIELDS, MEMBERS) if base is not None else vec.v(FIELDS, MEMBERS)
        ),
        env=ctx.get_node_env(pos=pos),
    )


def _defmacro_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> DefMacro:
    assert form.first == SpecialForm.DEFMACRO

    if len(form) < 3:
        raise ctx.AnalyzerException(
            "defmacro forms must match: (defmacro name [args*] body*)", form=form
        )

    name = form[1]
    if not isinstance(name, sym.Symbol) or name.ns is not None:
        raise ctx.AnalyzerException(
            "defmacro names must be unqualified symbols", form=name
        )

    ns_name = ctx.current_ns.name
    try:
        ctx.evaluator.define(ns_name, name.name, form)
    except MacroError:
        raise
    except Exception as e:
        raise MacroError(
            f"unable to define macro {ns_name}/{name.name}",
            phase=CompilerPhase.MACROEXPANSION,
            filename=ctx.filename,
            form=form,
        ) from e

    ctx.registry.add_macro(name.name)
    logger.debug(f"Defined macro {ns_name}/{name.name}")
    return DefMacro(
        form=form, name=name, env=ctx.get_node_env(pos=ctx.syntax_position)
    )


def _do_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Do:
    assert form.first == SpecialForm.DO
    pos = ctx.syntax_position
    body = list(form.rest)
    with ctx.body_pos() if len(body) > 1 else ctx.parent_pos():
        statements, ret = _body_ast(body, ctx)
    return Do(
        form=form,
        statements=vec.vector(statements),
        ret=ret,
        env=ctx.get_node_env(pos=pos),
    )


def _for_of_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> ForOf:
    assert form.first == SpecialForm.FOR_OF

    bindings = form[1] if len(form) > 1 else None
    if not isinstance(bindings, vec.PersistentVector) or len(bindings) != 2:
        raise ctx.AnalyzerException(
            "js-for-of forms must match: (js-for-of [binding coll] body*)", form=form
        )

    pos = ctx.syntax_position
    target, coll_form = bindings
    with ctx.expr_pos():
        coll = _analyze_form(coll_form, ctx)

    with ctx.new_symbol_table("for-of"):
        destructures: list[Binding] = []
        if isinstance(target, sym.Symbol):
            _assert_local_name(ctx, target, "js-for-of binding")
            binding = LocalBinding.new(target.name)
            ctx.put_new_symbol(target, binding)
        elif destructure.is_pattern(target):
            binding = LocalBinding.new(_pattern_binding_name(target))
            destructures = _destructure_bindings(ctx, target, binding)
        else:
            raise ctx.AnalyzerException(
                "js-for-of binding must be a symbol or a destructuring pattern",
                form=target,
                exc_type=DestructureShapeError,
            )

        local = Binding(
            form=target,
            binding=binding,
            local=LocalType.FOR_OF,
            env=ctx.get_node_env(),
        )
        with ctx.stmt_pos():
            body = _body_node(form, list(form)[2:], ctx)

    return ForOf(
        form=form,
        local=local,
        destructures=vec.vector(destructures),
        coll=coll,
        body=body,
        env=ctx.get_node_env(pos=pos),
    )


def _host_interop_ast(
    form: llist.PersistentList, ctx: AnalyzerContext
) -> Union[HostCall, HostField]:
    assert form.first == SpecialForm.INTEROP_CALL

    nelems = len(form)
    if nelems < 3:
        raise ctx.AnalyzerException(
            "host interop forms must take the form: (. obj method args*), "
            "(. obj (method args*)), or (. obj -field)",
            form=form,
        )

    with ctx.expr_pos():
        target = _analyze_form(form[1], ctx)

    member = form[2]
    if isinstance(member, llist.PersistentList):
        if nelems != 3 or not isinstance(member.first, sym.Symbol):
            raise ctx.AnalyzerException(
                "host interop calls must take the form: (. obj (method args*))",
                form=form,
            )
        method: sym.Symbol = member.first
        arg_forms = list(member.rest)
    elif isinstance(member, sym.Symbol):
        if member.name.startswith("-"):
            if nelems != 3:
                raise ctx.AnalyzerException(
                    "host field access must take the form: (. obj -field)", form=form
                )
            return HostField(
                form=form,
                field=munge(member.name[1:], allow_reserved=True),
                target=target,
                env=ctx.get_node_env(pos=ctx.syntax_position),
            )
        method = member
        arg_forms = list(form)[3:]
    else:
        raise ctx.AnalyzerException(
            "host interop member must be a symbol or a list", form=member
        )

    with ctx.expr_pos():
        args = vec.vector(map(lambda f: _analyze_form(f, ctx), arg_forms))

    return HostCall(
        form=form,
        method=munge(method.name, allow_reserved=True),
        target=target,
        args=args,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _if_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> If:
    assert form.first == SpecialForm.IF

    nelems = len(form)
    if nelems not in (3, 4):
        raise ctx.AnalyzerException(
            "if forms must have either 3 or 4 elements, as in: (if test then else?)",
            form=form,
        )

    with ctx.expr_pos():
        test_node = _analyze_form(form[1], ctx)

    with ctx.parent_pos():
        then_node = _analyze_form(form[2], ctx)

        if nelems == 4:
            else_node = _analyze_form(form[3], ctx)
        else:
            else_node = _const_node(None, ctx)

    return If(
        form=form,
        test=test_node,
        then=then_node,
        else_=else_node,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _js_star_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> JSStar:
    assert form.first == SpecialForm.JS_STAR

    if len(form) < 2 or not isinstance(form[1], str):
        raise ctx.AnalyzerException(
            'js* forms must match: (js* "template" args*)', form=form
        )

    template: str = form[1]
    arg_forms = list(form)[2:]
    if len(_JS_STAR_PLACEHOLDER.findall(template)) != len(arg_forms):
        raise ctx.AnalyzerException(
            "js* template must contain one ~{} placeholder for each argument",
            form=form,
        )

    with ctx.expr_pos():
        args = vec.vector(map(lambda f: _analyze_form(f, ctx), arg_forms))

    return JSStar(
        form=form,
        template=template,
        args=args,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _let_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Let:
    assert form.first == SpecialForm.LET

    if len(form) < 2:
        raise ctx.AnalyzerException(
            "let forms must have bindings vector and 0 or more body forms", form=form
        )

    bindings = form[1]
    if not isinstance(bindings, vec.PersistentVector):
        raise ctx.AnalyzerException("let bindings must be a vector", form=bindings)
    elif len(bindings) % 2 != 0:
        raise ctx.AnalyzerException(
            "let bindings must appear in name-value pairs", form=bindings
        )

    pos = ctx.syntax_position
    with ctx.new_symbol_table("let"):
        binding_nodes: list[Binding] = []
        for name, value in partition(bindings, 2):
            with ctx.expr_pos():
                init = _analyze_form(value, ctx)

            if isinstance(name, sym.Symbol):
                _assert_local_name(ctx, name, "let binding")
                binding = LocalBinding.new(name.name)
            elif destructure.is_pattern(name):
                binding = LocalBinding.new(_pattern_binding_name(name))
            else:
                raise ctx.AnalyzerException(
                    "let binding name must be a symbol or a destructuring pattern",
                    form=name,
                    exc_type=DestructureShapeError,
                )

            binding_nodes.append(
                Binding(
                    form=name,
                    binding=binding,
                    local=LocalType.LET,
                    init=init,
                    children=vec.v(INIT),
                    env=ctx.get_node_env(),
                )
            )
            if isinstance(name, sym.Symbol):
                ctx.put_new_symbol(name, binding)
            else:
                binding_nodes.extend(_destructure_bindings(ctx, name, binding))

        with ctx.body_pos():
            body = _body_node(form, list(form)[2:], ctx)

    return Let(
        form=form,
        bindings=vec.vector(binding_nodes),
        body=body,
        env=ctx.get_node_env(pos=pos),
    )


def _loop_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Loop:
    assert form.first == SpecialForm.LOOP

    if len(form) < 2:
        raise ctx.AnalyzerException(
            "loop forms must have bindings vector and 0 or more body forms", form=form
        )

    bindings = form[1]
    if not isinstance(bindings, vec.PersistentVector):
        raise ctx.AnalyzerException("loop bindings must be a vector", form=bindings)
    elif len(bindings) % 2 != 0:
        raise ctx.AnalyzerException(
            "loop bindings must appear in name-value pairs", form=bindings
        )

    pos = ctx.syntax_position
    loop_id = genname("loop")
    with ctx.new_symbol_table(loop_id):
        binding_nodes: list[Binding] = []
        patterns: list[tuple[LispForm, LocalBinding]] = []
        for name, value in partition(bindings, 2):
            with ctx.expr_pos():
                init = _analyze_form(value, ctx)

            if isinstance(name, sym.Symbol):
                _assert_local_name(ctx, name, "loop binding")
                binding = LocalBinding.new(name.name)
                ctx.put_new_symbol(name, binding)
            elif destructure.is_pattern(name):
                binding = LocalBinding.new(_pattern_binding_name(name))
                patterns.append((name, binding))
            else:
                raise ctx.AnalyzerException(
                    "loop binding name must be a symbol or a destructuring pattern",
                    form=name,
                    exc_type=DestructureShapeError,
                )

            binding_nodes.append(
                Binding(
                    form=name,
                    binding=binding,
                    local=LocalType.LOOP,
                    init=init,
                    children=vec.v(INIT),
                    env=ctx.get_node_env(),
                )
            )

        with ctx.new_recur_point(
            loop_id, tuple(node.binding for node in binding_nodes)
        ):
            destructures = [
                node
                for pattern, binding in patterns
                for node in _destructure_bindings(ctx, pattern, binding)
            ]
            with ctx.body_pos():
                body = _body_node(form, list(form)[2:], ctx)

        loop_node = Loop(
            form=form,
            bindings=vec.vector(binding_nodes),
            destructures=vec.vector(destructures),
            body=body,
            loop_id=loop_id,
            has_recur=_has_recur(body, loop_id),
            env=ctx.get_node_env(pos=pos),
        )
        loop_node.visit(partial(_assert_recur_is_tail, ctx))
        return loop_node


def _new_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> New:
    assert form.first == SpecialForm.NEW

    if len(form) < 2:
        raise ctx.AnalyzerException(
            "new forms must match: (new Class args*)", form=form
        )

    with ctx.expr_pos():
        class_ = _analyze_form(form[1], ctx)
        args = vec.vector(map(lambda f: _analyze_form(f, ctx), list(form)[2:]))

    return New(
        form=form,
        class_=class_,
        args=args,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def __require_spec(  # pylint: disable=too-many-branches
    ctx: AnalyzerContext, spec: LispForm, kind: RequireKind
) -> list[RequireSpec]:
    """Add the library required by `spec` to the current namespace."""
    if isinstance(spec, llist.PersistentList) and spec.first == SpecialForm.QUOTE:
        spec = spec[1]

    if isinstance(spec, sym.Symbol):
        return [ctx.registry.add_require(spec.name, kind=kind)]
    elif isinstance(spec, str):
        if kind == RequireKind.MACRO:
            raise ctx.AnalyzerException(
                "macro libraries must be named by symbols", form=spec
            )
        return [ctx.registry.add_require(spec, kind=kind, is_string=True)]
    elif not isinstance(spec, vec.PersistentVector) or len(spec) == 0:
        raise ctx.AnalyzerException(
            "require specs must be symbols, strings, or vectors", form=spec
        )

    lib = spec[0]
    if not isinstance(lib, (sym.Symbol, str)):
        raise ctx.AnalyzerException(
            "required libraries must be named by a symbol or a string", form=lib
        )
    is_string = isinstance(lib, str)
    lib_name = lib if isinstance(lib, str) else lib.name
    if is_string and kind == RequireKind.MACRO:
        raise ctx.AnalyzerException(
            "macro libraries must be named by symbols", form=spec
        )

    opts = list(spec)[1:]
    if len(opts) % 2 != 0:
        raise ctx.AnalyzerException(
            "require spec options must appear in key-value pairs", form=spec
        )

    alias: Optional[str] = None
    default: Optional[str] = None
    refers: list[str] = []
    refer_macros: list[str] = []
    include_macros = False
    for k, v in partition(opts, 2):
        if k == AS_KW and isinstance(v, sym.Symbol):
            alias = v.name
        elif k == DEFAULT_KW and isinstance(v, sym.Symbol):
            default = v.name
        elif k in {REFER_KW, REFER_MACROS_KW} and isinstance(v, vec.PersistentVector):
            if not all(isinstance(name, sym.Symbol) for name in v):
                raise ctx.AnalyzerException(
                    f"names in {k} must be symbols", form=v
                )
            (refers if k == REFER_KW else refer_macros).extend(name.name for name in v)
        elif k == INCLUDE_MACROS_KW:
            include_macros = bool(v)
        else:
            raise ctx.AnalyzerException(
                f"unsupported require spec option {k}", form=spec
            )

    reqs = [
        ctx.registry.add_require(
            lib_name,
            alias=alias,
            kind=kind,
            refers=refers,
            default=default,
            is_string=is_string,
        )
    ]
    if kind == RequireKind.VALUE and (refer_macros or include_macros):
        if is_string:
            raise ctx.AnalyzerException(
                "macro libraries must be named by symbols", form=spec
            )
        reqs.append(
            ctx.registry.add_require(
                lib_name, alias=alias, kind=RequireKind.MACRO, refers=refer_macros
            )
        )
    return reqs


def _ns_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Require:
    assert form.first == SpecialForm.NS

    if len(form) < 2 or not isinstance(form[1], sym.Symbol) or form[1].ns is not None:
        raise ctx.AnalyzerException(
            "ns forms must match: (ns name docstring? attr-map? clause*)", form=form
        )

    name: sym.Symbol = form[1]
    ctx.registry.declare_namespace(name.name)

    clauses = list(form)[2:]
    if clauses and isinstance(clauses[0], str):
        clauses.pop(0)
    if clauses and isinstance(clauses[0], lmap.PersistentMap):
        clauses.pop(0)

    requires: list[RequireSpec] = []
    for clause in clauses:
        if not isinstance(clause, llist.PersistentList) or not isinstance(
            clause.first, kw.Keyword
        ):
            raise ctx.AnalyzerException(
                "ns clauses must be lists beginning with a keyword", form=clause
            )

        head = clause.first
        if head == REQUIRE_KW:
            for spec in clause.rest:
                requires.extend(__require_spec(ctx, spec, RequireKind.VALUE))
        elif head == REQUIRE_MACROS_KW:
            for spec in clause.rest:
                requires.extend(__require_spec(ctx, spec, RequireKind.MACRO))
        elif head == REFER_CLOJURE_KW:
            opts = list(clause.rest)
            if (
                len(opts) != 2
                or opts[0] != EXCLUDE_KW
                or not isinstance(opts[1], vec.PersistentVector)
                or not all(isinstance(s, sym.Symbol) for s in opts[1])
            ):
                raise ctx.AnalyzerException(
                    "refer-clojure clauses must match: "
                    "(:refer-clojure :exclude [name*])",
                    form=clause,
                )
            ctx.registry.exclude_core(s.name for s in opts[1])
        else:
            raise ctx.AnalyzerException(
                f"unsupported ns clause {head}", form=clause
            )

    return Require(
        form=form,
        requires=vec.vector(requires),
        ns_name=name.name,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _quote_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Quote:
    assert form.first == SpecialForm.QUOTE

    if len(form) != 2:
        raise ctx.AnalyzerException(
            "quote forms must have exactly two elements: (quote form)", form=form
        )

    quoted = form[1]
    expr = Const(
        form=quoted,
        type=_const_node_type(quoted),
        val=quoted,
        env=ctx.get_node_env(pos=NodeSyntacticPosition.EXPR),
    )
    return Quote(
        form=form, expr=expr, env=ctx.get_node_env(pos=ctx.syntax_position)
    )


def _assert_no_recur(ctx: AnalyzerContext, node: Node) -> None:
    """Assert that `recur` forms do not appear in any position of this or
    child AST nodes."""
    if node.op == NodeOp.RECUR:
        raise ctx.AnalyzerException(
            "recur must appear in tail position",
            form=node.form,
            node=node,
            exc_type=IllegalRecurError,
        )
    elif node.op in {NodeOp.FN, NodeOp.LOOP, NodeOp.DEFCLASS}:
        pass
    else:
        node.visit(partial(_assert_no_recur, ctx))


def _assert_recur_is_tail(ctx: AnalyzerContext, node: Node) -> None:
    """Assert that `recur` forms only appear in the tail position of this
    or child AST nodes.

    `recur` forms may only appear in `do` nodes (both literal and synthetic
    `do` nodes), the bodies of `let*` nodes, and in either the :then or :else
    expression of an `if` node. `recur` may not cross a `try`."""
    if node.op == NodeOp.DO:
        assert isinstance(node, Do)
        for child in node.statements:
            _assert_no_recur(ctx, child)
        _assert_recur_is_tail(ctx, node.ret)
    elif node.op in {NodeOp.FN_ARITY, NodeOp.DEFCLASS_METHOD}:
        assert isinstance(node, (FnArity, DefClassMethod))
        node.visit(partial(_assert_recur_is_tail, ctx))
    elif node.op == NodeOp.IF:
        assert isinstance(node, If)
        _assert_no_recur(ctx, node.test)
        _assert_recur_is_tail(ctx, node.then)
        _assert_recur_is_tail(ctx, node.else_)
    elif node.op == NodeOp.LET:
        assert isinstance(node, Let)
        for binding in node.bindings:
            assert binding.init is not None
            _assert_no_recur(ctx, binding.init)
        _assert_recur_is_tail(ctx, node.body)
    elif node.op == NodeOp.LOOP:
        assert isinstance(node, Loop)
        for binding in node.bindings:
            assert binding.init is not None
            _assert_no_recur(ctx, binding.init)
    elif node.op == NodeOp.RECUR:
        pass
    else:
        node.visit(partial(_assert_no_recur, ctx))


def _recur_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Recur:
    assert form.first == SpecialForm.RECUR

    recur_point = ctx.recur_point
    if recur_point is None:
        raise ctx.AnalyzerException(
            "no recur point defined for recur", form=form, exc_type=IllegalRecurError
        )

    if len(recur_point.args) != len(form.rest):
        raise ctx.AnalyzerException(
            f"recur arity ({len(form.rest)}) does not match the arity of the "
            f"enclosing loop or function ({len(recur_point.args)})",
            form=form,
            exc_type=IllegalRecurError,
        )

    with ctx.expr_pos():
        exprs = vec.vector(map(lambda form: _analyze_form(form, ctx), form.rest))

    return Recur(
        form=form,
        exprs=exprs,
        loop_id=recur_point.loop_id,
        targets=recur_point.args,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _require_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Require:
    assert form.first == SpecialForm.REQUIRE

    if len(form) < 2:
        raise ctx.AnalyzerException(
            "require forms must name at least one library", form=form
        )

    requires = [
        req
        for spec in form.rest
        for req in __require_spec(ctx, spec, RequireKind.VALUE)
    ]
    return Require(
        form=form,
        requires=vec.vector(requires),
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _set_bang_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> SetBang:
    assert form.first == SpecialForm.SET_BANG

    if len(form) != 3:
        raise ctx.AnalyzerException(
            "set! forms must contain exactly 3 elements: (set! target value)",
            form=form,
        )

    with ctx.expr_pos():
        target = _analyze_form(form[1], ctx)

    if not getattr(target, "is_assignable", False):
        raise ctx.AnalyzerException(
            f"cannot set! targets of type {target.op.value}", form=form[1], node=target
        )

    with ctx.expr_pos():
        val = _analyze_form(form[2], ctx)

    return SetBang(
        form=form,
        target=target,
        val=val,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _super_call_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> SuperCall:
    func_ctx = ctx.func_ctx
    if func_ctx is None or func_ctx.method_kind != MethodKind.CONSTRUCTOR:
        raise ctx.AnalyzerException(
            "super constructor calls may only appear in defclass constructors",
            form=form,
            exc_type=UnsupportedFormError,
        )

    with ctx.expr_pos():
        args = vec.vector(map(lambda f: _analyze_form(f, ctx), form.rest))

    return SuperCall(
        form=form, args=args, env=ctx.get_node_env(pos=ctx.syntax_position)
    )


def _syntax_quote_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Node:
    raise ctx.AnalyzerException(
        f"{form.first} may only appear in macro definitions",
        form=form,
        exc_type=UnsupportedFormError,
    )


def _throw_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Throw:
    assert form.first == SpecialForm.THROW

    if len(form) != 2:
        raise ctx.AnalyzerException(
            "throw forms must contain exactly 2 elements: (throw exc)", form=form
        )

    with ctx.expr_pos():
        exc = _analyze_form(form[1], ctx)

    return Throw(
        form=form,
        exception=exc,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


def _catch_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Catch:
    assert form.first == SpecialForm.CATCH

    if len(form) < 3:
        raise ctx.AnalyzerException(
            "catch forms must contain at least 3 elements: (catch class local body*)",
            form=form,
        )

    catch_cls: Optional[Node] = None
    if form[1] != DEFAULT_KW:
        with ctx.expr_pos():
            catch_cls = _analyze_form(form[1], ctx)

    local_name = form[2]
    if not isinstance(local_name, sym.Symbol):
        raise ctx.AnalyzerException("catch local must be a symbol", form=local_name)
    _assert_local_name(ctx, local_name, "catch local")

    with ctx.new_symbol_table("catch"):
        binding = LocalBinding.new(local_name.name)
        ctx.put_new_symbol(local_name, binding)
        catch_binding = Binding(
            form=local_name,
            binding=binding,
            local=LocalType.CATCH,
            env=ctx.get_node_env(),
        )

        body = _body_node(form, list(form)[3:], ctx)
        return Catch(
            form=form,
            class_=catch_cls,
            local=catch_binding,
            body=body,
            children=vec.v(CLASS, LOCAL, BODY) if catch_cls else vec.v(LOCAL, BODY),
            env=ctx.get_node_env(),
        )


def _try_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Try:
    assert form.first == SpecialForm.TRY

    pos = ctx.syntax_position
    try_forms = []
    catch_forms = []
    finally_form: Optional[llist.PersistentList] = None
    for expr in form.rest:
        if isinstance(expr, llist.PersistentList):
            if expr.first == SpecialForm.CATCH:
                if finally_form is not None:
                    raise ctx.AnalyzerException(
                        "catch forms may not appear after finally forms in a try",
                        form=expr,
                    )
                catch_forms.append(expr)
                continue
            elif expr.first == SpecialForm.FINALLY:
                if finally_form is not None:
                    raise ctx.AnalyzerException(
                        "try forms may not contain multiple finally forms", form=expr
                    )
                finally_form = expr
                continue

        if catch_forms:
            raise ctx.AnalyzerException(
                "try body expressions may not appear after catch forms", form=expr
            )
        if finally_form is not None:
            raise ctx.AnalyzerException(
                "try body expressions may not appear after finally forms", form=expr
            )
        try_forms.append(expr)

    default_catches = [c for c in catch_forms if len(c) > 1 and c[1] == DEFAULT_KW]
    if len(default_catches) > 1 or (
        default_catches and catch_forms[-1] is not default_catches[0]
    ):
        raise ctx.AnalyzerException(
            "try forms may contain one :default catch, which must be the last catch",
            form=form,
        )

    with ctx.body_pos():
        body = _body_node(form, try_forms, ctx)
        catches = [_catch_ast(catch_form, ctx) for catch_form in catch_forms]

    finally_: Optional[Do] = None
    if finally_form is not None:
        # Finally values are never returned
        with ctx.stmt_pos():
            finally_ = _body_node(finally_form, list(finally_form.rest), ctx)

    return Try(
        form=form,
        body=body,
        catches=vec.vector(catches),
        finally_=finally_,
        children=(
            vec.v(BODY, CATCHES, FINALLY)
            if finally_ is not None
            else vec.v(BODY, CATCHES)
        ),
        env=ctx.get_node_env(pos=pos),
    )


def _yield_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Yield:
    assert form.first == SpecialForm.YIELD

    if not ctx.is_generator_ctx:
        raise ctx.AnalyzerException(
            "js-yield forms may only appear in generator functions",
            form=form,
            exc_type=UnsupportedFormError,
        )

    nelems = len(form)
    if nelems not in {1, 2}:
        raise ctx.AnalyzerException(
            "js-yield forms must contain 1 or 2 elements, as in: (js-yield expr?)",
            form=form,
        )

    expr: Optional[Node] = None
    if nelems == 2:
        with ctx.expr_pos():
            expr = _analyze_form(form[1], ctx)

    return Yield(
        form=form,
        expr=expr,
        children=vec.v(EXPR) if expr is not None else vec.EMPTY,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


SpecialFormHandler = Callable[[llist.PersistentList, AnalyzerContext], SpecialFormNode]
_SPECIAL_FORM_HANDLERS: Mapping[sym.Symbol, SpecialFormHandler] = {
    SpecialForm.AWAIT: _await_ast,
    SpecialForm.DEF: _def_ast,
    SpecialForm.DEFCLASS: _defclass_ast,
    SpecialForm.DEFMACRO: _defmacro_ast,
    SpecialForm.DO: _do_ast,
    SpecialForm.FN: _fn_ast,
    SpecialForm.FOR_OF: _for_of_ast,
    SpecialForm.IF: _if_ast,
    SpecialForm.INTEROP_CALL: _host_interop_ast,
    SpecialForm.JS_STAR: _js_star_ast,
    SpecialForm.LET: _let_ast,
    SpecialForm.LOOP: _loop_ast,
    SpecialForm.NEW: _new_ast,
    SpecialForm.NS: _ns_ast,
    SpecialForm.QUOTE: _quote_ast,
    SpecialForm.RECUR: _recur_ast,
    SpecialForm.REQUIRE: _require_ast,
    SpecialForm.SET_BANG: _set_bang_ast,
    SpecialForm.SYNTAX_QUOTE: _syntax_quote_ast,
    SpecialForm.THROW: _throw_ast,
    SpecialForm.TRY: _try_ast,
    SpecialForm.UNQUOTE: _syntax_quote_ast,
    SpecialForm.UNQUOTE_SPLICING: _syntax_quote_ast,
    SpecialForm.YIELD: _yield_ast,
}


##################
# Data Structures
##################


def _invoke_ast(form: llist.PersistentList, ctx: AnalyzerContext) -> Node:
    if form.first == SUPER:
        return _super_call_ast(form, ctx)

    with ctx.expr_pos():
        fn = _analyze_form(form.first, ctx)
        args = vec.vector(map(lambda f: _analyze_form(f, ctx), form.rest))

    if (
        isinstance(fn, VarRef)
        and fn.is_core
        and not fn.members
        and fn.name in COLLECTION_OPS
        and len(args) > 0
    ):
        return CollectionOp(
            form=form,
            name=fn.name,
            info=COLLECTION_OPS[fn.name],
            target=args[0],
            args=args[1:],
            env=ctx.get_node_env(pos=ctx.syntax_position),
        )

    return Invoke(
        form=form,
        fn=fn,
        args=args,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


@_analyze_form.register(llist.PersistentList)
@_with_loc
def _list_node(form: llist.PersistentList, ctx: AnalyzerContext) -> Node:
    if form.is_empty:
        return _const_node(form, ctx)

    expansion = expand(form, ctx.expansion_context())
    if expansion.kind == FormKind.MACRO:
        return _analyze_form(expansion.form, ctx)

    expanded: llist.PersistentList = expansion.form  # type: ignore[assignment]
    if expansion.kind in {FormKind.SPECIAL, FormKind.INTEROP}:
        handle_special_form = _SPECIAL_FORM_HANDLERS[expanded.first]
        return handle_special_form(expanded, ctx)

    return _invoke_ast(expanded, ctx)


@_analyze_form.register(sym.Symbol)
@_with_loc
def _symbol_node(form: sym.Symbol, ctx: AnalyzerContext) -> Node:
    env = ctx.get_node_env(pos=ctx.syntax_position)
    if form.ns is None and form.path[0] == SUPER.name:
        if ctx.func_ctx is None or ctx.func_ctx.method_kind is None:
            raise ctx.AnalyzerException(
                "super may only be referenced in defclass methods",
                form=form,
                exc_type=UnsupportedFormError,
            )
        path = form.path
        return JSGlobal(form=form, path=path, is_assignable=len(path) > 1, env=env)

    resolved = ctx.registry.resolve_symbol(form, ctx.symbol_table)
    if isinstance(resolved, namespace.Local):
        return Local(
            form=form,
            binding=resolved.binding,
            members=resolved.members,
            is_assignable=not resolved.binding.is_this or bool(resolved.members),
            env=env,
        )
    elif isinstance(resolved, namespace.Var):
        return VarRef(
            form=form,
            ns=resolved.ns,
            name=resolved.name,
            module=resolved.module,
            members=resolved.members,
            is_core=resolved.is_core,
            env=env,
        )
    elif isinstance(resolved, namespace.JSGlobal):
        return JSGlobal(form=form, path=resolved.path, env=env)

    if ctx.should_allow_unresolved_symbols:
        logger.debug(f"Passing through unresolved symbol {form}")
        path = form.path if form.ns is None else (form.ns, *form.path)
        return JSGlobal(form=form, path=path, env=env)

    raise ctx.AnalyzerException(
        f"unable to resolve symbol '{form}' in this context",
        form=form,
        exc_type=UnresolvedSymbolError,
    )


@_analyze_form.register(lmap.PersistentMap)
@_with_loc
def _map_node(form: lmap.PersistentMap, ctx: AnalyzerContext) -> MapNode:
    env = ctx.get_node_env(pos=ctx.syntax_position)
    with ctx.expr_pos():
        keys, vals = [], []
        for k, v in form.items():
            keys.append(_analyze_form(k, ctx))
            vals.append(_analyze_form(v, ctx))

    return MapNode(form=form, keys=vec.vector(keys), vals=vec.vector(vals), env=env)


@_analyze_form.register(lset.PersistentSet)
@_with_loc
def _set_node(form: lset.PersistentSet, ctx: AnalyzerContext) -> SetNode:
    env = ctx.get_node_env(pos=ctx.syntax_position)
    with ctx.expr_pos():
        items = vec.vector(map(lambda o: _analyze_form(o, ctx), form))
    return SetNode(form=form, items=items, env=env)


@_analyze_form.register(vec.PersistentVector)
@_with_loc
def _vector_node(form: vec.PersistentVector, ctx: AnalyzerContext) -> VectorNode:
    env = ctx.get_node_env(pos=ctx.syntax_position)
    with ctx.expr_pos():
        items = vec.vector(map(lambda o: _analyze_form(o, ctx), form))
    return VectorNode(form=form, items=items, env=env)


@_with_loc
def _jsx_element_ast(form: vec.PersistentVector, ctx: AnalyzerContext) -> JSXElement:
    if not isinstance(form, vec.PersistentVector) or len(form) == 0:
        raise ctx.AnalyzerException(
            "#jsx elements must match: #jsx [tag props? child*]", form=form
        )

    env = ctx.get_node_env(pos=ctx.syntax_position)
    tag, *rest = form
    tag_name: Optional[str] = None
    component: Optional[Node] = None
    if isinstance(tag, kw.Keyword):
        if tag != JSX_FRAGMENT_KW:
            tag_name = tag.name
    elif isinstance(tag, sym.Symbol):
        with ctx.expr_pos():
            component = _analyze_form(tag, ctx)
    else:
        raise ctx.AnalyzerException(
            "#jsx element tags must be keywords or symbols", form=tag
        )

    props: list[JSXProp] = []
    has_props = bool(rest) and isinstance(rest[0], lmap.PersistentMap)
    if has_props:
        with ctx.expr_pos():
            for k, v in rest.pop(0).items():
                if k == JSX_SPREAD_KW:
                    name = None
                elif isinstance(k, kw.Keyword):
                    name = JSX_PROP_RENAMES.get(k.name, k.name)
                elif isinstance(k, str):
                    name = k
                else:
                    raise ctx.AnalyzerException(
                        "#jsx prop names must be keywords or strings", form=k
                    )
                props.append(
                    JSXProp(
                        form=v,
                        name=name,
                        value=_analyze_form(v, ctx),
                        env=ctx.get_node_env(pos=NodeSyntacticPosition.EXPR),
                    )
                )

    with ctx.expr_pos():
        contents = vec.vector(map(lambda o: _analyze_form(o, ctx), rest))

    return JSXElement(
        form=form,
        props=vec.vector(props),
        contents=contents,
        tag_name=tag_name,
        component=component,
        has_props=has_props,
        env=env,
    )


@_analyze_form.register(TaggedLiteral)
def _tagged_literal_node(form: TaggedLiteral, ctx: AnalyzerContext) -> Node:
    if form.is_jsx:
        return _jsx_element_ast(form.form, ctx)
    elif form.is_js:
        return _analyze_form(form.form, ctx)
    raise ctx.AnalyzerException(
        f"tagged literal #{form.tag} cannot be compiled",
        form=form,
        exc_type=UnsupportedFormError,
    )


@functools.singledispatch
def _const_node_type(_: Any) -> ConstType:
    return ConstType.UNKNOWN


for tp, const_type in {
    bool: ConstType.BOOL,
    float: ConstType.NUMBER,
    int: ConstType.NUMBER,
    kw.Keyword: ConstType.KEYWORD,
    llist.PersistentList: ConstType.SEQ,
    lmap.PersistentMap: ConstType.MAP,
    lset.PersistentSet: ConstType.SET,
    type(re.compile("")): ConstType.REGEX,
    sym.Symbol: ConstType.SYMBOL,
    str: ConstType.STRING,
    type(None): ConstType.NIL,
    vec.PersistentVector: ConstType.VECTOR,
}.items():
    _const_node_type.register(tp, lambda _, default=const_type: default)


@_analyze_form.register(bool)
@_analyze_form.register(float)
@_analyze_form.register(int)
@_analyze_form.register(kw.Keyword)
@_analyze_form.register(type(re.compile(r"")))
@_analyze_form.register(str)
@_analyze_form.register(type(None))
@_with_loc
def _const_node(form: ReaderForm, ctx: AnalyzerContext) -> Const:
    node_type = _const_node_type(form)
    assert node_type != ConstType.UNKNOWN, "Only allow known constant types"

    return Const(
        form=form,
        type=node_type,
        val=form,
        env=ctx.get_node_env(pos=ctx.syntax_position),
    )


###################
# Public Functions
###################


def analyze_form(ctx: AnalyzerContext, form: ReaderForm) -> Node:
    """Take a form as an argument and produce a glint syntax tree, analyzed in the
    current syntax position of `ctx`."""
    return _analyze_form(form, ctx).assoc(top_level=True)


def macroexpand_1(ctx: AnalyzerContext, form: ReaderForm) -> ReaderForm:
    """Macroexpand form one time in the current namespace of `ctx`. The return
    value may still represent a macro. Does not macroexpand child forms."""
    return _macroexpand_1(form, ctx.expansion_context())


def macroexpand(ctx: AnalyzerContext, form: ReaderForm) -> ReaderForm:
    """Repeatedly macroexpand form as by macroexpand-1 until form no longer
    represents a macro. Returns the expanded form. Does not macroexpand child
    forms."""
    return _macroexpand(form, ctx.expansion_context())
