import contextlib
import functools
import json
import logging
import math
import posixpath
import re
from collections.abc import Iterable, Mapping, Sequence
from functools import wraps
from re import Pattern
from typing import Any, Callable, Optional, TypeVar

import attr

from glint.lang import keyword as kw
from glint.lang import list as llist
from glint.lang import map as lmap
from glint.lang import set as lset
from glint.lang import symbol as sym
from glint.lang import vector as vec
from glint.lang.compiler import destructure
from glint.lang.compiler.constants import DEFAULT_COMPILER_FILE_PATH
from glint.lang.compiler.exception import CompilerException, CompilerPhase
from glint.lang.compiler.nodes import (
    Await,
    CollectionOp,
    Const,
    ConstType,
    Def,
    DefClass,
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
    Loop,
)
from glint.lang.compiler.nodes import Map as MapNode
from glint.lang.compiler.nodes import (
    New,
    Node,
    NodeOp,
    NodeSyntacticPosition,
    Quote,
    Recur,
    Require,
)
from glint.lang.compiler.nodes import Set as SetNode
from glint.lang.compiler.nodes import SetBang, SuperCall, Throw, Try, VarRef
from glint.lang.compiler.nodes import Vector as VectorNode
from glint.lang.compiler.nodes import Yield, walk
from glint.lang.corelib import (
    BOOLEAN_FUNCTIONS,
    COMPARISON_OPERATORS,
    CORE_NS_ALIASES,
    COPY_HELPER,
    DISSOC_HELPER,
    GET_HELPER,
    INLINE_OPERATORS,
    ITERABLE_HELPER,
    LIST_HELPER,
    NTHNEXT_HELPER,
    STDLIB_NAMESPACES,
    TAKE_HELPER,
    TRUTH_HELPER,
    VEC_HELPER,
    stdlib_module,
)
from glint.lang.namespace import Require as RequireSpec
from glint.lang.namespace import RequireKind
from glint.lang.typing import CompilerOpts
from glint.lang.util import genname, munge
from glint.util import Maybe

logger = logging.getLogger(__name__)

# Generator options
CORE_ALIAS = kw.keyword("core-alias")
CORE_MODULE = kw.keyword("core-module")
ELIDE_EXPORTS = kw.keyword("elide-exports")
ELIDE_IMPORTS = kw.keyword("elide-imports")
JSX_FACTORY = kw.keyword("jsx-factory")
JSX_FRAGMENT = kw.keyword("jsx-fragment")
OUTPUT_EXTENSION = kw.keyword("output-extension")

DEFAULT_CORE_MODULE = "glint-core"
DEFAULT_OUTPUT_EXTENSION = ".mjs"
DEFAULT_JSX_FACTORY = "React.createElement"
DEFAULT_JSX_FRAGMENT = "React.Fragment"

_INDENT = "  "
_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_INTRINSIC_TAG = re.compile(r"^[a-z][A-Za-z0-9_$]*$")
_JS_STAR_PLACEHOLDER = "~{}"
_COMPONENT_PREFIX = "Component"
_ERROR_PREFIX = "e"
_MULTI_ARITY_ARGS = "args"
_MULTI_ARITY_PREFIX = "fn"
_SHADOWED_CORE_PREFIX = "core_"
_REGEX_FLAGS = (("i", re.IGNORECASE), ("m", re.MULTILINE), ("s", re.DOTALL))

_STMT = NodeSyntacticPosition.STMT
_EXPR = NodeSyntacticPosition.EXPR
_RETURN = NodeSyntacticPosition.RETURN


class GeneratorContext:
    __slots__ = (
        "_core_names",
        "_exports",
        "_filename",
        "_fn_depth",
        "_hoisted",
        "_imports",
        "_opts",
        "_shadowed",
    )

    def __init__(
        self,
        filename: Optional[str] = None,
        opts: Optional[CompilerOpts] = None,
        defined_names: Iterable[str] = (),
    ) -> None:
        self._filename = Maybe(filename).or_else_get(DEFAULT_COMPILER_FILE_PATH)
        self._opts = lmap.EMPTY if opts is None else lmap.map(opts)
        self._core_names: dict[str, str] = {}
        self._exports: dict[str, None] = {}
        self._fn_depth = 0
        self._hoisted: dict[str, None] = {}
        self._imports: dict[str, None] = {}
        self._shadowed = frozenset(defined_names)

        if logger.isEnabledFor(logging.DEBUG):  # pragma: no cover
            for k, v in self._opts.items():
                logger.debug("Compiler option %s = %s", k, v)

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def core_alias(self) -> Optional[str]:
        """If set, core library names are referenced as members of this global
        rather than being imported from the core module."""
        return self._opts.val_at(CORE_ALIAS)

    @property
    def core_module(self) -> str:
        return self._opts.val_at(CORE_MODULE, DEFAULT_CORE_MODULE)

    @property
    def output_extension(self) -> str:
        return self._opts.val_at(OUTPUT_EXTENSION, DEFAULT_OUTPUT_EXTENSION)

    @property
    def use_jsx_syntax(self) -> bool:
        """If True, JSX elements are emitted as JSX markup rather than as calls to
        the JSX factory function."""
        return self.output_extension == ".jsx"

    @property
    def jsx_factory(self) -> str:
        return self._opts.val_at(JSX_FACTORY, DEFAULT_JSX_FACTORY)

    @property
    def jsx_fragment(self) -> str:
        return self._opts.val_at(JSX_FRAGMENT, DEFAULT_JSX_FRAGMENT)

    @property
    def elide_imports(self) -> bool:
        return self._opts.val_at(ELIDE_IMPORTS, False)

    @property
    def elide_exports(self) -> bool:
        return self._opts.val_at(ELIDE_EXPORTS, False)

    @property
    def is_module_scope(self) -> bool:
        """Return True if code generated now runs directly in the module body rather
        than in some function."""
        return self._fn_depth == 0

    @contextlib.contextmanager
    def new_function(self):
        """Context manager which indicates that any code generated within it will be
        placed in a JavaScript function body."""
        self._fn_depth += 1
        try:
            yield
        finally:
            self._fn_depth -= 1

    def core_ref(self, name: str) -> str:
        """Return the JavaScript expression referring to the core library name `name`,
        recording that it must be imported."""
        munged = munge(name)
        alias = self.core_alias
        if alias is not None:
            return f"{alias}.{munged}"
        local_name = (
            f"{_SHADOWED_CORE_PREFIX}{munged}" if munged in self._shadowed else munged
        )
        self._core_names.setdefault(munged, local_name)
        return local_name

    def hoist(self, js_name: str) -> None:
        self._hoisted.setdefault(js_name, None)

    def export(self, js_name: str) -> None:
        self._exports.setdefault(js_name, None)

    def add_require(self, req: RequireSpec, ns: str) -> None:
        for line in _require_imports(self, req, ns):
            self._imports.setdefault(line, None)

    def core_import(self) -> Optional[str]:
        if not self._core_names:
            return None
        names = ", ".join(
            name if name == local_name else f"{name} as {local_name}"
            for name, local_name in self._core_names.items()
        )
        return f"import {{ {names} }} from {_module_specifier(self.core_module)};"

    @property
    def imports(self) -> list[str]:
        return list(self._imports)

    @property
    def hoisted(self) -> list[str]:
        return list(self._hoisted)

    @property
    def exports(self) -> list[str]:
        return list(self._exports)

    def GeneratorException(
        self,
        msg: str,
        form: Optional[Any] = None,
        node: Optional[Node] = None,
    ) -> CompilerException:
        """Return a CompilerException annotated with the current filename and
        :code-generation compiler phase set."""
        return CompilerException(
            msg,
            phase=CompilerPhase.CODE_GENERATION,
            filename=self.filename,
            form=form,
            node=node,
        )


@attr.frozen
class GeneratedJS:
    """JavaScript generated for a single node.

    Nodes in an expression position produce an expression in `node`. Nodes in
    statement and return positions produce only statement lines, which are given in
    `dependencies`. Lines generated for a return position always leave the enclosing
    function (or continue the enclosing loop)."""

    node: Optional[str] = None
    dependencies: tuple[str, ...] = ()


T_node = TypeVar("T_node", bound=Node)
JSGenerator = Callable[[GeneratorContext, T_node], GeneratedJS]
StatementGenerator = Callable[
    [GeneratorContext, T_node, NodeSyntacticPosition], list[str]
]


####################
# Private Utilities
####################


def _pos(node: Node) -> NodeSyntacticPosition:
    return Maybe(node.env.pos).or_else_get(_EXPR)


def _indent(lines: Iterable[str]) -> list[str]:
    return [
        f"{_INDENT}{line}" if line else line
        for chunk in lines
        for line in chunk.split("\n")
    ]


def _block(head: str, lines: Iterable[str]) -> list[str]:
    return [f"{head} {{", *_indent(lines), "}"]


def _chain_block(lines: list[str], block: list[str]) -> list[str]:
    """Attach `block` to the closing brace of `lines`, as for `else` or `catch`."""
    assert lines[-1] == "}"
    return [*lines[:-1], f"}} {block[0]}", *block[1:]]


def _as_statement(expr: str) -> str:
    if expr.startswith(("function", "async function", "class", "{")):
        return f"({expr});"
    return f"{expr};"


def _finish(pos: NodeSyntacticPosition, expr: str) -> GeneratedJS:
    """Return a generated expression in the form appropriate for `pos`."""
    if pos == _EXPR:
        return GeneratedJS(expr)
    elif pos == _RETURN:
        return GeneratedJS(dependencies=(f"return {expr};",))
    return GeneratedJS(dependencies=(_as_statement(expr),))


def _finish_pure(pos: NodeSyntacticPosition, expr: str) -> GeneratedJS:
    """Return a generated expression with no side effects, which may be dropped
    entirely in a statement position."""
    if pos == _STMT:
        return GeneratedJS()
    return _finish(pos, expr)


def _expr(ctx: GeneratorContext, node: Node) -> str:
    genned = gen_js(ctx, node)
    if genned.node is None:
        raise ctx.GeneratorException(
            f"{node.op.value} cannot be used as an expression",
            form=node.form,
            node=node,
        )
    return genned.node


def _lines(ctx: GeneratorContext, node: Node) -> list[str]:
    genned = gen_js(ctx, node)
    if genned.node is not None:
        return [*genned.dependencies, _as_statement(genned.node)]
    return list(genned.dependencies)


def _body_lines(ctx: GeneratorContext, node: Do) -> list[str]:
    lines = []
    for stmt in node.statements:
        lines.extend(_lines(ctx, stmt))
    lines.extend(_lines(ctx, node.ret))
    return lines


def _binding_lines(ctx: GeneratorContext, bindings) -> list[str]:
    lines = []
    for binding in bindings:
        assert binding.init is not None, "Bindings must have an init"
        lines.append(f"let {binding.js_name} = {_expr(ctx, binding.init)};")
    return lines


_SIMPLE_TARGET_OPS = frozenset(
    [
        NodeOp.LOCAL,
        NodeOp.VAR,
        NodeOp.JS_GLOBAL,
        NodeOp.HOST_FIELD,
        NodeOp.HOST_CALL,
        NodeOp.INVOKE,
    ]
)


def _member_target(ctx: GeneratorContext, node: Node) -> str:
    """Return the expression for `node`, wrapped in parentheses unless it may be
    used as the target of a member access or call without them."""
    expr = _expr(ctx, node)
    if node.op in _SIMPLE_TARGET_OPS:
        return expr
    return f"({expr})"


def _member_path(base: str, members: Iterable[str]) -> str:
    return ".".join([base, *(munge(m, allow_reserved=True) for m in members)])


def _iife(node: Node, lines: list[str]) -> str:
    """Return an immediately invoked function expression whose body is `lines`.

    The function is async (and awaited) if `node` awaits, or a generator (whose
    values are delegated to the enclosing generator) if `node` yields."""
    body = "\n".join(_indent(lines))
    if walk(node, lambda n: n.op == NodeOp.AWAIT):
        return f"(await (async () => {{\n{body}\n}})())"
    elif walk(node, lambda n: n.op == NodeOp.YIELD):
        return f"(yield* (function* () {{\n{body}\n}}).call(this))"
    return f"(() => {{\n{body}\n}})()"


def _statement_native(f: StatementGenerator[T_node]) -> JSGenerator[T_node]:
    """Wrap a generator for a node which can only be emitted as JavaScript statements.

    The wrapped function receives the position its lines must be generated for.
    Nodes in an expression position are generated as the body of an immediately
    invoked function, so they are generated for a return position."""

    @wraps(f)
    def _gen(ctx: GeneratorContext, node: T_node) -> GeneratedJS:
        pos = _pos(node)
        if pos != _EXPR:
            return GeneratedJS(dependencies=tuple(f(ctx, node, pos)))
        with ctx.new_function():
            lines = f(ctx, node, _RETURN)
        return GeneratedJS(_iife(node, lines))

    return _gen


def _module_specifier(spec: str) -> str:
    escaped = spec.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def ns_path(ns: str) -> str:
    """Return the path (without extension) of the module compiled for the
    namespace `ns`, relative to the root of the output tree."""
    return ns.replace(".", "/").replace("-", "_")


def _relative_module(ctx: GeneratorContext, lib: str, ns: str) -> str:
    """Return the path of the module compiled for the namespace `lib` relative to
    the module of the namespace `ns`."""
    here = posixpath.dirname(ns_path(ns)) or "."
    rel = posixpath.relpath(ns_path(lib), here)
    if not rel.startswith("../"):
        rel = f"./{rel}"
    return f"{rel}{ctx.output_extension}"


def _require_imports(ctx: GeneratorContext, req: RequireSpec, ns: str) -> list[str]:
    if req.kind == RequireKind.MACRO:
        return []
    if req.is_string:
        spec = req.lib
    elif req.lib in CORE_NS_ALIASES:
        return []
    elif req.lib in STDLIB_NAMESPACES:
        spec = stdlib_module(req.lib, ctx.core_module)
    else:
        spec = _relative_module(ctx, req.lib, ns)

    source = _module_specifier(spec)
    lines = []
    if req.alias is not None or (not req.refers and req.default is None):
        lines.append(f"import * as {req.binding} from {source};")
    if req.default is not None:
        lines.append(f"import {munge(req.default)} from {source};")
    if req.refers:
        names = ", ".join(munge(name) for name in req.refers)
        lines.append(f"import {{ {names} }} from {source};")
    return lines


def _doc_comment(doc: str) -> list[str]:
    lines = doc.replace("*/", "*\\/").splitlines()
    return ["/**", *(f" * {line}" for line in lines), " */"]


def _declare_def(
    ctx: GeneratorContext,
    pos: NodeSyntacticPosition,
    js_name: str,
    init: Optional[str],
    doc: Optional[str] = None,
) -> GeneratedJS:
    """Generate the definition of the module level name `js_name`.

    Definitions in the module body are declared with `var` where they appear. Any
    other definition is hoisted to the top of the module and assigned in place."""
    if pos == _STMT and ctx.is_module_scope:
        decl = f"var {js_name};" if init is None else f"var {js_name} = {init};"
        lines = [*_doc_comment(doc), decl] if doc else [decl]
        return GeneratedJS(dependencies=tuple(lines))

    ctx.hoist(js_name)
    if init is None:
        return _finish_pure(pos, js_name)
    elif pos == _STMT:
        return GeneratedJS(dependencies=(f"{js_name} = {init};",))
    return _finish(pos, f"({js_name} = {init})")


####################
# Special Forms
####################


def _await_to_js(ctx: GeneratorContext, node: Await) -> GeneratedJS:
    return _finish(_pos(node), f"(await {_expr(ctx, node.expr)})")


def _def_to_js(ctx: GeneratorContext, node: Def) -> GeneratedJS:
    if not node.is_private:
        ctx.export(node.js_name)
    init = _expr(ctx, node.init) if node.init is not None else None
    return _declare_def(ctx, _pos(node), node.js_name, init, doc=node.doc)


def _fn_keyword(is_async: bool, is_generator: bool) -> str:
    return f"{'async ' if is_async else ''}function{'*' if is_generator else ''}"


def _params(params) -> str:
    return ", ".join(
        f"...{param.js_name}" if param.is_variadic else param.js_name
        for param in params
    )


def _arity_body(
    ctx: GeneratorContext,
    destructures,
    body: Do,
    loop_id: str,
    has_recur: bool,
) -> list[str]:
    """Generate the body of a function arity or class method.

    Bodies which `recur` loop until they return, so parameters are destructured
    again on every iteration."""
    with ctx.new_function():
        lines = [*_binding_lines(ctx, destructures), *_body_lines(ctx, body)]
    if has_recur:
        return _block(f"{loop_id}: while (true)", lines)
    return lines


def __fn_arity_to_js(
    ctx: GeneratorContext, node: Fn, arity: FnArity, name: Optional[str] = None
) -> str:
    head = _fn_keyword(node.is_async, node.is_generator)
    if name is not None:
        head = f"{head} {name}"
    body = _arity_body(
        ctx, arity.destructures, arity.body, arity.loop_id, arity.has_recur
    )
    return "\n".join(_block(f"{head}({_params(arity.params)})", body))


def __multi_arity_fn_to_js(
    ctx: GeneratorContext, node: Fn, name: Optional[str] = None
) -> str:
    """Generate a function with multiple arities.

    Each arity is generated as a separate function. The returned function dispatches
    to the arity matching the number of arguments it is called with."""
    dispatch_name = Maybe(name).or_else(lambda: genname(_MULTI_ARITY_PREFIX))
    fn_name = node.local.form.name if node.local is not None else "fn"
    args = _MULTI_ARITY_ARGS

    lines = []
    dispatch = []
    for arity in sorted(node.arities, key=lambda a: (a.is_variadic, a.fixed_arity)):
        arity_fn = __fn_arity_to_js(ctx, node, arity)
        lines.append(f"const {arity.loop_id} = {arity_fn};")
        op = ">=" if arity.is_variadic else "==="
        dispatch.append(
            f"if ({args}.length {op} {arity.fixed_arity}) "
            f"return {arity.loop_id}.apply(this, {args});"
        )
    dispatch.append(
        f'throw new Error("Wrong number of args (" + {args}.length + ") passed to " '
        f"+ {json.dumps(fn_name)});"
    )

    lines.extend(_block(f"const {dispatch_name} = function (...{args})", dispatch))
    lines[-1] = "};"
    lines.append(f"return {dispatch_name};")
    return "\n".join(["(() => {", *_indent(lines), "})()"])


def _fn_to_js(ctx: GeneratorContext, node: Fn) -> GeneratedJS:
    name = node.local.js_name if node.local is not None else None
    if len(node.arities) == 1:
        expr = __fn_arity_to_js(ctx, node, node.arities[0], name)
    else:
        expr = __multi_arity_fn_to_js(ctx, node, name)
    return _finish(_pos(node), expr)


def __defclass_method_to_js(
    ctx: GeneratorContext, method: DefClassMethod
) -> list[str]:
    prefix = "".join(
        [
            "static " if method.is_static else "",
            "async " if method.is_async else "",
            "*" if method.is_generator else "",
        ]
    )
    body = _arity_body(
        ctx, method.destructures, method.body, method.loop_id, method.has_recur
    )
    this_local = method.this_local
    if this_local is not None and this_local.js_name != "this":
        body = [f"const {this_local.js_name} = this;", *body]
    return _block(f"{prefix}{method.name}({_params(method.params)})", body)


def _defclass_to_js(ctx: GeneratorContext, node: DefClass) -> GeneratedJS:
    head = f"class {node.js_name}"
    if node.base is not None:
        head = f"{head} extends {_member_target(ctx, node.base)}"

    members: list[str] = []
    for field in node.fields:
        prefix = "static " if field.is_static else ""
        if field.init is None:
            members.append(f"{prefix}{field.name};")
        else:
            with ctx.new_function():
                members.append(f"{prefix}{field.name} = {_expr(ctx, field.init)};")
    for method in node.members:
        members.extend(__defclass_method_to_js(ctx, method))

    ctx.export(node.js_name)
    class_expr = "\n".join(_block(head, members))
    return _declare_def(ctx, _pos(node), node.js_name, class_expr)


def _defmacro_to_js(_: GeneratorContext, node: DefMacro) -> GeneratedJS:
    return _finish_pure(_pos(node), "null")


@_statement_native
def __do_to_js(
    ctx: GeneratorContext, node: Do, _: NodeSyntacticPosition
) -> list[str]:
    return _body_lines(ctx, node)


def _do_to_js(ctx: GeneratorContext, node: Do) -> GeneratedJS:
    if _pos(node) == _EXPR and len(node.statements) == 0:
        return gen_js(ctx, node.ret)
    return __do_to_js(ctx, node)


@_statement_native
def _for_of_to_js(
    ctx: GeneratorContext, node: ForOf, pos: NodeSyntacticPosition
) -> list[str]:
    coll = f"{ctx.core_ref(ITERABLE_HELPER)}({_expr(ctx, node.coll)})"
    body = [*_binding_lines(ctx, node.destructures), *_body_lines(ctx, node.body)]
    lines = _block(f"for (let {node.local.js_name} of {coll})", body)
    if pos == _RETURN:
        lines.append("return null;")
    return lines


def _host_call_to_js(ctx: GeneratorContext, node: HostCall) -> GeneratedJS:
    target = _member_target(ctx, node.target)
    args = ", ".join(_expr(ctx, arg) for arg in node.args)
    return _finish(_pos(node), f"{target}.{node.method}({args})")


def _host_field_to_js(ctx: GeneratorContext, node: HostField) -> GeneratedJS:
    return _finish_pure(
        _pos(node), f"{_member_target(ctx, node.target)}.{node.field}"
    )


def _is_boolean(node: Node) -> bool:
    """Return True if `node` always produces a JavaScript boolean."""
    if isinstance(node, Const):
        return node.type == ConstType.BOOL
    if isinstance(node, Invoke) and isinstance(node.fn, VarRef):
        return (
            node.fn.is_core
            and not node.fn.members
            and node.fn.name in BOOLEAN_FUNCTIONS
        )
    return False


def _test_expr(ctx: GeneratorContext, node: Node) -> str:
    """Return the expression for `node` as a condition, following the rule that
    only `nil` and `false` are false."""
    if isinstance(node, Const) and node.type != ConstType.BOOL:
        return "false" if node.type == ConstType.NIL else "true"

    expr = _expr(ctx, node)
    if _is_boolean(node):
        return expr
    elif _IDENTIFIER.match(expr):
        return f"({expr} != null && {expr} !== false)"
    return f"{ctx.core_ref(TRUTH_HELPER)}({expr})"


def _if_to_js(ctx: GeneratorContext, node: If) -> GeneratedJS:
    pos = _pos(node)
    test = _test_expr(ctx, node.test)
    if pos == _EXPR:
        then = _expr(ctx, node.then)
        else_ = _expr(ctx, node.else_)
        return GeneratedJS(f"({test} ? {then} : {else_})")

    lines = _block(f"if ({test})", _lines(ctx, node.then))
    else_lines = _lines(ctx, node.else_)
    if not else_lines:
        return GeneratedJS(dependencies=tuple(lines))
    elif node.else_.op == NodeOp.IF and else_lines[0].startswith("if ("):
        else_if = ["else " + else_lines[0], *else_lines[1:]]
        return GeneratedJS(dependencies=tuple(_chain_block(lines, else_if)))
    return GeneratedJS(
        dependencies=tuple(_chain_block(lines, _block("else", else_lines)))
    )


def _js_star_to_js(ctx: GeneratorContext, node: JSStar) -> GeneratedJS:
    parts = node.template.split(_JS_STAR_PLACEHOLDER)
    args = [_expr(ctx, arg) for arg in node.args]
    assert len(parts) == len(args) + 1, "js* placeholders must match arguments"

    code = parts[0]
    for arg, part in zip(args, parts[1:]):
        code = f"{code}{arg}{part}"

    pos = _pos(node)
    if pos == _STMT:
        return GeneratedJS(dependencies=(f"{code.rstrip(';')};",))
    return _finish(pos, f"({code})")


@_statement_native
def _let_to_js(
    ctx: GeneratorContext, node: Let, _: NodeSyntacticPosition
) -> list[str]:
    return [*_binding_lines(ctx, node.bindings), *_body_lines(ctx, node.body)]


@_statement_native
def _loop_to_js(
    ctx: GeneratorContext, node: Loop, pos: NodeSyntacticPosition
) -> list[str]:
    lines = _binding_lines(ctx, node.bindings)
    body = [*_binding_lines(ctx, node.destructures), *_body_lines(ctx, node.body)]
    if not node.has_recur:
        return [*lines, *body]
    if pos == _STMT:
        body.append(f"break {node.loop_id};")
    return [*lines, *_block(f"{node.loop_id}: while (true)", body)]


def _new_to_js(ctx: GeneratorContext, node: New) -> GeneratedJS:
    klass = _member_target(ctx, node.class_)
    args = ", ".join(_expr(ctx, arg) for arg in node.args)
    return _finish(_pos(node), f"new {klass}({args})")


def _quote_to_js(ctx: GeneratorContext, node: Quote) -> GeneratedJS:
    return _finish_pure(_pos(node), _const_val_to_js(node.expr.val, ctx))


def _recur_to_js(ctx: GeneratorContext, node: Recur) -> GeneratedJS:
    if _pos(node) == _EXPR:
        raise ctx.GeneratorException(
            "recur may not be generated as an expression", form=node.form, node=node
        )

    targets = [target.js_name for target in node.targets]
    exprs = [_expr(ctx, expr) for expr in node.exprs]
    lines = []
    if len(targets) == 1:
        lines.append(f"{targets[0]} = {exprs[0]};")
    elif targets:
        lines.append(f"[{', '.join(targets)}] = [{', '.join(exprs)}];")
    lines.append(f"continue {node.loop_id};")
    return GeneratedJS(dependencies=tuple(lines))


def _require_to_js(ctx: GeneratorContext, node: Require) -> GeneratedJS:
    ns = Maybe(node.ns_name).or_else_get(node.env.ns)
    for req in node.requires:
        ctx.add_require(req, ns)
    return _finish_pure(_pos(node), "null")


def _assign_target(ctx: GeneratorContext, node: Node) -> str:
    if isinstance(node, Local):
        return _member_path(node.binding.js_name, node.members)
    elif isinstance(node, VarRef):
        return _var_ref_expr(ctx, node)
    elif isinstance(node, JSGlobal):
        return _js_global_expr(node)
    elif isinstance(node, HostField):
        return f"{_member_target(ctx, node.target)}.{node.field}"
    raise ctx.GeneratorException(
        f"cannot assign to {node.op.value}", form=node.form, node=node
    )


def _set_bang_to_js(ctx: GeneratorContext, node: SetBang) -> GeneratedJS:
    target = _assign_target(ctx, node.target)
    val = _expr(ctx, node.val)
    pos = _pos(node)
    if pos == _STMT:
        return GeneratedJS(dependencies=(f"{target} = {val};",))
    return _finish(pos, f"({target} = {val})")


def _super_call_to_js(ctx: GeneratorContext, node: SuperCall) -> GeneratedJS:
    args = ", ".join(_expr(ctx, arg) for arg in node.args)
    return _finish(_pos(node), f"super({args})")


@_statement_native
def _throw_to_js(
    ctx: GeneratorContext, node: Throw, _: NodeSyntacticPosition
) -> list[str]:
    return [f"throw {_expr(ctx, node.exception)};"]


def __catches_to_js(ctx: GeneratorContext, node: Try) -> list[str]:
    catches = list(node.catches)
    if len(catches) == 1 and catches[0].class_ is None:
        catch = catches[0]
        return _block(f"catch ({catch.local.js_name})", _body_lines(ctx, catch.body))

    exc = genname(_ERROR_PREFIX)
    handler: list[str] = []
    for catch in catches:
        body = [f"let {catch.local.js_name} = {exc};", *_body_lines(ctx, catch.body)]
        if catch.class_ is None:
            handler = _chain_block(handler, _block("else", body))
            break

        test = f"{exc} instanceof {_member_target(ctx, catch.class_)}"
        branch = _block(f"if ({test})", body)
        if handler:
            branch = ["else " + branch[0], *branch[1:]]
            handler = _chain_block(handler, branch)
        else:
            handler = branch
    else:
        handler = _chain_block(handler, _block("else", [f"throw {exc};"]))

    return _block(f"catch ({exc})", handler)


@_statement_native
def _try_to_js(
    ctx: GeneratorContext, node: Try, _: NodeSyntacticPosition
) -> list[str]:
    lines = _block("try", _body_lines(ctx, node.body))
    if len(node.catches) > 0:
        lines = _chain_block(lines, __catches_to_js(ctx, node))
    if node.finally_ is not None:
        lines = _chain_block(lines, _block("finally", _body_lines(ctx, node.finally_)))
    return lines


def _yield_to_js(ctx: GeneratorContext, node: Yield) -> GeneratedJS:
    if node.expr is None:
        return _finish(_pos(node), "(yield)")
    return _finish(_pos(node), f"(yield {_expr(ctx, node.expr)})")


####################
# Symbols
####################


def _local_to_js(_: GeneratorContext, node: Local) -> GeneratedJS:
    return _finish_pure(_pos(node), _member_path(node.binding.js_name, node.members))


def _var_ref_expr(ctx: GeneratorContext, node: VarRef) -> str:
    if node.is_core:
        base = ctx.core_ref(node.name)
    elif node.module is not None:
        base = f"{node.module}.{munge(node.name)}"
    else:
        base = munge(node.name)
    return _member_path(base, node.members)


def _var_ref_to_js(ctx: GeneratorContext, node: VarRef) -> GeneratedJS:
    return _finish_pure(_pos(node), _var_ref_expr(ctx, node))


def _js_global_expr(node: JSGlobal) -> str:
    head, *members = node.path
    return _member_path(head, members)


def _js_global_to_js(_: GeneratorContext, node: JSGlobal) -> GeneratedJS:
    return _finish_pure(_pos(node), _js_global_expr(node))


####################
# Invocations
####################


def _inline_operator(name: str, args: Sequence[str]) -> Optional[str]:
    """Return an infix JavaScript expression applying the core function `name` to
    `args`, or None if the call must be emitted as a function call."""
    op = INLINE_OPERATORS.get(name)
    if op is None:
        return None
    elif name in COMPARISON_OPERATORS:
        return f"({args[0]} {op} {args[1]})" if len(args) == 2 else None
    elif len(args) >= 2:
        return "(" + f" {op} ".join(args) + ")"
    elif len(args) == 1 and name == "-":
        return f"(- {args[0]})"
    elif not args and name == "+":
        return "0"
    elif not args and name == "*":
        return "1"
    return None


def _invoke_to_js(ctx: GeneratorContext, node: Invoke) -> GeneratedJS:
    fn = node.fn
    args = [_expr(ctx, arg) for arg in node.args]

    if isinstance(fn, Const) and fn.type == ConstType.KEYWORD:
        if len(args) not in {1, 2}:
            raise ctx.GeneratorException(
                "keywords must be called with 1 or 2 arguments",
                form=node.form,
                node=node,
            )
        target, *default = args
        kw_arg = _const_val_to_js(fn.val, ctx)
        get_args = ", ".join([target, kw_arg, *default])
        return _finish(_pos(node), f"{ctx.core_ref(GET_HELPER)}({get_args})")

    if isinstance(fn, VarRef) and fn.is_core and not fn.members:
        inline = _inline_operator(fn.name, args)
        if inline is not None:
            return _finish(_pos(node), inline)

    return _finish(_pos(node), f"{_member_target(ctx, fn)}({', '.join(args)})")


def _collection_op_to_js(ctx: GeneratorContext, node: CollectionOp) -> GeneratedJS:
    target = _expr(ctx, node.target)
    if not node.info.mutates:
        target = f"{ctx.core_ref(COPY_HELPER)}({target})"
    args = ", ".join([target, *(_expr(ctx, arg) for arg in node.args)])
    return _finish(_pos(node), f"{ctx.core_ref(node.info.helper)}({args})")


def _destructure_path_to_js(
    ctx: GeneratorContext, node: DestructurePath
) -> GeneratedJS:
    source = node.source.js_name
    path = node.path
    if isinstance(path, destructure.Realize):
        take = f"{ctx.core_ref(TAKE_HELPER)}({path.count}, {source})"
        expr = f"{ctx.core_ref(VEC_HELPER)}({take})"
    elif isinstance(path, destructure.Nth):
        expr = f"{source}[{path.index}]"
    elif isinstance(path, destructure.NthRest):
        expr = f"{ctx.core_ref(NTHNEXT_HELPER)}({source}, {path.index})"
    elif isinstance(path, destructure.Get):
        get_args = [source, _const_val_to_js(path.key, ctx)]
        if node.default_ is not None:
            get_args.append(_expr(ctx, node.default_))
        expr = f"{ctx.core_ref(GET_HELPER)}({', '.join(get_args)})"
    elif isinstance(path, destructure.RestMap):
        keys = [_const_val_to_js(k, ctx) for k in path.excluded_keys]
        copied = f"{ctx.core_ref(COPY_HELPER)}({source})"
        expr = f"{ctx.core_ref(DISSOC_HELPER)}({', '.join([copied, *keys])})"
    else:
        expr = source
    return _finish(_pos(node), expr)


####################
# JSX
####################


def _jsx_prop_name(prop: JSXProp) -> str:
    assert prop.name is not None
    return prop.name if _IDENTIFIER.match(prop.name) else json.dumps(prop.name)


def __jsx_factory_call(ctx: GeneratorContext, node: JSXElement) -> str:
    if node.tag_name is not None:
        tag = json.dumps(node.tag_name)
    elif node.component is not None:
        tag = _expr(ctx, node.component)
    else:
        tag = ctx.jsx_fragment

    if len(node.props) > 0:
        props = ", ".join(
            f"...{_expr(ctx, prop.value)}"
            if prop.is_spread
            else f"{_jsx_prop_name(prop)}: {_expr(ctx, prop.value)}"
            for prop in node.props
        )
        props = f"{{ {props} }}"
    else:
        props = "null"

    args = [tag, props, *(_expr(ctx, child) for child in node.contents)]
    return f"{ctx.jsx_factory}({', '.join(args)})"


def __jsx_markup(ctx: GeneratorContext, node: JSXElement) -> str:
    if node.tag_name is not None:
        return __jsx_markup_element(ctx, node, node.tag_name)
    elif node.component is None:
        return __jsx_markup_element(ctx, node, "")

    component = _expr(ctx, node.component)
    if not _INTRINSIC_TAG.match(component):
        return __jsx_markup_element(ctx, node, component)

    # JSX reads lowercase tags as intrinsic elements
    tag = genname(_COMPONENT_PREFIX)
    with ctx.new_function():
        markup = __jsx_markup_element(ctx, node, tag)
    return _iife(node, [f"const {tag} = {component};", f"return {markup};"])


def __jsx_child_markup(ctx: GeneratorContext, child: Node) -> str:
    markup = _expr(ctx, child)
    if isinstance(child, JSXElement) and markup.startswith("<"):
        return markup
    return f"{{{markup}}}"


def __jsx_markup_element(ctx: GeneratorContext, node: JSXElement, tag: str) -> str:
    attrs = "".join(
        f" {{...{_expr(ctx, prop.value)}}}"
        if prop.is_spread
        else f" {prop.name}={{{_expr(ctx, prop.value)}}}"
        for prop in node.props
    )
    children = "".join(__jsx_child_markup(ctx, child) for child in node.contents)
    if not children and tag:
        return f"<{tag}{attrs} />"
    return f"<{tag}{attrs}>{children}</{tag}>"


def _jsx_element_to_js(ctx: GeneratorContext, node: JSXElement) -> GeneratedJS:
    if ctx.use_jsx_syntax:
        return _finish(_pos(node), __jsx_markup(ctx, node))
    return _finish(_pos(node), __jsx_factory_call(ctx, node))


####################
# Data Structures
####################


def _object_key(ctx: GeneratorContext, key: Node) -> str:
    if isinstance(key, Const):
        if key.type in {ConstType.KEYWORD, ConstType.STRING}:
            return _const_val_to_js(key.val, ctx)
        elif key.type == ConstType.NUMBER and not isinstance(key.val, bool):
            return _const_val_to_js(key.val, ctx)
    return f"[{_expr(ctx, key)}]"


def _map_to_js(ctx: GeneratorContext, node: MapNode) -> GeneratedJS:
    entries = ", ".join(
        f"{_object_key(ctx, k)}: {_expr(ctx, v)}" for k, v in zip(node.keys, node.vals)
    )
    return _finish(_pos(node), f"{{{entries}}}")


def _set_to_js(ctx: GeneratorContext, node: SetNode) -> GeneratedJS:
    items = ", ".join(_expr(ctx, item) for item in node.items)
    return _finish(_pos(node), f"new Set([{items}])")


def _vector_to_js(ctx: GeneratorContext, node: VectorNode) -> GeneratedJS:
    items = ", ".join(_expr(ctx, item) for item in node.items)
    return _finish(_pos(node), f"[{items}]")


@functools.singledispatch
def _const_val_to_js(form: Any, ctx: GeneratorContext) -> str:
    raise ctx.GeneratorException(
        f"cannot generate a constant of type {type(form).__name__}", form=form
    )


@_const_val_to_js.register(type(None))
def _nil_to_js(_: None, __: GeneratorContext) -> str:
    return "null"


@_const_val_to_js.register(bool)
def _bool_to_js(form: bool, _: GeneratorContext) -> str:
    return "true" if form else "false"


@_const_val_to_js.register(int)
def _int_to_js(form: int, _: GeneratorContext) -> str:
    return str(form)


@_const_val_to_js.register(float)
def _float_to_js(form: float, _: GeneratorContext) -> str:
    if math.isnan(form):
        return "NaN"
    elif math.isinf(form):
        return "Infinity" if form > 0 else "-Infinity"
    return repr(form)


@_const_val_to_js.register(str)
def _str_to_js(form: str, _: GeneratorContext) -> str:
    return json.dumps(form)


@_const_val_to_js.register(kw.Keyword)
def _kw_to_js(form: kw.Keyword, _: GeneratorContext) -> str:
    return json.dumps(form.qualified_name)


@_const_val_to_js.register(sym.Symbol)
def _sym_to_js(form: sym.Symbol, _: GeneratorContext) -> str:
    name = form.name if form.ns is None else f"{form.ns}/{form.name}"
    return json.dumps(name)


@_const_val_to_js.register(type(re.compile("")))
def _regex_to_js(form: Pattern, _: GeneratorContext) -> str:
    pattern = re.sub(r"(?<!\\)/", r"\\/", form.pattern) or "(?:)"
    flags = "".join(
        flag
        for flag, py_flag in _REGEX_FLAGS
        if form.flags & py_flag
    )
    return f"/{pattern}/{flags}"


@_const_val_to_js.register(vec.PersistentVector)
def _const_vec_to_js(form: vec.PersistentVector, ctx: GeneratorContext) -> str:
    return f"[{', '.join(_const_val_to_js(o, ctx) for o in form)}]"


@_const_val_to_js.register(lset.PersistentSet)
def _const_set_to_js(form: lset.PersistentSet, ctx: GeneratorContext) -> str:
    return f"new Set([{', '.join(_const_val_to_js(o, ctx) for o in form)}])"


@_const_val_to_js.register(llist.PersistentList)
def _const_list_to_js(form: llist.PersistentList, ctx: GeneratorContext) -> str:
    items = ", ".join(_const_val_to_js(o, ctx) for o in form)
    return f"{ctx.core_ref(LIST_HELPER)}({items})"


@_const_val_to_js.register(lmap.PersistentMap)
def _const_map_to_js(form: lmap.PersistentMap, ctx: GeneratorContext) -> str:
    def key(k) -> str:
        if isinstance(k, (kw.Keyword, str)) or (
            isinstance(k, (int, float)) and not isinstance(k, bool)
        ):
            return _const_val_to_js(k, ctx)
        return f"[{_const_val_to_js(k, ctx)}]"

    entries = ", ".join(
        f"{key(k)}: {_const_val_to_js(v, ctx)}" for k, v in form.items()
    )
    return f"{{{entries}}}"


def _const_node_to_js(ctx: GeneratorContext, node: Const) -> GeneratedJS:
    return _finish_pure(_pos(node), _const_val_to_js(node.val, ctx))


_NODE_HANDLERS: Mapping[NodeOp, JSGenerator] = {
    NodeOp.AWAIT: _await_to_js,
    NodeOp.COLLECTION_OP: _collection_op_to_js,
    NodeOp.CONST: _const_node_to_js,
    NodeOp.DEF: _def_to_js,
    NodeOp.DEFCLASS: _defclass_to_js,
    NodeOp.DEFMACRO: _defmacro_to_js,
    NodeOp.DESTRUCTURE_PATH: _destructure_path_to_js,
    NodeOp.DO: _do_to_js,
    NodeOp.FN: _fn_to_js,
    NodeOp.FOR_OF: _for_of_to_js,
    NodeOp.HOST_CALL: _host_call_to_js,
    NodeOp.HOST_FIELD: _host_field_to_js,
    NodeOp.IF: _if_to_js,
    NodeOp.INVOKE: _invoke_to_js,
    NodeOp.JS_GLOBAL: _js_global_to_js,
    NodeOp.JS_STAR: _js_star_to_js,
    NodeOp.JSX_ELEMENT: _jsx_element_to_js,
    NodeOp.LET: _let_to_js,
    NodeOp.LOCAL: _local_to_js,
    NodeOp.LOOP: _loop_to_js,
    NodeOp.MAP: _map_to_js,
    NodeOp.NEW: _new_to_js,
    NodeOp.QUOTE: _quote_to_js,
    NodeOp.RECUR: _recur_to_js,
    NodeOp.REQUIRE: _require_to_js,
    NodeOp.SET: _set_to_js,
    NodeOp.SET_BANG: _set_bang_to_js,
    NodeOp.SUPER_CALL: _super_call_to_js,
    NodeOp.THROW: _throw_to_js,
    NodeOp.TRY: _try_to_js,
    NodeOp.VAR: _var_ref_to_js,
    NodeOp.VECTOR: _vector_to_js,
    NodeOp.YIELD: _yield_to_js,
}


###################
# Public Functions
###################


def gen_js(ctx: GeneratorContext, node: Node) -> GeneratedJS:
    """Take a glint syntax tree node and return the JavaScript for that node in the
    syntactic position recorded on the node."""
    handle_node = _NODE_HANDLERS.get(node.op)
    if handle_node is None:
        raise ctx.GeneratorException(
            f"{node.op.value} nodes may only be generated by their parent",
            form=node.form,
            node=node,
        )
    return handle_node(ctx, node)


def gen_lines(ctx: GeneratorContext, node: Node) -> list[str]:
    """Return the lines of JavaScript generated for a top level node.

    Nodes in an expression position produce a single line holding the bare
    expression."""
    genned = gen_js(ctx, node)
    if genned.node is not None:
        return [*genned.dependencies, genned.node]
    return list(genned.dependencies)


def gen_module(ctx: GeneratorContext, body: Iterable[str]) -> str:
    """Assemble the text of a JavaScript module from the lines generated for its
    top level nodes.

    Imports come first, followed by declarations for hoisted definitions, the body
    itself, and finally the exports of the module's public definitions."""
    lines: list[str] = []
    if not ctx.elide_imports:
        core_import = ctx.core_import()
        if core_import is not None:
            lines.append(core_import)
        lines.extend(ctx.imports)
    if ctx.hoisted:
        lines.append(f"var {', '.join(ctx.hoisted)};")
    lines.extend(body)
    if not ctx.elide_exports and ctx.exports:
        lines.append(f"export {{ {', '.join(ctx.exports)} }};")
    return "\n".join(lines) + "\n" if lines else ""
