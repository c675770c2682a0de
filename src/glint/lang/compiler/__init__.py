import itertools
import logging
from collections.abc import Iterable
from typing import Optional

import attr

from glint.lang import keyword as kw
from glint.lang import list as llist
from glint.lang import map as lmap
from glint.lang import symbol as sym
from glint.lang.compiler.analyzer import (  # noqa
    MAX_MACROEXPAND_DEPTH,
    REPL_MODE,
    AnalyzerContext,
    analyze_form,
    macroexpand,
    macroexpand_1,
)
from glint.lang.compiler.constants import DEFAULT_COMPILER_FILE_PATH, SpecialForm
from glint.lang.compiler.exception import CompilerException, CompilerPhase  # noqa
from glint.lang.compiler.expander import DEFAULT_MAX_MACROEXPAND_DEPTH
from glint.lang.compiler.generator import (  # noqa
    CORE_ALIAS,
    CORE_MODULE,
    DEFAULT_CORE_MODULE,
    DEFAULT_JSX_FACTORY,
    DEFAULT_JSX_FRAGMENT,
    DEFAULT_OUTPUT_EXTENSION,
    ELIDE_EXPORTS,
    ELIDE_IMPORTS,
    JSX_FACTORY,
    JSX_FRAGMENT,
    OUTPUT_EXTENSION,
    GeneratorContext,
    gen_lines,
    gen_module,
)
from glint.lang.compiler.macros import CoreMacroEvaluator, MacroEvaluator
from glint.lang.compiler.nodes import Node
from glint.lang.corelib import CORE_FUNCTIONS
from glint.lang.namespace import (
    NamespaceRegistry,
    RequireKind,
    Resolution,
)
from glint.lang.reader import ReadError, read_str
from glint.lang.typing import CompilerOpts, ReaderForm
from glint.lang.util import munge
from glint.logconfig import TRACE
from glint.util import Maybe, timed

logger = logging.getLogger(__name__)

# Compiler options
CONTEXT = kw.keyword("context")

STATEMENT_CONTEXT = "statement"
EXPR_CONTEXT = "expr"
RETURN_CONTEXT = "return"
COMPILE_CONTEXTS = frozenset([STATEMENT_CONTEXT, EXPR_CONTEXT, RETURN_CONTEXT])


def compiler_opts(  # pylint: disable=too-many-arguments
    context: Optional[str] = None,
    elide_imports: Optional[bool] = None,
    elide_exports: Optional[bool] = None,
    core_alias: Optional[str] = None,
    core_module: Optional[str] = None,
    output_extension: Optional[str] = None,
    jsx_factory: Optional[str] = None,
    jsx_fragment: Optional[str] = None,
    repl: Optional[bool] = None,
    max_macroexpand_depth: Optional[int] = None,
) -> CompilerOpts:
    """Return a map of compiler options with defaults applied."""
    context = Maybe(context).or_else_get(STATEMENT_CONTEXT)
    if context not in COMPILE_CONTEXTS:
        raise ValueError(
            f"compilation context must be one of {sorted(COMPILE_CONTEXTS)}, "
            f"not {context!r}"
        )
    return lmap.map(
        {
            CONTEXT: context,
            # Analyzer options
            REPL_MODE: Maybe(repl).or_else_get(False),
            MAX_MACROEXPAND_DEPTH: Maybe(max_macroexpand_depth).or_else_get(
                DEFAULT_MAX_MACROEXPAND_DEPTH
            ),
            # Generator options
            ELIDE_IMPORTS: Maybe(elide_imports).or_else_get(False),
            ELIDE_EXPORTS: Maybe(elide_exports).or_else_get(False),
            CORE_ALIAS: core_alias,
            CORE_MODULE: Maybe(core_module).or_else_get(DEFAULT_CORE_MODULE),
            OUTPUT_EXTENSION: Maybe(output_extension).or_else_get(
                DEFAULT_OUTPUT_EXTENSION
            ),
            JSX_FACTORY: Maybe(jsx_factory).or_else_get(DEFAULT_JSX_FACTORY),
            JSX_FRAGMENT: Maybe(jsx_fragment).or_else_get(DEFAULT_JSX_FRAGMENT),
        }
    )


@attr.frozen
class CompilationResult:
    """The JavaScript module compiled from one compilation unit.

    `requires` names every library the unit's namespace imports, in the order the
    unit first required them."""

    output_text: str
    namespace_name: str
    requires: tuple[str, ...] = ()


@attr.frozen
class ReplResult:
    """The JavaScript compiled from one batch of REPL input.

    `vars` names every var defined in the current namespace after the batch, in
    definition order, including those defined by earlier batches."""

    output_text: str
    namespace_name: str
    vars: tuple[str, ...] = ()


def _with_filename(e: ReadError, filename: str) -> ReadError:
    if e.filename is None:
        e.filename = filename
    return e


def _analyze_position(ctx: AnalyzerContext, form: ReaderForm, context: str) -> Node:
    if context == EXPR_CONTEXT:
        with ctx.expr_pos():
            return analyze_form(ctx, form)
    elif context == RETURN_CONTEXT:
        with ctx.ret_pos():
            return analyze_form(ctx, form)
    return analyze_form(ctx, form)


# Marks the end of input, since `nil` reads as None
_NO_FORM = object()

# Forms which change the namespace state the reader resolves `::alias/kw` against
_NAMESPACE_FORMS = frozenset([SpecialForm.NS, SpecialForm.REQUIRE])


def _changes_namespace(form: ReaderForm) -> bool:
    return (
        isinstance(form, llist.PersistentList)
        and len(form) > 0
        and form.first in _NAMESPACE_FORMS
    )


def _analyze_forms(
    ctx: AnalyzerContext, forms: Iterable[ReaderForm], context: str
) -> list[Node]:
    """Analyze every form in `forms` as a statement, except for the final form,
    which is analyzed in the position named by `context`.

    Forms are read lazily and each form is analyzed once, as soon as the form after
    it has been read. `ns` and `require` forms are analyzed before the next form is
    read, so reader features such as `::alias/kw` see the namespace state they
    declare. If one of those is the final form, it is analyzed again in its final
    position against the namespace state it was first analyzed against."""
    registry = ctx.registry
    nodes: list[Node] = []
    it = iter(forms)
    form = next(it, _NO_FORM)
    while form is not _NO_FORM:
        if _changes_namespace(form):
            before = registry.snapshot()
            nodes.append(analyze_form(ctx, form))
            following = next(it, _NO_FORM)
            if following is _NO_FORM and context != STATEMENT_CONTEXT:
                registry.restore(before)
                nodes[-1] = _analyze_position(ctx, form, context)
        else:
            following = next(it, _NO_FORM)
            if following is _NO_FORM:
                nodes.append(_analyze_position(ctx, form, context))
            else:
                nodes.append(analyze_form(ctx, form))
        form = following
    return nodes


def _generate(
    registry: NamespaceRegistry,
    nodes: Iterable[Node],
    filename: str,
    opts: CompilerOpts,
) -> str:
    ns = registry.current_ns
    module_names = itertools.chain(
        (munge(name) for name in ns.defs),
        (munge(name) for name in ns.refers),
        (req.binding for req in ns.requires if req.kind == RequireKind.VALUE),
    )
    gctx = GeneratorContext(filename=filename, opts=opts, defined_names=module_names)
    body: list[str] = []
    for node in nodes:
        body.extend(gen_lines(gctx, node))
    return gen_module(gctx, body)


def _compile(
    source: str,
    registry: NamespaceRegistry,
    evaluator: Optional[MacroEvaluator],
    filename: str,
    opts: CompilerOpts,
) -> str:
    ctx = AnalyzerContext(
        registry=registry, evaluator=evaluator, filename=filename, opts=opts
    )
    context = opts.val_at(CONTEXT, STATEMENT_CONTEXT)
    forms = read_str(source, ns_resolver=registry.resolve_alias)
    try:
        nodes = _analyze_forms(ctx, forms, context)
    except ReadError as e:
        raise _with_filename(e, filename)
    return _generate(registry, nodes, filename, opts)


def compile_str(
    source: str,
    opts: Optional[CompilerOpts] = None,
    filename: Optional[str] = None,
    evaluator: Optional[MacroEvaluator] = None,
    registry: Optional[NamespaceRegistry] = None,
) -> CompilationResult:
    """Compile the glint source code in `source` into the text of a JavaScript
    module.

    Callers may provide a namespace registry already holding namespaces compiled
    earlier, so that references into those namespaces can be checked. The registry
    is updated with the namespace compiled from `source`.

    Raise a ReadError if the source cannot be read and a CompilerException if it
    cannot be compiled."""
    filename = Maybe(filename).or_else_get(DEFAULT_COMPILER_FILE_PATH)
    opts = Maybe(opts).or_else(compiler_opts)
    registry = Maybe(registry).or_else(NamespaceRegistry)

    elapsed = 0

    def _record(t: int) -> None:
        nonlocal elapsed
        elapsed = t

    with timed(_record):
        output = _compile(source, registry, evaluator, filename, opts)

    ns = registry.current_ns
    logger.debug(f"Compiled {filename} (namespace {ns.name}) in {elapsed / 1e6:.2f}ms")
    return CompilationResult(
        output_text=output,
        namespace_name=ns.name,
        requires=tuple(
            req.lib for req in ns.requires if req.kind == RequireKind.VALUE
        ),
    )


def compile_file(
    path: str,
    opts: Optional[CompilerOpts] = None,
    evaluator: Optional[MacroEvaluator] = None,
    registry: Optional[NamespaceRegistry] = None,
) -> CompilationResult:
    """Compile the glint source file at `path` as by `compile_str`."""
    with open(path, encoding="utf-8") as f:
        source = f.read()
    return compile_str(
        source, opts=opts, filename=path, evaluator=evaluator, registry=registry
    )


class ReplSession:
    """An incremental compilation session, as used by the REPL.

    Namespace state persists from one batch of input to the next. A batch which
    fails to compile leaves the session exactly as it was before the batch."""

    __slots__ = ("_evaluator", "_filename", "_opts", "_registry")

    def __init__(
        self,
        opts: Optional[CompilerOpts] = None,
        evaluator: Optional[MacroEvaluator] = None,
        filename: str = "<REPL Input>",
    ) -> None:
        self._opts = Maybe(opts).or_else(
            lambda: compiler_opts(repl=True, elide_exports=True)
        )
        self._evaluator: MacroEvaluator = Maybe(evaluator).or_else(
            CoreMacroEvaluator
        )
        self._filename = filename
        self._registry = NamespaceRegistry()

    @property
    def registry(self) -> NamespaceRegistry:
        return self._registry

    @property
    def evaluator(self) -> MacroEvaluator:
        return self._evaluator

    @property
    def current_ns(self) -> str:
        return self._registry.current_ns.name

    def eval_str(self, source: str) -> ReplResult:
        """Compile one batch of REPL input.

        The batch is compiled against the session namespace state, which is only
        kept if every form in the batch compiles."""
        snapshot = self._registry.snapshot()
        try:
            output = _compile(
                source, self._registry, self._evaluator, self._filename, self._opts
            )
        except Exception:
            logger.log(TRACE, "Restoring REPL namespace state after failed batch")
            self._registry.restore(snapshot)
            raise

        return ReplResult(
            output_text=output,
            namespace_name=self.current_ns,
            vars=tuple(self._registry.current_ns.defs.keys()),
        )

    def completions(self, prefix: str) -> list[str]:
        """Return the names visible in the current namespace which begin with
        `prefix`, including `alias/name` forms for names in required namespaces."""
        ns = self._registry.current_ns
        if "/" in prefix:
            alias, _, name_prefix = prefix.partition("/")
            lib = ns.lib_for(alias)
            known = self._registry.get(lib) if lib is not None else None
            names: Iterable[str] = (
                f"{alias}/{name}"
                for name in (known.public_defs if known is not None else ())
                if name.startswith(name_prefix)
            )
        else:
            candidates = itertools.chain(
                ns.defs.keys(),
                ns.refers.keys(),
                (f"{alias}/" for alias in ns.aliases.keys()),
                (name for name in CORE_FUNCTIONS if name not in ns.excluded_core),
            )
            names = (name for name in candidates if name.startswith(prefix))
        return sorted(set(names))

    def resolve(self, name: str) -> Resolution:
        """Return how the symbol written as `name` resolves in the current
        namespace of the session."""
        ns, _, sym_name = name.rpartition("/")
        if not sym_name:
            ns, sym_name = "", name
        return self._registry.resolve_symbol(sym.symbol(sym_name, ns=ns or None))
