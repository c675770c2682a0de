"""Dependency ordered builds of many glint source files at once.

Files are grouped into levels, where every file in a level depends only on files in
earlier levels. Files within a level are compiled concurrently, each with its own
namespace registry seeded with the namespaces compiled in earlier levels."""

import logging
import os
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import attr

from glint.lang import keyword as kw
from glint.lang import list as llist
from glint.lang import symbol as sym
from glint.lang import vector as vec
from glint.lang.compiler import (
    OUTPUT_EXTENSION,
    CompilationResult,
    compile_file,
    compiler_opts,
)
from glint.lang.compiler.constants import SpecialForm
from glint.lang.compiler.generator import DEFAULT_OUTPUT_EXTENSION, ns_path
from glint.lang.compiler.macros import CoreMacroEvaluator, MacroEvaluator
from glint.lang.exception import GlintError
from glint.lang.namespace import Namespace, NamespaceRegistry
from glint.lang.reader import read_file
from glint.lang.typing import CompilerOpts
from glint.util import Maybe

logger = logging.getLogger(__name__)

_REQUIRE_KW = kw.keyword("require")

EvaluatorFactory = Callable[[], MacroEvaluator]


class BuildError(GlintError):
    """Raised when a set of files cannot be built, such as when their namespaces
    require one another in a cycle."""


@attr.frozen
class SourceUnit:
    """A source file and the namespaces it requires, as declared by its `ns`
    form."""

    path: str
    namespace: str
    requires: tuple[str, ...] = ()


@attr.frozen
class BuildResult:
    """The outcome of a build.

    `failed` maps the paths of files which failed to compile to their exception.
    `skipped` maps the paths of files which were not compiled to the namespace of
    the failed dependency which prevented it."""

    compiled: Mapping[str, CompilationResult]
    failed: Mapping[str, Exception]
    skipped: Mapping[str, str]
    outputs: Mapping[str, str] = attr.field(factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


def _required_libs(clause: llist.PersistentList) -> Iterable[str]:
    for spec in clause.rest:
        if isinstance(spec, vec.PersistentVector) and len(spec) > 0:
            spec = spec[0]
        if isinstance(spec, sym.Symbol):
            yield spec.name


def read_source_unit(path: str) -> SourceUnit:
    """Read the `ns` form at the top of the file at `path`.

    Raise a BuildError if the file does not begin with an `ns` form."""
    first = next(iter(read_file(path)), None)
    if (
        not isinstance(first, llist.PersistentList)
        or first.first != SpecialForm.NS
        or len(first) < 2
        or not isinstance(first[1], sym.Symbol)
    ):
        raise BuildError(f"{path} must begin with an ns form naming its namespace")

    requires: dict[str, None] = {}
    for clause in list(first)[2:]:
        if isinstance(clause, llist.PersistentList) and clause.first == _REQUIRE_KW:
            for lib in _required_libs(clause):
                requires.setdefault(lib, None)

    return SourceUnit(path, first[1].name, tuple(requires))


def dependency_levels(units: Iterable[SourceUnit]) -> list[list[SourceUnit]]:
    """Return `units` grouped into levels such that every unit requires only units
    from earlier levels. Requires of namespaces outside of `units` are ignored.

    Raise a BuildError if two units declare the same namespace or if units require
    each other in a cycle."""
    by_ns: dict[str, SourceUnit] = {}
    for unit in units:
        if (other := by_ns.get(unit.namespace)) is not None:
            raise BuildError(
                f"namespace {unit.namespace} is declared by both {other.path} "
                f"and {unit.path}"
            )
        by_ns[unit.namespace] = unit

    pending = {
        ns: {lib for lib in unit.requires if lib in by_ns and lib != ns}
        for ns, unit in by_ns.items()
    }
    levels: list[list[SourceUnit]] = []
    done: set[str] = set()
    while pending:
        ready = sorted(ns for ns, deps in pending.items() if deps <= done)
        if not ready:
            raise BuildError(
                "cyclic namespace dependencies among: " + ", ".join(sorted(pending))
            )
        levels.append([by_ns[ns] for ns in ready])
        done.update(ready)
        for ns in ready:
            del pending[ns]
    return levels


def output_path(output_dir: str, namespace: str, opts: CompilerOpts) -> str:
    ext = opts.val_at(OUTPUT_EXTENSION, DEFAULT_OUTPUT_EXTENSION)
    return os.path.join(output_dir, *ns_path(namespace).split("/")) + ext


def _compile_unit(
    unit: SourceUnit,
    known: Iterable[Namespace],
    opts: CompilerOpts,
    evaluator: MacroEvaluator,
) -> tuple[CompilationResult, Optional[Namespace]]:
    logger.debug(f"Compiling {unit.path} (namespace {unit.namespace})")
    registry = NamespaceRegistry.seeded(known)
    result = compile_file(unit.path, opts=opts, evaluator=evaluator, registry=registry)
    return result, registry.get(unit.namespace)


def _write_output(path: str, text: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def build(  # pylint: disable=too-many-locals
    paths: Iterable[str],
    opts: Optional[CompilerOpts] = None,
    output_dir: Optional[str] = None,
    max_workers: Optional[int] = None,
    evaluator_factory: EvaluatorFactory = CoreMacroEvaluator,
) -> BuildResult:
    """Compile every file in `paths` in the order given by their namespace
    dependencies.

    A file which fails to compile does not prevent independent files from being
    compiled, but every file depending on it (directly or not) is skipped. If
    `output_dir` is given, compiled modules are written beneath it at the paths
    given by their namespace names.

    Raise a BuildError if the dependencies between the files cannot be ordered."""
    opts = Maybe(opts).or_else(compiler_opts)
    levels = dependency_levels(read_source_unit(path) for path in paths)

    compiled: dict[str, CompilationResult] = {}
    failed: dict[str, Exception] = {}
    skipped: dict[str, str] = {}
    outputs: dict[str, str] = {}
    namespaces: dict[str, Namespace] = {}
    broken: dict[str, str] = {}

    with ThreadPoolExecutor(
        max_workers=max_workers, thread_name_prefix="glint-build"
    ) as executor:
        for level in levels:
            futures = {}
            for unit in level:
                blocker = next(
                    (broken[lib] for lib in unit.requires if lib in broken), None
                )
                if blocker is not None:
                    logger.warning(
                        f"Skipping {unit.path}: dependency {blocker} failed to compile"
                    )
                    skipped[unit.path] = blocker
                    broken[unit.namespace] = blocker
                    continue

                futures[unit] = executor.submit(
                    _compile_unit,
                    unit,
                    tuple(namespaces.values()),
                    opts,
                    evaluator_factory(),
                )

            for unit, future in futures.items():
                try:
                    result, ns = future.result()
                except (GlintError, OSError) as e:
                    logger.error(f"Failed to compile {unit.path}: {e}")
                    failed[unit.path] = e
                    broken[unit.namespace] = unit.namespace
                    continue

                compiled[unit.path] = result
                if ns is not None:
                    namespaces[ns.name] = ns
                if output_dir is not None:
                    target = output_path(output_dir, unit.namespace, opts)
                    _write_output(target, result.output_text)
                    outputs[unit.path] = target
                    logger.debug(f"Wrote {unit.path} to {target}")

    return BuildResult(
        compiled=compiled, failed=failed, skipped=skipped, outputs=outputs
    )
