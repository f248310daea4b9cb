"""Architecture checks: dependency injection and component design."""

from __future__ import annotations

import ast
from collections.abc import Mapping

from service_sentinel.checks.base import int_parameter
from service_sentinel.findings import Finding
from service_sentinel.source import (
    PropertySet,
    SourceUnit,
    assigned_names,
    dotted_name,
    has_decorator,
    last_name,
    line_of,
    split_list,
)

CATEGORY = "Architecture"
DEFAULT_INJECT_MARKERS = "Depends,Inject,Provide,Provider,inject"
DEFAULT_COMPONENT_SUFFIXES = "Service,Repository,Component"
SINGLETON_DECORATORS = {"singleton", "service", "component", "injectable"}
MUTABLE_FACTORIES = {"list", "dict", "set", "defaultdict", "deque", "OrderedDict", "Counter"}


class FieldInjectionCheck:
    """Flags collaborators injected as class attributes instead of through ``__init__``."""

    rule_id = "ARCH-001"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        markers = set(split_list(parameters.get("injectMarkers", DEFAULT_INJECT_MARKERS)))
        findings: list[Finding] = []
        for class_node in unit.classes():
            for stmt in _injected_members(class_node, markers):
                names = ", ".join(assigned_names(stmt)) or "attribute"
                findings.append(
                    Finding(
                        file=unit.path,
                        line=line_of(stmt),
                        category=CATEGORY,
                        reason="Field Injection",
                        suggestion=(
                            f"'{names}' is injected as a class attribute of "
                            f"{class_node.name}. Use constructor injection."
                        ),
                        rule_id=self.rule_id,
                    )
                )
        return findings


class ManualInstantiationCheck:
    """Flags direct construction of container-managed components."""

    rule_id = "ARCH-002"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        suffixes = tuple(split_list(parameters.get("suffixes", DEFAULT_COMPONENT_SUFFIXES)))
        findings: list[Finding] = []
        for call in unit.calls():
            name = last_name(call.func)
            if not name or not name[0].isupper() or not name.endswith(suffixes):
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(call),
                    category="Design Smell",
                    reason="Manual Instantiation of Managed Component",
                    suggestion=(
                        f"Class '{name}' should be provided by the container. "
                        "Use dependency injection instead of constructing it directly."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class FatComponentCheck:
    """Flags classes whose injected members plus constructor arity exceed a limit."""

    rule_id = "ARCH-003"
    source = "tree"

    def validate(self, parameters: Mapping[str, str]) -> None:
        int_parameter(parameters, self.rule_id, "maxDependencies", 7)

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        limit = int_parameter(parameters, self.rule_id, "maxDependencies", 7)
        markers = set(split_list(parameters.get("injectMarkers", DEFAULT_INJECT_MARKERS)))
        findings: list[Finding] = []
        for class_node in unit.classes():
            injected = len(_injected_members(class_node, markers))
            arity = constructor_arity(class_node)
            total = injected + arity
            if total <= limit:
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(class_node),
                    category=CATEGORY,
                    reason="Fat Component",
                    suggestion=(
                        f"{class_node.name} has {total} dependencies "
                        f"({injected} injected attributes, {arity} constructor parameters; "
                        f"limit {limit}). Consider splitting its responsibilities."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class DeferredImportCheck:
    """Flags imports inside function bodies, usually hiding a circular dependency."""

    rule_id = "ARCH-004"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        collector = _DeferredImportCollector()
        collector.visit(unit.tree)
        return [
            Finding(
                file=unit.path,
                line=line_of(node),
                category="Design Smell",
                reason="Deferred Import",
                suggestion=(
                    f"Import of '{_import_label(node)}' is deferred to call time. "
                    "Decouple the modules instead of hiding a circular dependency."
                ),
                rule_id=self.rule_id,
            )
            for node in collector.imports
        ]


class MutableSingletonStateCheck:
    """Flags mutable class-level containers on long-lived components."""

    rule_id = "ARCH-005"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        suffixes = tuple(split_list(parameters.get("suffixes", DEFAULT_COMPONENT_SUFFIXES)))
        findings: list[Finding] = []
        for class_node in unit.classes():
            if not (
                class_node.name.endswith(suffixes)
                or has_decorator(class_node, SINGLETON_DECORATORS)
            ):
                continue
            for stmt in class_node.body:
                value = _assigned_value(stmt)
                if value is None or not _is_mutable_value(value):
                    continue
                names = [name for name in assigned_names(stmt) if not name.startswith("__")]
                if not names:
                    continue
                findings.append(
                    Finding(
                        file=unit.path,
                        line=line_of(stmt),
                        category="Thread Safety",
                        reason="Mutable state in Singleton",
                        suggestion=(
                            f"'{', '.join(names)}' is shared by every request handled by "
                            f"{class_node.name}. Keep per-call state local or make it immutable."
                        ),
                        rule_id=self.rule_id,
                    )
                )
        return findings


def constructor_arity(class_node: ast.ClassDef) -> int:
    """Largest parameter count over the class's own ``__init__`` definitions, minus ``self``."""
    best = 0
    for stmt in class_node.body:
        if not isinstance(stmt, ast.FunctionDef | ast.AsyncFunctionDef):
            continue
        if stmt.name != "__init__":
            continue
        args = stmt.args
        positional = len(args.posonlyargs) + len(args.args)
        count = max(positional - 1, 0) + len(args.kwonlyargs)
        count += int(args.vararg is not None) + int(args.kwarg is not None)
        best = max(best, count)
    return best


def _injected_members(class_node: ast.ClassDef, markers: set[str]) -> list[ast.stmt]:
    members: list[ast.stmt] = []
    for stmt in class_node.body:
        if isinstance(stmt, ast.Assign) and _is_injection(stmt.value, markers):
            members.append(stmt)
        elif isinstance(stmt, ast.AnnAssign) and (
            (stmt.value is not None and _is_injection(stmt.value, markers))
            or _annotation_injects(stmt.annotation, markers)
        ):
            members.append(stmt)
    return members


def _is_injection(value: ast.expr, markers: set[str]) -> bool:
    if isinstance(value, ast.Call | ast.Subscript):
        return dotted_name(value).rpartition(".")[2] in markers
    return False


def _annotation_injects(annotation: ast.expr, markers: set[str]) -> bool:
    # Annotated[Repo, Depends(get_repo)]
    if not isinstance(annotation, ast.Subscript) or last_name(annotation.value) != "Annotated":
        return False
    return any(
        isinstance(node, ast.Call) and last_name(node.func) in markers
        for node in ast.walk(annotation.slice)
    )


def _assigned_value(stmt: ast.stmt) -> ast.expr | None:
    if isinstance(stmt, ast.Assign):
        return stmt.value
    if isinstance(stmt, ast.AnnAssign):
        return stmt.value
    return None


def _is_mutable_value(value: ast.expr) -> bool:
    if isinstance(
        value, ast.List | ast.Dict | ast.Set | ast.ListComp | ast.DictComp | ast.SetComp
    ):
        return True
    return isinstance(value, ast.Call) and last_name(value.func) in MUTABLE_FACTORIES


def _import_label(node: ast.Import | ast.ImportFrom) -> str:
    if isinstance(node, ast.ImportFrom):
        return "." * node.level + (node.module or "")
    return ", ".join(alias.name for alias in node.names)


class _DeferredImportCollector(ast.NodeVisitor):
    def __init__(self) -> None:
        self.imports: list[ast.Import | ast.ImportFrom] = []
        self._depth = 0

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def visit_Import(self, node: ast.Import) -> None:
        if self._depth:
            self.imports.append(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if self._depth:
            self.imports.append(node)

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self._depth += 1
        self.generic_visit(node)
        self._depth -= 1
