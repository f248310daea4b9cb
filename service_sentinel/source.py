"""Source-unit parsing, property loading and shared AST helpers."""

from __future__ import annotations

import ast
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef

DEFAULT_PROPERTIES_FILE = "application.properties"


class ParseError(RuntimeError):
    """Raised when a source file cannot be read or parsed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


@dataclass(frozen=True, slots=True)
class SourceUnit:
    """One parsed module and the project-relative path it came from."""

    path: str
    tree: ast.Module

    def classes(self) -> Iterator[ast.ClassDef]:
        for node in ast.walk(self.tree):
            if isinstance(node, ast.ClassDef):
                yield node

    def functions(self) -> Iterator[FunctionNode]:
        for node in ast.walk(self.tree):
            if isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef):
                yield node

    def calls(self) -> Iterator[ast.Call]:
        for node in ast.walk(self.tree):
            if isinstance(node, ast.Call):
                yield node


class PropertySet(dict[str, str]):
    """Flat property map that remembers which file(s) it was read from."""

    def __init__(
        self,
        values: Mapping[str, str] | None = None,
        origin: str = DEFAULT_PROPERTIES_FILE,
    ) -> None:
        super().__init__(values or {})
        self.origin = origin


def parse_source(path: Path, root: Path | None = None) -> SourceUnit:
    """Read and parse a Python file, raising ``ParseError`` on failure."""
    display = _display_path(path, root)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(display, str(exc)) from exc
    return parse_text(text, display)


def parse_text(text: str, path: str = "<string>") -> SourceUnit:
    """Parse Python source text into a ``SourceUnit``."""
    try:
        tree = ast.parse(text, filename=path)
    except (SyntaxError, ValueError) as exc:
        raise ParseError(path, str(exc)) from exc
    return SourceUnit(path=path, tree=tree)


def load_properties(path: Path) -> dict[str, str]:
    """Load a flat ``key=value`` property file.

    Accepts ``.properties`` and ``.env`` syntax: ``=`` or ``:`` separators,
    ``#``/``!`` comment lines, an optional ``export`` prefix and quoted values.
    A missing file yields an empty mapping.
    """
    if not path.is_file():
        return {}
    properties: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, value = _split_property(line)
        if key:
            properties[key] = value
    return properties


def load_property_set(paths: list[Path], root: Path | None = None) -> PropertySet:
    """Merge several property files in order; later files win on key clashes."""
    merged: dict[str, str] = {}
    origins: list[str] = []
    for path in paths:
        values = load_properties(path)
        if not values:
            continue
        merged.update(values)
        origins.append(_display_path(path, root))
    return PropertySet(merged, origin=", ".join(origins) or DEFAULT_PROPERTIES_FILE)


def dotted_name(node: ast.AST) -> str:
    """Return ``a.b.c`` for names/attributes, the callee name for calls, else ``""``."""
    if isinstance(node, ast.Call):
        return dotted_name(node.func)
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        base = dotted_name(node.value)
        return f"{base}.{node.attr}" if base else node.attr
    if isinstance(node, ast.Subscript):
        return dotted_name(node.value)
    return ""


def last_name(node: ast.AST) -> str:
    return dotted_name(node).rpartition(".")[2]


def decorator_names(node: FunctionNode | ast.ClassDef) -> list[str]:
    return [dotted_name(item) for item in node.decorator_list]


def has_decorator(node: FunctionNode | ast.ClassDef, names: set[str]) -> bool:
    return any(name.rpartition(".")[2] in names for name in decorator_names(node))


def keyword_value(call: ast.Call, name: str) -> ast.expr | None:
    for keyword in call.keywords:
        if keyword.arg == name:
            return keyword.value
    return None


def string_value(node: ast.AST | None) -> str | None:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    return None


def assigned_names(node: ast.stmt) -> list[str]:
    """Plain names bound by an assignment statement (attributes included)."""
    if isinstance(node, ast.Assign):
        targets = node.targets
    elif isinstance(node, ast.AnnAssign):
        targets = [node.target]
    else:
        return []
    names: list[str] = []
    for target in targets:
        if isinstance(target, ast.Name):
            names.append(target.id)
        elif isinstance(target, ast.Attribute):
            names.append(target.attr)
    return names


def calls_in_loops(tree: ast.AST) -> list[ast.Call]:
    """Calls executed once per iteration: loop bodies and comprehension elements.

    A call nested in several loops is returned once, in source order. The
    iterable of a ``for`` loop is evaluated once and is not included.
    """
    seen: set[int] = set()
    calls: list[ast.Call] = []
    for node in ast.walk(tree):
        for part in _repeated_parts(node):
            for child in ast.walk(part):
                if isinstance(child, ast.Call) and id(child) not in seen:
                    seen.add(id(child))
                    calls.append(child)
    calls.sort(key=lambda call: (call.lineno, call.col_offset))
    return calls


def line_of(node: ast.AST) -> int:
    return getattr(node, "lineno", 0)


def split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _repeated_parts(node: ast.AST) -> list[ast.AST]:
    if isinstance(node, ast.For | ast.AsyncFor):
        return list(node.body)
    if isinstance(node, ast.While):
        return [node.test, *node.body]
    if isinstance(node, ast.ListComp | ast.SetComp | ast.GeneratorExp):
        return [node.elt]
    if isinstance(node, ast.DictComp):
        return [node.key, node.value]
    return []


def _split_property(line: str) -> tuple[str, str]:
    positions = [pos for pos in (line.find("="), line.find(":")) if pos >= 0]
    if not positions:
        return (line.strip(), "")
    cut = min(positions)
    key = line[:cut].strip()
    value = line[cut + 1 :].strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return (key, value)


def _display_path(path: Path, root: Path | None) -> str:
    if root is not None:
        resolved = path.resolve()
        base = root.resolve()
        if resolved.is_relative_to(base):
            return resolved.relative_to(base).as_posix()
    return path.as_posix()
