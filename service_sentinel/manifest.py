"""Project manifest loading: declared dependencies and build metadata."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from service_sentinel.source import ParseError

PYPROJECT_FILE = "pyproject.toml"
REQUIREMENTS_FILE = "requirements.txt"

REQUIREMENT_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)\s*(\[[^\]]*\])?\s*(.*)$")
CLAUSE_RE = re.compile(r"^(===|==|~=|!=|<=|>=|<|>|\^|~)?\s*([0-9][0-9A-Za-z.*+!-]*)$")
VERSION_RE = re.compile(r"\d+(?:\.\d+)*")
LOWER_BOUND_OPERATORS = {"===", "==", "~=", ">=", ">", "^", "~", ""}


@dataclass(frozen=True, slots=True)
class Requirement:
    """One declared dependency."""

    name: str
    specifier: str
    file: str
    line: int = 0

    def lower_bound(self) -> tuple[int, ...] | None:
        """Smallest version the specifier admits, if it pins one."""
        bounds = [version for op, version in self._clauses() if op in LOWER_BOUND_OPERATORS]
        return max(bounds) if bounds else None

    def upper_bound(self) -> tuple[str, tuple[int, ...]] | None:
        """The tightest ``<`` or ``<=`` clause as ``(operator, version)``."""
        bounds = [(op, version) for op, version in self._clauses() if op in {"<", "<="}]
        return min(bounds, key=lambda item: item[1]) if bounds else None

    def _clauses(self) -> list[tuple[str, tuple[int, ...]]]:
        clauses: list[tuple[str, tuple[int, ...]]] = []
        for raw in self.specifier.split(","):
            match = CLAUSE_RE.match(raw.strip())
            if match is None:
                continue
            version = parse_version(match.group(2))
            if version:
                clauses.append((match.group(1) or "", version))
        return clauses


@dataclass(slots=True)
class ProjectManifest:
    """Dependencies and build metadata read from the project root."""

    files: list[str] = field(default_factory=list)
    requirements: list[Requirement] = field(default_factory=list)
    has_pyproject: bool = False
    has_build_system: bool = False

    @property
    def origin(self) -> str:
        return ", ".join(self.files) or PYPROJECT_FILE

    def find(self, name: str) -> list[Requirement]:
        wanted = normalize_name(name)
        return [item for item in self.requirements if item.name == wanted]


def load_manifest(root: Path) -> ProjectManifest | None:
    """Read ``pyproject.toml`` and ``requirements.txt`` under ``root``.

    Returns ``None`` when neither file exists. A malformed ``pyproject.toml``
    raises ``ParseError``.
    """
    pyproject = root / PYPROJECT_FILE
    requirements = root / REQUIREMENTS_FILE
    if not pyproject.is_file() and not requirements.is_file():
        return None

    manifest = ProjectManifest()
    if pyproject.is_file():
        text = pyproject.read_text(encoding="utf-8")
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ParseError(PYPROJECT_FILE, str(exc)) from exc
        manifest.files.append(PYPROJECT_FILE)
        manifest.has_pyproject = True
        manifest.has_build_system = isinstance(data.get("build-system"), dict)
        manifest.requirements.extend(_pyproject_requirements(data, text.splitlines()))
    if requirements.is_file():
        manifest.files.append(REQUIREMENTS_FILE)
        manifest.requirements.extend(
            _requirements_file(requirements.read_text(encoding="utf-8", errors="replace"))
        )
    return manifest


def parse_requirement(text: str, file: str, line: int = 0) -> Requirement | None:
    """Parse a PEP 508 style line (markers dropped) or a Poetry constraint."""
    requirement = text.split(";", 1)[0].strip()
    match = REQUIREMENT_RE.match(requirement)
    if match is None:
        return None
    specifier = match.group(3).strip().strip("()").strip()
    if specifier.startswith("@"):
        specifier = ""
    return Requirement(
        name=normalize_name(match.group(1)), specifier=specifier, file=file, line=line
    )


def parse_version(text: str) -> tuple[int, ...]:
    match = VERSION_RE.match(text)
    if match is None:
        return ()
    return tuple(int(part) for part in match.group(0).split("."))


def compare_versions(left: tuple[int, ...], right: tuple[int, ...]) -> int:
    """Three-way comparison with missing components treated as zero."""
    width = max(len(left), len(right))
    padded_left = left + (0,) * (width - len(left))
    padded_right = right + (0,) * (width - len(right))
    return (padded_left > padded_right) - (padded_left < padded_right)


def normalize_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def _pyproject_requirements(data: dict[str, Any], lines: list[str]) -> list[Requirement]:
    found: list[Requirement] = []
    project = data.get("project")
    if isinstance(project, dict):
        declared: list[Any] = list(project.get("dependencies") or [])
        optional = project.get("optional-dependencies") or {}
        if isinstance(optional, dict):
            for group in optional.values():
                declared.extend(group or [])
        for item in declared:
            if not isinstance(item, str):
                continue
            requirement = parse_requirement(item, PYPROJECT_FILE, _line_containing(lines, item))
            if requirement is not None:
                found.append(requirement)

    tool = data.get("tool")
    poetry = tool.get("poetry") if isinstance(tool, dict) else None
    dependencies = poetry.get("dependencies") if isinstance(poetry, dict) else None
    if isinstance(dependencies, dict):
        for name, constraint in dependencies.items():
            if name == "python":
                continue
            if isinstance(constraint, dict):
                constraint = constraint.get("version", "")
            if not isinstance(constraint, str):
                continue
            constraint = "" if constraint.strip() == "*" else constraint
            requirement = parse_requirement(
                f"{name} {constraint}", PYPROJECT_FILE, _line_containing(lines, name)
            )
            if requirement is not None:
                found.append(requirement)
    return found


def _requirements_file(text: str) -> list[Requirement]:
    found: list[Requirement] = []
    for number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        requirement = parse_requirement(line, REQUIREMENTS_FILE, number)
        if requirement is not None:
            found.append(requirement)
    return found


def _line_containing(lines: list[str], needle: str) -> int:
    for number, line in enumerate(lines, start=1):
        if needle in line:
            return number
    return 0
