"""REST design checks on route decorator paths.

The path-convention family (REST-001 to REST-003) looks at the same path
literals through three independent predicates, each registered under its own
rule id so it can be switched off on its own.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Mapping
from dataclasses import dataclass

from service_sentinel.catalog import ConfigError
from service_sentinel.findings import Finding
from service_sentinel.source import (
    FunctionNode,
    PropertySet,
    SourceUnit,
    dotted_name,
    keyword_value,
    last_name,
    line_of,
    string_value,
)

CATEGORY = "REST Design"
ROUTE_METHODS = {"get", "post", "put", "patch", "delete", "head", "options", "api_route", "route"}
TYPED_ROUTE_METHODS = ROUTE_METHODS - {"route"}
PREFIX_KEYWORDS = ("prefix", "url_prefix")
MOUNT_CALLS = {"include_router", "register_blueprint"}
DEFAULT_VERSION_PATTERN = r"^/v[0-9]+(/|$)"
VERSION_SEGMENT_RE = re.compile(r"v[0-9]+")


@dataclass(frozen=True, slots=True)
class Route:
    """A path literal attached to a handler through a route decorator."""

    path: str
    handler: FunctionNode
    decorator: ast.Call

    @property
    def line(self) -> int:
        return line_of(self.decorator)

    @property
    def owner(self) -> str:
        """Name of the router or app the decorator is attached to."""
        func = self.decorator.func
        return dotted_name(func.value) if isinstance(func, ast.Attribute) else ""


class UrlNamingCheck:
    """Flags path segments that are not kebab-case."""

    rule_id = "REST-001"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        findings: list[Finding] = []
        for route in find_routes(unit):
            offending = [
                segment
                for segment in literal_segments(route.path)
                if "_" in segment or any(char.isupper() for char in segment)
            ]
            if not offending:
                continue
            findings.append(
                _finding(
                    self.rule_id,
                    unit,
                    route,
                    reason="Non-standard URL naming",
                    suggestion=(
                        f"Use lowercase kebab-case for '{route.path}' "
                        f"(offending: {', '.join(offending)})."
                    ),
                )
            )
        return findings


class ApiVersioningCheck:
    """Flags routes with no version prefix, honoring router-level prefixes."""

    rule_id = "REST-002"
    source = "tree"

    def validate(self, parameters: Mapping[str, str]) -> None:
        _version_pattern(parameters)

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        pattern = _version_pattern(parameters)
        prefixes = router_prefixes(unit)
        findings: list[Finding] = []
        for route in find_routes(unit):
            if pattern.search(route.path):
                continue
            if any(pattern.search(prefix) for prefix in prefixes.get(route.owner, ())):
                continue
            findings.append(
                _finding(
                    self.rule_id,
                    unit,
                    route,
                    reason="Missing API Versioning",
                    suggestion=f"Prefix '{route.path}' with a version segment such as /v1.",
                )
            )
        return findings


class PluralResourceCheck:
    """Flags routes whose final resource segment is singular."""

    rule_id = "REST-003"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        findings: list[Finding] = []
        for route in find_routes(unit):
            segments = [
                segment
                for segment in literal_segments(route.path)
                if not VERSION_SEGMENT_RE.fullmatch(segment)
            ]
            if not segments or segments[-1].endswith("s"):
                continue
            findings.append(
                _finding(
                    self.rule_id,
                    unit,
                    route,
                    reason="Singular Resource Name",
                    suggestion=f"Name the collection in plural form: '{segments[-1]}s'.",
                )
            )
        return findings


class ResponseModelCheck:
    """Flags typed route handlers that declare neither a response model nor a return type."""

    rule_id = "REST-004"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        return [
            _finding(
                self.rule_id,
                unit,
                route,
                reason="Missing response model",
                suggestion=(
                    f"Declare response_model= or a return annotation on "
                    f"'{route.handler.name}' to pin the response contract."
                ),
            )
            for route in find_routes(unit)
            if last_name(route.decorator.func) in TYPED_ROUTE_METHODS
            and keyword_value(route.decorator, "response_model") is None
            and route.handler.returns is None
        ]


def find_routes(unit: SourceUnit) -> list[Route]:
    """Every route decorator carrying a literal path, in source order."""
    routes: list[Route] = []
    for function in unit.functions():
        for decorator in function.decorator_list:
            if not isinstance(decorator, ast.Call) or not isinstance(decorator.func, ast.Attribute):
                continue
            if decorator.func.attr not in ROUTE_METHODS:
                continue
            path = _route_path(decorator)
            if path is None:
                continue
            routes.append(Route(path=path, handler=function, decorator=decorator))
    routes.sort(key=lambda route: (route.line, route.decorator.col_offset))
    return routes


def router_prefixes(unit: SourceUnit) -> dict[str, list[str]]:
    """Literal path prefixes keyed by the router or app name they apply to.

    A prefix counts when it is passed to the constructor assigned to that name
    (``router = APIRouter(prefix="/v1")``) or when the object is mounted with
    one (``app.include_router(router, prefix="/v1")``).
    """
    prefixes: dict[str, list[str]] = {}
    for node in ast.walk(unit.tree):
        if isinstance(node, ast.Assign) and isinstance(node.value, ast.Call):
            owners = [dotted_name(target) for target in node.targets]
            call = node.value
        elif isinstance(node, ast.Call) and last_name(node.func) in MOUNT_CALLS and node.args:
            owners = [dotted_name(node.args[0])]
            call = node
        else:
            continue
        for keyword in PREFIX_KEYWORDS:
            value = string_value(keyword_value(call, keyword))
            if not value:
                continue
            for owner in owners:
                if owner:
                    prefixes.setdefault(owner, []).append(value)
    return prefixes


def literal_segments(path: str) -> list[str]:
    """Path segments excluding empty and ``{param}`` / ``<param>`` placeholders."""
    return [
        segment
        for segment in path.split("/")
        if segment and not segment.startswith(("{", "<")) and not segment.startswith(":")
    ]


def _route_path(decorator: ast.Call) -> str | None:
    candidate = decorator.args[0] if decorator.args else keyword_value(decorator, "path")
    value = string_value(candidate)
    if value is None or not value.startswith("/"):
        return None
    return value


def _version_pattern(parameters: Mapping[str, str]) -> re.Pattern[str]:
    raw = parameters.get("versionPattern", DEFAULT_VERSION_PATTERN)
    try:
        return re.compile(raw)
    except re.error as exc:
        raise ConfigError(
            f"REST-002.versionPattern is not a valid regular expression: {exc}"
        ) from exc


def _finding(
    rule_id: str, unit: SourceUnit, route: Route, *, reason: str, suggestion: str
) -> Finding:
    return Finding(
        file=unit.path,
        line=route.line,
        category=CATEGORY,
        reason=reason,
        suggestion=suggestion,
        rule_id=rule_id,
    )
