"""Maintainability checks."""

from __future__ import annotations

import ast
from collections.abc import Mapping

from service_sentinel.findings import Finding
from service_sentinel.source import (
    PropertySet,
    SourceUnit,
    calls_in_loops,
    dotted_name,
    last_name,
    line_of,
    split_list,
)

LOG_METHODS = {"debug", "info", "warning", "warn", "error", "exception", "critical"}
DEFAULT_LISTING_METHODS = "all,find_all,list_all,fetchall"
PAGINATION_CALLS = {"limit", "offset", "paginate", "slice", "page"}
PAGINATION_MARKERS = ("page", "limit")


class LoggingInLoopCheck:
    """Flags log calls emitted once per loop iteration."""

    rule_id = "MAINT-001"
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
        for call in calls_in_loops(unit.tree):
            if not isinstance(call.func, ast.Attribute) or call.func.attr not in LOG_METHODS:
                continue
            if "log" not in dotted_name(call.func.value).lower():
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(call),
                    category="Maintainability",
                    reason="Logging in loop",
                    suggestion="Aggregate and log once after the loop.",
                    rule_id=self.rule_id,
                )
            )
        return findings


class MissingPaginationCheck:
    """Flags unbounded listing queries."""

    rule_id = "MAINT-002"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        methods = set(split_list(parameters.get("methods", DEFAULT_LISTING_METHODS)))
        findings: list[Finding] = []
        for call in unit.calls():
            # builtin all() is a Name call and never matches
            if not isinstance(call.func, ast.Attribute) or call.func.attr not in methods:
                continue
            if _is_paginated(call):
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(call),
                    category="Maintainability",
                    reason="Missing Pagination",
                    suggestion=(
                        f"'{call.func.attr}()' loads every row. "
                        "Accept page/limit arguments or bound the query."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


def _is_paginated(call: ast.Call) -> bool:
    arguments = [*call.args, *(keyword.value for keyword in call.keywords)]
    for argument in arguments:
        text = ast.unparse(argument).lower()
        if any(marker in text for marker in PAGINATION_MARKERS):
            return True
    if any(
        keyword.arg and any(marker in keyword.arg.lower() for marker in PAGINATION_MARKERS)
        for keyword in call.keywords
    ):
        return True
    receiver = call.func.value if isinstance(call.func, ast.Attribute) else call.func
    return any(
        isinstance(node, ast.Call) and last_name(node.func) in PAGINATION_CALLS
        for node in ast.walk(receiver)
    )
