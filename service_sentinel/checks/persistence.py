"""Persistence and performance checks."""

from __future__ import annotations

import ast
from collections.abc import Mapping

from service_sentinel.findings import Finding
from service_sentinel.source import (
    FunctionNode,
    PropertySet,
    SourceUnit,
    calls_in_loops,
    dotted_name,
    has_decorator,
    keyword_value,
    last_name,
    line_of,
    split_list,
    string_value,
)

DEFAULT_EAGER_STRATEGIES = "joined,selectin,subquery,immediate"
DEFAULT_CARTESIAN_STRATEGIES = "joined,subquery"
DEFAULT_BLOCKING_CALLS = "requests.,httpx.,urllib.request.,urlopen,time.sleep,smtplib.,subprocess."
DEFAULT_CACHE_DECORATORS = "cached,cache_page,memoize,cache_response"
TRANSACTION_DECORATORS = {"atomic", "transactional"}
TRANSACTION_CONTEXTS = ("atomic", "begin", "begin_nested", "transaction")
TTL_KEYWORDS = {"timeout", "ttl", "expire", "expires", "expiration"}
TIMEOUT_KEYWORDS = {"timeout", "statement_timeout", "lock_timeout"}
TTL_PROPERTY_MARKERS = ("ttl", "expire", "timeout")
DEFAULT_TIMEOUT_MARKERS = "statement_timeout,lock_timeout,idle_in_transaction_session_timeout"


class EagerLoadingCheck:
    """Flags ORM relationships configured to load eagerly."""

    rule_id = "PERF-001"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        strategies = set(split_list(parameters.get("eagerStrategies", DEFAULT_EAGER_STRATEGIES)))
        findings: list[Finding] = []
        for call in unit.calls():
            strategy = _relationship_strategy(call)
            if strategy is None or strategy not in strategies:
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(call),
                    category="Persistence Performance",
                    reason="EAGER relationship loading",
                    suggestion=(
                        f"relationship(lazy='{strategy}') loads on every query. "
                        "Default to lazy loading and opt in per query."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class NPlusOneQueryCheck:
    """Flags collection getters called once per loop iteration."""

    rule_id = "PERF-002"
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
            name = last_name(call.func)
            if not _looks_like_collection_getter(name):
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(call),
                    category="Database",
                    reason="Potential N+1 Query",
                    suggestion=(
                        f"'{name}()' runs inside a loop. "
                        "Fetch the data up front with a join or selectinload."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class BlockingCallInTransactionCheck:
    """Flags network or sleep calls made while a database transaction is open."""

    rule_id = "PERF-003"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        prefixes = tuple(split_list(parameters.get("blockingCalls", DEFAULT_BLOCKING_CALLS)))
        seen: set[int] = set()
        calls: list[ast.Call] = []
        for scope in _transaction_scopes(unit.tree):
            for node in ast.walk(scope):
                if isinstance(node, ast.Call) and id(node) not in seen:
                    seen.add(id(node))
                    calls.append(node)
        calls.sort(key=lambda call: (call.lineno, call.col_offset))

        findings: list[Finding] = []
        for call in calls:
            name = dotted_name(call.func)
            if not name or not _matches_blocking(name, prefixes):
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(call),
                    category="Concurrency",
                    reason="Blocking call in Transaction",
                    suggestion=f"Move '{name}()' out of the transaction to keep it short.",
                    rule_id=self.rule_id,
                )
            )
        return findings


class CacheWithoutTtlCheck:
    """Flags cached endpoints with no expiry in code or in the property set."""

    rule_id = "PERF-004"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        if any(marker in key.lower() for key in properties for marker in TTL_PROPERTY_MARKERS):
            return []
        decorators = set(split_list(parameters.get("cacheDecorators", DEFAULT_CACHE_DECORATORS)))
        findings: list[Finding] = []
        for function in unit.functions():
            for decorator in function.decorator_list:
                if last_name(decorator) not in decorators or _has_ttl(decorator):
                    continue
                findings.append(
                    Finding(
                        file=unit.path,
                        line=line_of(function),
                        category="Caching",
                        reason="Cache missing TTL",
                        suggestion=(
                            f"'{function.name}' is cached without an expiry. "
                            "Pass a timeout or define a TTL property."
                        ),
                        rule_id=self.rule_id,
                    )
                )
                break
        return findings


class CartesianProductRiskCheck:
    """Flags models joining more than one collection eagerly."""

    rule_id = "PERF-005"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        strategies = set(
            split_list(parameters.get("eagerStrategies", DEFAULT_CARTESIAN_STRATEGIES))
        )
        findings: list[Finding] = []
        for class_node in unit.classes():
            eager: list[str] = []
            for stmt in class_node.body:
                if not isinstance(stmt, ast.Assign | ast.AnnAssign) or stmt.value is None:
                    continue
                if not isinstance(stmt.value, ast.Call):
                    continue
                if _relationship_strategy(stmt.value) in strategies:
                    eager.append(_target_name(stmt))
            if len(eager) <= 1:
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(class_node),
                    category="Persistence Performance",
                    reason="Cartesian Product Risk",
                    suggestion=(
                        f"{class_node.name} joins {', '.join(eager)} eagerly in one query. "
                        "Load at most one collection with a join."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class TransactionTimeoutCheck:
    """Flags outermost transaction scopes with no statement or lock timeout."""

    rule_id = "PERF-006"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        markers = tuple(
            marker.lower()
            for marker in split_list(parameters.get("timeoutMarkers", DEFAULT_TIMEOUT_MARKERS))
        )
        findings: list[Finding] = []
        for scope, label in _outermost_transactions(unit.tree):
            if _declares_timeout(scope, markers):
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(scope),
                    category="Resilience",
                    reason="Missing Transaction Timeout",
                    suggestion=(
                        f"Bound {label} with a timeout option or "
                        "SET LOCAL statement_timeout so a slow query cannot hold locks."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


def _relationship_strategy(call: ast.Call) -> str | None:
    if last_name(call.func) != "relationship":
        return None
    return string_value(keyword_value(call, "lazy"))


def _looks_like_collection_getter(name: str) -> bool:
    if not name.startswith("get"):
        return False
    return name.endswith("s") or name.lower().endswith("list")


def _transaction_scopes(tree: ast.AST) -> list[ast.AST]:
    scopes: list[ast.AST] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef):
            if _is_transactional(node):
                scopes.append(node)
        elif isinstance(node, ast.With | ast.AsyncWith):
            if any(_opens_transaction(item.context_expr) for item in node.items):
                scopes.append(node)
    return scopes


def _outermost_transactions(tree: ast.AST) -> list[tuple[ast.AST, str]]:
    """Transaction scopes not nested in another one, in source order."""
    scopes: list[tuple[ast.AST, str]] = []

    def visit(node: ast.AST) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.FunctionDef | ast.AsyncFunctionDef):
                if _is_transactional(child):
                    scopes.append((child, f"'{child.name}'"))
                    continue
            elif isinstance(child, ast.With | ast.AsyncWith):
                if any(_opens_transaction(item.context_expr) for item in child.items):
                    scopes.append((child, f"the transaction block at line {line_of(child)}"))
                    continue
            visit(child)

    visit(tree)
    scopes.sort(key=lambda item: line_of(item[0]))
    return scopes


def _declares_timeout(scope: ast.AST, markers: tuple[str, ...]) -> bool:
    openers: list[ast.expr] = []
    if isinstance(scope, ast.FunctionDef | ast.AsyncFunctionDef):
        openers = [
            item for item in scope.decorator_list if last_name(item) in TRANSACTION_DECORATORS
        ]
    elif isinstance(scope, ast.With | ast.AsyncWith):
        openers = [
            item.context_expr for item in scope.items if _opens_transaction(item.context_expr)
        ]
    for opener in openers:
        if isinstance(opener, ast.Call) and any(
            keyword.arg in TIMEOUT_KEYWORDS for keyword in opener.keywords
        ):
            return True
    for node in ast.walk(scope):
        if isinstance(node, ast.Constant) and isinstance(node.value, str):
            text = node.value.lower()
            if any(marker in text for marker in markers):
                return True
    return False


def _is_transactional(function: FunctionNode) -> bool:
    return has_decorator(function, TRANSACTION_DECORATORS)


def _opens_transaction(expr: ast.expr) -> bool:
    return isinstance(expr, ast.Call) and last_name(expr.func) in TRANSACTION_CONTEXTS


def _matches_blocking(name: str, prefixes: tuple[str, ...]) -> bool:
    lowered = name.lower()
    for prefix in prefixes:
        candidate = prefix.lower()
        if candidate.endswith("."):
            if lowered.startswith(candidate):
                return True
        elif lowered == candidate or lowered.endswith("." + candidate):
            return True
    return False


def _has_ttl(decorator: ast.expr) -> bool:
    if not isinstance(decorator, ast.Call):
        return False
    if decorator.args:
        # cache_page(60 * 15)
        return last_name(decorator.func) == "cache_page"
    return any(keyword.arg in TTL_KEYWORDS for keyword in decorator.keywords)


def _target_name(stmt: ast.Assign | ast.AnnAssign) -> str:
    target = stmt.targets[0] if isinstance(stmt, ast.Assign) else stmt.target
    return target.id if isinstance(target, ast.Name) else "relationship"
