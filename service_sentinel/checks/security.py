"""Security checks: hardcoded secrets and permissive CORS."""

from __future__ import annotations

import ast
import re
from collections.abc import Mapping

from service_sentinel.catalog import ConfigError
from service_sentinel.findings import Finding
from service_sentinel.source import (
    PropertySet,
    SourceUnit,
    assigned_names,
    keyword_value,
    last_name,
    line_of,
    string_value,
)

CATEGORY = "Security"
DEFAULT_SECRET_PATTERN = ".*(password|passwd|secret|api_?key|token).*"
PLACEHOLDER_RE = re.compile(r"\$\{.*\}")
CORS_ORIGIN_KEYWORDS = {"allow_origins", "origins", "allowed_origins"}
CORS_ALLOW_ALL_SETTINGS = {"CORS_ALLOW_ALL_ORIGINS", "CORS_ORIGIN_ALLOW_ALL"}


class HardcodedSecretCheck:
    """Flags string literals assigned to names that look like credentials."""

    rule_id = "SEC-001"
    source = "tree"

    def validate(self, parameters: Mapping[str, str]) -> None:
        secret_pattern(parameters, self.rule_id)

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        pattern = secret_pattern(parameters, self.rule_id)
        findings: list[Finding] = []
        for node in ast.walk(unit.tree):
            if not isinstance(node, ast.Assign | ast.AnnAssign):
                continue
            if not string_value(node.value):
                continue
            for name in assigned_names(node):
                if not pattern.fullmatch(name):
                    continue
                findings.append(
                    Finding(
                        file=unit.path,
                        line=line_of(node),
                        category=CATEGORY,
                        reason="Potential Hardcoded Secret",
                        suggestion=(
                            f"'{name}' matches /{pattern.pattern}/. "
                            "Read it from the environment or a secret manager."
                        ),
                        rule_id=self.rule_id,
                    )
                )
        return findings


class PropertySecretCheck:
    """Flags property keys that look like credentials and hold a literal value."""

    rule_id = "SEC-002"
    source = "properties"

    def validate(self, parameters: Mapping[str, str]) -> None:
        secret_pattern(parameters, self.rule_id)

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        pattern = secret_pattern(parameters, self.rule_id)
        findings: list[Finding] = []
        for key, value in properties.items():
            if not value or PLACEHOLDER_RE.fullmatch(value):
                continue
            if not pattern.fullmatch(key):
                continue
            findings.append(
                Finding(
                    file=properties.origin,
                    line=0,
                    category=CATEGORY,
                    reason=f"Hardcoded Secret in properties ({key})",
                    suggestion=(
                        f"'{key}' matches /{pattern.pattern}/. "
                        "Use a ${ENV_VAR} placeholder instead of a literal value."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class PermissiveCorsCheck:
    """Flags CORS setups that accept every origin."""

    rule_id = "SEC-003"
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
        for node in ast.walk(unit.tree):
            if isinstance(node, ast.Call) and _is_permissive_cors_call(node):
                findings.append(self._finding(unit, node))
            elif isinstance(node, ast.Assign) and _enables_allow_all(node):
                findings.append(self._finding(unit, node))
        return findings

    def _finding(self, unit: SourceUnit, node: ast.AST) -> Finding:
        return Finding(
            file=unit.path,
            line=line_of(node),
            category=CATEGORY,
            reason="Insecure CORS policy",
            suggestion="Specify the allowed origins explicitly instead of '*'.",
            rule_id=self.rule_id,
        )


def secret_pattern(parameters: Mapping[str, str], rule_id: str) -> re.Pattern[str]:
    raw = parameters.get("pattern", DEFAULT_SECRET_PATTERN)
    try:
        return re.compile(raw, re.IGNORECASE)
    except re.error as exc:
        raise ConfigError(f"{rule_id}.pattern is not a valid regular expression: {exc}") from exc


def _is_permissive_cors_call(call: ast.Call) -> bool:
    for keyword_name in CORS_ORIGIN_KEYWORDS:
        value = keyword_value(call, keyword_name)
        if value is not None and _contains_wildcard(value):
            return True
    # flask_cors.CORS(app) with no origin restriction allows everything
    if last_name(call.func) == "CORS":
        return not any(keyword.arg in {"origins", "resources"} for keyword in call.keywords)
    return False


def _contains_wildcard(value: ast.expr) -> bool:
    if string_value(value) == "*":
        return True
    if isinstance(value, ast.List | ast.Tuple | ast.Set):
        return any(string_value(item) == "*" for item in value.elts)
    return False


def _enables_allow_all(node: ast.Assign) -> bool:
    if not (isinstance(node.value, ast.Constant) and node.value.value is True):
        return False
    return any(name in CORS_ALLOW_ALL_SETTINGS for name in assigned_names(node))
