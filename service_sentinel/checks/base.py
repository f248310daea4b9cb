"""Check protocol shared by every rule implementation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Literal, Protocol

from service_sentinel.catalog import ConfigError
from service_sentinel.findings import Finding
from service_sentinel.manifest import ProjectManifest
from service_sentinel.source import PropertySet, SourceUnit

CheckSource = Literal["tree", "properties"]


class Check(Protocol):
    """A pure function bound to one rule id.

    Tree checks run once per source unit. Property checks run once per run with
    ``unit`` set to ``None`` and only consult the property set.
    """

    rule_id: str
    source: CheckSource

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        """Inspect the unit and properties and return findings."""


class ProjectCheck(Protocol):
    """A check over the project manifest, run once per run when one exists."""

    rule_id: str
    source: Literal["project"]

    def run(self, manifest: ProjectManifest, parameters: Mapping[str, str]) -> list[Finding]:
        """Inspect declared dependencies and build metadata."""


AnyCheck = Check | ProjectCheck


def int_parameter(
    parameters: Mapping[str, str], rule_id: str, name: str, default: int
) -> int:
    """Read an integer parameter; a malformed value raises ``ConfigError``."""
    raw = parameters.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{rule_id}.{name} must be an integer, got '{raw}'") from exc


def float_parameter(
    parameters: Mapping[str, str], rule_id: str, name: str, default: float
) -> float:
    raw = parameters.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{rule_id}.{name} must be a number, got '{raw}'") from exc


class CheckRegistry:
    """Maps rule ids to the check implementing them."""

    def __init__(self, checks: Iterable[AnyCheck] = ()) -> None:
        self._checks: dict[str, AnyCheck] = {}
        for check in checks:
            self.register(check)

    def register(self, check: AnyCheck) -> None:
        if check.rule_id in self._checks:
            raise ValueError(f"Check already registered for rule '{check.rule_id}'")
        self._checks[check.rule_id] = check

    def get(self, rule_id: str) -> AnyCheck | None:
        return self._checks.get(rule_id)

    def rule_ids(self) -> list[str]:
        return list(self._checks)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._checks

    def __len__(self) -> int:
        return len(self._checks)
