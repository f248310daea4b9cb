"""Registry-driven rule execution."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from service_sentinel.checks.base import Check, CheckRegistry, ProjectCheck
from service_sentinel.findings import Finding, FindingSink
from service_sentinel.manifest import ProjectManifest
from service_sentinel.profiles import ResolvedConfiguration
from service_sentinel.source import PropertySet, SourceUnit

logger = logging.getLogger(__name__)


class RuleEngine:
    """Runs every active rule's check and forwards findings to a sink.

    The execution plan is fixed at construction: active rules are looked up in
    the registry in sorted order, parameters are validated, and rules with no
    registered check are reported once and skipped. The configuration is never
    mutated, so one engine can serve several worker threads.
    """

    def __init__(
        self,
        registry: CheckRegistry,
        config: ResolvedConfiguration,
        sink: FindingSink | None = None,
    ) -> None:
        self.config = config
        self.sink = sink if sink is not None else FindingSink()
        self._tree_checks: list[Check] = []
        self._property_checks: list[Check] = []
        self._project_checks: list[ProjectCheck] = []
        self.missing_rule_ids: list[str] = []

        for rule_id in sorted(config.active_rules):
            check = registry.get(rule_id)
            if check is None:
                self.missing_rule_ids.append(rule_id)
                continue
            validate = getattr(check, "validate", None)
            if validate is not None:
                validate(config.parameters_for(rule_id))
            if check.source == "project":
                self._project_checks.append(check)  # type: ignore[arg-type]
            elif check.source == "properties":
                self._property_checks.append(check)  # type: ignore[arg-type]
            else:
                self._tree_checks.append(check)  # type: ignore[arg-type]

        if self.missing_rule_ids:
            logger.warning(
                "No check registered for active rules: %s", ", ".join(self.missing_rule_ids)
            )

    @property
    def has_tree_checks(self) -> bool:
        return bool(self._tree_checks)

    @property
    def has_property_checks(self) -> bool:
        return bool(self._property_checks)

    @property
    def has_project_checks(self) -> bool:
        return bool(self._project_checks)

    def evaluate(self, unit: SourceUnit, properties: Mapping[str, str]) -> list[Finding]:
        """Run tree checks on one unit and return findings without storing them."""
        property_set = _as_property_set(properties)
        findings: list[Finding] = []
        for check in self._tree_checks:
            findings.extend(
                check.run(unit, property_set, self.config.parameters_for(check.rule_id))
            )
        return findings

    def run_all(self, unit: SourceUnit, properties: Mapping[str, str]) -> int:
        """Run tree checks on one unit; returns the number of new findings stored."""
        return self.sink.extend(self.evaluate(unit, properties))

    def run_properties(self, properties: Mapping[str, str]) -> int:
        """Run property-sourced checks once; skipped when the property map is empty."""
        if not properties:
            return 0
        property_set = _as_property_set(properties)
        added = 0
        for check in self._property_checks:
            findings = check.run(
                None, property_set, self.config.parameters_for(check.rule_id)
            )
            added += self.sink.extend(findings)
        return added

    def run_project(self, manifest: ProjectManifest | None) -> int:
        """Run manifest checks once; skipped when the project has no manifest."""
        if manifest is None:
            return 0
        added = 0
        for check in self._project_checks:
            added += self.sink.extend(
                check.run(manifest, self.config.parameters_for(check.rule_id))
            )
        return added


def _as_property_set(properties: Mapping[str, str]) -> PropertySet:
    if isinstance(properties, PropertySet):
        return properties
    return PropertySet(properties)
