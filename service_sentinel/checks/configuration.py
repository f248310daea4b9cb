"""Property-sourced checks on runtime configuration."""

from __future__ import annotations

from collections.abc import Mapping

from service_sentinel.checks.base import float_parameter
from service_sentinel.findings import Finding
from service_sentinel.source import PropertySet, SourceUnit, split_list

CATEGORY = "Configuration"
DEFAULT_DEBUG_KEYS = "DEBUG,FLASK_DEBUG,app.debug"
TRUTHY = {"true", "1", "yes", "on"}
NUMERIC_POOL_PARAMETERS = {"workersDefault": 200.0, "poolDefault": 10.0, "maxRatio": 10.0}


class DebugModeCheck:
    """Flags debug switches turned on in the deployed properties."""

    rule_id = "CONF-001"
    source = "properties"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        findings: list[Finding] = []
        for key in split_list(parameters.get("keys", DEFAULT_DEBUG_KEYS)):
            value = properties.get(key)
            if value is None or value.strip().lower() not in TRUTHY:
                continue
            findings.append(
                Finding(
                    file=properties.origin,
                    line=0,
                    category=CATEGORY,
                    reason=f"Debug mode enabled ({key})",
                    suggestion=f"Set {key}=false outside local development.",
                    rule_id=self.rule_id,
                )
            )
        return findings


class ModificationTrackingCheck:
    """Flags ORM change tracking that stays on unless explicitly disabled.

    The setting counts as enabled when the key is absent, so the check fires on
    silence as well as on an explicit truthy value.
    """

    rule_id = "CONF-003"
    source = "properties"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        key = parameters.get("key", "SQLALCHEMY_TRACK_MODIFICATIONS")
        value = properties.get(key, parameters.get("defaultValue", "true"))
        if value.strip().lower() not in TRUTHY:
            return []
        return [
            Finding(
                file=properties.origin,
                line=0,
                category="Persistence Performance",
                reason="Modification tracking enabled",
                suggestion=f"Set {key}=false; the session event hooks cost memory on every object.",
                rule_id=self.rule_id,
            )
        ]


class PoolImbalanceCheck:
    """Flags more request workers per database connection than the pool can serve."""

    rule_id = "CONF-002"
    source = "properties"

    def validate(self, parameters: Mapping[str, str]) -> None:
        for name, default in NUMERIC_POOL_PARAMETERS.items():
            float_parameter(parameters, self.rule_id, name, default)

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        workers_key = parameters.get("workersKey", "server.threads.max")
        pool_key = parameters.get("poolKey", "database.pool.max-size")
        if workers_key not in properties and pool_key not in properties:
            return []
        workers = _property_number(
            properties,
            workers_key,
            float_parameter(parameters, self.rule_id, "workersDefault", 200.0),
        )
        pool = _property_number(
            properties, pool_key, float_parameter(parameters, self.rule_id, "poolDefault", 10.0)
        )
        if workers is None or pool is None or pool <= 0:
            return []
        max_ratio = float_parameter(parameters, self.rule_id, "maxRatio", 10.0)
        ratio = workers / pool
        if ratio <= max_ratio:
            return []
        return [
            Finding(
                file=properties.origin,
                line=0,
                category=CATEGORY,
                reason="Worker/DB pool imbalance",
                suggestion=(
                    f"{workers:g} workers share {pool:g} connections (ratio {ratio:.1f}, "
                    f"limit {max_ratio:g}). Grow {pool_key} or cap {workers_key}."
                ),
                rule_id=self.rule_id,
            )
        ]


def _property_number(properties: PropertySet, key: str, default: float) -> float | None:
    # None for an unparseable project value, which skips the check.
    value = properties.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return None
