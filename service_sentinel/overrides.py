"""Caller-supplied last-mile parameter overrides."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from service_sentinel.catalog import ConfigError, ParameterOverride
from service_sentinel.profiles import ResolvedConfiguration

logger = logging.getLogger(__name__)

# Values the CLI options fall back to when nothing is passed. A caller value equal
# to one of these is indistinguishable from "not set" and is not applied.
HARDCODED_DEFAULTS: dict[tuple[str, str], str] = {
    ("ARCH-003", "maxDependencies"): "7",
    ("SEC-001", "pattern"): ".*(password|passwd|secret|api_?key|token).*",
}


def apply_override(
    config: ResolvedConfiguration,
    rule_id: str,
    param: str,
    value: str,
) -> ResolvedConfiguration:
    """Return a copy of ``config`` with ``parameters[rule_id][param]`` forced to ``value``."""
    parameters = {key: dict(values) for key, values in config.parameters.items()}
    parameters.setdefault(rule_id, {})[param] = value
    logger.debug("Override %s.%s=%s", rule_id, param, value)
    return ResolvedConfiguration.build(
        config.active_rules, parameters, profile_id=config.profile_id
    )


def apply_overrides(
    config: ResolvedConfiguration,
    overrides: Iterable[ParameterOverride],
) -> ResolvedConfiguration:
    """Apply overrides in order; later assignments to the same parameter win."""
    for override in overrides:
        config = apply_override(config, override.rule_id, override.param, override.value)
    return config


def apply_caller_overrides(
    config: ResolvedConfiguration,
    values: Iterable[ParameterOverride],
) -> ResolvedConfiguration:
    """Apply caller option values that differ from their hardcoded default.

    A value equal to the default is skipped, so an explicit default cannot be
    told apart from an option that was left unset.
    """
    for item in values:
        default = HARDCODED_DEFAULTS.get((item.rule_id, item.param))
        if default is not None and item.value == default:
            continue
        config = apply_override(config, item.rule_id, item.param, item.value)
    return config


def parse_assignment(text: str) -> ParameterOverride:
    """Parse ``RULE.param=value`` into a ``ParameterOverride``."""
    target, sep, value = text.partition("=")
    if not sep:
        raise ConfigError(f"Override '{text}' must look like RULE.param=value")
    rule_id, dot, param = target.strip().rpartition(".")
    if not dot or not rule_id or not param:
        raise ConfigError(f"Override '{text}' must look like RULE.param=value")
    return ParameterOverride(rule_id=rule_id, param=param, value=value.strip())
