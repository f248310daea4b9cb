"""Profile resolution: inheritance, include/exclude and parameter overrides."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from service_sentinel.catalog import ConfigDocument, ConfigError, ProfileDefinition

logger = logging.getLogger(__name__)


class UnknownProfileError(ConfigError):
    """Raised when a profile id is defined in neither document."""

    def __init__(self, profile_id: str, sources: list[str]) -> None:
        searched = ", ".join(sources)
        super().__init__(f"Unknown profile '{profile_id}' (searched: {searched})")
        self.profile_id = profile_id


@dataclass(frozen=True, slots=True)
class ResolvedConfiguration:
    """Flattened active rules and parameters for one analysis run."""

    active_rules: frozenset[str] = frozenset()
    parameters: Mapping[str, Mapping[str, str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    profile_id: str | None = None

    @classmethod
    def build(
        cls,
        active_rules: set[str] | frozenset[str],
        parameters: Mapping[str, Mapping[str, str]],
        profile_id: str | None = None,
    ) -> ResolvedConfiguration:
        frozen = {
            rule_id: MappingProxyType(dict(values)) for rule_id, values in parameters.items()
        }
        return cls(
            active_rules=frozenset(active_rules),
            parameters=MappingProxyType(frozen),
            profile_id=profile_id,
        )

    def is_active(self, rule_id: str) -> bool:
        return rule_id in self.active_rules

    def parameters_for(self, rule_id: str) -> Mapping[str, str]:
        return self.parameters.get(rule_id, MappingProxyType({}))

    def parameter(self, rule_id: str, name: str, default: str | None = None) -> str | None:
        return self.parameters_for(rule_id).get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.profile_id,
            "active_rules": sorted(self.active_rules),
            "parameters": {
                rule_id: dict(sorted(values.items()))
                for rule_id, values in sorted(self.parameters.items())
            },
        }


@dataclass(frozen=True, slots=True)
class ProfileInfo:
    """A visible profile and the document it came from."""

    definition: ProfileDefinition
    origin: str

    @property
    def profile_id(self) -> str:
        return self.definition.profile_id

    @property
    def extends(self) -> str | None:
        return self.definition.extends

    @property
    def description(self) -> str:
        return self.definition.description

    def to_dict(self) -> dict[str, Any]:
        payload = self.definition.to_dict()
        payload["origin"] = self.origin
        return payload


def resolve_profile(
    profile_id: str,
    builtin: ConfigDocument,
    user: ConfigDocument | None = None,
) -> ResolvedConfiguration:
    """Resolve ``profile_id`` into a flattened configuration.

    Parameters are seeded with every catalog rule's defaults. The profile chain
    is applied root-first; at each level includes are applied, then excludes,
    then parameter overrides, all in document order. The user document is
    searched before the builtin one at every level of the chain.
    """
    active_rules: set[str] = set()
    parameters: dict[str, dict[str, str]] = {
        rule_id: dict(rule.default_parameters) for rule_id, rule in builtin.rules.items()
    }
    chain = _profile_chain(profile_id, builtin, user)
    logger.debug("Resolving profile chain: %s", " -> ".join(p.profile_id for p in chain))

    for profile in chain:
        for rule_id in profile.includes:
            active_rules.add(rule_id)
        for rule_id in profile.excludes:
            active_rules.discard(rule_id)
        for override in profile.overrides:
            parameters.setdefault(override.rule_id, {})[override.param] = override.value

    unknown = sorted(rule_id for rule_id in active_rules if rule_id not in builtin.rules)
    if unknown:
        logger.warning(
            "Profile '%s' activates rules missing from the catalog: %s",
            profile_id,
            ", ".join(unknown),
        )
    return ResolvedConfiguration.build(active_rules, parameters, profile_id=profile_id)


def find_profile(
    profile_id: str,
    builtin: ConfigDocument,
    user: ConfigDocument | None = None,
) -> ProfileDefinition:
    """Look up a profile, user document first."""
    if user is not None:
        profile = user.find_profile(profile_id)
        if profile is not None:
            return profile
    profile = builtin.find_profile(profile_id)
    if profile is not None:
        return profile
    sources = [doc.source for doc in (user, builtin) if doc is not None]
    raise UnknownProfileError(profile_id, sources)


def list_profiles(
    builtin: ConfigDocument,
    user: ConfigDocument | None = None,
) -> list[ProfileInfo]:
    """Return visible profiles; user definitions shadow builtin ones."""
    info: list[ProfileInfo] = []
    shadowed = set(user.profiles) if user is not None else set()
    for profile in builtin.profiles.values():
        if profile.profile_id in shadowed:
            continue
        info.append(ProfileInfo(definition=profile, origin="builtin"))
    if user is not None:
        for profile in user.profiles.values():
            info.append(ProfileInfo(definition=profile, origin="user"))
    return info


def _profile_chain(
    profile_id: str,
    builtin: ConfigDocument,
    user: ConfigDocument | None,
) -> list[ProfileDefinition]:
    """Walk ``extends`` links from ``profile_id`` and return the chain root-first."""
    chain: list[ProfileDefinition] = []
    visited: set[str] = set()
    current: str | None = profile_id
    while current is not None:
        if current in visited:
            path = " -> ".join([item.profile_id for item in chain] + [current])
            raise ConfigError(f"cyclic profile inheritance: {path}")
        visited.add(current)
        try:
            profile = find_profile(current, builtin, user)
        except UnknownProfileError as exc:
            if not chain:
                raise
            raise ConfigError(
                f"Profile '{chain[-1].profile_id}' extends unknown profile '{current}'"
            ) from exc
        chain.append(profile)
        current = profile.extends
    chain.reverse()
    return chain
