"""Rule catalog and profile document parsing."""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

BUILTIN_PACKAGE = "service_sentinel.data"
BUILTIN_RESOURCE = "default_rules.toml"
BUILTIN_SOURCE = "<builtin>"


class ConfigError(ValueError):
    """Raised when a configuration document is missing or malformed."""


@dataclass(frozen=True, slots=True)
class RuleDefinition:
    """A catalog rule and its default parameters."""

    rule_id: str
    default_parameters: dict[str, str] = field(default_factory=dict)
    name: str = ""
    category: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "default_parameters": dict(self.default_parameters),
        }


@dataclass(frozen=True, slots=True)
class ParameterOverride:
    """Single ``rule.param = value`` assignment."""

    rule_id: str
    param: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"rule": self.rule_id, "param": self.param, "value": self.value}


@dataclass(frozen=True, slots=True)
class ProfileDefinition:
    """Named, inheritable bundle of rule activation and parameter decisions."""

    profile_id: str
    extends: str | None = None
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    overrides: tuple[ParameterOverride, ...] = ()
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.profile_id,
            "extends": self.extends,
            "include": list(self.includes),
            "exclude": list(self.excludes),
            "override": [item.to_dict() for item in self.overrides],
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class ConfigDocument:
    """One parsed configuration document."""

    rules: dict[str, RuleDefinition] = field(default_factory=dict)
    profiles: dict[str, ProfileDefinition] = field(default_factory=dict)
    source: str = BUILTIN_SOURCE

    def find_profile(self, profile_id: str) -> ProfileDefinition | None:
        return self.profiles.get(profile_id)


def parse_rules(source: Mapping[str, Any] | Path | str | None) -> dict[str, RuleDefinition]:
    """Parse rule definitions from a mapping, a TOML file path, or TOML text.

    Raises ``ConfigError`` when the source is absent or malformed.
    """
    if source is None:
        raise ConfigError("Rule catalog source is missing")
    if isinstance(source, Path):
        mapping = _load_toml(source)
        origin = str(source)
    elif isinstance(source, str):
        mapping = _loads_toml(source, origin="<string>")
        origin = "<string>"
    else:
        mapping = dict(source)
        origin = "<mapping>"
    return _parse_rule_tables(mapping.get("rule"), origin=origin)


def parse_document(
    mapping: Mapping[str, Any],
    *,
    source: str,
    allow_rules: bool = True,
) -> ConfigDocument:
    """Parse ``[[rule]]`` and ``[[profile]]`` tables into a document."""
    raw_rules = mapping.get("rule")
    if raw_rules is not None and not allow_rules:
        raise ConfigError(
            f"{source}: rule definitions are only read from the bundled catalog; "
            "use profile overrides to change parameters"
        )
    rules = _parse_rule_tables(raw_rules, origin=source)
    profiles = _parse_profile_tables(mapping.get("profile"), origin=source)
    return ConfigDocument(rules=rules, profiles=profiles, source=source)


def load_document(path: Path, *, allow_rules: bool = False) -> ConfigDocument:
    """Load a user configuration document from disk."""
    if not path.exists():
        raise ConfigError(f"Config file does not exist: {path}")
    logger.debug("Loading configuration document %s", path)
    return parse_document(_load_toml(path), source=str(path), allow_rules=allow_rules)


def load_builtin_document() -> ConfigDocument:
    """Load the rule catalog and profiles bundled with the package."""
    try:
        text = resources.files(BUILTIN_PACKAGE).joinpath(BUILTIN_RESOURCE).read_text(
            encoding="utf-8"
        )
    except (FileNotFoundError, ModuleNotFoundError) as exc:
        raise ConfigError(f"Bundled rule catalog {BUILTIN_RESOURCE} not found") from exc
    document = parse_document(_loads_toml(text, origin=BUILTIN_SOURCE), source=BUILTIN_SOURCE)
    if not document.rules:
        raise ConfigError("Bundled rule catalog defines no rules")
    logger.debug(
        "Loaded bundled catalog: %d rules, %d profiles",
        len(document.rules),
        len(document.profiles),
    )
    return document


def _load_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file does not exist: {path}")
    try:
        with path.open("rb") as file_obj:
            return tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def _loads_toml(text: str, *, origin: str) -> dict[str, Any]:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {origin}: {exc}") from exc


def _parse_rule_tables(value: Any, *, origin: str) -> dict[str, RuleDefinition]:
    rules: dict[str, RuleDefinition] = {}
    for index, table in enumerate(_as_table_list(value, f"{origin}: rule")):
        field_name = f"{origin}: rule[{index}]"
        rule_id = _as_id(table.get("id"), f"{field_name}.id")
        if rule_id in rules:
            raise ConfigError(f"{origin}: duplicate rule id '{rule_id}'")
        rules[rule_id] = RuleDefinition(
            rule_id=rule_id,
            default_parameters=_as_parameter_table(
                table.get("parameters"), f"{field_name}.parameters"
            ),
            name=_as_optional_str(table.get("name"), f"{field_name}.name"),
            category=_as_optional_str(table.get("category"), f"{field_name}.category"),
            description=_as_optional_str(table.get("description"), f"{field_name}.description"),
        )
    return rules


def _parse_profile_tables(value: Any, *, origin: str) -> dict[str, ProfileDefinition]:
    profiles: dict[str, ProfileDefinition] = {}
    for index, table in enumerate(_as_table_list(value, f"{origin}: profile")):
        field_name = f"{origin}: profile[{index}]"
        profile_id = _as_id(table.get("id"), f"{field_name}.id")
        if profile_id in profiles:
            raise ConfigError(f"{origin}: duplicate profile id '{profile_id}'")

        extends = table.get("extends")
        if extends is not None:
            extends = _as_id(extends, f"{field_name}.extends")

        overrides: list[ParameterOverride] = []
        for position, item in enumerate(
            _as_table_list(table.get("override"), f"{field_name}.override")
        ):
            item_name = f"{field_name}.override[{position}]"
            overrides.append(
                ParameterOverride(
                    rule_id=_as_id(item.get("rule"), f"{item_name}.rule"),
                    param=_as_id(item.get("param"), f"{item_name}.param"),
                    value=_as_parameter_value(item.get("value"), f"{item_name}.value"),
                )
            )

        profiles[profile_id] = ProfileDefinition(
            profile_id=profile_id,
            extends=extends,
            includes=tuple(_as_id_list(table.get("include"), f"{field_name}.include")),
            excludes=tuple(_as_id_list(table.get("exclude"), f"{field_name}.exclude")),
            overrides=tuple(overrides),
            description=_as_optional_str(table.get("description"), f"{field_name}.description"),
        )
    return profiles


def _as_table_list(value: Any, field_name: str) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of tables")
    output: list[dict[str, Any]] = []
    for item in value:
        if not isinstance(item, dict):
            raise ConfigError(f"{field_name} must be a list of tables")
        output.append(item)
    return output


def _as_id(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{field_name} must be a non-empty string")
    return value.strip()


def _as_id_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    return [_as_id(item, field_name) for item in value]


def _as_optional_str(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"{field_name} must be a string")
    return value


def _as_parameter_table(value: Any, field_name: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{field_name} must be a table/object")
    return {
        _as_id(key, f"{field_name} key"): _as_parameter_value(item, f"{field_name}.{key}")
        for key, item in value.items()
    }


def _as_parameter_value(value: Any, field_name: str) -> str:
    # bool is checked first because it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    raise ConfigError(f"{field_name} must be a string, number or boolean")
