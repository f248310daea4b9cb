"""Configuration loading for service-sentinel."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from service_sentinel.catalog import ConfigDocument, ConfigError, parse_document
from service_sentinel.source import DEFAULT_PROPERTIES_FILE

CONFIG_FILENAMES = (".service-sentinel.toml", "service-sentinel.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("service_sentinel", "service-sentinel")
DEFAULT_PROFILE = "standard"
DEFAULT_EXCLUDES = [
    ".git/**",
    ".venv/**",
    "venv/**",
    "**/node_modules/**",
    "**/__pycache__/**",
    "**/migrations/**",
]


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    profile: str = DEFAULT_PROFILE
    format: str = "human"
    fail_on_findings: bool = False
    source_dirs: list[str] = field(default_factory=lambda: ["."])
    property_files: list[str] = field(
        default_factory=lambda: [DEFAULT_PROPERTIES_FILE, ".env"]
    )
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    overrides: list[str] = field(default_factory=list)
    document: ConfigDocument | None = None
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.profile,
            "format": self.format,
            "fail_on_findings": self.fail_on_findings,
            "source_dirs": list(self.source_dirs),
            "property_files": list(self.property_files),
            "include": list(self.include),
            "exclude": list(self.exclude),
            "overrides": list(self.overrides),
            "user_profiles": sorted(self.document.profiles) if self.document else [],
            "source": self.source,
        }


def load_app_config(root: Path, config_path: Path | None = None) -> AppConfig:
    """Load config from explicit path or project-local files with precedence."""
    root = root.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (root / config_path)
        if not resolved.exists():
            raise ConfigError(f"Config file does not exist: {resolved}")
        mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
        return _from_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = root / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return _from_mapping(mapping, source=str(resolved))

    pyproject_path = root / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return _from_mapping(mapping, source=str(pyproject_path))

    return AppConfig()


def default_config_template() -> str:
    """Return a starter config template users can customize."""
    return "\n".join(
        [
            'default_profile = "team"',
            'format = "human"',
            "fail_on_findings = true",
            'source_dirs = ["src"]',
            'property_files = ["application.properties", ".env"]',
            'exclude = ["**/migrations/**", "tests/**"]',
            "# overrides applied after profile resolution, RULE.param=value",
            'overrides = ["REST-002.versionPattern=^/api/v[0-9]+"]',
            "",
            "# Profiles defined here are searched before the bundled ones,",
            "# so a profile named 'standard' replaces the bundled 'standard'.",
            "[[profile]]",
            'id = "team"',
            'extends = "standard"',
            'description = "Team defaults on top of the bundled standard profile."',
            'include = ["ARCH-004", "REST-004"]',
            'exclude = ["MAINT-001"]',
            "override = [",
            '  { rule = "ARCH-003", param = "maxDependencies", value = 6 },',
            '  { rule = "SEC-001", param = "pattern", value = ".*(password|secret|token).*" },',
            "]",
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    if source_path.name == PYPROJECT_FILENAME:
        section = _find_pyproject_tool_section(loaded)
        return section if section is not None else {}

    tool_section = _find_pyproject_tool_section(loaded)
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    raw_format = mapping.get("format", "human")
    format_value = str(raw_format).lower()
    if format_value not in {"human", "json"}:
        format_value = "human"

    document = parse_document(mapping, source=source, allow_rules=False)
    source_dirs = _as_str_list(mapping.get("source_dirs"), "source_dirs")
    property_files = _as_str_list_or_none(mapping.get("property_files"), "property_files")
    exclude = _as_str_list_or_none(mapping.get("exclude"), "exclude")

    return AppConfig(
        profile=_as_str(mapping.get("default_profile", DEFAULT_PROFILE), "default_profile"),
        format=format_value,
        fail_on_findings=_as_bool(mapping.get("fail_on_findings", False), "fail_on_findings"),
        source_dirs=source_dirs or ["."],
        property_files=(
            property_files if property_files is not None else [DEFAULT_PROPERTIES_FILE, ".env"]
        ),
        include=_as_str_list(mapping.get("include"), "include"),
        exclude=exclude if exclude is not None else list(DEFAULT_EXCLUDES),
        overrides=_as_str_list(mapping.get("overrides"), "overrides"),
        document=document if document.profiles else None,
        source=source,
    )


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_str_list_or_none(value: Any, field_name: str) -> list[str] | None:
    if value is None:
        return None
    return _as_str_list(value, field_name)


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{field_name} must be a string")
    return value


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ConfigError(f"{field_name} must be a boolean")
    return raw
