"""Manifest-sourced checks on declared dependencies and build metadata."""

from __future__ import annotations

from collections.abc import Mapping

from service_sentinel.catalog import ConfigError
from service_sentinel.findings import Finding
from service_sentinel.manifest import (
    PYPROJECT_FILE,
    ProjectManifest,
    Requirement,
    compare_versions,
    normalize_name,
    parse_version,
)
from service_sentinel.source import split_list

CATEGORY = "Build"
DEFAULT_MINIMUM_VERSIONS = "django:4.2,fastapi:0.100,flask:2.3,sqlalchemy:2.0,pydantic:2.0"
DEFAULT_CRUD_PACKAGES = (
    "fastapi-crudrouter,flask-restless,flask-restless-ng,flask-admin,sqladmin,starlette-admin"
)


class MissingBuildSystemCheck:
    """Flags projects without a ``[build-system]`` table."""

    rule_id = "BUILD-001"
    source = "project"

    def run(self, manifest: ProjectManifest, parameters: Mapping[str, str]) -> list[Finding]:
        if manifest.has_build_system:
            return []
        if manifest.has_pyproject:
            suggestion = "Declare [build-system] so installs do not fall back to legacy setup."
        else:
            suggestion = "Add a pyproject.toml with a [build-system] table to package the service."
        return [
            Finding(
                file=PYPROJECT_FILE,
                line=0,
                category=CATEGORY,
                reason="Missing build system",
                suggestion=suggestion,
                rule_id=self.rule_id,
            )
        ]


class OutdatedFrameworkCheck:
    """Flags framework dependencies pinned below a supported major line."""

    rule_id = "BUILD-002"
    source = "project"

    def validate(self, parameters: Mapping[str, str]) -> None:
        minimum_versions(parameters, self.rule_id)

    def run(self, manifest: ProjectManifest, parameters: Mapping[str, str]) -> list[Finding]:
        minimums = minimum_versions(parameters, self.rule_id)
        findings: list[Finding] = []
        for requirement in manifest.requirements:
            minimum = minimums.get(requirement.name)
            if minimum is None or not is_older_than(requirement, minimum):
                continue
            wanted = ".".join(str(part) for part in minimum)
            findings.append(
                Finding(
                    file=requirement.file,
                    line=requirement.line,
                    category=CATEGORY,
                    reason=f"Old {requirement.name} version",
                    suggestion=(
                        f"'{requirement.name} {requirement.specifier}' allows releases "
                        f"older than {wanted}. Upgrade to {wanted} or later."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class ExposedCrudEndpointsCheck:
    """Flags packages that publish models as CRUD endpoints or admin screens."""

    rule_id = "BUILD-003"
    source = "project"

    def run(self, manifest: ProjectManifest, parameters: Mapping[str, str]) -> list[Finding]:
        packages = {
            normalize_name(name)
            for name in split_list(parameters.get("packages", DEFAULT_CRUD_PACKAGES))
        }
        return [
            Finding(
                file=requirement.file,
                line=requirement.line,
                category="Security",
                reason="Exposed auto-generated CRUD endpoints",
                suggestion=(
                    f"'{requirement.name}' exposes persistence models over HTTP. "
                    "Write explicit routes or put the generated ones behind authentication."
                ),
                rule_id=self.rule_id,
            )
            for requirement in manifest.requirements
            if requirement.name in packages
        ]


def minimum_versions(parameters: Mapping[str, str], rule_id: str) -> dict[str, tuple[int, ...]]:
    """Parse ``name:version`` pairs, raising ``ConfigError`` on malformed entries."""
    minimums: dict[str, tuple[int, ...]] = {}
    for entry in split_list(parameters.get("minimumVersions", DEFAULT_MINIMUM_VERSIONS)):
        name, sep, raw_version = entry.partition(":")
        version = parse_version(raw_version.strip())
        if not sep or not name.strip() or not version:
            raise ConfigError(
                f"{rule_id}.minimumVersions entry '{entry}' must look like package:version"
            )
        minimums[normalize_name(name.strip())] = version
    return minimums


def is_older_than(requirement: Requirement, minimum: tuple[int, ...]) -> bool:
    """True when the specifier admits releases below ``minimum``.

    A lower bound decides when present; otherwise an upper bound at or below
    the minimum does. Unconstrained requirements are never flagged.
    """
    lower = requirement.lower_bound()
    if lower is not None:
        return compare_versions(lower, minimum) < 0
    upper = requirement.upper_bound()
    if upper is None:
        return False
    operator, version = upper
    if operator == "<":
        return compare_versions(version, minimum) <= 0
    return compare_versions(version, minimum) < 0
