"""Project analysis pipeline: load documents, resolve the profile, run checks."""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from service_sentinel.catalog import ConfigDocument, ParameterOverride, load_builtin_document
from service_sentinel.checks import default_registry
from service_sentinel.checks.base import CheckRegistry
from service_sentinel.config import AppConfig, load_app_config
from service_sentinel.engine import RuleEngine
from service_sentinel.findings import Finding, FindingSink
from service_sentinel.manifest import ProjectManifest, load_manifest
from service_sentinel.overrides import apply_caller_overrides, apply_overrides, parse_assignment
from service_sentinel.profiles import ResolvedConfiguration, UnknownProfileError, resolve_profile
from service_sentinel.source import ParseError, PropertySet, load_property_set, parse_source

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AnalysisResult:
    """Outcome of one analysis run."""

    findings: list[Finding]
    config: ResolvedConfiguration
    files_analyzed: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    property_origin: str | None = None
    manifest_origin: str | None = None
    missing_rule_ids: list[str] = field(default_factory=list)
    unknown_profile: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.config.profile_id,
            "unknown_profile": self.unknown_profile,
            "active_rules": sorted(self.config.active_rules),
            "files_analyzed": len(self.files_analyzed),
            "skipped_files": list(self.skipped_files),
            "property_origin": self.property_origin,
            "manifest_origin": self.manifest_origin,
            "missing_rule_ids": list(self.missing_rule_ids),
            "findings": [finding.to_dict() for finding in self.findings],
        }


def analyze_project(
    root: Path,
    profile_id: str | None = None,
    config_path: Path | None = None,
    overrides: Sequence[ParameterOverride] = (),
    caller_values: Sequence[ParameterOverride] = (),
    jobs: int = 1,
    registry: CheckRegistry | None = None,
    *,
    app_config: AppConfig | None = None,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> AnalysisResult:
    """Analyze every Python file under ``root`` with the selected profile.

    Config-file overrides are applied first, then ``caller_values`` under the
    caller policy, then explicit ``overrides``. ``ConfigError`` from loading or
    resolution propagates; an unknown top-level profile only logs a warning
    and yields a run with no active rules.
    """
    root = root.resolve()
    if app_config is None:
        app_config = load_app_config(root, config_path)
    builtin = load_builtin_document()
    selected = profile_id or app_config.profile

    config, unknown = _resolve(selected, builtin, app_config.document)
    config = apply_overrides(config, [parse_assignment(item) for item in app_config.overrides])
    config = apply_caller_overrides(config, caller_values)
    config = apply_overrides(config, overrides)

    sink = FindingSink()
    engine = RuleEngine(registry or default_registry(), config, sink)
    properties = load_property_set([root / name for name in app_config.property_files], root)

    analyzed: list[str] = []
    skipped: list[str] = []
    if engine.has_tree_checks:
        files = discover_files(
            root,
            app_config.source_dirs,
            includes=include if include is not None else app_config.include,
            excludes=exclude if exclude is not None else app_config.exclude,
        )
        for path, findings in _run_files(engine, files, root, properties, jobs):
            if findings is None:
                skipped.append(path)
                continue
            analyzed.append(path)
            sink.extend(findings)
    engine.run_properties(properties)
    manifest = _load_manifest(root, skipped) if engine.has_project_checks else None
    engine.run_project(manifest)

    logger.info(
        "Analyzed %d file(s) with profile '%s': %d finding(s), %d skipped",
        len(analyzed),
        selected,
        len(sink),
        len(skipped),
    )
    return AnalysisResult(
        findings=sink.drain(),
        config=config,
        files_analyzed=analyzed,
        skipped_files=skipped,
        property_origin=properties.origin if properties else None,
        manifest_origin=manifest.origin if manifest is not None else None,
        missing_rule_ids=list(engine.missing_rule_ids),
        unknown_profile=unknown,
    )


def discover_files(
    root: Path,
    source_dirs: Iterable[str],
    *,
    includes: list[str],
    excludes: list[str],
) -> list[Path]:
    """Return ``*.py`` files under the source dirs, filtered by glob patterns."""
    seen: set[Path] = set()
    files: list[Path] = []
    for source_dir in source_dirs:
        base = (root / source_dir).resolve()
        if base.is_file():
            candidates = [base] if base.suffix == ".py" else []
        elif base.is_dir():
            candidates = sorted(base.rglob("*.py"))
        else:
            logger.warning("Source directory does not exist: %s", base)
            continue
        for path in candidates:
            if path in seen:
                continue
            seen.add(path)
            relative = (
                path.relative_to(root).as_posix() if path.is_relative_to(root) else path.as_posix()
            )
            if includes and not any(fnmatch.fnmatch(relative, p) for p in includes):
                continue
            if excludes and any(fnmatch.fnmatch(relative, p) for p in excludes):
                continue
            files.append(path)
    return files


def _resolve(
    profile_id: str,
    builtin: ConfigDocument,
    user: ConfigDocument | None,
) -> tuple[ResolvedConfiguration, str | None]:
    try:
        return resolve_profile(profile_id, builtin, user), None
    except UnknownProfileError as exc:
        logger.warning("%s; continuing with no active rules", exc)
        return ResolvedConfiguration(profile_id=profile_id), profile_id


def _load_manifest(root: Path, skipped: list[str]) -> ProjectManifest | None:
    try:
        return load_manifest(root)
    except ParseError as exc:
        logger.warning("Skipping unparseable manifest %s", exc)
        skipped.append(exc.path)
        return None


def _run_files(
    engine: RuleEngine,
    files: list[Path],
    root: Path,
    properties: PropertySet,
    jobs: int,
) -> list[tuple[str, list[Finding] | None]]:
    def process(path: Path) -> tuple[str, list[Finding] | None]:
        try:
            unit = parse_source(path, root)
        except ParseError as exc:
            logger.warning("Skipping unparseable file %s", exc)
            return exc.path, None
        return unit.path, engine.evaluate(unit, properties)

    if jobs <= 1 or len(files) <= 1:
        return [process(path) for path in files]
    with ThreadPoolExecutor(max_workers=jobs) as executor:
        return list(executor.map(process, files))
