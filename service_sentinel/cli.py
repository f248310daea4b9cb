"""CLI entrypoint for service-sentinel."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from service_sentinel import __version__
from service_sentinel.analysis import analyze_project
from service_sentinel.catalog import ConfigError, ParameterOverride, load_builtin_document
from service_sentinel.config import AppConfig, default_config_template, load_app_config
from service_sentinel.output import render_human, render_json
from service_sentinel.overrides import (
    HARDCODED_DEFAULTS,
    apply_overrides,
    parse_assignment,
)
from service_sentinel.profiles import ResolvedConfiguration, list_profiles, resolve_profile

app = typer.Typer(
    name="service-sentinel",
    no_args_is_help=True,
    help="Audit Python web-service code against configurable rule profiles.",
)

DEFAULT_MAX_DEPENDENCIES = int(HARDCODED_DEFAULTS[("ARCH-003", "maxDependencies")])
DEFAULT_SECRET_PATTERN = HARDCODED_DEFAULTS[("SEC-001", "pattern")]


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log debug output to stderr.")
    ] = False,
) -> None:
    """Root command callback."""
    _ = version
    _configure_logging(verbose)


@app.command("audit")
def audit_command(
    root: Annotated[Path, typer.Option(help="Project root to analyze.")] = Path("."),
    profile: Annotated[str | None, typer.Option(help="Profile id to run.")] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    set_values: Annotated[
        list[str] | None,
        typer.Option("--set", help="Parameter override RULE.param=value (repeatable)."),
    ] = None,
    max_dependencies: Annotated[
        int, typer.Option("--max-dependencies", help="ARCH-003 dependency limit.")
    ] = DEFAULT_MAX_DEPENDENCIES,
    secret_pattern: Annotated[
        str, typer.Option("--secret-pattern", help="SEC-001 secret name pattern.")
    ] = DEFAULT_SECRET_PATTERN,
    format: Annotated[
        str | None, typer.Option(help="Output format: human|json.", show_default="human")
    ] = None,
    jobs: Annotated[int, typer.Option(min=1, help="Worker threads for parsing.")] = 1,
    fail_on_findings: Annotated[
        bool | None,
        typer.Option(
            "--fail-on-findings/--no-fail-on-findings",
            help="Exit nonzero when any finding is reported.",
        ),
    ] = None,
    include: Annotated[list[str] | None, typer.Option(help="Include glob pattern.")] = None,
    exclude: Annotated[list[str] | None, typer.Option(help="Exclude glob pattern.")] = None,
) -> None:
    """Analyze a project and report findings."""
    app_config = _load_config_or_raise(root, config_file)
    output_format = _format_or_raise(format or app_config.format)
    overrides = _parse_assignments_or_raise(set_values)
    caller_values = [
        ParameterOverride("ARCH-003", "maxDependencies", str(max_dependencies)),
        ParameterOverride("SEC-001", "pattern", secret_pattern),
    ]

    try:
        result = analyze_project(
            root,
            profile_id=profile,
            overrides=overrides,
            caller_values=caller_values,
            jobs=jobs,
            app_config=app_config,
            include=include,
            exclude=exclude,
        )
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc

    if output_format == "json":
        typer.echo(render_json(result))
    else:
        typer.echo(render_human(result))

    should_fail = fail_on_findings if fail_on_findings is not None else app_config.fail_on_findings
    if should_fail and result.findings:
        raise typer.Exit(code=1)


@app.command("rules")
def rules_command(
    root: Annotated[Path, typer.Option(help="Project root.")] = Path("."),
    profile: Annotated[str | None, typer.Option(help="Profile id to resolve.")] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """List catalog rules with their active state and effective parameters."""
    output_format = _format_or_raise(format)
    app_config = _load_config_or_raise(root, config_file)
    resolved = _resolve_or_raise(app_config, profile)
    catalog = load_builtin_document().rules

    if output_format == "json":
        payload = {
            "profile": resolved.profile_id,
            "rules": [
                {
                    **rule.to_dict(),
                    "active": resolved.is_active(rule_id),
                    "parameters": dict(sorted(resolved.parameters_for(rule_id).items())),
                }
                for rule_id, rule in catalog.items()
            ],
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [f"Rules for profile '{resolved.profile_id}':"]
    for rule_id, rule in catalog.items():
        status = "active" if resolved.is_active(rule_id) else "inactive"
        lines.append(f"- {rule_id} [{status}] {rule.name}")
        params = resolved.parameters_for(rule_id)
        if params:
            rendered = ", ".join(f"{key}={value}" for key, value in sorted(params.items()))
            lines.append(f"    {rendered}")
    typer.echo("\n".join(lines))


@app.command("profiles")
def profiles_command(
    root: Annotated[Path, typer.Option(help="Project root.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """List visible profiles; user profiles shadow bundled ones."""
    output_format = _format_or_raise(format)
    app_config = _load_config_or_raise(root, config_file)
    profiles = list_profiles(load_builtin_document(), app_config.document)

    if output_format == "json":
        payload = [item.to_dict() for item in profiles]
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Available profiles:"]
    for item in profiles:
        parent = f" (extends {item.extends})" if item.extends else ""
        lines.append(f"- {item.profile_id} [{item.origin}]{parent} - {item.description}")
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    root: Annotated[Path, typer.Option(help="Project root.")] = Path("."),
    profile: Annotated[str | None, typer.Option(help="Profile id to resolve.")] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Show resolved settings, active rules and parameters."""
    output_format = _format_or_raise(format)
    app_config = _load_config_or_raise(root, config_file)
    resolved = _resolve_or_raise(app_config, profile)
    payload = app_config.to_dict()
    payload["resolved"] = resolved.to_dict()

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- profile: {resolved.profile_id}",
        f"- format: {payload['format']}",
        f"- fail_on_findings: {payload['fail_on_findings']}",
        f"- source_dirs: {payload['source_dirs']}",
        f"- property_files: {payload['property_files']}",
        f"- include: {payload['include']}",
        f"- exclude: {payload['exclude']}",
        f"- user_profiles: {payload['user_profiles']}",
        f"- active_rules: {sorted(resolved.active_rules)}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".service-sentinel.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter project config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    root: Annotated[Path, typer.Option(help="Project root.")] = Path("."),
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config TOML file to validate."),
    ] = Path(".service-sentinel.toml"),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Validate a config file: every profile must resolve and overrides must parse."""
    output_format = _format_or_raise(format)
    app_config = _load_config_or_raise(root, config_file)
    builtin = load_builtin_document()
    user_profiles = sorted(app_config.document.profiles) if app_config.document else []
    try:
        for profile_id in user_profiles:
            resolve_profile(profile_id, builtin, app_config.document)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.profile") from exc
    resolved = _resolve_or_raise(app_config, None)

    payload = {
        "ok": True,
        "source": app_config.source,
        "profile": resolved.profile_id,
        "user_profiles": user_profiles,
        "active_rules": sorted(resolved.active_rules),
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(
        "\n".join(
            [
                "Config is valid.",
                f"- source: {payload['source']}",
                f"- profile: {payload['profile']}",
                f"- user_profiles: {payload['user_profiles']}",
                f"- active_rules: {payload['active_rules']}",
            ]
        )
    )


def main() -> None:
    """Console script entrypoint."""
    app()


def _configure_logging(verbose: bool) -> None:
    """Send package log records to stderr, replacing any earlier handler."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logger = logging.getLogger("service_sentinel")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _format_or_raise(value: str) -> str:
    output_format = value.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")
    return output_format


def _load_config_or_raise(root: Path, config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(root, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _parse_assignments_or_raise(values: list[str] | None) -> list[ParameterOverride]:
    try:
        return [parse_assignment(value) for value in values or []]
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--set") from exc


def _resolve_or_raise(app_config: AppConfig, profile: str | None) -> ResolvedConfiguration:
    """Resolve strictly: unlike ``audit``, an unknown profile is an error here."""
    profile_id = profile or app_config.profile
    try:
        resolved = resolve_profile(profile_id, load_builtin_document(), app_config.document)
        return apply_overrides(resolved, [parse_assignment(item) for item in app_config.overrides])
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--profile") from exc
