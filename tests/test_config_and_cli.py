"""Config loading and CLI command tests."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from service_sentinel import __version__
from service_sentinel.catalog import ConfigError
from service_sentinel.cli import app
from service_sentinel.config import DEFAULT_EXCLUDES, default_config_template, load_app_config
from tests.helpers_source import write_file

runner = CliRunner()

FAT_CLASS = """
class Fat:
    def __init__(self, a, b, c, d, e, f, g, h):
        pass
"""


def test_load_app_config_defaults_without_files(tmp_path: Path) -> None:
    config = load_app_config(tmp_path)

    assert config.profile == "standard"
    assert config.format == "human"
    assert config.source_dirs == ["."]
    assert config.property_files == ["application.properties", ".env"]
    assert config.exclude == DEFAULT_EXCLUDES
    assert config.document is None
    assert config.source is None


def test_load_app_config_prefers_dot_file_over_pyproject(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        "pyproject.toml",
        '[tool.service_sentinel]\ndefault_profile = "security"\nformat = "human"\n',
    )
    write_file(
        tmp_path,
        ".service-sentinel.toml",
        """
        default_profile = "strict"
        format = "json"
        fail_on_findings = true
        source_dirs = ["src"]
        include = ["src/**"]
        exclude = []
        """,
    )

    config = load_app_config(tmp_path)

    assert config.profile == "strict"
    assert config.format == "json"
    assert config.fail_on_findings is True
    assert config.source_dirs == ["src"]
    assert config.include == ["src/**"]
    assert config.exclude == []
    assert config.source == str(tmp_path.resolve() / ".service-sentinel.toml")


def test_load_app_config_reads_pyproject_hyphenated_key_with_profiles(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        "pyproject.toml",
        """
        [project]
        name = "orders"

        [tool."service-sentinel"]
        default_profile = "team"

        [[tool."service-sentinel".profile]]
        id = "team"
        extends = "minimal"
        """,
    )

    config = load_app_config(tmp_path)

    assert config.profile == "team"
    assert config.document is not None
    assert config.document.profiles["team"].extends == "minimal"


def test_pyproject_without_tool_section_uses_defaults(tmp_path: Path) -> None:
    write_file(tmp_path, "pyproject.toml", '[project]\nname = "orders"\n')

    assert load_app_config(tmp_path).source is None


@pytest.mark.parametrize(
    "body",
    [
        "fail_on_findings = \"yes\"",
        "source_dirs = \"src\"",
        "default_profile = 3",
        '[[rule]]\nid = "ARCH-003"',
        "format = [",
    ],
)
def test_invalid_config_raises_config_error(tmp_path: Path, body: str) -> None:
    write_file(tmp_path, ".service-sentinel.toml", body + "\n")

    with pytest.raises(ConfigError):
        load_app_config(tmp_path)


def test_explicit_missing_config_path_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="does not exist"):
        load_app_config(tmp_path, Path("missing.toml"))


def test_default_config_template_round_trips(tmp_path: Path) -> None:
    write_file(tmp_path, ".service-sentinel.toml", default_config_template())

    config = load_app_config(tmp_path)

    assert config.profile == "team"
    assert config.document is not None
    assert "team" in config.document.profiles


def test_version_option() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_audit_json_reports_findings(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", FAT_CLASS)

    result = runner.invoke(
        app, ["audit", "--root", str(tmp_path), "--profile", "minimal", "--format", "json"]
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["profile"] == "minimal"
    assert payload["files_analyzed"] == 1
    assert [(item["rule_id"], item["file"], item["line"]) for item in payload["findings"]] == [
        ("ARCH-003", "app/billing.py", 2)
    ]
    assert payload["meta"]["version"] == __version__


def test_audit_fail_on_findings_exit_code(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", FAT_CLASS)

    failing = runner.invoke(
        app, ["audit", "--root", str(tmp_path), "--profile", "minimal", "--fail-on-findings"]
    )
    relaxed = runner.invoke(
        app,
        [
            "audit",
            "--root",
            str(tmp_path),
            "--profile",
            "minimal",
            "--fail-on-findings",
            "--max-dependencies",
            "9",
        ],
    )

    assert failing.exit_code == 1
    assert "Fat Component" in failing.stdout
    assert relaxed.exit_code == 0
    assert "0 finding(s)" in relaxed.stdout


def test_audit_fail_on_findings_from_config(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", FAT_CLASS)
    write_file(
        tmp_path, ".service-sentinel.toml", 'default_profile = "minimal"\nfail_on_findings = true\n'
    )

    from_config = runner.invoke(app, ["audit", "--root", str(tmp_path)])
    overridden = runner.invoke(app, ["audit", "--root", str(tmp_path), "--no-fail-on-findings"])

    assert from_config.exit_code == 1
    assert overridden.exit_code == 0


def test_audit_set_option_applies_last(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", FAT_CLASS)

    result = runner.invoke(
        app,
        [
            "audit",
            "--root",
            str(tmp_path),
            "--profile",
            "minimal",
            "--max-dependencies",
            "3",
            "--set",
            "ARCH-003.maxDependencies=8",
            "--format",
            "json",
        ],
    )

    assert result.exit_code == 0
    assert json.loads(result.stdout)["findings"] == []


def test_audit_rejects_malformed_set_value(tmp_path: Path) -> None:
    result = runner.invoke(app, ["audit", "--root", str(tmp_path), "--set", "nonsense"])

    assert result.exit_code == 2


def test_audit_rejects_non_integer_set_value(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["audit", "--root", str(tmp_path), "--set", "ARCH-003.maxDependencies=3x"]
    )

    assert result.exit_code == 2


def test_audit_rejects_invalid_secret_pattern(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["audit", "--root", str(tmp_path), "--secret-pattern", "(unclosed"]
    )

    assert result.exit_code == 2


def test_audit_unknown_profile_completes_quietly(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", FAT_CLASS)

    result = runner.invoke(
        app, ["audit", "--root", str(tmp_path), "--profile", "ghost", "--fail-on-findings"]
    )

    assert result.exit_code == 0
    assert "Profile 'ghost' not found" in result.stdout


def test_rules_command_json_lists_active_state_and_parameters(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["rules", "--root", str(tmp_path), "--profile", "strict", "--format", "json"]
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    rules = {item["rule_id"]: item for item in payload["rules"]}
    assert len(rules) == 28
    assert rules["ARCH-004"]["active"] is True
    assert rules["ARCH-003"]["parameters"]["maxDependencies"] == "5"
    assert rules["ARCH-003"]["default_parameters"]["maxDependencies"] == "7"


def test_rules_command_unknown_profile_is_bad_parameter(tmp_path: Path) -> None:
    result = runner.invoke(app, ["rules", "--root", str(tmp_path), "--profile", "ghost"])

    assert result.exit_code == 2


def test_profiles_command_shows_user_profiles(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        ".service-sentinel.toml",
        '[[profile]]\nid = "strict"\ninclude = ["SEC-001"]\n',
    )

    result = runner.invoke(app, ["profiles", "--root", str(tmp_path), "--format", "json"])

    assert result.exit_code == 0
    origins = {item["id"]: item["origin"] for item in json.loads(result.stdout)}
    assert origins["strict"] == "user"
    assert origins["standard"] == "builtin"


def test_profiles_command_json_carries_profile_definitions(tmp_path: Path) -> None:
    result = runner.invoke(app, ["profiles", "--root", str(tmp_path), "--format", "json"])

    assert result.exit_code == 0
    profiles = {item["id"]: item for item in json.loads(result.stdout)}
    assert profiles["strict"]["extends"] == "standard"
    assert profiles["strict"]["override"] == [
        {"rule": "ARCH-003", "param": "maxDependencies", "value": "5"}
    ]
    assert profiles["security"]["exclude"] == ["ARCH-003"]
    assert profiles["minimal"]["include"] == ["SEC-001", "SEC-002", "ARCH-003"]


def test_config_command_json_includes_resolved_rules(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        ".service-sentinel.toml",
        'default_profile = "security"\noverrides = ["SEC-001.pattern=.*pin.*"]\n',
    )

    result = runner.invoke(app, ["config", "--root", str(tmp_path), "--format", "json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["profile"] == "security"
    assert payload["resolved"]["active_rules"] == [
        "BUILD-003",
        "CONF-001",
        "RES-001",
        "SEC-001",
        "SEC-002",
        "SEC-003",
    ]
    assert payload["resolved"]["parameters"]["SEC-001"]["pattern"] == ".*pin.*"


def test_config_init_writes_and_refuses_overwrite(tmp_path: Path) -> None:
    out = tmp_path / ".service-sentinel.toml"

    first = runner.invoke(app, ["config-init", "--out", str(out)])
    second = runner.invoke(app, ["config-init", "--out", str(out)])
    forced = runner.invoke(app, ["config-init", "--out", str(out), "--force"])

    assert first.exit_code == 0
    assert out.read_text(encoding="utf-8") == default_config_template()
    assert second.exit_code == 2
    assert forced.exit_code == 0


def test_config_validate_accepts_template(tmp_path: Path) -> None:
    config_path = tmp_path / ".service-sentinel.toml"
    config_path.write_text(default_config_template(), encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "config-validate",
            "--root",
            str(tmp_path),
            "--config",
            str(config_path),
            "--format",
            "json",
        ],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["ok"] is True
    assert payload["user_profiles"] == ["team"]
    assert "ARCH-004" in payload["active_rules"]
    assert "MAINT-001" not in payload["active_rules"]


def test_config_validate_rejects_cycles(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        ".service-sentinel.toml",
        '[[profile]]\nid = "a"\nextends = "b"\n[[profile]]\nid = "b"\nextends = "a"\n',
    )

    result = runner.invoke(app, ["config-validate", "--root", str(tmp_path)])

    assert result.exit_code == 2


def test_verbose_flag_logs_debug_to_stderr(tmp_path: Path) -> None:
    runner.invoke(app, ["--verbose", "profiles", "--root", str(tmp_path)])

    logger = logging.getLogger("service_sentinel")
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
