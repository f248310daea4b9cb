"""End-to-end analysis pipeline tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from service_sentinel.analysis import analyze_project, discover_files
from service_sentinel.catalog import ConfigError, ParameterOverride
from tests.helpers_source import write_file

FAT_CLASS = """
class Fat:
    def __init__(self, a, b, c, d, e, f, g, h):
        pass
"""

SIX_DEPENDENCIES = """
class Billing:
    def __init__(self, a, b, c, d, e, f):
        pass
"""


def test_same_violation_in_two_files_is_two_findings(tmp_path: Path) -> None:
    write_file(tmp_path, "pkg/a.py", FAT_CLASS)
    write_file(tmp_path, "pkg/b.py", FAT_CLASS)

    result = analyze_project(tmp_path, profile_id="minimal")

    assert [(item.file, item.line, item.reason) for item in result.findings] == [
        ("pkg/a.py", 2, "Fat Component"),
        ("pkg/b.py", 2, "Fat Component"),
    ]
    assert result.files_analyzed == ["pkg/a.py", "pkg/b.py"]


def test_parse_errors_are_logged_and_skipped(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    write_file(tmp_path, "app/broken.py", "def broken(:\n")
    write_file(tmp_path, "app/good.py", FAT_CLASS)

    with caplog.at_level(logging.WARNING, logger="service_sentinel.analysis"):
        result = analyze_project(tmp_path, profile_id="minimal")

    assert result.skipped_files == ["app/broken.py"]
    assert result.files_analyzed == ["app/good.py"]
    assert [item.file for item in result.findings] == ["app/good.py"]
    assert "app/broken.py" in caplog.text


def test_unknown_profile_is_a_quiet_run(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    write_file(tmp_path, "app/secrets.py", "DB_PASSWORD = 'hunter2'\n")
    write_file(tmp_path, ".env", "DEBUG=true\n")

    with caplog.at_level(logging.WARNING):
        result = analyze_project(tmp_path, profile_id="does-not-exist")

    assert result.findings == []
    assert result.config.active_rules == frozenset()
    assert result.unknown_profile == "does-not-exist"
    assert "does-not-exist" in caplog.text


def test_property_checks_run_without_source_files(tmp_path: Path) -> None:
    write_file(tmp_path, "application.properties", "app.debug=true\ndb.password=plain\n")

    result = analyze_project(tmp_path, profile_id="standard")

    assert result.files_analyzed == []
    assert [item.reason for item in result.findings] == [
        "Debug mode enabled (app.debug)",
        "Hardcoded Secret in properties (db.password)",
    ]
    assert {item.file for item in result.findings} == {"application.properties"}
    assert result.property_origin == "application.properties"


def test_parallel_jobs_match_sequential_order(tmp_path: Path) -> None:
    for index in range(6):
        write_file(tmp_path, f"svc/mod_{index}.py", FAT_CLASS + "\nTOKEN = 'abc'\n")

    sequential = analyze_project(tmp_path, profile_id="minimal", jobs=1)
    parallel = analyze_project(tmp_path, profile_id="minimal", jobs=4)

    assert len(sequential.findings) == 12
    assert parallel.findings == sequential.findings


def test_caller_values_follow_the_default_skip_policy(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", SIX_DEPENDENCIES)

    # strict limits ARCH-003 to 5; passing the hardcoded default leaves it there
    kept = analyze_project(
        tmp_path,
        profile_id="strict",
        caller_values=[ParameterOverride("ARCH-003", "maxDependencies", "7")],
    )
    raised = analyze_project(
        tmp_path,
        profile_id="strict",
        caller_values=[ParameterOverride("ARCH-003", "maxDependencies", "10")],
    )

    assert [item.rule_id for item in kept.findings] == ["ARCH-003"]
    assert raised.findings == []
    assert raised.config.parameter("ARCH-003", "maxDependencies") == "10"


def test_explicit_overrides_apply_last(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", SIX_DEPENDENCIES)
    write_file(
        tmp_path,
        ".service-sentinel.toml",
        """
        default_profile = "minimal"
        overrides = ["ARCH-003.maxDependencies=20"]
        """,
    )

    from_file = analyze_project(tmp_path)
    forced = analyze_project(
        tmp_path, overrides=[ParameterOverride("ARCH-003", "maxDependencies", "2")]
    )

    assert from_file.findings == []
    assert from_file.config.profile_id == "minimal"
    assert [item.reason for item in forced.findings] == ["Fat Component"]


def test_user_profile_from_config_file(tmp_path: Path) -> None:
    write_file(tmp_path, "app/api.py", "import requests\nrequests.get(url)\nTOKEN = 'x'\n")
    write_file(
        tmp_path,
        "service-sentinel.toml",
        """
        default_profile = "resilience"

        [[profile]]
        id = "resilience"
        include = ["RES-001"]
        """,
    )

    result = analyze_project(tmp_path)

    assert [(item.rule_id, item.line) for item in result.findings] == [("RES-001", 2)]


def test_cyclic_user_profiles_abort_the_run(tmp_path: Path) -> None:
    write_file(tmp_path, "app/api.py", FAT_CLASS)
    write_file(
        tmp_path,
        ".service-sentinel.toml",
        """
        [[profile]]
        id = "a"
        extends = "b"

        [[profile]]
        id = "b"
        extends = "a"
        """,
    )

    with pytest.raises(ConfigError, match="cyclic"):
        analyze_project(tmp_path, profile_id="a")


def test_discover_files_applies_source_dirs_and_globs(tmp_path: Path) -> None:
    write_file(tmp_path, "src/app/api.py", "")
    write_file(tmp_path, "src/app/migrations/0001_initial.py", "")
    write_file(tmp_path, "src/app/readme.txt", "")
    write_file(tmp_path, "tests/test_api.py", "")

    files = discover_files(
        tmp_path.resolve(),
        ["src", "src/app"],
        includes=[],
        excludes=["**/migrations/**"],
    )
    included = discover_files(
        tmp_path.resolve(), ["."], includes=["tests/*"], excludes=[]
    )

    root = tmp_path.resolve()
    assert [path.relative_to(root).as_posix() for path in files] == ["src/app/api.py"]
    assert [path.relative_to(root).as_posix() for path in included] == ["tests/test_api.py"]


def test_malformed_numeric_override_aborts_before_any_check(tmp_path: Path) -> None:
    write_file(tmp_path, "app/billing.py", SIX_DEPENDENCIES)

    with pytest.raises(ConfigError, match="ARCH-003.maxDependencies must be an integer"):
        analyze_project(
            tmp_path,
            profile_id="standard",
            overrides=[ParameterOverride("ARCH-003", "maxDependencies", "3x")],
        )


def test_manifest_checks_run_once_per_project(tmp_path: Path) -> None:
    write_file(tmp_path, "app/main.py", "import django\n")
    write_file(
        tmp_path,
        "pyproject.toml",
        """
        [project]
        name = "orders"
        dependencies = ["django>=3.2,<4", "sqladmin"]
        """,
    )

    result = analyze_project(tmp_path, profile_id="standard")

    assert [(item.file, item.line, item.rule_id) for item in result.findings] == [
        ("pyproject.toml", 4, "BUILD-002"),
        ("pyproject.toml", 4, "BUILD-003"),
    ]
    assert result.manifest_origin == "pyproject.toml"
    assert result.to_dict()["manifest_origin"] == "pyproject.toml"


def test_unparseable_manifest_is_skipped(tmp_path: Path) -> None:
    write_file(tmp_path, "requirements.txt", "django==3.2\n")
    write_file(tmp_path, "pyproject.toml", "[project\n")
    write_file(tmp_path, ".service-sentinel.toml", 'default_profile = "security"\n')

    result = analyze_project(tmp_path)

    assert result.findings == []
    assert result.skipped_files == ["pyproject.toml"]
    assert result.manifest_origin is None
