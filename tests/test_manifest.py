"""Project manifest loading tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from service_sentinel.manifest import (
    Requirement,
    compare_versions,
    load_manifest,
    parse_requirement,
)
from service_sentinel.source import ParseError
from tests.helpers_source import write_file


def test_no_manifest_files_means_no_manifest(tmp_path: Path) -> None:
    write_file(tmp_path, "app/main.py", "")

    assert load_manifest(tmp_path) is None


def test_pyproject_dependencies_and_extras(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        "pyproject.toml",
        """
        [build-system]
        requires = ["hatchling"]

        [project]
        name = "orders"
        dependencies = [
            "Django>=3.2,<4",
            "requests[socks] (>=2.31)",
            "uvloop; sys_platform != 'win32'",
        ]

        [project.optional-dependencies]
        admin = ["Flask_Admin==1.6"]
        """,
    )

    manifest = load_manifest(tmp_path)

    assert manifest is not None
    assert manifest.has_pyproject and manifest.has_build_system
    assert [(item.name, item.specifier, item.line) for item in manifest.requirements] == [
        ("django", ">=3.2,<4", 8),
        ("requests", ">=2.31", 9),
        ("uvloop", "", 10),
        ("flask-admin", "==1.6", 14),
    ]
    assert manifest.origin == "pyproject.toml"


def test_poetry_dependencies_skip_python(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        "pyproject.toml",
        """
        [tool.poetry.dependencies]
        python = "^3.11"
        fastapi = "^0.95"
        sqlalchemy = { version = "~1.4", extras = ["asyncio"] }
        httpx = "*"
        """,
    )

    manifest = load_manifest(tmp_path)

    assert manifest is not None
    assert not manifest.has_build_system
    assert [(item.name, item.specifier) for item in manifest.requirements] == [
        ("fastapi", "^0.95"),
        ("sqlalchemy", "~1.4"),
        ("httpx", ""),
    ]


def test_requirements_file_lines(tmp_path: Path) -> None:
    write_file(
        tmp_path,
        "requirements.txt",
        """
        # pinned
        -r base.txt
        flask==2.0.3  # legacy
        gunicorn
        """,
    )

    manifest = load_manifest(tmp_path)

    assert manifest is not None
    assert not manifest.has_pyproject
    assert [(item.name, item.line) for item in manifest.find("Flask")] == [("flask", 4)]
    assert [item.name for item in manifest.requirements] == ["flask", "gunicorn"]
    assert manifest.origin == "requirements.txt"


def test_malformed_pyproject_raises_parse_error(tmp_path: Path) -> None:
    write_file(tmp_path, "pyproject.toml", "[project\nname = 'x'\n")

    with pytest.raises(ParseError, match="pyproject.toml"):
        load_manifest(tmp_path)


@pytest.mark.parametrize(
    ("specifier", "lower", "upper"),
    [
        (">=3.2,<4", (3, 2), ("<", (4,))),
        ("==1.6.1", (1, 6, 1), None),
        ("^0.95", (0, 95), None),
        ("<=2.0", None, ("<=", (2, 0))),
        ("", None, None),
        ("!=1.0", None, None),
    ],
)
def test_requirement_bounds(
    specifier: str,
    lower: tuple[int, ...] | None,
    upper: tuple[str, tuple[int, ...]] | None,
) -> None:
    requirement = Requirement(name="pkg", specifier=specifier, file="requirements.txt")

    assert requirement.lower_bound() == lower
    assert requirement.upper_bound() == upper


def test_parse_requirement_drops_direct_references() -> None:
    requirement = parse_requirement("lib @ https://example.invalid/lib.zip", "pyproject.toml")

    assert requirement == Requirement(name="lib", specifier="", file="pyproject.toml")


def test_compare_versions_pads_missing_components() -> None:
    assert compare_versions((2,), (2, 0, 0)) == 0
    assert compare_versions((1, 9), (2, 0)) == -1
    assert compare_versions((4, 2, 1), (4, 2)) == 1
