"""Caller override layer tests."""

from __future__ import annotations

import pytest

from service_sentinel.catalog import ConfigError, ParameterOverride, load_builtin_document
from service_sentinel.overrides import (
    HARDCODED_DEFAULTS,
    apply_caller_overrides,
    apply_override,
    apply_overrides,
    parse_assignment,
)
from service_sentinel.profiles import resolve_profile
from tests.helpers_source import document


def _strict():
    builtin = document(
        """
        [[rule]]
        id = "ARCH-003"
        parameters = { maxDependencies = 7 }

        [[profile]]
        id = "standard"
        include = ["ARCH-003"]

        [[profile]]
        id = "strict"
        extends = "standard"
        override = [{ rule = "ARCH-003", param = "maxDependencies", value = 3 }]
        """
    )
    return resolve_profile("strict", builtin)


def test_caller_override_beats_profile_value() -> None:
    config = apply_override(_strict(), "ARCH-003", "maxDependencies", "10")

    assert config.parameter("ARCH-003", "maxDependencies") == "10"
    assert config.active_rules == frozenset({"ARCH-003"})
    assert config.profile_id == "strict"


def test_apply_override_leaves_input_untouched() -> None:
    original = _strict()

    updated = apply_override(original, "NEW-1", "flag", "on")

    assert original.parameter("NEW-1", "flag") is None
    assert original.parameter("ARCH-003", "maxDependencies") == "3"
    assert updated.parameter("NEW-1", "flag") == "on"
    assert not updated.is_active("NEW-1")


def test_apply_overrides_later_assignment_wins() -> None:
    config = apply_overrides(
        _strict(),
        [
            ParameterOverride("ARCH-003", "maxDependencies", "4"),
            ParameterOverride("ARCH-003", "maxDependencies", "9"),
        ],
    )

    assert config.parameter("ARCH-003", "maxDependencies") == "9"


def test_caller_value_equal_to_hardcoded_default_is_skipped() -> None:
    config = resolve_profile("strict", load_builtin_document())
    default = HARDCODED_DEFAULTS[("ARCH-003", "maxDependencies")]

    updated = apply_caller_overrides(
        config, [ParameterOverride("ARCH-003", "maxDependencies", default)]
    )

    # indistinguishable from "not set", so the profile value survives
    assert updated.parameter("ARCH-003", "maxDependencies") == "5"


def test_caller_value_different_from_default_is_applied() -> None:
    config = resolve_profile("strict", load_builtin_document())

    updated = apply_caller_overrides(
        config,
        [
            ParameterOverride("ARCH-003", "maxDependencies", "12"),
            ParameterOverride("SEC-001", "pattern", ".*pin.*"),
        ],
    )

    assert updated.parameter("ARCH-003", "maxDependencies") == "12"
    assert updated.parameter("SEC-001", "pattern") == ".*pin.*"


def test_caller_values_without_a_default_always_apply() -> None:
    updated = apply_caller_overrides(
        _strict(), [ParameterOverride("REST-002", "versionPattern", "^/api/v1")]
    )

    assert updated.parameter("REST-002", "versionPattern") == "^/api/v1"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("ARCH-003.maxDependencies=10", ParameterOverride("ARCH-003", "maxDependencies", "10")),
        (" SEC-001.pattern = .*key.* ", ParameterOverride("SEC-001", "pattern", ".*key.*")),
        ("CONF-001.keys=a=b", ParameterOverride("CONF-001", "keys", "a=b")),
        ("X.Y.param=1", ParameterOverride("X.Y", "param", "1")),
    ],
)
def test_parse_assignment(text: str, expected: ParameterOverride) -> None:
    assert parse_assignment(text) == expected


@pytest.mark.parametrize("text", ["ARCH-003", "ARCH-003=7", ".param=1", "ARCH-003.=1"])
def test_parse_assignment_rejects_malformed_text(text: str) -> None:
    with pytest.raises(ConfigError, match="RULE.param=value"):
        parse_assignment(text)
