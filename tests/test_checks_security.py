"""Security check tests."""

from __future__ import annotations

import pytest

from service_sentinel.catalog import ConfigError
from service_sentinel.checks.security import (
    HardcodedSecretCheck,
    PermissiveCorsCheck,
    PropertySecretCheck,
)
from service_sentinel.source import PropertySet
from tests.helpers_source import run_check


def test_hardcoded_secret_matches_assignment_names() -> None:
    findings = run_check(
        HardcodedSecretCheck(),
        """
        DB_PASSWORD = "hunter2"
        api_key: str = "abc123"
        TOKEN = ""
        secret_from_env = os.environ["SECRET"]
        timeout = "30"

        class Client:
            def __init__(self):
                self.ApiKey = "inline"
        """,
    )

    assert [item.line for item in findings] == [2, 3, 10]
    assert findings[0].reason == "Potential Hardcoded Secret"
    assert "'DB_PASSWORD'" in findings[0].suggestion
    assert ".*(password|passwd|secret|api_?key|token).*" in findings[0].suggestion


def test_hardcoded_secret_uses_configured_pattern() -> None:
    code = """
    password = "a"
    pin_code = "1234"
    """

    findings = run_check(HardcodedSecretCheck(), code, {"pattern": ".*pin.*"})

    assert [item.line for item in findings] == [3]


def test_invalid_secret_pattern_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="SEC-001.pattern"):
        HardcodedSecretCheck().validate({"pattern": "[unclosed"})


def test_property_secret_skips_placeholders_and_empty_values() -> None:
    properties = PropertySet(
        {
            "db.password": "s3cret",
            "api.token": "${API_TOKEN}",
            "mail.password": "",
            "app.name": "orders",
        },
        origin="application.properties",
    )

    findings = PropertySecretCheck().run(None, properties, {})

    assert len(findings) == 1
    finding = findings[0]
    assert finding.reason == "Hardcoded Secret in properties (db.password)"
    assert finding.file == "application.properties"
    assert finding.line == 0
    assert finding.rule_id == "SEC-002"


def test_property_secrets_are_distinct_findings_per_key() -> None:
    properties = PropertySet({"DB_PASSWORD": "x", "JWT_SECRET": "y"}, origin=".env")

    findings = PropertySecretCheck().run(None, properties, {})

    assert {item.reason for item in findings} == {
        "Hardcoded Secret in properties (DB_PASSWORD)",
        "Hardcoded Secret in properties (JWT_SECRET)",
    }


def test_permissive_cors_variants() -> None:
    findings = run_check(
        PermissiveCorsCheck(),
        """
        app.add_middleware(CORSMiddleware, allow_origins=["*"])
        app.add_middleware(CORSMiddleware, allow_origins=["https://shop.example"])
        CORS(app)
        CORS(app, origins=["https://shop.example"])
        CORS(app, resources={r"/api/*": {"origins": "*"}})
        CORS_ALLOW_ALL_ORIGINS = True
        CORS_ALLOWED_ORIGINS = ["https://shop.example"]
        """,
    )

    assert sorted(item.line for item in findings) == [2, 4, 7]
    assert all(item.reason == "Insecure CORS policy" for item in findings)
