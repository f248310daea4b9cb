"""Resilience checks: outbound timeouts and unmanaged threads."""

from __future__ import annotations

from collections.abc import Mapping

from service_sentinel.findings import Finding
from service_sentinel.source import (
    PropertySet,
    SourceUnit,
    dotted_name,
    keyword_value,
    line_of,
    split_list,
)

DEFAULT_HTTP_CLIENTS = "requests,httpx"
HTTP_METHODS = {"get", "post", "put", "patch", "delete", "head", "options", "request", "stream"}


class MissingHttpTimeoutCheck:
    """Flags outbound HTTP calls made without a timeout."""

    rule_id = "RES-001"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        clients = set(split_list(parameters.get("clients", DEFAULT_HTTP_CLIENTS)))
        findings: list[Finding] = []
        for call in unit.calls():
            client, _, method = dotted_name(call.func).rpartition(".")
            if client not in clients or method not in HTTP_METHODS:
                continue
            if keyword_value(call, "timeout") is not None:
                continue
            # **kwargs may carry a timeout
            if any(keyword.arg is None for keyword in call.keywords):
                continue
            findings.append(
                Finding(
                    file=unit.path,
                    line=line_of(call),
                    category="Resilience",
                    reason="Missing HTTP timeout",
                    suggestion=(
                        f"{client}.{method}() waits forever on a stalled peer. "
                        "Pass an explicit timeout."
                    ),
                    rule_id=self.rule_id,
                )
            )
        return findings


class ManualThreadCheck:
    """Flags threads started by hand instead of through an executor."""

    rule_id = "RES-002"
    source = "tree"

    def run(
        self,
        unit: SourceUnit | None,
        properties: PropertySet,
        parameters: Mapping[str, str],
    ) -> list[Finding]:
        if unit is None:
            return []
        return [
            Finding(
                file=unit.path,
                line=line_of(call),
                category="Resource Management",
                reason="Manual Thread creation",
                suggestion="Submit work to a managed executor or a task queue.",
                rule_id=self.rule_id,
            )
            for call in unit.calls()
            if dotted_name(call.func) in {"Thread", "threading.Thread"}
        ]
