"""Output rendering."""

from __future__ import annotations

import json
from collections import Counter
from datetime import UTC, datetime
from typing import Any

import click

from service_sentinel import __version__
from service_sentinel.analysis import AnalysisResult
from service_sentinel.findings import Finding

CATEGORY_COLORS = {
    "Security": "red",
    "Persistence Performance": "yellow",
    "Thread Safety": "magenta",
    "Resilience": "yellow",
}


def render_human(result: AnalysisResult) -> str:
    """Render findings grouped by file with a colorized summary line."""
    count = len(result.findings)
    color = "green" if count == 0 else "red"
    lines: list[str] = [
        click.style(
            f"{count} finding(s) in {len(result.files_analyzed)} file(s) "
            f"(profile: {result.config.profile_id})",
            fg=color,
            bold=True,
        )
    ]
    if result.unknown_profile:
        lines.append(
            click.style(
                f"Profile '{result.unknown_profile}' not found; no rules were run.", fg="yellow"
            )
        )

    current_file: str | None = None
    for finding in _ordered(result.findings):
        if finding.file != current_file:
            current_file = finding.file
            lines.append(click.style(current_file, bold=True))
        location = f"line {finding.line}" if finding.line else "-"
        category = click.style(
            finding.category, fg=CATEGORY_COLORS.get(finding.category, "cyan")
        )
        lines.append(f"  {location}: [{finding.rule_id}] {finding.reason} ({category})")
        lines.append(f"     suggestion: {finding.suggestion}")

    if result.findings:
        by_category = Counter(finding.category for finding in result.findings)
        lines.append(click.style("By category:", bold=True))
        for category, total in sorted(by_category.items()):
            lines.append(f"- {category}: {total}")

    if result.skipped_files:
        lines.append(click.style("Skipped (parse errors):", bold=True))
        lines.extend(f"- {path}" for path in result.skipped_files)
    return "\n".join(lines)


def render_json(result: AnalysisResult) -> str:
    """Render stable JSON output for CI and automation."""
    return json.dumps(build_json_payload(result), sort_keys=True)


def build_json_payload(result: AnalysisResult) -> dict[str, Any]:
    payload = result.to_dict()
    payload["findings"] = [finding.to_dict() for finding in _ordered(result.findings)]
    payload["meta"] = {
        "generated_at": datetime.now(tz=UTC)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z"),
        "version": __version__,
    }
    return payload


def _ordered(findings: list[Finding]) -> list[Finding]:
    return sorted(findings, key=lambda item: (item.file, item.line, item.rule_id, item.reason))
