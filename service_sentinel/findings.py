"""Finding model and the per-run deduplicating sink."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Finding:
    """A single diagnostic emitted by a check."""

    file: str
    line: int
    category: str
    reason: str
    suggestion: str
    rule_id: str = ""

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.file, self.reason, self.line)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "category": self.category,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "rule_id": self.rule_id,
        }


class FindingSink:
    """Collects findings for one run, dropping repeats of ``(file, reason, line)``.

    Insertion order is preserved. ``add`` is serialized with a lock so a single
    sink can be fed from several worker threads.
    """

    def __init__(self) -> None:
        self._findings: list[Finding] = []
        self._seen: set[tuple[str, str, int]] = set()
        self._lock = threading.Lock()

    def add(self, finding: Finding) -> bool:
        with self._lock:
            key = finding.key
            if key in self._seen:
                return False
            self._seen.add(key)
            self._findings.append(finding)
            return True

    def extend(self, findings: Iterable[Finding]) -> int:
        added = 0
        for finding in findings:
            if self.add(finding):
                added += 1
        return added

    def findings(self) -> list[Finding]:
        with self._lock:
            return list(self._findings)

    def drain(self) -> list[Finding]:
        """Return every stored finding and reset the sink."""
        with self._lock:
            drained = self._findings
            self._findings = []
            self._seen = set()
            return drained

    def __len__(self) -> int:
        return len(self._findings)

    def __iter__(self) -> Iterator[Finding]:
        return iter(self.findings())
