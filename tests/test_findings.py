"""Finding sink tests."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from service_sentinel.findings import Finding, FindingSink


def _finding(file: str = "a.py", line: int = 3, reason: str = "Fat Component") -> Finding:
    return Finding(
        file=file,
        line=line,
        category="Architecture",
        reason=reason,
        suggestion="Split it.",
        rule_id="ARCH-003",
    )


def test_identical_key_is_stored_once() -> None:
    sink = FindingSink()

    assert sink.add(_finding()) is True
    assert sink.add(_finding()) is False
    assert len(sink) == 1


def test_key_ignores_category_suggestion_and_rule_id() -> None:
    sink = FindingSink()
    sink.add(_finding())

    variant = Finding(
        file="a.py",
        line=3,
        category="Other",
        reason="Fat Component",
        suggestion="Something else.",
        rule_id="ARCH-999",
    )

    assert sink.add(variant) is False
    assert sink.findings() == [_finding()]


def test_any_key_field_difference_keeps_both() -> None:
    for other in (_finding(file="b.py"), _finding(line=4), _finding(reason="Field Injection")):
        sink = FindingSink()
        sink.add(_finding())
        assert sink.add(other) is True
        assert len(sink) == 2


def test_insertion_order_is_preserved_and_drain_resets() -> None:
    sink = FindingSink()
    added = sink.extend([_finding(line=9), _finding(line=1), _finding(line=9), _finding(line=5)])

    assert added == 3
    assert [item.line for item in sink] == [9, 1, 5]
    assert [item.line for item in sink.drain()] == [9, 1, 5]
    assert len(sink) == 0
    assert sink.add(_finding(line=9)) is True


def test_concurrent_adds_keep_one_copy_per_key() -> None:
    sink = FindingSink()
    batch = [_finding(line=line) for line in range(100)]

    with ThreadPoolExecutor(max_workers=8) as executor:
        totals = list(executor.map(lambda _: sink.extend(batch), range(8)))

    assert sum(totals) == 100
    assert len(sink) == 100
