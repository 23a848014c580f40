from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from histomerge.domain.model import BatchStatus, MilestoneEffect, ReviewItem, ReviewReason
from histomerge.domain.pipeline import BatchReport, EntityCounters, EntityOutcome
from histomerge.ui import cli as cli_module


def _report(status: BatchStatus) -> BatchReport:
    return BatchReport(
        batch_id="b1",
        outcomes={
            "customer": EntityOutcome(
                entity_type="customer",
                status=status,
                counters=EntityCounters(records_read=4),
                error=None if status is BatchStatus.SUCCEEDED else "boom",
            )
        },
    )


def test_run_passes_arguments_through(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_run(**kwargs: object) -> BatchReport:
        captured.update(kwargs)
        return _report(BatchStatus.SUCCEEDED)

    monkeypatch.setattr(cli_module, "run_batch_from_files", fake_run)

    cli_module.main(
        [
            "run",
            "--config",
            "engine.toml",
            "--input",
            "records.jsonl",
            "--batch-id",
            "b1",
            "--batch-time",
            "2024-01-02T03:00:00+03:00",
            "--max-workers",
            "4",
        ]
    )

    assert captured == {
        "config_path": Path("engine.toml"),
        "input_path": Path("records.jsonl"),
        "batch_id": "b1",
        "batch_time": datetime(2024, 1, 2, 0, 0, tzinfo=UTC),
        "max_workers": 4,
    }


def test_run_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_run(**kwargs: object) -> BatchReport:
        captured.update(kwargs)
        return _report(BatchStatus.SUCCEEDED)

    monkeypatch.setattr(cli_module, "run_batch_from_files", fake_run)

    cli_module.main(["run", "--input", "records.jsonl", "--batch-id", "b1"])

    assert captured["config_path"] is None
    assert captured["batch_time"] is None
    assert captured["max_workers"] is None


def test_failed_entity_type_exits_with_one(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli_module, "run_batch_from_files", lambda **_: _report(BatchStatus.FAILED)
    )

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["run", "--input", "records.jsonl", "--batch-id", "b1"])

    assert excinfo.value.code == 1


def test_unexpected_error_exits_with_one(monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(**_: object) -> BatchReport:
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(cli_module, "run_batch_from_files", explode)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["run", "--input", "records.jsonl", "--batch-id", "b1"])

    assert excinfo.value.code == 1


@pytest.mark.parametrize(
    "argv",
    [
        ["run", "--input", "records.jsonl", "--batch-id", "b1", "--max-workers", "0"],
        ["run", "--input", "records.jsonl", "--batch-id", "b1", "--batch-time", "soon"],
        ["as-of", "--entity-type", "customer", "--master-id", "K1", "--at", "not-a-date"],
        [
            "milestone",
            "--process-type",
            "order",
            "--process-id",
            "O-1",
            "--name",
            "placed",
            "--at",
            "2024-01-01T06:00:00Z",
            "--payload",
            "[1, 2]",
        ],
    ],
)
def test_invalid_options_exit_with_two(argv: list[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(argv)

    assert excinfo.value.code == 2


def test_as_of_without_a_version_exits_with_one(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_as_of(**kwargs: object) -> None:
        captured.update(kwargs)

    monkeypatch.setattr(cli_module, "history_as_of", fake_as_of)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(
            ["as-of", "--entity-type", "customer", "--master-id", "K1", "--at", "2024-01-01"]
        )

    assert excinfo.value.code == 1
    assert captured == {
        "entity_type": "customer",
        "master_id": "K1",
        "at": datetime(2024, 1, 1, tzinfo=UTC),
    }


def test_verify_reports_problems(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli_module,
        "verify_entity_history",
        lambda **_: {"K1": ["2 current versions"]},
    )

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["verify", "--entity-type", "customer"])

    assert excinfo.value.code == 1


def test_milestone_parses_payload_and_defaults_batch_id(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_record(**kwargs: object) -> MilestoneEffect:
        captured.update(kwargs)
        return MilestoneEffect.CREATED

    monkeypatch.setattr(cli_module, "record_milestone", fake_record)
    monkeypatch.setattr(
        cli_module, "_utcnow", lambda: datetime(2024, 3, 4, 5, 6, 7, tzinfo=UTC)
    )

    cli_module.main(
        [
            "milestone",
            "--process-type",
            "order",
            "--process-id",
            "O-1",
            "--name",
            "assigned",
            "--at",
            "2024-01-01T09:00:00Z",
            "--payload",
            '{"agent": "kim"}',
        ]
    )

    assert captured["milestone_name"] == "assigned"
    assert captured["at"] == datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    assert captured["payload"] == {"agent": "kim"}
    assert captured["batch_id"] == "manual-20240304T050607"
    assert captured["config_path"] is None


def test_reviews_filters_by_batch(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_reviews(**kwargs: object) -> list[ReviewItem]:
        captured.update(kwargs)
        return [
            ReviewItem(
                entity_type="customer",
                master_id="K1",
                reason=ReviewReason.KEY_COLLISION_SUSPECTED,
                batch_id="b1",
            )
        ]

    monkeypatch.setattr(cli_module, "pending_reviews", fake_reviews)

    cli_module.main(["reviews", "--batch-id", "b1"])

    assert captured == {"batch_id": "b1"}
