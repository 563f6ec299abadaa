"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from structlog.testing import capture_logs

from factories import NOW, make_snapshot
from prescience.cli import build_parser, main
from prescience.config import Settings
from prescience.core.exceptions import (
    PublisherConfigError,
    StorageWriteError,
    UpstreamUnavailableError,
)
from prescience.processing.models import ScanMeta, ScanResult, Tier2Meta, Tier2Result
from prescience.publishing.publisher import PublishResult
from prescience.storage.models import LiveProof, LiveProofs
from prescience.storage.files import save_json
from prescience.tracking.resolution import ResolutionResult


def _pipeline() -> MagicMock:
    pipeline = MagicMock()
    pipeline.close = AsyncMock()
    pipeline.tier2.scan = AsyncMock(
        return_value=Tier2Result(
            meta=Tier2Meta(timestamp=NOW, engine="test", next_scan_in_hours=2)
        )
    )
    pipeline.tier1.scan = AsyncMock(
        return_value=ScanResult(
            scan=[make_snapshot(), make_snapshot(slug="light", scan_depth="lightweight")],
            meta=ScanMeta(engine="test", timestamp=NOW, markets_scanned=2, deep_scanned=1),
        )
    )
    pipeline.resolution.run = AsyncMock(return_value=ResolutionResult(checked=2, resolved=1))
    return pipeline


def _run(
    argv: list[str], settings: Settings, pipeline: MagicMock, capsys: pytest.CaptureFixture[str]
) -> tuple[int, dict]:
    with (
        capture_logs(),
        patch("prescience.cli.setup_logging"),
        patch("prescience.cli.get_settings", return_value=settings),
        patch("prescience.cli.build_pipeline", return_value=pipeline),
    ):
        code = main(argv)
    return code, json.loads(capsys.readouterr().out)


class TestParser:
    def test_requires_command(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_cron_flags_accepted(self) -> None:
        args = build_parser().parse_args(["publish", "--dry", "--commit", "--deploy"])
        assert args.dry and args.commit and args.deploy
        assert args.channel is None

    def test_scan_options(self) -> None:
        args = build_parser().parse_args(["scan", "--limit", "50", "--no-tier2"])
        assert args.limit == 50
        assert args.no_tier2


class TestCommands:
    def test_tier2(self, settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        pipeline = _pipeline()

        code, out = _run(["tier2"], settings, pipeline, capsys)

        assert code == 0
        assert out["engine"] == "test"
        assert out["top"] == []
        pipeline.tier2.scan.assert_awaited_once_with(force=True)
        pipeline.close.assert_awaited_once()

    def test_scan_lists_deep_markets(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        pipeline = _pipeline()

        code, out = _run(["scan", "--limit", "20"], settings, pipeline, capsys)

        assert code == 0
        assert [t["slug"] for t in out["top"]] == ["fed-cut-march"]
        assert out["deep_scanned"] == 1
        pipeline.tier2.scan.assert_awaited_once_with()
        pipeline.tier1.scan.assert_awaited_once_with(limit=20, force=True)

    def test_publish_dry_prints_messages(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        pipeline = _pipeline()
        result = PublishResult(dry_run=True, post_count=1, messages=["🎯 signal"])

        with patch(
            "prescience.cli.run_publish", new_callable=AsyncMock, return_value=result
        ) as mock_publish:
            code, out = _run(
                ["publish", "--dry", "--no-tier2", "--channel", "@test"],
                settings,
                pipeline,
                capsys,
            )

        assert code == 0
        assert out["dry_run"] is True
        assert out["messages"] == ["🎯 signal"]
        pipeline.tier2.scan.assert_not_awaited()
        mock_publish.assert_awaited_once_with(pipeline, dry_run=True, channel="@test")

    def test_resolve(self, settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        pipeline = _pipeline()

        code, out = _run(["resolve", "--dry"], settings, pipeline, capsys)

        assert code == 0
        assert out["resolved"] == 1
        pipeline.resolution.run.assert_awaited_once_with(dry_run=True)

    def test_proofs(self, settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        pipeline = _pipeline()
        pipeline.proofs.run = AsyncMock(
            return_value=LiveProofs(
                generated_at=NOW,
                total_proofs=2,
                notable_count=1,
                proofs=[LiveProof(id="flag-1", notable=True), LiveProof(id="signal-a")],
            )
        )

        code, out = _run(["proofs", "--dry"], settings, pipeline, capsys)

        assert code == 0
        assert out["total_proofs"] == 2
        assert out["notable"] == ["flag-1"]
        assert out["dry_run"] is True
        pipeline.proofs.run.assert_awaited_once_with(dry_run=True)

    def test_scorecard_dry(self, settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        save_json(settings.post_log_path, [{"slug": "a", "timestamp": "2026-03-01T12:00:00Z"}])

        code, out = _run(["scorecard", "--dry"], settings, _pipeline(), capsys)

        assert code == 0
        assert out["stats"]["total_calls"] == 1
        assert out["dry_run"] is True
        assert not settings.scorecard_path.exists()


class TestFatalErrors:
    def test_upstream_failure_exits_1(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        pipeline = _pipeline()
        pipeline.tier2.scan.side_effect = UpstreamUnavailableError(
            "Failed to fetch markets from Polymarket API: HTTP 503"
        )

        code, out = _run(["tier2"], settings, pipeline, capsys)

        assert code == 1
        assert out == {
            "error": "UpstreamUnavailableError",
            "detail": "Failed to fetch markets from Polymarket API: HTTP 503",
        }
        pipeline.close.assert_awaited_once()

    def test_storage_failure_exits_1(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch(
            "prescience.cli.run_scorecard", side_effect=StorageWriteError("disk full")
        ):
            code, out = _run(["scorecard"], settings, _pipeline(), capsys)

        assert code == 1
        assert out["error"] == "StorageWriteError"

    def test_missing_token_exits_1(self, tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
        settings = Settings(signals_dir=tmp_path, telegram_bot_token=None)
        pipeline = _pipeline()
        pipeline.resolution.run = AsyncMock(
            side_effect=PublisherConfigError("TELEGRAM_BOT_TOKEN not set")
        )

        code, out = _run(["resolve"], settings, pipeline, capsys)

        assert code == 1
        assert out["error"] == "PublisherConfigError"
