"""CLI entry point for Prescience.

Every subcommand except ``serve`` runs one pipeline stage, prints a JSON
summary to stdout and exits 0 on success or 1 on a fatal upstream, storage
or credential failure.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import orjson
import uvicorn

from prescience.agent.pipeline import Pipeline, build_pipeline, run_publish
from prescience.config import Settings, get_settings
from prescience.core.exceptions import (
    PublisherConfigError,
    StorageWriteError,
    UpstreamUnavailableError,
)
from prescience.core.logging import get_logger, setup_logging
from prescience.scorecard.aggregator import run_scorecard

logger = get_logger(__name__)

FATAL_ERRORS = (UpstreamUnavailableError, StorageWriteError, PublisherConfigError)


def _print_json(payload: Any) -> None:
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode() + "\n")
    sys.stdout.flush()


async def _with_pipeline(
    settings: Settings, fn: Callable[[Pipeline], Awaitable[dict[str, Any]]]
) -> dict[str, Any]:
    pipeline = build_pipeline(settings)
    try:
        return await fn(pipeline)
    finally:
        await pipeline.close()


async def _tier2(pipeline: Pipeline, args: argparse.Namespace) -> dict[str, Any]:
    result = await pipeline.tier2.scan(force=True)
    return {
        **result.meta.to_wire(),
        "top": [
            {
                "slug": e.slug,
                "anomaly_score": e.anomaly_score,
                "anomaly_flags": e.anomaly_flags,
                "promote_to_tier1": e.promote_to_tier1,
            }
            for e in result.index[:10]
        ],
    }


async def _scan(pipeline: Pipeline, args: argparse.Namespace) -> dict[str, Any]:
    if not args.no_tier2:
        await pipeline.tier2.scan()
    result = await pipeline.tier1.scan(limit=args.limit, force=True)
    return {
        **result.meta.to_wire(),
        "top": [
            {
                "slug": s.key,
                "threat_score": s.threat_score,
                "threat_level": s.threat_level,
                "flow_direction_v2": s.flow_direction_v2,
                "is_dampened": s.is_dampened,
            }
            for s in result.scan[:10]
            if s.scan_depth == "deep"
        ],
    }


async def _publish(pipeline: Pipeline, args: argparse.Namespace) -> dict[str, Any]:
    if not args.no_tier2:
        await pipeline.tier2.scan()
    result = await run_publish(pipeline, dry_run=args.dry, channel=args.channel)
    summary = result.model_dump(mode="json", exclude={"messages"}, by_alias=True)
    if args.dry:
        summary["messages"] = result.messages
    return summary


async def _resolve(pipeline: Pipeline, args: argparse.Namespace) -> dict[str, Any]:
    result = await pipeline.resolution.run(dry_run=args.dry)
    return result.model_dump(mode="json")


async def _proofs(pipeline: Pipeline, args: argparse.Namespace) -> dict[str, Any]:
    result = await pipeline.proofs.run(dry_run=args.dry)
    summary = result.model_dump(mode="json", exclude={"proofs"})
    summary["notable"] = [p.id for p in result.proofs if p.notable]
    summary["dry_run"] = args.dry
    return summary


def _scorecard(settings: Settings, args: argparse.Namespace) -> dict[str, Any]:
    scorecard = run_scorecard(settings, dry_run=args.dry)
    return {
        "stats": scorecard.stats.model_dump(mode="json"),
        "calls": len(scorecard.calls),
        "scanner_flags": len(scorecard.scanner_flags),
        "path": str(settings.scorecard_path),
        "dry_run": args.dry,
    }


PIPELINE_COMMANDS: dict[
    str, Callable[[Pipeline, argparse.Namespace], Awaitable[dict[str, Any]]]
] = {
    "tier2": _tier2,
    "scan": _scan,
    "publish": _publish,
    "resolve": _resolve,
    "proofs": _proofs,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prescience", description="Prescience signal pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API (and scheduler if enabled)")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload")
    serve.add_argument("--host", default="0.0.0.0", help="Bind host")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--dry", action="store_true", help="No side effects")
    common.add_argument("--commit", action="store_true", help="Not supported; accepted for cron")
    common.add_argument("--deploy", action="store_true", help="Not supported; accepted for cron")

    sub.add_parser("tier2", parents=[common], help="Run the Tier-2 broad scan")

    scan = sub.add_parser("scan", parents=[common], help="Run the Tier-1 deep scan")
    scan.add_argument("--limit", type=int, default=None, help="Markets to list")
    scan.add_argument("--no-tier2", action="store_true", help="Skip Tier-2 promotion")

    publish = sub.add_parser("publish", parents=[common], help="Scan, gate and publish signals")
    publish.add_argument("--channel", default=None, help="Override the Telegram chat ID")
    publish.add_argument("--no-tier2", action="store_true", help="Skip Tier-2 promotion")

    sub.add_parser("scorecard", parents=[common], help="Rebuild scorecard.json")
    sub.add_parser("resolve", parents=[common], help="Write receipts for resolved signals")
    sub.add_parser("proofs", parents=[common], help="Rebuild live-proofs.json")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        uvicorn.run(
            "prescience.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
        )
        return 0

    settings = get_settings()
    setup_logging(settings)
    if args.commit or args.deploy:
        logger.warning("--commit/--deploy are not supported, ignoring", command=args.command)

    try:
        if args.command == "scorecard":
            summary = _scorecard(settings, args)
        else:
            command = PIPELINE_COMMANDS[args.command]
            summary = asyncio.run(
                _with_pipeline(settings, lambda pipeline: command(pipeline, args))
            )
    except FATAL_ERRORS as e:
        logger.error("Command failed", command=args.command, error=e.message)
        _print_json({"error": type(e).__name__, "detail": e.message})
        return 1

    _print_json(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
