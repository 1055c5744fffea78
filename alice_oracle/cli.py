"""Command line front-end: ``alice-oracle scan|listing|recall|watch``."""

from __future__ import annotations

import asyncio
import logging
import sys
from argparse import ArgumentParser
from typing import Any, Callable, Sequence, TextIO

from .jsonutil import dumps
from .logging_utils import configure_runtime_logging
from .pipeline import OracleScanner, ScanFailed, ScanResult
from .settings import ScanSettings, SettingsError

logger = logging.getLogger(__name__)

ScannerFactory = Callable[[ScanSettings], OracleScanner]


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="alice-oracle", description="Score newly listed Solana small caps")
    parser.add_argument("--config", default=None, help="TOML or YAML configuration file")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_p = subparsers.add_parser("scan", help="Run one scan and print the ranked tokens")
    scan_p.add_argument(
        "--warmup",
        type=float,
        default=0.0,
        help="Seconds to let the new-token stream fill before scanning",
    )
    scan_p.add_argument("--json", action="store_true", help="Print the full JSON result")

    subparsers.add_parser("listing", help="Print enriched candidates ranked by order flow")

    recall_p = subparsers.add_parser("recall", help="Print previously surfaced tokens")
    recall_p.add_argument("--limit", type=int, default=100)

    watch_p = subparsers.add_parser("watch", help="Scan repeatedly, printing one JSON line per scan")
    watch_p.add_argument("--interval", type=float, default=30.0)
    watch_p.add_argument("--count", type=int, default=0, help="Number of scans (0 = forever)")
    return parser


def format_table(result: ScanResult) -> str:
    cosmic = result.cosmic
    lines = [
        f"{cosmic.emoji} {cosmic.moon_phase} ({cosmic.illumination}%)  "
        f"Kp {cosmic.kp_index:g} {cosmic.kp_level.value} [{cosmic.kp_source}]",
        f"{'#':>3}  {'score':>5}  {'signal':<10}  {'archetype':<9}  {'symbol':<10}  identifier",
    ]
    for idx, item in enumerate(result.tokens, start=1):
        flag = " *" if item.spiking else ""
        lines.append(
            f"{idx:>3}  {item.composite_score:>5}  {item.recommendation.value:<10}  "
            f"{item.archetype.value:<9}  {(item.token.symbol or '?')[:10]:<10}  {item.identifier}{flag}"
        )
    if not result.tokens:
        lines.append("  (no tokens passed the filters)")
    return "\n".join(lines)


def _emit(payload: Any, out: TextIO, *, indent: bool = True) -> None:
    out.write(dumps(payload, indent=2 if indent else None) + "\n")
    out.flush()


def _failure(exc: BaseException, out: TextIO) -> int:
    _emit({"error": "scan failed", "detail": str(exc)}, out)
    return 1


async def _run(args: Any, scanner: OracleScanner, out: TextIO) -> int:
    await scanner.start()
    try:
        if args.command == "recall":
            _emit(await scanner.get_recall(args.limit), out)
            return 0

        if args.command == "listing":
            _emit(await scanner.run_listing(), out)
            return 0

        if args.command == "scan":
            if args.warmup > 0:
                await asyncio.sleep(args.warmup)
            try:
                result = await scanner.run_scan()
            except ScanFailed as exc:
                return _failure(exc, out)
            if args.json:
                _emit(result.to_dict(), out)
            else:
                out.write(format_table(result) + "\n")
            return 0

        if args.command == "watch":
            done = 0
            while args.count <= 0 or done < args.count:
                try:
                    result = await scanner.run_scan()
                except ScanFailed as exc:
                    logger.warning("Scan failed: %s", exc)
                    _emit({"error": "scan failed", "detail": str(exc)}, out, indent=False)
                else:
                    _emit(result.to_dict(), out, indent=False)
                done += 1
                if args.count <= 0 or done < args.count:
                    await asyncio.sleep(max(0.0, args.interval))
            return 0
    finally:
        await scanner.close()
    return 2  # pragma: no cover - argparse rejects unknown commands


def main(
    argv: Sequence[str] | None = None,
    *,
    scanner_factory: ScannerFactory | None = None,
    out: TextIO | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    out = out or sys.stdout

    # stdout carries the JSON/table output
    configure_runtime_logging(level=args.log_level, stream=sys.stderr)
    try:
        cfg = ScanSettings.from_env(config_path=args.config)
    except SettingsError as exc:
        print(f"alice-oracle: {exc}", file=sys.stderr)
        return 2

    factory = scanner_factory or OracleScanner.from_settings
    scanner = factory(cfg)
    try:
        return asyncio.run(_run(args, scanner, out))
    except KeyboardInterrupt:  # pragma: no cover - interactive
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
