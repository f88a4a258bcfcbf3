"""
Command-line entry point for the connection diagnostics.

Usage:
    python -m diagnostics [--config config.yaml]

Exits with 0 when every step passed, 1 when a step failed and 2 when the
configuration could not be loaded.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from cafe_db_exceptions import ConfigurationError
from config import load_settings
from diagnostics.connection_diagnostics import ConnectionDiagnostics, DiagnosticReport, DiagnosticStatus


def print_report(report: DiagnosticReport) -> None:
    print("\n" + "=" * 60)
    print(f" Database Connection Diagnostics ({report.diagnostic_id})")
    print("=" * 60)
    print(f"  - URI: {report.uri}")
    print(f"  - Host: {report.hostname or 'unknown'}")
    for number, step in enumerate(report.steps, start=1):
        marker = "[SUCCESS]" if step.ok else "[ERROR]"
        print(f"\n[Step {number}] {step.name}")
        print(f"{marker} {step.detail}")
    if report.elapsed_ms is not None:
        print(f"  - Elapsed: {report.elapsed_ms:.0f}ms")
    if report.connection_state:
        print(f"\n  - Connection state: {report.connection_state}")
    if report.hints:
        print("\nTroubleshooting:")
        for number, hint in enumerate(report.hints, start=1):
            print(f"{number}. {hint}")
    print(f"\nStatus: {report.status.value}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m diagnostics",
                                     description="Check connectivity to the configured database")
    parser.add_argument("--config", help="Path to a YAML settings file")
    parser.add_argument("--show-settings", action="store_true",
                        help="Print the effective settings (credentials redacted)")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, settings.monitoring.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.show_settings:
        print(settings.to_yaml())

    report = asyncio.run(ConnectionDiagnostics(settings.database).run())
    print_report(report)
    return 0 if report.status is DiagnosticStatus.SUCCESS else 1


if __name__ == "__main__":
    sys.exit(main())
