"""
velocity/cli.py
Command-line interface for Dispatch Velocity.
Prints the ranked triage board for a JSON file of leads and jobs.

USAGE:
  velocity --input records.json
  velocity --input records.json --archetype hazard --limit 10
  velocity --input records.json --now 2026-10-19T09:00:00Z --json

INPUT:
  A JSON array of lead/job rows, or an object {"leads": [...], "jobs": [...]}.
"""

import argparse
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from velocity import __version__
from velocity.config import load_config, thresholds_from_config
from velocity.engine import (
    TriageResult,
    board_to_dict,
    parse_archetype,
    triage_board,
)
from velocity.models.record import Archetype, TagVariant
from velocity.parsers.record_parser import load_records, parse_timestamp

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'

ARCHETYPE_COLORS = {
    Archetype.HAZARD:    RED,
    Archetype.RECOVERY:  YELLOW,
    Archetype.REVENUE:   GREEN,
    Archetype.LOGISTICS: CYAN,
}

VARIANT_COLORS = {
    TagVariant.CRITICAL: RED,
    TagVariant.WARNING:  YELLOW,
    TagVariant.POSITIVE: GREEN,
}


def _parse_now(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    now = parse_timestamp(value)
    if now is None:
        raise ValueError(f"--now is not an ISO-8601 timestamp: {value}")
    return now


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        prog        = 'velocity',
        description = 'Dispatch Velocity — priority triage board for leads and jobs',
        formatter_class = argparse.RawDescriptionHelpFormatter,
        epilog = """
All processing is local. Records are read, ranked and discarded.
        """
    )

    parser.add_argument(
        '--input', '-i',
        required = True,
        type     = Path,
        help     = 'JSON file of lead/job rows',
    )
    parser.add_argument(
        '--archetype', '-a',
        default = None,
        help    = 'Show one column only: hazard, recovery, revenue, logistics',
    )
    parser.add_argument(
        '--now',
        default = None,
        help    = 'Evaluate as of this ISO-8601 time (default: current UTC time)',
    )
    parser.add_argument(
        '--config', '-c',
        default = None,
        type    = Path,
        help    = 'Directory holding velocity_config.json (default: current directory)',
    )
    parser.add_argument(
        '--limit', '-n',
        type    = int,
        default = None,
        help    = 'Max rows to print',
    )
    parser.add_argument(
        '--json',
        action  = 'store_true',
        help    = 'Emit the board as JSON instead of a table',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    parser.add_argument(
        '--version',
        action  = 'version',
        version = f'%(prog)s {__version__}',
    )

    args = parser.parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    log_level = logging.DEBUG if args.verbose else logging.WARNING if args.json else logging.INFO
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    # ── INPUT ────────────────────────────────────────────────
    try:
        column  = parse_archetype(args.archetype)
        now     = _parse_now(args.now)
        config  = load_config(args.config)
        records = load_records(args.input)
    except (FileNotFoundError, ValueError) as e:
        _print(f"{RED}[ERROR] {e}{RESET}")
        sys.exit(1)

    thresholds = thresholds_from_config(config)

    # ── TRIAGE ───────────────────────────────────────────────
    t0      = time.time()
    board   = triage_board(records, now, column, args.limit, thresholds=thresholds)
    results = board.results

    if args.json:
        print(json.dumps(board_to_dict(board), indent=2))
        return

    _banner()
    _step(f"Triaging {len(records)} records from {args.input.name}...")
    _ok(f"{len(records)} records ranked in {_elapsed(t0)}")

    _print(f"\n{BOLD}Board{RESET}")
    for archetype, n in board.counts.items():
        _print(f"  {ARCHETYPE_COLORS[archetype]}{archetype.value:<10}{RESET} {n:>4}")

    if not results:
        _print(f"\n{YELLOW}No records to show.{RESET}")
        return

    _print("")
    for rank, result in enumerate(results, 1):
        _row(rank, result)
    _print("")


# ── PRINT HELPERS ────────────────────────────────────────────

def _row(rank: int, r: TriageResult):
    color = ARCHETYPE_COLORS[r.archetype]
    _print(
        f"{BOLD}{rank:>3}.{RESET} {color}{r.archetype.value:<10}{RESET}"
        f" {r.score:>7.1f}  {r.narrative.headline}"
    )
    if r.narrative.subtext:
        _print(f"      {r.narrative.subtext}")
    if r.tags:
        chips = '  '.join(
            f"{VARIANT_COLORS.get(t.variant, '')}[{t.label}]{RESET}" for t in r.tags
        )
        _print(f"      {chips}")
    for w in r.narrative.warnings:
        _print(f"      {YELLOW}⚠ {w.message}{RESET}")


def _banner():
    _print(f"""
{BOLD}{CYAN}  DISPATCH VELOCITY v{__version__}
  Priority triage for inbound leads and jobs
{RESET}""")

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    main()
