#!/usr/bin/env python3
"""
YISHI data integrity auditor.

Validates the JSON collections under a data directory: duplicate entries,
near-duplicate spirit backgrounds, unparsable conditions and broken story
references.

Usage:
    python scripts/integrity_check.py                     # Console output
    python scripts/integrity_check.py --json              # JSON output for CI
    python scripts/integrity_check.py --data assets/data

Exit codes:
    0 - All checks passed
    1 - Warnings only
    2 - Errors found
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from yishi.interface.renderer import render_audit
from yishi.state.repo import DataRepo
from yishi.systems.integrity import IntegrityAuditor

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate YISHI game data integrity")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument(
        "--data",
        type=Path,
        default=PROJECT_ROOT / "assets" / "data",
        help="Data directory (default: assets/data under the project root)",
    )
    args = parser.parse_args()

    if not args.data.exists():
        print(f"Error: data directory not found: {args.data}", file=sys.stderr)
        return 2

    result = IntegrityAuditor(DataRepo(args.data)).run()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        render_audit(result)

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
