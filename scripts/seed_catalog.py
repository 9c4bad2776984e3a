"""
Seed achievement definitions, reward templates and task templates.

Safe to re-run: rows that already exist are left untouched.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chorepulse.catalog import seed_catalog
from chorepulse.dependencies import get_db_client

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the ChorePulse catalog")
    parser.parse_args()
    logging.basicConfig(
        level=logging.INFO, format="%(name)s %(levelname)s %(asctime)s %(message)s"
    )

    added = seed_catalog(get_db_client())
    print(
        f"Added {added['achievements']} achievements, "
        f"{added['rewardTemplates']} reward templates, "
        f"{added['taskTemplates']} task templates"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
