#!/usr/bin/env python3
"""
Load medal definitions into Snowflake.

Reads a CSV export of the medal catalogue and upserts each row into the
medals table. Rows are matched on id, so the script can be re-run after
editing the catalogue.

Usage:
    python scripts/seed_medals.py medals.csv
    python scripts/seed_medals.py medals.csv --dry-run

Requires:
    - .env file with Snowflake credentials
    - CSV with at least id and badge_name columns
"""

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Optional

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from src.config.settings import get_settings
from src.core.medals.models import Medal
from src.infrastructure.snowflake.client import create_snowflake_connection
from src.infrastructure.snowflake.repositories.medals import MedalRepository
from src.infrastructure.snowflake.repositories.sessions import SnowflakeConfig

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "t", "yes", "y", "1"}


def _text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _int(value: Optional[str]) -> Optional[int]:
    text = _text(value)
    if text is None:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _threshold(value: Optional[str]):
    """Numeric thresholds become floats, anything else stays text."""
    text = _text(value)
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return text


def parse_medals_csv(filepath: str) -> list[Medal]:
    """
    Parse the medal catalogue.

    Rows without an id or badge_name are skipped. Column names are
    matched case-insensitively.
    """
    medals = []

    with open(filepath, 'r', encoding='utf-8', newline='') as f:
        reader = csv.DictReader(f)
        for raw in reader:
            row = {(key or "").strip().lower(): value for key, value in raw.items()}

            medal_id = _text(row.get("id"))
            badge_name = _text(row.get("badge_name"))
            if not medal_id or not badge_name:
                continue

            is_active = _text(row.get("is_active"))
            medals.append(Medal(
                id=medal_id,
                badge_name=badge_name,
                category=_text(row.get("category")),
                age_group=_text(row.get("age_group")),
                badge_tier=_text(row.get("badge_tier")),
                metric_code=_text(row.get("metric_code")),
                threshold_value=_threshold(row.get("threshold_value")),
                threshold_text=_text(row.get("threshold_text")),
                threshold_type=_text(row.get("threshold_type")),
                file_name=_text(row.get("file_name")),
                image_path=_text(row.get("image_path")),
                is_active=is_active is None or is_active.lower() in _TRUE_VALUES,
                sort_order=_int(row.get("sort_order")),
                description=_text(row.get("description")),
            ))

    return medals


def upload_medals(medals: list[Medal], mock: bool = False) -> int:
    """Upsert medals. Returns the number written."""
    settings = get_settings()

    config = None
    if not mock:
        config = SnowflakeConfig(
            account=settings.snowflake_account,
            user=settings.snowflake_user,
            password=settings.snowflake_password or None,
            private_key_path=settings.snowflake_private_key_path,
            private_key_base64=settings.snowflake_private_key_base64,
            database=settings.snowflake_database,
            schema=settings.snowflake_schema,
            warehouse=settings.snowflake_warehouse,
            role=settings.snowflake_role,
        )

    with create_snowflake_connection(config=config, mock_mode=mock) as conn:
        repository = MedalRepository(conn)
        for medal in medals:
            repository.upsert_medal(medal)
            print(f"  Upserted: {medal.id} - {medal.badge_name}")

    return len(medals)


def main() -> int:
    parser = argparse.ArgumentParser(description="Load medal definitions into Snowflake")
    parser.add_argument("csv_path", help="Medal catalogue CSV")
    parser.add_argument("--dry-run", action="store_true", help="Parse and print without writing")
    parser.add_argument("--mock", action="store_true", help="Write to an in-memory database")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)

    csv_path = Path(args.csv_path)
    if not csv_path.exists():
        print(f"ERROR: File not found: {csv_path}")
        return 1

    print(f"Parsing {csv_path}...")
    medals = parse_medals_csv(str(csv_path))
    print(f"Found {len(medals)} medals")

    if not medals:
        print("ERROR: No medals found in file")
        return 1

    if args.dry_run:
        print("\n=== DRY RUN - No data will be written ===\n")
        for medal in medals:
            print(f"Would upsert: {medal.age_group}/{medal.category} - {medal.badge_name}")
        return 0

    written = upload_medals(medals, mock=args.mock)
    print(f"\nDone. {written} medals written.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
