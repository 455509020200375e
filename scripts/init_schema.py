#!/usr/bin/env python3
"""
Create the tables the assignment service reads and writes.

Usage:
    python scripts/init_schema.py            # create tables in Snowflake
    python scripts/init_schema.py --dry-run  # print the DDL only

Requires:
    - .env file with Snowflake credentials
"""

import sys
from pathlib import Path

# Make the nutricoach package importable when run from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS clients (
        client_id NUMBER AUTOINCREMENT PRIMARY KEY,
        email VARCHAR NOT NULL UNIQUE,
        first_name VARCHAR,
        last_name VARCHAR,
        created_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS coaches (
        coach_id NUMBER AUTOINCREMENT PRIMARY KEY,
        first_name VARCHAR NOT NULL,
        last_name VARCHAR NOT NULL,
        email VARCHAR NOT NULL,
        specialty VARCHAR,
        license_number VARCHAR,
        photo_url VARCHAR,
        description VARCHAR,
        average_rating NUMBER(3, 2),
        consultation_fee NUMBER(10, 2),
        active BOOLEAN DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS client_coach_links (
        link_id VARCHAR(36) PRIMARY KEY,
        client_id NUMBER NOT NULL REFERENCES clients (client_id),
        coach_id NUMBER NOT NULL REFERENCES coaches (coach_id),
        assigned_at TIMESTAMP_TZ NOT NULL,
        active BOOLEAN DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS diet_plans (
        plan_id VARCHAR(36) PRIMARY KEY,
        client_id NUMBER NOT NULL REFERENCES clients (client_id),
        coach_id NUMBER REFERENCES coaches (coach_id),
        created_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP(),
        active BOOLEAN DEFAULT TRUE
    )
    """,
]


def create_schema(dry_run: bool = False) -> bool:
    """Run every CREATE TABLE statement. Returns True on success."""
    if dry_run:
        for statement in SCHEMA_STATEMENTS:
            print(statement.strip() + ";\n")
        return True

    from nutricoach.api.dependencies import build_snowflake_config
    from nutricoach.config.settings import get_settings
    from nutricoach.infrastructure.snowflake.client import (
        SnowflakeConnectionError,
        create_snowflake_connection,
    )

    settings = get_settings()
    missing = settings.validate_required_fields()
    if missing:
        print(f"ERROR: missing configuration: {', '.join(missing)}")
        return False

    try:
        with create_snowflake_connection(
            config=build_snowflake_config(settings),
            mock_mode=settings.snowflake_mock_mode,
        ) as conn:
            cursor = conn.cursor()
            try:
                for statement in SCHEMA_STATEMENTS:
                    cursor.execute(statement)
                    table = statement.split("EXISTS", 1)[1].split("(", 1)[0].strip()
                    print(f"[OK] {table}")
                conn.commit()
            finally:
                cursor.close()
    except SnowflakeConnectionError as e:
        print(f"ERROR connecting to Snowflake: {e}")
        return False

    print("\n=== Schema ready ===")
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Create NutriCoach tables in Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Print the DDL, don\'t execute it')
    args = parser.parse_args()

    success = create_schema(dry_run=args.dry_run)
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
