#!/usr/bin/env python3
"""
Re-run checkpoint recalculation for one account.

Use after a transaction write reported a failed checkpoint recalculation.

Usage:
    python scripts/recalculate_checkpoints.py --workspace <id> --account <id>
    python scripts/recalculate_checkpoints.py --workspace <id> --account <id> --since 2026-01-01
"""

import sys
import argparse
import logging
from pathlib import Path
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

# Add the backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app.core.database import SessionLocal
from app.modules.checkpoints.services import (
    CheckpointRecalculationError,
    recalculate_affected_checkpoints,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def main():
    parser = argparse.ArgumentParser(description='Recalculate checkpoints for an account')
    parser.add_argument('--workspace', required=True, help='Workspace ID')
    parser.add_argument('--account', required=True, help='Account ID')
    parser.add_argument('--since', type=str, default='1970-01-01',
                        help='Recalculate checkpoints dated on or after this date (YYYY-MM-DD, default: all)')

    args = parser.parse_args()
    try:
        since = date.fromisoformat(args.since)
    except ValueError:
        print(f"❌ Invalid --since date: {args.since} (expected YYYY-MM-DD)")
        sys.exit(1)

    db = SessionLocal()
    try:
        print(f"🔄 Recalculating checkpoints for account {args.account} since {since}...")
        result = recalculate_affected_checkpoints(db, since, args.account, args.workspace)
        db.commit()

        print(f"✅ Updated {result['updated_count']} checkpoint(s)")
        for warning in result['warnings']:
            print(f"   ⚠️  {warning}")

    except CheckpointRecalculationError as e:
        db.rollback()
        print(f"❌ {e}")
        sys.exit(1)
    except SQLAlchemyError as e:
        db.rollback()
        print(f"❌ Database error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
