#!/usr/bin/env python3
"""
Script to load the demo accounts and sample materials into the configured database.
"""
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from database.kv_store import SqlKeyValueStore
from database.stores import CredentialStore, MaterialStore
from services.seed import seed_demo_data, DEMO_ACCOUNTS
import config


def main():
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()
    kv = SqlKeyValueStore(config.db)

    print("Seeding demo data...")
    print("=" * 50)
    created = seed_demo_data(CredentialStore(kv), MaterialStore(kv))

    if not created["accounts"] and not created["materials"]:
        print("✓ Stores already contain data, nothing to do")
        return

    print(f"✓ Accounts created: {created['accounts']}")
    print(f"✓ Materials created: {created['materials']}")
    if created["accounts"]:
        print("\nDemo logins:")
        for demo in DEMO_ACCOUNTS:
            print(f"  {demo['role'].value:<8} {demo['username']} / {demo['password']}")


if __name__ == "__main__":
    main()
