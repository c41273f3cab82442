#!/usr/bin/env python3
"""
Script to create an admin user.
"""
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from auth.security import validate_password_strength
from database.connection import Database
from database.kv_store import SqlKeyValueStore
from database.models import UserRole
from database.stores import CredentialStore
from services.auth_service import AuthService
import config


def create_admin():
    """Create an admin user."""
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()
    store = CredentialStore(SqlKeyValueStore(config.db))

    print("Creating admin user...")
    print("=" * 50)

    username = input("Username: ").strip()
    email = input("Email: ").strip()
    password = input("Password: ").strip()
    first_name = input("First name (optional): ").strip() or "System"
    last_name = input("Last name (optional): ").strip() or "Administrator"

    if not username or not email or not password:
        print("Error: Username, email, and password are required")
        sys.exit(1)

    validation = validate_password_strength(password)
    if not validation.isValid:
        print("Error: " + "; ".join(validation.violations))
        sys.exit(1)

    try:
        account, _ = AuthService.create_account(
            store,
            first_name=first_name,
            last_name=last_name,
            email=email,
            role=UserRole.ADMIN,
            username=username,
            password=password,
            must_change_password=False
        )
        print(f"\n✓ Admin user created successfully!")
        print(f"  Id: {account.id}")
        print(f"  Username: {account.username}")
        print(f"  Email: {account.email}")
        print(f"  Role: {account.role.value}")
    except ValueError as e:
        print(f"\n✗ Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"\n✗ Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    create_admin()
