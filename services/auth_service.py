"""
Authentication and account administration with lockout protection.
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple, Dict, Any
from pydantic import BaseModel

from database.models import UserRole, ErrorKind
from database.schemas import Account
from database.stores import CredentialStore, parse_timestamp
from auth.security import (
    verify_password, get_password_hash, validate_password_strength,
    generate_temporary_password, generate_account_id, create_session_token
)
from core.logger import logger
import config

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"
ACCOUNT_INACTIVE_MESSAGE = "Account is inactive. Please contact administrator."
ACCOUNT_LOCKED_MESSAGE = "Account is temporarily locked due to too many failed attempts"


class AuthSession(BaseModel):
    """Session issued on successful authentication; held by the caller."""
    account: Account
    token: str
    issuedAt: str


class AuthResult(BaseModel):
    """Outcome of an authentication attempt."""
    success: bool
    session: Optional[AuthSession] = None
    errorKind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @property
    def account(self) -> Optional[Account]:
        return self.session.account if self.session else None

    @property
    def token(self) -> Optional[str]:
        return self.session.token if self.session else None


def _failure(kind: ErrorKind, message: str) -> AuthResult:
    return AuthResult(success=False, errorKind=kind, error=message)


class AuthService:
    """Service for authentication and account operations."""

    @staticmethod
    def authenticate(
        store: CredentialStore,
        username: str,
        password: str,
        now: Optional[datetime] = None
    ) -> AuthResult:
        """
        Authenticate a user with account lockout protection.

        Does not write audit events; the caller records LOGIN / LOGIN_FAILED.

        Args:
            store: Credential store
            username: Exact username
            password: Plain text password
            now: Current time (defaults to utcnow)

        Returns:
            AuthResult with a session on success, an error kind otherwise
        """
        if not username or not password:
            return _failure(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        now = now or datetime.utcnow()

        with store.lock:
            account = store.get_by_username(username)
            if not account:
                return _failure(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

            if not account.isActive:
                return _failure(ErrorKind.ACCOUNT_INACTIVE, ACCOUNT_INACTIVE_MESSAGE)

            # Check if account is locked
            if account.lockedUntil:
                if parse_timestamp(account.lockedUntil) > now:
                    logger.warning(f"Login attempt for locked account: {username}")
                    return _failure(ErrorKind.ACCOUNT_LOCKED, ACCOUNT_LOCKED_MESSAGE)
                # Lockout expired, unlock account
                account.lockedUntil = None
                account.failedLoginAttempts = 0

            if not verify_password(password, account.passwordHash or ""):
                account.failedLoginAttempts += 1

                # Lock account if max attempts reached
                if account.failedLoginAttempts >= config.MAX_LOGIN_ATTEMPTS:
                    account.lockedUntil = (now + timedelta(minutes=config.LOCKOUT_DURATION_MINUTES)).isoformat()
                    logger.warning(f"Account locked due to too many failed attempts: {username}")

                store.save(account)
                return _failure(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

            # Reset failed attempts on successful login
            account.failedLoginAttempts = 0
            account.lockedUntil = None
            account.lastLogin = now.isoformat()
            store.save(account)

        token = create_session_token(account.id, account.role.value, issued_at=now)
        return AuthResult(
            success=True,
            session=AuthSession(account=account, token=token, issuedAt=now.isoformat())
        )

    @staticmethod
    def _unique_username(store: CredentialStore, first_name: str, last_name: str) -> str:
        base = ".".join(part.strip().lower().replace(" ", "") for part in (first_name, last_name) if part.strip())
        base = base or "user"
        username = base
        suffix = 2
        while store.get_by_username(username):
            username = f"{base}{suffix}"
            suffix += 1
        return username

    @staticmethod
    def create_account(
        store: CredentialStore,
        first_name: str,
        last_name: str,
        email: str,
        role: UserRole,
        academic_year: Optional[int] = None,
        current_semester: Optional[int] = None,
        whatsapp_number: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        account_id: Optional[str] = None,
        must_change_password: bool = True
    ) -> Tuple[Account, str]:
        """
        Create a new account.

        When no password is given a temporary one is generated. Only its hash
        is stored; the plain value is returned once so it can be delivered.

        Returns:
            Tuple of (account, plain password)
        """
        if role == UserRole.STUDENT:
            if academic_year is None or current_semester is None:
                raise ValueError("Students require academic year and current semester")
            if not 1 <= current_semester <= config.MAX_SEMESTER:
                raise ValueError(f"Semester must be between 1 and {config.MAX_SEMESTER}")

        with store.lock:
            if username:
                if store.get_by_username(username):
                    raise ValueError("User with this username already exists")
            else:
                username = AuthService._unique_username(store, first_name, last_name)

            account_id = account_id or generate_account_id(role.value)
            if store.get(account_id):
                raise ValueError("User with this id already exists")

            plain_password = password or generate_temporary_password()
            is_student = role == UserRole.STUDENT
            account = Account(
                id=account_id,
                username=username,
                email=email,
                role=role,
                firstName=first_name,
                lastName=last_name,
                isActive=True,
                createdAt=datetime.utcnow().isoformat(),
                mustChangePassword=must_change_password,
                failedLoginAttempts=0,
                passwordHash=get_password_hash(plain_password),
                academicYear=academic_year if is_student else None,
                currentSemester=current_semester if is_student else None,
                whatsappNumber=(whatsapp_number or "") if is_student else None,
            )
            store.save(account)

        logger.info(f"Created user: {username} (role: {role.value})")
        return account, plain_password

    @staticmethod
    def update_account(store: CredentialStore, account_id: str, changes: Dict[str, Any]) -> Account:
        """
        Apply admin edits to an account.

        Raises:
            ValueError: unknown account or invalid field values
        """
        allowed = {"firstName", "lastName", "email", "role", "isActive",
                   "academicYear", "currentSemester", "whatsappNumber"}
        with store.lock:
            account = store.get(account_id)
            if not account:
                raise ValueError("User not found")
            data = account.model_dump()
            data.update({k: v for k, v in changes.items() if k in allowed and v is not None})
            updated = Account.model_validate(data)
            if updated.currentSemester is not None and not 1 <= updated.currentSemester <= config.MAX_SEMESTER:
                raise ValueError(f"Semester must be between 1 and {config.MAX_SEMESTER}")
            store.save(updated)
        return updated

    @staticmethod
    def set_active(store: CredentialStore, account_id: str, is_active: bool) -> Account:
        with store.lock:
            account = store.get(account_id)
            if not account:
                raise ValueError("User not found")
            account.isActive = is_active
            store.save(account)
        return account

    @staticmethod
    def delete_account(store: CredentialStore, account_id: str) -> Optional[Account]:
        """Remove the account record entirely; returns the removed account."""
        with store.lock:
            account = store.get(account_id)
            if not account:
                return None
            store.delete(account_id)
        logger.info(f"Deleted user: {account.username}")
        return account

    @staticmethod
    def reset_password(store: CredentialStore, account_id: str) -> Tuple[Account, str]:
        """
        Replace the password with a fresh temporary one and force a change on next login.

        Returns:
            Tuple of (account, temporary password)
        """
        temporary_password = generate_temporary_password()
        with store.lock:
            account = store.get(account_id)
            if not account:
                raise ValueError("User not found")
            account.passwordHash = get_password_hash(temporary_password)
            account.mustChangePassword = True
            account.failedLoginAttempts = 0
            account.lockedUntil = None
            store.save(account)
        logger.info(f"Password reset for user: {account.username}")
        return account, temporary_password

    @staticmethod
    def change_password(
        store: CredentialStore,
        account_id: str,
        current_password: str,
        new_password: str,
        confirm_password: str
    ) -> Tuple[bool, Optional[str]]:
        """
        Change a user's own password.

        Returns:
            Tuple of (success, error_message)
        """
        with store.lock:
            account = store.get(account_id)
            if not account:
                return False, "User not found"

            if not verify_password(current_password, account.passwordHash or ""):
                return False, "Current password is incorrect"

            if new_password != confirm_password:
                return False, "New passwords do not match"

            validation = validate_password_strength(new_password)
            if not validation.isValid:
                return False, ", ".join(validation.violations)

            account.passwordHash = get_password_hash(new_password)
            account.mustChangePassword = False
            store.save(account)
        return True, None

    @staticmethod
    def get_stats(store: CredentialStore) -> Dict[str, int]:
        """Account counts by role."""
        accounts = store.list_accounts()
        stats = {role.value: 0 for role in UserRole}
        for account in accounts:
            stats[account.role.value] += 1
        stats["active"] = sum(1 for a in accounts if a.isActive)
        stats["total"] = len(accounts)
        return stats
