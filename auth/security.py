"""
Security utilities for authentication and authorization.
Includes password hashing, password policy, session tokens and signed download links.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import bcrypt
from fastapi.security import HTTPBearer
import secrets
import string
import random

from core.logger import logger
import config

# Password hashing
# Configure to avoid wrap bug detection issues
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",  # Use bcrypt 2b identifier
    bcrypt__rounds=12  # Standard rounds
)

# Token settings
SECRET_KEY_ALGORITHM = config.ALGORITHM

# Security schemes
security = HTTPBearer()
security_optional = HTTPBearer(auto_error=False)  # For optional authentication

SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

# Unambiguous alphabet for generated passwords (no 0/O, 1/l/I)
TEMP_PASSWORD_UPPER = "ABCDEFGHJKMNPQRSTUVWXYZ"
TEMP_PASSWORD_LOWER = "abcdefghijkmnpqrstuvwxyz"
TEMP_PASSWORD_DIGITS = "23456789"
TEMP_PASSWORD_SYMBOLS = "!@#$%&*"


class PasswordValidation(BaseModel):
    """Result of a password strength check."""
    isValid: bool
    violations: List[str]


# Password utilities
def validate_password_strength(password: str) -> PasswordValidation:
    """
    Validate password strength.

    Every rule is checked so that all violations can be reported at once:
    - Minimum 8 characters
    - At least 1 lowercase letter
    - At least 1 uppercase letter
    - At least 1 number
    - At least 1 special character

    Args:
        password: Password to validate

    Returns:
        PasswordValidation with the list of violated rules
    """
    password = password or ""
    violations = []

    if len(password) < config.PASSWORD_MIN_LENGTH:
        violations.append(f"Password must be at least {config.PASSWORD_MIN_LENGTH} characters long")

    if not any(char.islower() for char in password):
        violations.append("Password must contain at least one lowercase letter")

    if not any(char.isupper() for char in password):
        violations.append("Password must contain at least one uppercase letter")

    if not any(char.isdigit() for char in password):
        violations.append("Password must contain at least one number")

    if not any(char in SPECIAL_CHARACTERS for char in password):
        violations.append("Password must contain at least one special character")

    return PasswordValidation(isValid=not violations, violations=violations)


def generate_temporary_password(length: int = config.TEMP_PASSWORD_LENGTH) -> str:
    """
    Generate a random temporary password that satisfies the password policy.

    One character from each class is placed first, the rest are drawn from the
    combined alphabet, then the result is shuffled.
    """
    rng = random.SystemRandom()
    classes = [TEMP_PASSWORD_UPPER, TEMP_PASSWORD_LOWER, TEMP_PASSWORD_DIGITS, TEMP_PASSWORD_SYMBOLS]
    alphabet = "".join(classes)
    chars = [rng.choice(group) for group in classes]
    chars += [rng.choice(alphabet) for _ in range(max(length, len(classes)) - len(classes))]
    rng.shuffle(chars)
    return "".join(chars)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    if not plain_password or not hashed_password:
        return False
    try:
        # Try direct bcrypt first
        password_bytes = plain_password.encode('utf-8')
        hash_bytes = hashed_password.encode('utf-8')
        return bcrypt.checkpw(password_bytes, hash_bytes)
    except ValueError:
        # Fallback to passlib
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except ValueError:
            return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Password validation should be done before calling this function.
    Use validate_password_strength() to check password requirements.
    """
    # Ensure password doesn't exceed 72 bytes
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > 72:
        raise ValueError("Password cannot be longer than 72 bytes. Please use a shorter password.")

    # Use bcrypt directly to avoid passlib initialization issues
    try:
        salt = bcrypt.gensalt(rounds=12)
        hashed = bcrypt.hashpw(password_bytes, salt)
        # Return as string (passlib format: $2b$12$...)
        return hashed.decode('utf-8')
    except Exception as e:
        logger.warning(f"bcrypt hashing failed, falling back to passlib: {e}")
        return pwd_context.hash(password)


# Identifier utilities
def generate_account_id(role: str) -> str:
    """Generate an account id such as ``STD-483920-K7Q``."""
    prefix = {"admin": "ADM", "teacher": "TCH"}.get(role, "STD")
    timestamp = str(int(datetime.utcnow().timestamp() * 1000))[-6:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
    return f"{prefix}-{timestamp}-{suffix}"


def generate_material_id() -> str:
    """Generate a material id such as ``MAT-1718000000000-3FQ9ZK``."""
    timestamp = str(int(datetime.utcnow().timestamp() * 1000))
    return f"MAT-{timestamp}-{secrets.token_hex(3).upper()}"


def generate_record_id() -> str:
    """Generate a log entry id (millisecond timestamp plus random suffix)."""
    return f"{int(datetime.utcnow().timestamp() * 1000)}-{secrets.token_hex(3)}"


# Session token utilities
def create_session_token(
    account_id: str,
    role: str,
    issued_at: Optional[datetime] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed session token carrying the account id and issuance time.

    Args:
        account_id: Account identifier
        role: Account role
        issued_at: Issuance time (defaults to now)
        expires_delta: Optional lifetime

    Returns:
        Encoded JWT
    """
    issued_at = issued_at or datetime.utcnow()
    expire = issued_at + (expires_delta or timedelta(minutes=config.SESSION_EXPIRE_MINUTES))
    to_encode = {
        "sub": account_id,
        "role": role,
        "iat": issued_at,
        "exp": expire,
        "jti": secrets.token_hex(8),
        "type": "session"
    }
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=SECRET_KEY_ALGORITHM)


def decode_session_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a session token.

    Returns:
        Decoded token data or None if invalid
    """
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[SECRET_KEY_ALGORITHM])
        if payload.get("type") != "session":
            return None
        return payload
    except JWTError:
        return None


# Download link utilities
def create_download_token(material_id: str, student_id: str, expires_hours: Optional[int] = None) -> str:
    """Create a signed, time-bounded reference to one material."""
    expire = datetime.utcnow() + timedelta(hours=expires_hours or config.DOWNLOAD_LINK_EXPIRE_HOURS)
    to_encode = {
        "sub": material_id,
        "student": student_id,
        "exp": expire,
        "type": "download"
    }
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=SECRET_KEY_ALGORITHM)


def decode_download_token(token: str, material_id: str) -> Optional[Dict[str, Any]]:
    """Return the token payload if it is a valid download token for ``material_id``."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[SECRET_KEY_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "download" or payload.get("sub") != material_id:
        return None
    return payload


def build_download_url(material_id: str, student_id: str) -> str:
    token = create_download_token(material_id, student_id)
    return f"{config.PUBLIC_BASE_URL}/api/materials/{material_id}/download?token={token}"
