# demarcation/services/users.py
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation import config
from demarcation.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from demarcation.models import Circle, User, utcnow
from demarcation.permissions import Capability, Role, has_capability

logger = logging.getLogger(__name__)

# new hashes use bcrypt_sha256 (no 72-byte limit); raw bcrypt still verifies
pwd_ctx = CryptContext(
    schemes=["bcrypt_sha256", "bcrypt"],
    default="bcrypt_sha256",
    deprecated=["bcrypt"],
)

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"\d")
INVITE_ROLES = (Role.OFFICER, Role.SUPERVISOR)


# -----------------------------
# Password helpers
# -----------------------------
def hash_password(plain: str) -> str:
    return pwd_ctx.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_ctx.verify(plain, hashed)
    except (ValueError, TypeError):
        # malformed stored hash
        return False


def validate_password(password: Optional[str]) -> None:
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if not _LETTER.search(password) or not _DIGIT.search(password):
        raise ValidationError("Password must contain at least one letter and one digit")


# -----------------------------
# Tokens
# -----------------------------
def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": str(user.id), "role": user.role, "exp": expire}
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.ALGORITHM)


async def get_user_from_token(session: AsyncSession, token: Optional[str]) -> User:
    """Decode the token and re-read the user; the stored role and flags win over the claims."""
    if not token:
        raise AuthenticationError("Missing auth token")
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.ALGORITHM])
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise AuthenticationError("Invalid token") from None

    user = await session.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("Account is disabled")
    return user


# -----------------------------
# Lookups
# -----------------------------
def normalize_email(email: Optional[str]) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")
    return email


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def _check_unique(session: AsyncSession, email: str, employee_id: Optional[str]) -> None:
    if await get_user_by_email(session, email) is not None:
        raise ConflictError("Email is already registered")
    if employee_id:
        taken = await session.execute(select(User.id).where(User.employee_id == employee_id))
        if taken.scalar_one_or_none() is not None:
            raise ConflictError("Employee ID is already registered")


async def _check_circle(session: AsyncSession, circle_id: Optional[int]) -> None:
    if circle_id is not None and await session.get(Circle, circle_id) is None:
        raise ValidationError("Unknown circle")


def _parse_role(value) -> Role:
    try:
        return Role(str(value or Role.CITIZEN.value).strip().lower())
    except ValueError:
        allowed = ", ".join(r.value for r in Role)
        raise ValidationError(f"Invalid role '{value}'. Allowed: {allowed}") from None


async def _insert_user(session: AsyncSession, role: Role, data: Dict[str, Any]) -> User:
    email = normalize_email(data.get("email"))
    full_name = (data.get("full_name") or "").strip()
    if not full_name:
        raise ValidationError("fullName is required")
    validate_password(data.get("password"))
    employee_id = (data.get("employee_id") or "").strip() or None
    circle_id = data.get("circle_id")

    await _check_unique(session, email, employee_id)
    await _check_circle(session, circle_id)

    user = User(
        email=email,
        full_name=full_name,
        phone_number=data.get("phone_number"),
        employee_id=employee_id,
        hashed_password=hash_password(data["password"]),
        role=role.value,
        circle_id=circle_id if role != Role.CITIZEN else None,
        is_active=True,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


# -----------------------------
# Registration / login
# -----------------------------
async def register_user(session: AsyncSession, data: Dict[str, Any]) -> User:
    """
    Self-registration. Citizens sign up freely; officers and supervisors need
    an invite code; administrators are created by other administrators only.
    """
    role = _parse_role(data.get("role"))
    if role == Role.ADMINISTRATOR:
        raise AuthorizationError("Administrator accounts cannot be self-registered")
    if role in INVITE_ROLES and (data.get("invite_code") or "").strip() not in config.OFFICER_INVITE_CODES:
        raise AuthorizationError("A valid invite code is required for staff registration")

    user = await _insert_user(session, role, data)
    logger.info("user=%s registered as %s", user.id, user.role)
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(session, email)
    if user is None or not verify_password(password or "", user.hashed_password):
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Account is disabled")
    logger.info("user=%s logged in", user.id)
    return user


# -----------------------------
# Own account
# -----------------------------
async def update_profile(session: AsyncSession, user: User, changes: Dict[str, Any]) -> User:
    """Name and phone only; email, role and circle are managed by administrators."""
    if changes.get("full_name") is not None:
        full_name = changes["full_name"].strip()
        if not full_name:
            raise ValidationError("fullName must not be empty")
        user.full_name = full_name
    if "phone_number" in changes:
        phone = (changes["phone_number"] or "").strip() or None
        if phone and len(phone) > 20:
            raise ValidationError("phoneNumber must be at most 20 characters")
        user.phone_number = phone
    user.updated_at = utcnow()
    await session.commit()
    await session.refresh(user)
    logger.info("user=%s updated own profile: %s", user.id, sorted(changes))
    return user


async def change_password(session: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password or "", user.hashed_password):
        raise AuthenticationError("Current password is incorrect")
    validate_password(new_password)
    if new_password == current_password:
        raise ValidationError("New password must differ from the current one")
    user.hashed_password = hash_password(new_password)
    user.updated_at = utcnow()
    await session.commit()
    logger.info("user=%s changed password", user.id)


# -----------------------------
# Administration
# -----------------------------
def _require_user_admin(actor: User) -> None:
    if not has_capability(actor.role, Capability.MANAGE_USERS):
        raise AuthorizationError("Administrator access required")


async def list_users(session: AsyncSession, actor: User, role: Optional[str] = None) -> List[User]:
    _require_user_admin(actor)
    query = select(User).order_by(User.full_name, User.id)
    if role:
        query = query.where(User.role == _parse_role(role).value)
    result = await session.execute(query)
    return list(result.scalars().all())


async def create_user(session: AsyncSession, actor: User, data: Dict[str, Any]) -> User:
    _require_user_admin(actor)
    role = _parse_role(data.get("role"))
    user = await _insert_user(session, role, data)
    logger.info("user=%s (%s) created by admin=%s", user.id, user.role, actor.id)
    return user


async def update_user(session: AsyncSession, actor: User, user_id: int, changes: Dict[str, Any]) -> User:
    """Only the active flag and the circle can change; roles are fixed at creation."""
    _require_user_admin(actor)
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    if "is_active" in changes and changes["is_active"] is not None:
        if user.id == actor.id and not changes["is_active"]:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = bool(changes["is_active"])
    if "circle_id" in changes:
        await _check_circle(session, changes["circle_id"])
        user.circle_id = changes["circle_id"]
    user.updated_at = utcnow()
    await session.commit()
    await session.refresh(user)
    logger.info("user=%s updated by admin=%s: %s", user.id, actor.id, sorted(changes))
    return user


async def ensure_bootstrap_admin(session: AsyncSession) -> Optional[User]:
    """Create the configured administrator once, if there is no administrator yet."""
    if not (config.ADMIN_EMAIL and config.ADMIN_PASSWORD):
        return None
    existing = await session.execute(
        select(func.count(User.id)).where(User.role == Role.ADMINISTRATOR.value)
    )
    if existing.scalar():
        return None
    if await get_user_by_email(session, config.ADMIN_EMAIL) is not None:
        logger.warning("bootstrap admin email %s already used by a non-admin account", config.ADMIN_EMAIL)
        return None

    admin = User(
        email=normalize_email(config.ADMIN_EMAIL),
        full_name="Administrator",
        hashed_password=hash_password(config.ADMIN_PASSWORD),
        role=Role.ADMINISTRATOR.value,
        is_active=True,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    session.add(admin)
    await session.commit()
    logger.info("bootstrap administrator %s created", admin.email)
    return admin
