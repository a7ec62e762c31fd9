"""Authentication service: password hashing, token management, identity store."""

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agrimarket.app.config import get_settings
from agrimarket.domain.enums import UserRole
from agrimarket.domain.errors import (
    AccountDeactivated,
    EmailTaken,
    InvalidCredentials,
    NotFound,
    Unauthenticated,
    ValidationFailed,
)
from agrimarket.domain.models import AuthSession, User, UserProfile, utcnow
from agrimarket.domain.schemas import (
    ProfileUpdate,
    RegisterRequest,
    TokenPair,
    normalize_email,
    validate_password,
)
from agrimarket.infra.gateway import commit, translated

logger = logging.getLogger(__name__)

settings = get_settings()
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)

ACCESS_TOKEN_TYPE = "access"

# Compared against when the email is unknown so both failure paths cost one hash
_DUMMY_HASH = pwd_context.hash(secrets.token_urlsafe(16))


@dataclass
class AuthResult:
    """A user plus the continuation credentials issued for them."""

    user: User
    tokens: TokenPair


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        # Unrecognized stored form (e.g. a legacy plaintext row)
        return False


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def create_access_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.access_token_minutes)
    payload = {
        "sub": user.id,
        "role": user.role,
        "ver": user.credential_version or 0,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    """Return the claims of a valid, unexpired access token, else None."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if claims.get("type") != ACCESS_TOKEN_TYPE or "sub" not in claims:
        return None
    return claims


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def issue_tokens(
    db: AsyncSession,
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> TokenPair:
    """Create a refresh session row and a matching access token.

    The caller commits.
    """
    refresh_token = secrets.token_urlsafe(48)  # ~64 chars
    db.add(
        AuthSession(
            user_id=user.id,
            token_hash=hash_refresh_token(refresh_token),
            expires_at=utcnow() + timedelta(days=settings.refresh_token_days),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
        )
    )
    return TokenPair(
        access_token=create_access_token(user),
        refresh_token=refresh_token,
        expires_in=settings.access_token_minutes * 60,
    )


async def resolve_principal(db: AsyncSession, token: str) -> User:
    """Map a bearer access token to an active user, or raise UNAUTHENTICATED."""
    claims = decode_token(token)
    if not claims:
        raise Unauthenticated("Invalid or expired token")
    user = await get_user(db, claims["sub"])
    if not user or not user.is_active:
        raise Unauthenticated("User not found or inactive")
    if claims.get("ver", 0) != (user.credential_version or 0):
        raise Unauthenticated("Token has been revoked")
    return user


async def refresh_tokens(
    db: AsyncSession,
    refresh_token: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthResult:
    """Consume a refresh token and issue a fresh pair.

    The consuming UPDATE is filtered on "not yet revoked and not expired", so
    two concurrent refreshes with the same token cannot both succeed.
    """
    token_hash = hash_refresh_token(refresh_token)
    now = utcnow()
    result = await db.execute(
        update(AuthSession)
        .where(
            AuthSession.token_hash == token_hash,
            AuthSession.revoked_at.is_(None),
            AuthSession.expires_at > now,
        )
        .values(revoked_at=now)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise Unauthenticated("Invalid or expired refresh token")

    session_row = (
        await db.execute(select(AuthSession).where(AuthSession.token_hash == token_hash))
    ).scalar_one()
    user = await get_user(db, session_row.user_id)
    if not user or not user.is_active:
        await db.rollback()
        raise Unauthenticated("User not found or inactive")

    tokens = await issue_tokens(db, user, ip_address, user_agent)
    await commit(db)
    logger.info("Refresh token rotated for user %s", user.id)
    return AuthResult(user=user, tokens=tokens)


async def revoke_sessions(db: AsyncSession, user_id: str, refresh_token: str | None = None) -> int:
    """Revoke one refresh session (when given) or every open session of the user."""
    stmt = update(AuthSession).where(
        AuthSession.user_id == user_id,
        AuthSession.revoked_at.is_(None),
    )
    if refresh_token:
        stmt = stmt.where(AuthSession.token_hash == hash_refresh_token(refresh_token))
    result = await db.execute(stmt.values(revoked_at=utcnow()))
    await commit(db)
    return result.rowcount or 0


# ---------------------------------------------------------------------------
# Identity store
# ---------------------------------------------------------------------------


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(
        select(User).options(selectinload(User.profile)).where(User.id == user_id)
    )
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(
        select(User).options(selectinload(User.profile)).where(User.email == email.strip().lower())
    )
    return result.scalar_one_or_none()


async def register_user(
    db: AsyncSession,
    data: RegisterRequest,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthResult:
    """Create User + UserProfile in one transaction and issue credentials."""
    if await get_user_by_email(db, data.email):
        raise EmailTaken()

    user = User(
        email=normalize_email(data.email),
        password_hash=hash_password(data.password),
        full_name=data.full_name.strip(),
        phone_number=data.phone_number,
        role=data.role.value,
        is_active=True,
        credential_version=0,
    )
    user.profile = UserProfile(location=data.location, farm_size=data.farm_size)
    db.add(user)
    async with translated(db):
        await db.flush()

    tokens = await issue_tokens(db, user, ip_address, user_agent)
    try:
        await commit(db)
    except EmailTaken:
        logger.info("Concurrent registration lost the race for %s", user.email)
        raise

    logger.info("User registered: %s (%s)", user.id, user.role)
    return AuthResult(user=await get_user(db, user.id), tokens=tokens)


async def authenticate(
    db: AsyncSession,
    email: str,
    password: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthResult:
    """Verify credentials. Unknown email and wrong password fail identically."""
    user = await get_user_by_email(db, email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentials()

    try:
        valid, new_hash = pwd_context.verify_and_update(password, user.password_hash)
    except (ValueError, TypeError):
        valid, new_hash = False, None
    if not valid:
        raise InvalidCredentials()
    if not user.is_active:
        raise AccountDeactivated()

    if new_hash:
        # Work factor changed since this hash was written
        user.password_hash = new_hash
    user.last_login_at = utcnow()
    tokens = await issue_tokens(db, user, ip_address, user_agent)
    await commit(db)
    return AuthResult(user=user, tokens=tokens)


async def get_profile(db: AsyncSession, user_id: str) -> User:
    user = await get_user(db, user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def update_profile(db: AsyncSession, user: User, patch: ProfileUpdate) -> User:
    """Apply only the supplied fields; upsert the profile row."""
    changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}

    if "full_name" in changes:
        user.full_name = changes["full_name"].strip()
    if "phone_number" in changes:
        user.phone_number = changes["phone_number"]

    profile = user.profile
    if profile is None:
        profile = UserProfile(user_id=user.id)
        db.add(profile)
        user.profile = profile
    if "location" in changes:
        profile.location = changes["location"]
    if "farm_size" in changes:
        profile.farm_size = changes["farm_size"]

    if user.role == UserRole.FARMER.value and not profile.location:
        await db.rollback()
        raise ValidationFailed.for_field("location", "Location is required for farmers", "required")

    user.updated_at = utcnow()
    await commit(db)
    logger.info("Profile updated for user %s: %s", user.id, sorted(changes))
    return await get_user(db, user.id)


async def change_password(
    db: AsyncSession,
    user: User,
    current_password: str,
    new_password: str,
) -> User:
    """Replace the stored secret and revoke every continuation credential."""
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailed(
            "Current password is incorrect",
            details=[{"field": "currentPassword", "message": "Current password is incorrect", "code": "mismatch"}],
        )
    check = validate_password(new_password)
    if not check.ok:
        raise ValidationFailed(
            details=[{"field": "newPassword", "message": msg, "code": "policy"} for msg in check.errors]
        )

    user.password_hash = hash_password(new_password)
    user.credential_version = (user.credential_version or 0) + 1
    user.updated_at = utcnow()
    await db.execute(
        update(AuthSession)
        .where(AuthSession.user_id == user.id, AuthSession.revoked_at.is_(None))
        .values(revoked_at=utcnow())
    )
    await commit(db)
    logger.info("Password changed for user %s; sessions revoked", user.id)
    return user
