"""SQLAlchemy ORM models for the produce exchange.

All models use portable types:
- String(36) for UUID primary keys
- JSON for schema-less mappings (saved filters, interaction metadata)
- DateTime(timezone=True) for timestamps, always written as UTC
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from agrimarket.infra.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class User(Base):
    """Marketplace account. Never hard-deleted; deactivation only."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    # Stored case-folded; uniqueness is therefore case-insensitive
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    phone_number = Column(String(20), nullable=False)
    role = Column(String(10), nullable=False)  # FARMER, BUYER
    is_active = Column(Boolean, nullable=False, default=True)
    # Bumped on password change; access tokens carry the version they were issued under
    credential_version = Column(Integer, nullable=False, default=0)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    profile = relationship("UserProfile", back_populates="user", uselist=False, lazy="selectin")
    preference = relationship("UserPreference", back_populates="user", uselist=False)
    listings = relationship("ProduceListing", back_populates="farmer")
    sessions = relationship("AuthSession", back_populates="user")


class UserProfile(Base):
    """1:1 extension of User with farm details."""

    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    location = Column(String(100), nullable=True)
    farm_size = Column(Float, nullable=True)  # acres
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("farm_size IS NULL OR farm_size > 0", name="ck_profile_farm_size_positive"),
    )

    user = relationship("User", back_populates="profile")


class AuthSession(Base):
    """Refresh-token continuation record. Only the SHA-256 digest is stored."""

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="sessions")


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class Category(Base):
    """Crop category catalog."""

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Location(Base):
    """Administrative location catalog (county within region)."""

    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=_uuid)
    county = Column(String(100), unique=True, nullable=False)
    region = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Marketplace
# ---------------------------------------------------------------------------


class ProduceListing(Base):
    """A farmer's offer of a harvested crop. Deletion toggles is_active."""

    __tablename__ = "produce_listings"

    id = Column(String(36), primary_key=True, default=_uuid)
    farmer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    crop_type = Column(String(50), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False)
    price_per_unit = Column(Float, nullable=False)
    harvest_date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_listing_quantity_positive"),
        CheckConstraint("price_per_unit > 0", name="ck_listing_price_positive"),
        Index("ix_listings_active_created", "is_active", "created_at"),
    )

    # Relationships
    farmer = relationship("User", back_populates="listings")
    category = relationship("Category")
    interactions = relationship("Interaction", back_populates="listing")


class Interaction(Base):
    """Append-only buyer engagement event.

    farmer_id is copied from the listing at write time and never re-derived.
    """

    __tablename__ = "interactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    buyer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    farmer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    listing_id = Column(String(36), ForeignKey("produce_listings.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # InteractionType
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    listing = relationship("ProduceListing", back_populates="interactions")
    buyer = relationship("User", foreign_keys=[buyer_id])
    farmer = relationship("User", foreign_keys=[farmer_id])


class UserPreference(Base):
    """One row per buyer: opaque saved filters plus bookmarked listing ids."""

    __tablename__ = "user_preferences"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    search_filters = Column(JSON, nullable=True)
    saved_listings = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="preference")


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditLog(Base):
    """Append-only record of state-changing and security-relevant requests."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    # No FK: failed logins are recorded with an unknown or null actor
    user_id = Column(String(36), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    resource = Column(String(50), nullable=False)
    resource_id = Column(String(36), nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
