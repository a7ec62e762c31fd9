"""Pydantic v2 schemas for API request/response validation.

Wire format is camelCase (``fullName``, ``pricePerUnit``); Python attributes
stay snake_case. Request models accept either spelling.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from agrimarket.domain.enums import InteractionType, LandUnit, Season, UserRole

PHONE_PATTERN = re.compile(r"^\+254[17]\d{8}$")
PHONE_MESSAGE = "Invalid Kenyan phone number format (+254XXXXXXXXX)"

MAX_METADATA_KEYS = 20
MAX_METADATA_BYTES = 2048
MAX_SAVED_LISTINGS = 500


# ---------------------------------------------------------------------------
# Shared field types
# ---------------------------------------------------------------------------


def as_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_utc(value: datetime) -> str:
    return as_utc(value).isoformat().replace("+00:00", "Z")


UtcDatetime = Annotated[datetime, AfterValidator(as_utc), PlainSerializer(iso_utc, return_type=str)]


def normalize_email(value: str) -> str:
    """Case-fold and check the one-@, dotted-domain shape."""
    email = value.strip().lower()
    local, sep, domain = email.partition("@")
    if not sep or "@" in domain or not local or not domain:
        raise ValueError("Invalid email format")
    labels = domain.split(".")
    if len(labels) < 2 or any(not label for label in labels):
        raise ValueError("Invalid email format")
    if any(ch.isspace() for ch in email):
        raise ValueError("Invalid email format")
    return email


def check_phone(value: str) -> str:
    phone = value.strip()
    if not PHONE_PATTERN.match(phone):
        raise ValueError(PHONE_MESSAGE)
    return phone


Email = Annotated[str, AfterValidator(normalize_email)]
PhoneNumber = Annotated[str, AfterValidator(check_phone)]
FullName = Annotated[str, Field(min_length=2, max_length=100)]
ProfileLocation = Annotated[str, Field(min_length=2, max_length=100)]
# Non-finite values are rejected; the JSON encoder cannot render them
PositiveFloat = Annotated[float, Field(gt=0, allow_inf_nan=False)]


@dataclass
class PasswordCheck:
    """Outcome of the credential policy."""

    ok: bool
    errors: list[str] = field(default_factory=list)


def validate_password(password: str | None) -> PasswordCheck:
    """Credential strength policy.

    Complexity rules are intentionally off: any non-empty string is accepted.
    Call sites go through this function so the policy can change in one place.
    """
    if password is None or password == "":
        return PasswordCheck(ok=False, errors=["Password is required"])
    return PasswordCheck(ok=True)


def _check_password(value: str) -> str:
    result = validate_password(value)
    if not result.ok:
        raise ValueError("; ".join(result.errors))
    return value


Password = Annotated[str, AfterValidator(_check_password)]


class ApiModel(BaseModel):
    """Base for wire models: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(ApiModel):
    """Schema for creating a new user."""

    email: Email
    password: Password
    full_name: FullName
    phone_number: PhoneNumber
    role: UserRole
    location: ProfileLocation | None = None
    farm_size: PositiveFloat | None = None

    @model_validator(mode="after")
    def _farmer_needs_location(self) -> "RegisterRequest":
        if self.role == UserRole.FARMER and not self.location:
            raise ValueError("Location is required for farmers")
        return self


class LoginRequest(ApiModel):
    """Schema for user login."""

    email: Email
    password: str = Field(min_length=1)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(ApiModel):
    refresh_token: str | None = None


class ProfileUpdate(ApiModel):
    """Patch: only supplied fields are changed."""

    full_name: FullName | None = None
    phone_number: PhoneNumber | None = None
    location: ProfileLocation | None = None
    farm_size: PositiveFloat | None = None


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(min_length=1)
    new_password: Password


class ProfileResponse(ApiModel):
    location: str | None = None
    farm_size: float | None = None


class UserResponse(ApiModel):
    """User as returned to clients. Never carries the credential."""

    id: str
    email: str
    full_name: str
    phone_number: str
    role: UserRole
    is_active: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime
    profile: ProfileResponse | None = None


class TokenPair(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

CropType = Annotated[str, Field(min_length=2, max_length=50)]
Unit = Annotated[str, Field(min_length=1, max_length=20)]
ListingLocation = Annotated[str, Field(min_length=2, max_length=100)]
Description = Annotated[str, Field(max_length=500)]

# Columns that may not be cleared with an explicit null
NON_NULLABLE_LISTING_FIELDS = (
    "crop_type", "quantity", "unit", "price_per_unit", "harvest_date", "location", "is_active",
)


class ListingCreate(ApiModel):
    """Schema for creating a produce listing."""

    farmer_id: str | None = None
    crop_type: CropType
    quantity: PositiveFloat
    unit: Unit
    price_per_unit: PositiveFloat
    harvest_date: UtcDatetime
    location: ListingLocation
    description: Description | None = None
    category_id: str | None = None


class ListingUpdate(ApiModel):
    """Partial update; each supplied field is revalidated."""

    farmer_id: str | None = None
    crop_type: CropType | None = None
    quantity: PositiveFloat | None = None
    unit: Unit | None = None
    price_per_unit: PositiveFloat | None = None
    harvest_date: UtcDatetime | None = None
    location: ListingLocation | None = None
    description: Description | None = None
    category_id: str | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def _no_null_required(self) -> "ListingUpdate":
        for name in NON_NULLABLE_LISTING_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Supplied fields only, excluding the ownership hint."""
        return self.model_dump(exclude_unset=True, exclude={"farmer_id"})


class ListingDelete(ApiModel):
    farmer_id: str | None = None


class CategoryRef(ApiModel):
    id: str
    name: str


class FarmerRef(ApiModel):
    id: str
    full_name: str
    phone_number: str | None = None


class UserRef(ApiModel):
    id: str
    full_name: str


class ListingResponse(ApiModel):
    id: str
    farmer_id: str
    crop_type: str
    quantity: float
    unit: str
    price_per_unit: float
    harvest_date: UtcDatetime
    location: str
    description: str | None = None
    category_id: str | None = None
    is_active: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime


class ListingFilters(ApiModel):
    """Buyer-side listing filters, already coerced from query strings."""

    search: str | None = None
    county: str | None = None
    location_contains: str | None = None
    crop_type: str | None = None
    crop_type_contains: str | None = None
    category_id: str | None = None
    min_price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    max_price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    harvest_date_from: UtcDatetime | None = None
    harvest_date_to: UtcDatetime | None = None

    @model_validator(mode="after")
    def _bounds_ordered(self) -> "ListingFilters":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("minPrice must not exceed maxPrice")
        if (
            self.harvest_date_from is not None
            and self.harvest_date_to is not None
            and self.harvest_date_from > self.harvest_date_to
        ):
            raise ValueError("harvestDateFrom must not be after harvestDateTo")
        return self


# ---------------------------------------------------------------------------
# Interactions & preferences
# ---------------------------------------------------------------------------


class InteractionCreate(ApiModel):
    buyer_id: str | None = None
    listing_id: str = Field(min_length=1)
    type: InteractionType
    metadata: dict[str, Any] | None = None

    @field_validator("metadata")
    @classmethod
    def _small_mapping(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if value is None:
            return value
        if len(value) > MAX_METADATA_KEYS:
            raise ValueError(f"metadata may have at most {MAX_METADATA_KEYS} keys")
        if len(json.dumps(value, default=str)) > MAX_METADATA_BYTES:
            raise ValueError(f"metadata must serialize to at most {MAX_METADATA_BYTES} bytes")
        return value


class InteractionResponse(ApiModel):
    id: str
    buyer_id: str
    farmer_id: str
    listing_id: str
    type: InteractionType
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="meta")
    created_at: UtcDatetime


class PreferencesUpsert(ApiModel):
    user_id: str | None = None
    search_filters: dict[str, Any] | None = None
    saved_listings: list[str] = Field(default_factory=list, max_length=MAX_SAVED_LISTINGS)

    @field_validator("saved_listings")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        # Keep first occurrence order
        return list(dict.fromkeys(value))


class PreferencesResponse(ApiModel):
    id: str
    user_id: str
    search_filters: dict[str, Any] | None = None
    saved_listings: list[str] = Field(default_factory=list)
    created_at: UtcDatetime
    updated_at: UtcDatetime


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class CategoryResponse(ApiModel):
    id: str
    name: str
    description: str | None = None
    created_at: UtcDatetime


class LocationResponse(ApiModel):
    id: str
    county: str
    region: str


# ---------------------------------------------------------------------------
# Forecast
# ---------------------------------------------------------------------------


class ForecastRequest(ApiModel):
    location: str = Field(min_length=2, max_length=100)
    land_size: PositiveFloat
    land_unit: LandUnit = LandUnit.ACRES
    season: Season
