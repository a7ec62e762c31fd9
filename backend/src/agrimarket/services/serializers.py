"""ORM rows -> camelCase JSON-ready dicts for the response envelope."""

from agrimarket.domain.models import Interaction, ProduceListing, User
from agrimarket.domain.schemas import (
    CategoryRef,
    FarmerRef,
    InteractionResponse,
    ListingResponse,
    UserRef,
    UserResponse,
)


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


def serialize_user(user: User) -> dict:
    """Public view of a user. The password hash is never part of it."""
    return _dump(UserResponse.model_validate(user))


def serialize_listing(listing: ProduceListing) -> dict:
    """Listing with the farmer contact card and category reference."""
    data = _dump(ListingResponse.model_validate(listing))
    data["farmer"] = _dump(FarmerRef.model_validate(listing.farmer)) if listing.farmer else None
    data["category"] = _dump(CategoryRef.model_validate(listing.category)) if listing.category else None
    return data


def serialize_owner_listing(listing: ProduceListing, interactions: list[Interaction]) -> dict:
    """Owner's view: the listing plus its most recent interactions."""
    data = serialize_listing(listing)
    data["interactions"] = [serialize_interaction(i, include_buyer=True) for i in interactions]
    return data


def serialize_interaction(
    interaction: Interaction,
    *,
    include_listing: bool = False,
    include_buyer: bool = False,
    include_farmer: bool = False,
) -> dict:
    data = _dump(InteractionResponse.model_validate(interaction))
    if include_listing and interaction.listing is not None:
        listing = interaction.listing
        data["listing"] = {
            "id": listing.id,
            "cropType": listing.crop_type,
            "quantity": listing.quantity,
            "unit": listing.unit,
            "pricePerUnit": listing.price_per_unit,
            "location": listing.location,
            "isActive": listing.is_active,
        }
    if include_buyer and interaction.buyer is not None:
        data["buyer"] = _dump(UserRef.model_validate(interaction.buyer))
    if include_farmer and interaction.farmer is not None:
        data["farmer"] = _dump(UserRef.model_validate(interaction.farmer))
    return data
