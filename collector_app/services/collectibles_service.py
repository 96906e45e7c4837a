from flask import current_app

from ..errors import Forbidden, InvalidRequest, NotFound
from ..models.entities import Rarity
from ..storage.factory import get_store

REQUIRED_FIELDS = ("name", "series", "variant", "rarity", "image")
EDITABLE_FIELDS = (
    "name",
    "series",
    "variant",
    "rarity",
    "image",
    "description",
    "for_trade",
)


def _coerce_rarity(value):
    try:
        return Rarity(value)
    except ValueError:
        raise InvalidRequest(
            f"Invalid rarity '{value}'. Expected one of: {', '.join(Rarity.values())}"
        )


def add_collectible(owner_id, data):
    missing = [key for key in REQUIRED_FIELDS if not data.get(key)]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")
    fields = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    fields["rarity"] = _coerce_rarity(fields["rarity"])
    fields["user_id"] = owner_id
    collectible = get_store().create_collectible(fields)
    current_app.logger.info(
        f"User {owner_id} added collectible {collectible.id} ('{collectible.name}')."
    )
    return collectible


def get_collectible(collectible_id):
    collectible = get_store().get_collectible(collectible_id)
    if collectible is None:
        raise NotFound("Collectible not found")
    return collectible


def _get_owned(collectible_id, acting_user_id):
    collectible = get_collectible(collectible_id)
    if collectible.user_id != acting_user_id:
        raise Forbidden("You do not own this collectible")
    return collectible


def list_user_collectibles(user_id, sort=None):
    collectibles = get_store().get_user_collectibles(user_id)
    if sort is None:
        return collectibles
    if sort != "rarity":
        raise InvalidRequest(f"Unsupported sort '{sort}'")
    return sorted(collectibles, key=lambda c: (-c.rarity.rank, c.id))


def update_collectible(collectible_id, acting_user_id, updates):
    _get_owned(collectible_id, acting_user_id)
    fields = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS}
    if "rarity" in fields:
        fields["rarity"] = _coerce_rarity(fields["rarity"])
    for key in REQUIRED_FIELDS:
        if key in fields and not fields[key]:
            raise InvalidRequest(f"{key} cannot be blank")
    if "for_trade" in fields and not isinstance(fields["for_trade"], bool):
        raise InvalidRequest("forTrade must be true or false")
    return get_store().update_collectible(collectible_id, fields)


def remove_collectible(collectible_id, acting_user_id):
    _get_owned(collectible_id, acting_user_id)
    get_store().delete_collectible(collectible_id)
    current_app.logger.info(
        f"User {acting_user_id} deleted collectible {collectible_id}."
    )


def list_collectibles_for_trade():
    return get_store().get_collectibles_for_trade()


def search_collectibles(query):
    query = (query or "").strip()
    if not query:
        raise InvalidRequest("Search query cannot be blank")
    return get_store().search_collectibles(query)
