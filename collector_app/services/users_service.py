from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from ..errors import Conflict, Forbidden, InvalidRequest, NotFound
from ..storage.factory import get_store

PROFILE_FIELDS = ("display_name", "bio", "profile_image", "profile_banner")


def register_user(username, email, password, display_name=None, **profile):
    """Creates a user with a hashed password. Raises Conflict for taken names."""
    username = (username or "").strip()
    email = (email or "").strip()
    if not username or not email or not password:
        raise InvalidRequest("Username, email and password are required")

    store = get_store()
    if store.get_user_by_username(username):
        raise Conflict("Username already exists")
    if store.get_user_by_email(email):
        raise Conflict("Email already exists")

    data = {
        "username": username,
        "email": email,
        "password_hash": generate_password_hash(password),
        "display_name": (display_name or "").strip() or username,
    }
    data.update({k: v for k, v in profile.items() if k in PROFILE_FIELDS})
    user = store.create_user(data)
    current_app.logger.info(f"Registered user {user.id} ('{user.username}').")
    return user


def authenticate_user(username, password):
    """Returns the user for valid credentials, otherwise None."""
    user = get_store().get_user_by_username(username)
    if user and password and check_password_hash(user.password_hash, password):
        return user
    current_app.logger.warning(f"Failed login attempt for username '{username}'.")
    return None


def get_user(user_id):
    user = get_store().get_user(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def resolve_user(id_or_username):
    """Looks a user up by numeric id first, then by username."""
    store = get_store()
    user = None
    value = str(id_or_username)
    if value.isdigit():
        user = store.get_user(int(value))
    if user is None:
        user = store.get_user_by_username(value)
    if user is None:
        raise NotFound("User not found")
    return user


def update_profile(user_id, acting_user_id, updates):
    if user_id != acting_user_id:
        raise Forbidden("You can only update your own profile")
    get_user(user_id)
    allowed = {k: v for k, v in updates.items() if k in PROFILE_FIELDS}
    if "display_name" in allowed and not (allowed["display_name"] or "").strip():
        raise InvalidRequest("Display name cannot be blank")
    return get_store().update_user(user_id, allowed)


def search_users(query):
    query = (query or "").strip()
    if len(query) < current_app.config.get("USER_SEARCH_MIN_LENGTH", 2):
        raise InvalidRequest("Search query must be at least 2 characters")
    return get_store().search_users(query)


def list_users():
    return get_store().get_all_users()
