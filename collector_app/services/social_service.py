from flask import current_app

from ..errors import InvalidRequest, NotFound
from ..storage.factory import get_store
from . import notifications_service


def follow_user(follower_id, following_id):
    if follower_id == following_id:
        raise InvalidRequest("You cannot follow yourself")
    store = get_store()
    follower = store.get_user(follower_id)
    if follower is None:
        raise NotFound("User not found")
    if store.get_user(following_id) is None:
        raise NotFound("User to follow not found")

    follow = store.create_follow(
        {"follower_id": follower_id, "following_id": following_id}
    )
    current_app.logger.info(f"User {follower_id} followed user {following_id}.")
    notifications_service.notify_follow(follower, following_id)
    return follow


def unfollow_user(follower_id, following_id):
    if not get_store().delete_follow(follower_id, following_id):
        raise NotFound("You are not following this user")
    current_app.logger.info(f"User {follower_id} unfollowed user {following_id}.")


def is_following(follower_id, following_id):
    return get_store().get_follow(follower_id, following_id) is not None


def list_followers(user_id):
    return get_store().get_user_followers(user_id)


def list_following(user_id):
    return get_store().get_user_following(user_id)
