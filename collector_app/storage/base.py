"""
The entity store contract.

Every read and write of shared state goes through an ``EntityStore``. Two
implementations exist, ``MemoryStore`` and ``SqlStore``, and they must
behave identically; the test suite runs the same cases against both.

Stores take plain dicts (snake_case keys) for creates and updates and hand
back the records defined in ``collector_app.models.entities``. Ids and
creation timestamps are always assigned by the store, never by the caller.
"""

from abc import ABC, abstractmethod

USER_CREATE_FIELDS = (
    "username",
    "email",
    "password_hash",
    "display_name",
    "bio",
    "profile_image",
    "profile_banner",
)
USER_UPDATE_FIELDS = ("display_name", "bio", "profile_image", "profile_banner")

COLLECTIBLE_CREATE_FIELDS = (
    "user_id",
    "name",
    "series",
    "variant",
    "rarity",
    "image",
    "description",
    "for_trade",
)
COLLECTIBLE_UPDATE_FIELDS = (
    "name",
    "series",
    "variant",
    "rarity",
    "image",
    "description",
    "for_trade",
)

TRADE_CREATE_FIELDS = (
    "proposer_id",
    "receiver_id",
    "proposer_collectible_id",
    "receiver_collectible_id",
    "message",
)
POST_CREATE_FIELDS = ("user_id", "content", "images")
LIKE_CREATE_FIELDS = ("user_id", "post_id")
COMMENT_CREATE_FIELDS = ("user_id", "post_id", "content")
FOLLOW_CREATE_FIELDS = ("follower_id", "following_id")
NOTIFICATION_CREATE_FIELDS = ("user_id", "type", "content", "source", "actor_id")
CHAT_MESSAGE_CREATE_FIELDS = ("trade_id", "sender_id", "message", "is_pinned")


def pick_fields(data, allowed):
    """Keep only the keys a caller is allowed to set."""
    return {key: value for key, value in data.items() if key in allowed}


def apply_dict_updates(entity, update_data, allowed):
    """
    Merge ``update_data`` into ``entity`` in place, touching only attributes
    listed in ``allowed``. Returns the names of the fields that changed.
    """
    changed = []
    for key, value in update_data.items():
        if key not in allowed or not hasattr(entity, key):
            continue
        if getattr(entity, key) != value:
            setattr(entity, key, value)
            changed.append(key)
    return changed


class EntityStore(ABC):
    # --- users ---

    @abstractmethod
    def get_user(self, user_id):
        """Returns the user or None."""

    @abstractmethod
    def get_users_by_ids(self, user_ids):
        """Returns a ``{id: User}`` dict for the ids that exist."""

    @abstractmethod
    def get_user_by_username(self, username):
        pass

    @abstractmethod
    def get_user_by_email(self, email):
        pass

    @abstractmethod
    def create_user(self, data):
        """Raises Conflict when the username or email is already taken."""

    @abstractmethod
    def update_user(self, user_id, updates):
        """Partial merge of profile fields. Raises NotFound."""

    @abstractmethod
    def get_all_users(self):
        pass

    @abstractmethod
    def search_users(self, query):
        """Case-insensitive substring match on username and display name."""

    # --- collectibles ---

    @abstractmethod
    def get_collectible(self, collectible_id):
        pass

    @abstractmethod
    def get_user_collectibles(self, user_id):
        pass

    @abstractmethod
    def create_collectible(self, data):
        """Raises NotFound when the owner does not exist."""

    @abstractmethod
    def update_collectible(self, collectible_id, updates):
        pass

    @abstractmethod
    def delete_collectible(self, collectible_id):
        """
        Removes a collectible. Raises InvalidState while any trade references
        it, whatever the trade status.
        """

    @abstractmethod
    def get_collectibles_for_trade(self):
        """Collectibles flagged for trade, each with an owner summary."""

    @abstractmethod
    def search_collectibles(self, query):
        """Case-insensitive substring match on name, series and variant."""

    @abstractmethod
    def count_collectibles_in_series(self, series, exclude_user_id=None):
        """Returns ``{user_id: count}`` of collectibles whose series is in ``series``."""

    # --- trades ---

    @abstractmethod
    def get_trade(self, trade_id):
        pass

    @abstractmethod
    def get_trade_with_details(self, trade_id):
        pass

    @abstractmethod
    def get_user_trades(self, user_id):
        pass

    @abstractmethod
    def get_user_trades_with_details(self, user_id):
        """All trades the user is a party to, newest first, fully expanded."""

    @abstractmethod
    def create_trade(self, data):
        """Creates a pending trade. Raises NotFound for unresolved references."""

    @abstractmethod
    def compare_and_set_trade_status(self, trade_id, expected_status, new_status):
        """
        Atomically moves the trade from ``expected_status`` to ``new_status``.
        Returns the updated trade, or None when the current status no longer
        matches. Raises NotFound for an unknown trade.
        """

    # --- posts ---

    @abstractmethod
    def get_post(self, post_id):
        pass

    @abstractmethod
    def get_post_with_details(self, post_id, viewer_id=None):
        pass

    @abstractmethod
    def create_post(self, data):
        pass

    @abstractmethod
    def delete_post(self, post_id):
        """Deletes the post with its likes and comments in one transaction."""

    @abstractmethod
    def get_feed_posts(self, viewer_id=None, author_id=None):
        """Posts newest first with counts and the viewer's liked flag."""

    # --- likes ---

    @abstractmethod
    def get_like(self, user_id, post_id):
        pass

    @abstractmethod
    def create_like(self, data):
        """Raises Conflict when the user already liked the post."""

    @abstractmethod
    def delete_like(self, user_id, post_id):
        """Returns True when a like was removed."""

    @abstractmethod
    def count_post_likes(self, post_id):
        pass

    # --- comments ---

    @abstractmethod
    def get_comment(self, comment_id):
        pass

    @abstractmethod
    def get_post_comments(self, post_id):
        pass

    @abstractmethod
    def create_comment(self, data):
        pass

    @abstractmethod
    def delete_comment(self, comment_id):
        pass

    # --- follows ---

    @abstractmethod
    def get_follow(self, follower_id, following_id):
        pass

    @abstractmethod
    def create_follow(self, data):
        """Raises InvalidRequest for a self-follow and Conflict for a duplicate."""

    @abstractmethod
    def delete_follow(self, follower_id, following_id):
        """Returns True when a follow was removed."""

    @abstractmethod
    def get_user_followers(self, user_id):
        pass

    @abstractmethod
    def get_user_following(self, user_id):
        pass

    # --- notifications ---

    @abstractmethod
    def create_notification(self, data):
        pass

    @abstractmethod
    def get_notification(self, notification_id):
        pass

    @abstractmethod
    def get_user_notifications(self, user_id, limit=20, include_read=False):
        """Newest first, each with its actor summary."""

    @abstractmethod
    def count_unread_notifications(self, user_id):
        pass

    @abstractmethod
    def mark_notification_read(self, notification_id):
        pass

    @abstractmethod
    def mark_all_notifications_read(self, user_id):
        """Returns the number of notifications that changed."""

    @abstractmethod
    def delete_notification(self, notification_id):
        pass

    # --- chat ---

    @abstractmethod
    def create_chat_message(self, data):
        """
        Raises NotFound for an unknown trade, Forbidden when the sender is not
        a party and InvalidState unless the trade is accepted or completed.
        """

    @abstractmethod
    def get_chat_message(self, message_id):
        pass

    @abstractmethod
    def get_trade_messages(self, trade_id):
        """Oldest first, each with its sender summary."""

    @abstractmethod
    def set_chat_message_pinned(self, message_id, pinned):
        pass

    @abstractmethod
    def reset(self):
        """Drops every record and restarts id assignment."""
