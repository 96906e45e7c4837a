"""
Process-local entity store backed by dicts keyed by id.

A single re-entrant lock guards every operation, which makes the
check-then-write sequences (status compare-and-set, unique like and follow
pairs, post cascade delete) atomic with respect to each other.
"""

import copy
import itertools
import threading

from ..errors import Conflict, Forbidden, InvalidRequest, InvalidState, NotFound
from ..models.entities import (
    ChatMessage,
    ChatMessageWithSender,
    Collectible,
    CollectibleWithOwner,
    Comment,
    CommentWithAuthor,
    Follow,
    Like,
    Notification,
    NotificationType,
    NotificationWithActor,
    Post,
    PostWithDetails,
    Rarity,
    Trade,
    TradeStatus,
    TradeWithDetails,
    User,
    utcnow,
)
from .base import (
    CHAT_MESSAGE_CREATE_FIELDS,
    COLLECTIBLE_CREATE_FIELDS,
    COLLECTIBLE_UPDATE_FIELDS,
    COMMENT_CREATE_FIELDS,
    FOLLOW_CREATE_FIELDS,
    LIKE_CREATE_FIELDS,
    NOTIFICATION_CREATE_FIELDS,
    POST_CREATE_FIELDS,
    TRADE_CREATE_FIELDS,
    USER_CREATE_FIELDS,
    USER_UPDATE_FIELDS,
    EntityStore,
    apply_dict_updates,
    pick_fields,
)


def _matches(query, *values):
    needle = query.lower()
    return any(value and needle in value.lower() for value in values)


def _newest_first(records):
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


def _oldest_first(records):
    return sorted(records, key=lambda r: (r.created_at, r.id))


class MemoryStore(EntityStore):
    def __init__(self):
        self._lock = threading.RLock()
        self.reset()

    def reset(self):
        with self._lock:
            self._users = {}
            self._collectibles = {}
            self._trades = {}
            self._posts = {}
            self._likes = {}
            self._comments = {}
            self._follows = {}
            self._notifications = {}
            self._chat_messages = {}
            self._ids = {
                name: itertools.count(1)
                for name in (
                    "users",
                    "collectibles",
                    "trades",
                    "posts",
                    "likes",
                    "comments",
                    "follows",
                    "notifications",
                    "chat_messages",
                )
            }

    def _next_id(self, table):
        return next(self._ids[table])

    @staticmethod
    def _copy(record):
        return copy.deepcopy(record) if record is not None else None

    def _require_user(self, user_id):
        if user_id not in self._users:
            raise NotFound("User not found")

    # --- users ---

    def get_user(self, user_id):
        with self._lock:
            return self._copy(self._users.get(user_id))

    def get_users_by_ids(self, user_ids):
        with self._lock:
            return {
                user_id: self._copy(self._users[user_id])
                for user_id in set(user_ids)
                if user_id in self._users
            }

    def get_user_by_username(self, username):
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return self._copy(user)
        return None

    def get_user_by_email(self, email):
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return self._copy(user)
        return None

    def create_user(self, data):
        fields = pick_fields(data, USER_CREATE_FIELDS)
        with self._lock:
            for existing in self._users.values():
                if existing.username == fields.get("username"):
                    raise Conflict("Username already exists")
                if existing.email == fields.get("email"):
                    raise Conflict("Email already exists")
            if not fields.get("display_name"):
                fields["display_name"] = fields.get("username")
            user = User(id=self._next_id("users"), joined_at=utcnow(), **fields)
            self._users[user.id] = user
            return self._copy(user)

    def update_user(self, user_id, updates):
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFound("User not found")
            apply_dict_updates(user, updates, USER_UPDATE_FIELDS)
            return self._copy(user)

    def get_all_users(self):
        with self._lock:
            return [self._copy(u) for u in sorted(self._users.values(), key=lambda u: u.id)]

    def search_users(self, query):
        with self._lock:
            return [
                self._copy(user)
                for user in self._users.values()
                if _matches(query, user.username, user.display_name)
            ]

    # --- collectibles ---

    def get_collectible(self, collectible_id):
        with self._lock:
            return self._copy(self._collectibles.get(collectible_id))

    def get_user_collectibles(self, user_id):
        with self._lock:
            return [
                self._copy(c)
                for c in self._collectibles.values()
                if c.user_id == user_id
            ]

    def create_collectible(self, data):
        fields = pick_fields(data, COLLECTIBLE_CREATE_FIELDS)
        fields["rarity"] = Rarity(fields["rarity"])
        fields["for_trade"] = bool(fields.get("for_trade", False))
        with self._lock:
            self._require_user(fields.get("user_id"))
            collectible = Collectible(
                id=self._next_id("collectibles"), added_at=utcnow(), **fields
            )
            self._collectibles[collectible.id] = collectible
            return self._copy(collectible)

    def update_collectible(self, collectible_id, updates):
        updates = dict(updates)
        if "rarity" in updates:
            updates["rarity"] = Rarity(updates["rarity"])
        with self._lock:
            collectible = self._collectibles.get(collectible_id)
            if collectible is None:
                raise NotFound("Collectible not found")
            apply_dict_updates(collectible, updates, COLLECTIBLE_UPDATE_FIELDS)
            return self._copy(collectible)

    def delete_collectible(self, collectible_id):
        with self._lock:
            if collectible_id not in self._collectibles:
                raise NotFound("Collectible not found")
            referencing = [
                t
                for t in self._trades.values()
                if collectible_id
                in (t.proposer_collectible_id, t.receiver_collectible_id)
            ]
            if referencing:
                raise InvalidState(
                    "Collectible is part of a trade and cannot be deleted"
                )
            del self._collectibles[collectible_id]

    def _with_owner(self, collectibles):
        return [
            CollectibleWithOwner(
                collectible=self._copy(c), owner=self._copy(self._users[c.user_id])
            )
            for c in collectibles
        ]

    def get_collectibles_for_trade(self):
        with self._lock:
            return self._with_owner(
                c for c in self._collectibles.values() if c.for_trade
            )

    def search_collectibles(self, query):
        with self._lock:
            return self._with_owner(
                c
                for c in self._collectibles.values()
                if _matches(query, c.name, c.series, c.variant)
            )

    def count_collectibles_in_series(self, series, exclude_user_id=None):
        series = set(series)
        counts = {}
        with self._lock:
            for c in self._collectibles.values():
                if c.series in series and c.user_id != exclude_user_id:
                    counts[c.user_id] = counts.get(c.user_id, 0) + 1
        return counts

    # --- trades ---

    def get_trade(self, trade_id):
        with self._lock:
            return self._copy(self._trades.get(trade_id))

    def _details(self, trade):
        return TradeWithDetails(
            trade=self._copy(trade),
            proposer=self._copy(self._users[trade.proposer_id]),
            receiver=self._copy(self._users[trade.receiver_id]),
            proposer_collectible=self._copy(
                self._collectibles[trade.proposer_collectible_id]
            ),
            receiver_collectible=self._copy(
                self._collectibles[trade.receiver_collectible_id]
            ),
        )

    def get_trade_with_details(self, trade_id):
        with self._lock:
            trade = self._trades.get(trade_id)
            return self._details(trade) if trade else None

    def get_user_trades(self, user_id):
        with self._lock:
            return [
                self._copy(t)
                for t in _newest_first(self._trades.values())
                if t.is_party(user_id)
            ]

    def get_user_trades_with_details(self, user_id):
        with self._lock:
            return [
                self._details(t)
                for t in _newest_first(self._trades.values())
                if t.is_party(user_id)
            ]

    def create_trade(self, data):
        fields = pick_fields(data, TRADE_CREATE_FIELDS)
        with self._lock:
            self._require_user(fields.get("proposer_id"))
            self._require_user(fields.get("receiver_id"))
            for key in ("proposer_collectible_id", "receiver_collectible_id"):
                if fields.get(key) not in self._collectibles:
                    raise NotFound("Collectible not found")
            now = utcnow()
            trade = Trade(
                id=self._next_id("trades"),
                status=TradeStatus.PENDING,
                created_at=now,
                updated_at=now,
                **fields,
            )
            self._trades[trade.id] = trade
            return self._copy(trade)

    def compare_and_set_trade_status(self, trade_id, expected_status, new_status):
        with self._lock:
            trade = self._trades.get(trade_id)
            if trade is None:
                raise NotFound("Trade not found")
            if trade.status != TradeStatus(expected_status):
                return None
            trade.status = TradeStatus(new_status)
            trade.updated_at = utcnow()
            return self._copy(trade)

    # --- posts ---

    def get_post(self, post_id):
        with self._lock:
            return self._copy(self._posts.get(post_id))

    def _post_details(self, posts, viewer_id):
        post_ids = {p.id for p in posts}
        likes_count = dict.fromkeys(post_ids, 0)
        comments_count = dict.fromkeys(post_ids, 0)
        liked = set()
        for like in self._likes.values():
            if like.post_id in post_ids:
                likes_count[like.post_id] += 1
                if viewer_id is not None and like.user_id == viewer_id:
                    liked.add(like.post_id)
        for comment in self._comments.values():
            if comment.post_id in post_ids:
                comments_count[comment.post_id] += 1
        return [
            PostWithDetails(
                post=self._copy(p),
                author=self._copy(self._users[p.user_id]),
                likes_count=likes_count[p.id],
                comments_count=comments_count[p.id],
                liked=p.id in liked,
            )
            for p in posts
        ]

    def get_post_with_details(self, post_id, viewer_id=None):
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                return None
            return self._post_details([post], viewer_id)[0]

    def create_post(self, data):
        fields = pick_fields(data, POST_CREATE_FIELDS)
        fields["images"] = list(fields.get("images") or [])
        with self._lock:
            self._require_user(fields.get("user_id"))
            post = Post(id=self._next_id("posts"), created_at=utcnow(), **fields)
            self._posts[post.id] = post
            return self._copy(post)

    def delete_post(self, post_id):
        with self._lock:
            if post_id not in self._posts:
                raise NotFound("Post not found")
            self._likes = {
                k: v for k, v in self._likes.items() if v.post_id != post_id
            }
            self._comments = {
                k: v for k, v in self._comments.items() if v.post_id != post_id
            }
            del self._posts[post_id]

    def get_feed_posts(self, viewer_id=None, author_id=None):
        with self._lock:
            posts = [
                p
                for p in _newest_first(self._posts.values())
                if author_id is None or p.user_id == author_id
            ]
            return self._post_details(posts, viewer_id)

    # --- likes ---

    def get_like(self, user_id, post_id):
        with self._lock:
            for like in self._likes.values():
                if like.user_id == user_id and like.post_id == post_id:
                    return self._copy(like)
        return None

    def create_like(self, data):
        fields = pick_fields(data, LIKE_CREATE_FIELDS)
        with self._lock:
            self._require_user(fields.get("user_id"))
            if fields.get("post_id") not in self._posts:
                raise NotFound("Post not found")
            if self.get_like(fields["user_id"], fields["post_id"]) is not None:
                raise Conflict("Post already liked")
            like = Like(id=self._next_id("likes"), created_at=utcnow(), **fields)
            self._likes[like.id] = like
            return self._copy(like)

    def delete_like(self, user_id, post_id):
        with self._lock:
            like = self.get_like(user_id, post_id)
            if like is None:
                return False
            del self._likes[like.id]
            return True

    def count_post_likes(self, post_id):
        with self._lock:
            return sum(1 for like in self._likes.values() if like.post_id == post_id)

    # --- comments ---

    def get_comment(self, comment_id):
        with self._lock:
            return self._copy(self._comments.get(comment_id))

    def get_post_comments(self, post_id):
        with self._lock:
            return [
                CommentWithAuthor(
                    comment=self._copy(c), author=self._copy(self._users[c.user_id])
                )
                for c in _oldest_first(self._comments.values())
                if c.post_id == post_id
            ]

    def create_comment(self, data):
        fields = pick_fields(data, COMMENT_CREATE_FIELDS)
        with self._lock:
            self._require_user(fields.get("user_id"))
            if fields.get("post_id") not in self._posts:
                raise NotFound("Post not found")
            comment = Comment(
                id=self._next_id("comments"), created_at=utcnow(), **fields
            )
            self._comments[comment.id] = comment
            return self._copy(comment)

    def delete_comment(self, comment_id):
        with self._lock:
            if comment_id not in self._comments:
                raise NotFound("Comment not found")
            del self._comments[comment_id]

    # --- follows ---

    def get_follow(self, follower_id, following_id):
        with self._lock:
            for follow in self._follows.values():
                if (
                    follow.follower_id == follower_id
                    and follow.following_id == following_id
                ):
                    return self._copy(follow)
        return None

    def create_follow(self, data):
        fields = pick_fields(data, FOLLOW_CREATE_FIELDS)
        if fields.get("follower_id") == fields.get("following_id"):
            raise InvalidRequest("You cannot follow yourself")
        with self._lock:
            self._require_user(fields.get("follower_id"))
            self._require_user(fields.get("following_id"))
            if self.get_follow(fields["follower_id"], fields["following_id"]):
                raise Conflict("Already following this user")
            follow = Follow(id=self._next_id("follows"), created_at=utcnow(), **fields)
            self._follows[follow.id] = follow
            return self._copy(follow)

    def delete_follow(self, follower_id, following_id):
        with self._lock:
            follow = self.get_follow(follower_id, following_id)
            if follow is None:
                return False
            del self._follows[follow.id]
            return True

    def get_user_followers(self, user_id):
        with self._lock:
            return [
                self._copy(self._users[f.follower_id])
                for f in sorted(self._follows.values(), key=lambda f: f.id)
                if f.following_id == user_id
            ]

    def get_user_following(self, user_id):
        with self._lock:
            return [
                self._copy(self._users[f.following_id])
                for f in sorted(self._follows.values(), key=lambda f: f.id)
                if f.follower_id == user_id
            ]

    # --- notifications ---

    def create_notification(self, data):
        fields = pick_fields(data, NOTIFICATION_CREATE_FIELDS)
        fields["type"] = NotificationType(fields["type"])
        with self._lock:
            self._require_user(fields.get("user_id"))
            if fields.get("actor_id") is not None:
                self._require_user(fields["actor_id"])
            notification = Notification(
                id=self._next_id("notifications"),
                read=False,
                created_at=utcnow(),
                **fields,
            )
            self._notifications[notification.id] = notification
            return self._copy(notification)

    def get_notification(self, notification_id):
        with self._lock:
            return self._copy(self._notifications.get(notification_id))

    def get_user_notifications(self, user_id, limit=20, include_read=False):
        with self._lock:
            notifications = [
                n
                for n in _newest_first(self._notifications.values())
                if n.user_id == user_id and (include_read or not n.read)
            ][:limit]
            return [
                NotificationWithActor(
                    notification=self._copy(n),
                    actor=self._copy(self._users.get(n.actor_id)),
                )
                for n in notifications
            ]

    def count_unread_notifications(self, user_id):
        with self._lock:
            return sum(
                1
                for n in self._notifications.values()
                if n.user_id == user_id and not n.read
            )

    def mark_notification_read(self, notification_id):
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None:
                raise NotFound("Notification not found")
            notification.read = True
            return self._copy(notification)

    def mark_all_notifications_read(self, user_id):
        changed = 0
        with self._lock:
            for notification in self._notifications.values():
                if notification.user_id == user_id and not notification.read:
                    notification.read = True
                    changed += 1
        return changed

    def delete_notification(self, notification_id):
        with self._lock:
            if notification_id not in self._notifications:
                raise NotFound("Notification not found")
            del self._notifications[notification_id]

    # --- chat ---

    def create_chat_message(self, data):
        fields = pick_fields(data, CHAT_MESSAGE_CREATE_FIELDS)
        fields["is_pinned"] = bool(fields.get("is_pinned", False))
        with self._lock:
            trade = self._trades.get(fields.get("trade_id"))
            if trade is None:
                raise NotFound("Trade not found")
            if not trade.is_party(fields.get("sender_id")):
                raise Forbidden("Only trade participants can send messages")
            if not trade.status.allows_chat:
                raise InvalidState(
                    "Messages can only be sent for accepted or completed trades"
                )
            message = ChatMessage(
                id=self._next_id("chat_messages"), created_at=utcnow(), **fields
            )
            self._chat_messages[message.id] = message
            return self._copy(message)

    def get_chat_message(self, message_id):
        with self._lock:
            return self._copy(self._chat_messages.get(message_id))

    def get_trade_messages(self, trade_id):
        with self._lock:
            return [
                ChatMessageWithSender(
                    message=self._copy(m), sender=self._copy(self._users[m.sender_id])
                )
                for m in _oldest_first(self._chat_messages.values())
                if m.trade_id == trade_id
            ]

    def set_chat_message_pinned(self, message_id, pinned):
        with self._lock:
            message = self._chat_messages.get(message_id)
            if message is None:
                raise NotFound("Message not found")
            message.is_pinned = bool(pinned)
            return self._copy(message)
