"""
Relational entity store on top of Flask-SQLAlchemy.

ORM rows never leave this module; every read is converted to the plain
records in ``collector_app.models.entities`` before it is returned.
"""

from flask import current_app
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from .. import db
from ..errors import Conflict, Forbidden, InvalidRequest, InvalidState, NotFound
from ..models import db_models as m
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
    as_utc,
    source_from_columns,
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


def _user(row):
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        display_name=row.display_name,
        bio=row.bio,
        profile_image=row.profile_image,
        profile_banner=row.profile_banner,
        joined_at=as_utc(row.joined_at),
    )


def _collectible(row):
    return Collectible(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        series=row.series,
        variant=row.variant,
        rarity=Rarity(row.rarity),
        image=row.image,
        description=row.description,
        for_trade=bool(row.for_trade),
        added_at=as_utc(row.added_at),
    )


def _trade(row):
    return Trade(
        id=row.id,
        proposer_id=row.proposer_id,
        receiver_id=row.receiver_id,
        proposer_collectible_id=row.proposer_collectible_id,
        receiver_collectible_id=row.receiver_collectible_id,
        status=TradeStatus(row.status),
        message=row.message,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _post(row):
    return Post(
        id=row.id,
        user_id=row.user_id,
        content=row.content,
        images=list(row.images or []),
        created_at=as_utc(row.created_at),
    )


def _like(row):
    return Like(
        id=row.id,
        user_id=row.user_id,
        post_id=row.post_id,
        created_at=as_utc(row.created_at),
    )


def _comment(row):
    return Comment(
        id=row.id,
        user_id=row.user_id,
        post_id=row.post_id,
        content=row.content,
        created_at=as_utc(row.created_at),
    )


def _follow(row):
    return Follow(
        id=row.id,
        follower_id=row.follower_id,
        following_id=row.following_id,
        created_at=as_utc(row.created_at),
    )


def _notification(row):
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=NotificationType(row.type),
        content=row.content,
        source=source_from_columns(row.source_id, row.source_type),
        actor_id=row.actor_id,
        read=bool(row.read),
        created_at=as_utc(row.created_at),
    )


def _chat_message(row):
    return ChatMessage(
        id=row.id,
        trade_id=row.trade_id,
        sender_id=row.sender_id,
        message=row.message,
        is_pinned=bool(row.is_pinned),
        created_at=as_utc(row.created_at),
    )


def _contains(column, query):
    return column.icontains(query, autoescape=True)


class SqlStore(EntityStore):
    @property
    def session(self):
        return db.session

    def _commit(self, action):
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise
        except Exception as e:
            self.session.rollback()
            current_app.logger.error(f"Error committing {action}: {e}")
            raise

    def _require_user(self, user_id):
        if user_id is None or self.session.get(m.User, user_id) is None:
            raise NotFound("User not found")

    def reset(self):
        self.session.remove()
        for table in reversed(db.metadata.sorted_tables):
            self.session.execute(table.delete())
        self._commit("store reset")

    # --- users ---

    def get_user(self, user_id):
        row = self.session.get(m.User, user_id)
        return _user(row) if row else None

    def get_users_by_ids(self, user_ids):
        user_ids = set(user_ids)
        if not user_ids:
            return {}
        rows = self.session.scalars(select(m.User).where(m.User.id.in_(user_ids)))
        return {row.id: _user(row) for row in rows}

    def get_user_by_username(self, username):
        row = self.session.scalars(
            select(m.User).where(m.User.username == username)
        ).one_or_none()
        return _user(row) if row else None

    def get_user_by_email(self, email):
        row = self.session.scalars(
            select(m.User).where(m.User.email == email)
        ).one_or_none()
        return _user(row) if row else None

    def create_user(self, data):
        fields = pick_fields(data, USER_CREATE_FIELDS)
        if self.get_user_by_username(fields.get("username")):
            raise Conflict("Username already exists")
        if self.get_user_by_email(fields.get("email")):
            raise Conflict("Email already exists")
        if not fields.get("display_name"):
            fields["display_name"] = fields.get("username")
        row = m.User(**fields)
        self.session.add(row)
        try:
            self._commit("new user")
        except IntegrityError:
            raise Conflict("Username or email already exists")
        return _user(row)

    def update_user(self, user_id, updates):
        row = self.session.get(m.User, user_id)
        if row is None:
            raise NotFound("User not found")
        if apply_dict_updates(row, updates, USER_UPDATE_FIELDS):
            self._commit(f"profile update for user {user_id}")
        return _user(row)

    def get_all_users(self):
        rows = self.session.scalars(select(m.User).order_by(m.User.id))
        return [_user(row) for row in rows]

    def search_users(self, query):
        rows = self.session.scalars(
            select(m.User)
            .where(
                or_(_contains(m.User.username, query), _contains(m.User.display_name, query))
            )
            .order_by(m.User.id)
        )
        return [_user(row) for row in rows]

    # --- collectibles ---

    def get_collectible(self, collectible_id):
        row = self.session.get(m.Collectible, collectible_id)
        return _collectible(row) if row else None

    def get_user_collectibles(self, user_id):
        rows = self.session.scalars(
            select(m.Collectible)
            .where(m.Collectible.user_id == user_id)
            .order_by(m.Collectible.id)
        )
        return [_collectible(row) for row in rows]

    def create_collectible(self, data):
        fields = pick_fields(data, COLLECTIBLE_CREATE_FIELDS)
        fields["rarity"] = Rarity(fields["rarity"])
        fields["for_trade"] = bool(fields.get("for_trade", False))
        self._require_user(fields.get("user_id"))
        row = m.Collectible(**fields)
        self.session.add(row)
        self._commit("new collectible")
        return _collectible(row)

    def update_collectible(self, collectible_id, updates):
        updates = dict(updates)
        if "rarity" in updates:
            updates["rarity"] = Rarity(updates["rarity"])
        row = self.session.get(m.Collectible, collectible_id)
        if row is None:
            raise NotFound("Collectible not found")
        if apply_dict_updates(row, updates, COLLECTIBLE_UPDATE_FIELDS):
            self._commit(f"update of collectible {collectible_id}")
        return _collectible(row)

    def delete_collectible(self, collectible_id):
        row = self.session.get(m.Collectible, collectible_id)
        if row is None:
            raise NotFound("Collectible not found")
        referencing = self.session.scalars(
            select(m.Trade.id).where(
                or_(
                    m.Trade.proposer_collectible_id == collectible_id,
                    m.Trade.receiver_collectible_id == collectible_id,
                )
            )
        ).first()
        if referencing is not None:
            raise InvalidState(
                "Collectible is part of a trade and cannot be deleted"
            )
        self.session.delete(row)
        self._commit(f"deletion of collectible {collectible_id}")

    def _collectibles_with_owner(self, *criteria):
        stmt = (
            select(m.Collectible, m.User)
            .join(m.User, m.Collectible.user_id == m.User.id)
            .where(*criteria)
            .order_by(m.Collectible.id)
        )
        return [
            CollectibleWithOwner(collectible=_collectible(c), owner=_user(u))
            for c, u in self.session.execute(stmt)
        ]

    def get_collectibles_for_trade(self):
        return self._collectibles_with_owner(m.Collectible.for_trade.is_(True))

    def search_collectibles(self, query):
        return self._collectibles_with_owner(
            or_(
                _contains(m.Collectible.name, query),
                _contains(m.Collectible.series, query),
                _contains(m.Collectible.variant, query),
            )
        )

    def count_collectibles_in_series(self, series, exclude_user_id=None):
        series = list(set(series))
        if not series:
            return {}
        stmt = (
            select(m.Collectible.user_id, func.count(m.Collectible.id))
            .where(m.Collectible.series.in_(series))
            .group_by(m.Collectible.user_id)
        )
        if exclude_user_id is not None:
            stmt = stmt.where(m.Collectible.user_id != exclude_user_id)
        return {user_id: count for user_id, count in self.session.execute(stmt)}

    # --- trades ---

    def get_trade(self, trade_id):
        row = self.session.get(m.Trade, trade_id)
        return _trade(row) if row else None

    def _trades_with_details(self, *criteria):
        proposer = aliased(m.User)
        receiver = aliased(m.User)
        proposer_item = aliased(m.Collectible)
        receiver_item = aliased(m.Collectible)
        stmt = (
            select(m.Trade, proposer, receiver, proposer_item, receiver_item)
            .join(proposer, m.Trade.proposer_id == proposer.id)
            .join(receiver, m.Trade.receiver_id == receiver.id)
            .join(proposer_item, m.Trade.proposer_collectible_id == proposer_item.id)
            .join(receiver_item, m.Trade.receiver_collectible_id == receiver_item.id)
            .where(*criteria)
            .order_by(m.Trade.created_at.desc(), m.Trade.id.desc())
        )
        return [
            TradeWithDetails(
                trade=_trade(t),
                proposer=_user(p),
                receiver=_user(r),
                proposer_collectible=_collectible(pc),
                receiver_collectible=_collectible(rc),
            )
            for t, p, r, pc, rc in self.session.execute(stmt)
        ]

    def get_trade_with_details(self, trade_id):
        results = self._trades_with_details(m.Trade.id == trade_id)
        return results[0] if results else None

    def get_user_trades(self, user_id):
        rows = self.session.scalars(
            select(m.Trade)
            .where(or_(m.Trade.proposer_id == user_id, m.Trade.receiver_id == user_id))
            .order_by(m.Trade.created_at.desc(), m.Trade.id.desc())
        )
        return [_trade(row) for row in rows]

    def get_user_trades_with_details(self, user_id):
        return self._trades_with_details(
            or_(m.Trade.proposer_id == user_id, m.Trade.receiver_id == user_id)
        )

    def create_trade(self, data):
        fields = pick_fields(data, TRADE_CREATE_FIELDS)
        self._require_user(fields.get("proposer_id"))
        self._require_user(fields.get("receiver_id"))
        for key in ("proposer_collectible_id", "receiver_collectible_id"):
            if (
                fields.get(key) is None
                or self.session.get(m.Collectible, fields[key]) is None
            ):
                raise NotFound("Collectible not found")
        row = m.Trade(status=TradeStatus.PENDING, **fields)
        self.session.add(row)
        self._commit("new trade")
        return _trade(row)

    def compare_and_set_trade_status(self, trade_id, expected_status, new_status):
        result = self.session.execute(
            update(m.Trade)
            .where(
                m.Trade.id == trade_id,
                m.Trade.status == TradeStatus(expected_status),
            )
            .values(status=TradeStatus(new_status), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self._commit(f"status change of trade {trade_id}")
        if result.rowcount == 0:
            if self.session.get(m.Trade, trade_id) is None:
                raise NotFound("Trade not found")
            return None
        row = self.session.get(m.Trade, trade_id, populate_existing=True)
        return _trade(row)

    # --- posts ---

    def get_post(self, post_id):
        row = self.session.get(m.Post, post_id)
        return _post(row) if row else None

    def _posts_with_details(self, viewer_id, *criteria):
        likes = (
            select(m.Like.post_id, func.count(m.Like.id).label("likes_count"))
            .group_by(m.Like.post_id)
            .subquery()
        )
        comments = (
            select(m.Comment.post_id, func.count(m.Comment.id).label("comments_count"))
            .group_by(m.Comment.post_id)
            .subquery()
        )
        stmt = (
            select(
                m.Post,
                m.User,
                func.coalesce(likes.c.likes_count, 0),
                func.coalesce(comments.c.comments_count, 0),
            )
            .join(m.User, m.Post.user_id == m.User.id)
            .outerjoin(likes, likes.c.post_id == m.Post.id)
            .outerjoin(comments, comments.c.post_id == m.Post.id)
            .where(*criteria)
            .order_by(m.Post.created_at.desc(), m.Post.id.desc())
        )
        rows = self.session.execute(stmt).all()

        liked_ids = set()
        if viewer_id is not None and rows:
            liked_ids = set(
                self.session.scalars(
                    select(m.Like.post_id).where(
                        m.Like.user_id == viewer_id,
                        m.Like.post_id.in_([post.id for post, *_ in rows]),
                    )
                )
            )
        return [
            PostWithDetails(
                post=_post(post),
                author=_user(author),
                likes_count=likes_count,
                comments_count=comments_count,
                liked=post.id in liked_ids,
            )
            for post, author, likes_count, comments_count in rows
        ]

    def get_post_with_details(self, post_id, viewer_id=None):
        results = self._posts_with_details(viewer_id, m.Post.id == post_id)
        return results[0] if results else None

    def create_post(self, data):
        fields = pick_fields(data, POST_CREATE_FIELDS)
        fields["images"] = list(fields.get("images") or [])
        self._require_user(fields.get("user_id"))
        row = m.Post(**fields)
        self.session.add(row)
        self._commit("new post")
        return _post(row)

    def delete_post(self, post_id):
        row = self.session.get(m.Post, post_id)
        if row is None:
            raise NotFound("Post not found")
        self.session.execute(delete(m.Like).where(m.Like.post_id == post_id))
        self.session.execute(delete(m.Comment).where(m.Comment.post_id == post_id))
        self.session.delete(row)
        self._commit(f"deletion of post {post_id}")

    def get_feed_posts(self, viewer_id=None, author_id=None):
        criteria = []
        if author_id is not None:
            criteria.append(m.Post.user_id == author_id)
        return self._posts_with_details(viewer_id, *criteria)

    # --- likes ---

    def get_like(self, user_id, post_id):
        row = self.session.scalars(
            select(m.Like).where(m.Like.user_id == user_id, m.Like.post_id == post_id)
        ).one_or_none()
        return _like(row) if row else None

    def create_like(self, data):
        fields = pick_fields(data, LIKE_CREATE_FIELDS)
        self._require_user(fields.get("user_id"))
        if fields.get("post_id") is None or self.session.get(m.Post, fields["post_id"]) is None:
            raise NotFound("Post not found")
        row = m.Like(**fields)
        self.session.add(row)
        try:
            self._commit("new like")
        except IntegrityError:
            raise Conflict("Post already liked")
        return _like(row)

    def delete_like(self, user_id, post_id):
        result = self.session.execute(
            delete(m.Like).where(m.Like.user_id == user_id, m.Like.post_id == post_id)
        )
        self._commit(f"unlike of post {post_id}")
        return result.rowcount > 0

    def count_post_likes(self, post_id):
        return self.session.scalar(
            select(func.count(m.Like.id)).where(m.Like.post_id == post_id)
        )

    # --- comments ---

    def get_comment(self, comment_id):
        row = self.session.get(m.Comment, comment_id)
        return _comment(row) if row else None

    def get_post_comments(self, post_id):
        stmt = (
            select(m.Comment, m.User)
            .join(m.User, m.Comment.user_id == m.User.id)
            .where(m.Comment.post_id == post_id)
            .order_by(m.Comment.created_at, m.Comment.id)
        )
        return [
            CommentWithAuthor(comment=_comment(c), author=_user(u))
            for c, u in self.session.execute(stmt)
        ]

    def create_comment(self, data):
        fields = pick_fields(data, COMMENT_CREATE_FIELDS)
        self._require_user(fields.get("user_id"))
        if fields.get("post_id") is None or self.session.get(m.Post, fields["post_id"]) is None:
            raise NotFound("Post not found")
        row = m.Comment(**fields)
        self.session.add(row)
        self._commit("new comment")
        return _comment(row)

    def delete_comment(self, comment_id):
        row = self.session.get(m.Comment, comment_id)
        if row is None:
            raise NotFound("Comment not found")
        self.session.delete(row)
        self._commit(f"deletion of comment {comment_id}")

    # --- follows ---

    def get_follow(self, follower_id, following_id):
        row = self.session.scalars(
            select(m.Follow).where(
                m.Follow.follower_id == follower_id,
                m.Follow.following_id == following_id,
            )
        ).one_or_none()
        return _follow(row) if row else None

    def create_follow(self, data):
        fields = pick_fields(data, FOLLOW_CREATE_FIELDS)
        if fields.get("follower_id") == fields.get("following_id"):
            raise InvalidRequest("You cannot follow yourself")
        self._require_user(fields.get("follower_id"))
        self._require_user(fields.get("following_id"))
        if self.get_follow(fields["follower_id"], fields["following_id"]):
            raise Conflict("Already following this user")
        row = m.Follow(**fields)
        self.session.add(row)
        try:
            self._commit("new follow")
        except IntegrityError:
            raise Conflict("Already following this user")
        return _follow(row)

    def delete_follow(self, follower_id, following_id):
        result = self.session.execute(
            delete(m.Follow).where(
                m.Follow.follower_id == follower_id,
                m.Follow.following_id == following_id,
            )
        )
        self._commit(f"unfollow {follower_id} -> {following_id}")
        return result.rowcount > 0

    def get_user_followers(self, user_id):
        rows = self.session.scalars(
            select(m.User)
            .join(m.Follow, m.Follow.follower_id == m.User.id)
            .where(m.Follow.following_id == user_id)
            .order_by(m.Follow.id)
        )
        return [_user(row) for row in rows]

    def get_user_following(self, user_id):
        rows = self.session.scalars(
            select(m.User)
            .join(m.Follow, m.Follow.following_id == m.User.id)
            .where(m.Follow.follower_id == user_id)
            .order_by(m.Follow.id)
        )
        return [_user(row) for row in rows]

    # --- notifications ---

    def create_notification(self, data):
        fields = pick_fields(data, NOTIFICATION_CREATE_FIELDS)
        source = fields.pop("source", None)
        fields["type"] = NotificationType(fields["type"])
        self._require_user(fields.get("user_id"))
        if fields.get("actor_id") is not None:
            self._require_user(fields["actor_id"])
        row = m.Notification(
            source_id=source.id if source else None,
            source_type=source.source_type if source else None,
            read=False,
            **fields,
        )
        self.session.add(row)
        self._commit("new notification")
        return _notification(row)

    def get_notification(self, notification_id):
        row = self.session.get(m.Notification, notification_id)
        return _notification(row) if row else None

    def get_user_notifications(self, user_id, limit=20, include_read=False):
        actor = aliased(m.User)
        stmt = (
            select(m.Notification, actor)
            .outerjoin(actor, m.Notification.actor_id == actor.id)
            .where(m.Notification.user_id == user_id)
            .order_by(m.Notification.created_at.desc(), m.Notification.id.desc())
            .limit(limit)
        )
        if not include_read:
            stmt = stmt.where(m.Notification.read.is_(False))
        return [
            NotificationWithActor(
                notification=_notification(n), actor=_user(a) if a else None
            )
            for n, a in self.session.execute(stmt)
        ]

    def count_unread_notifications(self, user_id):
        return self.session.scalar(
            select(func.count(m.Notification.id)).where(
                m.Notification.user_id == user_id, m.Notification.read.is_(False)
            )
        )

    def mark_notification_read(self, notification_id):
        row = self.session.get(m.Notification, notification_id)
        if row is None:
            raise NotFound("Notification not found")
        if not row.read:
            row.read = True
            self._commit(f"read flag of notification {notification_id}")
        return _notification(row)

    def mark_all_notifications_read(self, user_id):
        result = self.session.execute(
            update(m.Notification)
            .where(m.Notification.user_id == user_id, m.Notification.read.is_(False))
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        self._commit(f"read flags for user {user_id}")
        return result.rowcount

    def delete_notification(self, notification_id):
        row = self.session.get(m.Notification, notification_id)
        if row is None:
            raise NotFound("Notification not found")
        self.session.delete(row)
        self._commit(f"deletion of notification {notification_id}")

    # --- chat ---

    def create_chat_message(self, data):
        fields = pick_fields(data, CHAT_MESSAGE_CREATE_FIELDS)
        fields["is_pinned"] = bool(fields.get("is_pinned", False))
        trade = (
            self.session.get(m.Trade, fields["trade_id"])
            if fields.get("trade_id") is not None
            else None
        )
        if trade is None:
            raise NotFound("Trade not found")
        if fields.get("sender_id") not in (trade.proposer_id, trade.receiver_id):
            raise Forbidden("Only trade participants can send messages")
        if not TradeStatus(trade.status).allows_chat:
            raise InvalidState(
                "Messages can only be sent for accepted or completed trades"
            )
        row = m.ChatMessage(**fields)
        self.session.add(row)
        self._commit(f"new chat message on trade {fields['trade_id']}")
        return _chat_message(row)

    def get_chat_message(self, message_id):
        row = self.session.get(m.ChatMessage, message_id)
        return _chat_message(row) if row else None

    def get_trade_messages(self, trade_id):
        stmt = (
            select(m.ChatMessage, m.User)
            .join(m.User, m.ChatMessage.sender_id == m.User.id)
            .where(m.ChatMessage.trade_id == trade_id)
            .order_by(m.ChatMessage.created_at, m.ChatMessage.id)
        )
        return [
            ChatMessageWithSender(message=_chat_message(msg), sender=_user(u))
            for msg, u in self.session.execute(stmt)
        ]

    def set_chat_message_pinned(self, message_id, pinned):
        row = self.session.get(m.ChatMessage, message_id)
        if row is None:
            raise NotFound("Message not found")
        if bool(row.is_pinned) != bool(pinned):
            row.is_pinned = bool(pinned)
            self._commit(f"pin flag of message {message_id}")
        return _chat_message(row)
