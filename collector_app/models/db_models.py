from datetime import datetime, timezone

from .. import db
from .entities import NotificationType, Rarity, TradeStatus


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(120), nullable=False)
    bio = db.Column(db.Text, nullable=True)
    profile_image = db.Column(db.String(500), nullable=True)
    profile_banner = db.Column(db.String(500), nullable=True)
    joined_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    collectibles = db.relationship("Collectible", back_populates="owner", lazy=True)
    posts = db.relationship("Post", back_populates="author", lazy=True)

    def __repr__(self):
        return f"<User '{self.username}'>"


class Collectible(db.Model):
    __tablename__ = "collectibles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(200), nullable=False)
    series = db.Column(db.String(200), nullable=False)
    variant = db.Column(db.String(200), nullable=False)
    rarity = db.Column(
        db.Enum(
            Rarity,
            name="rarity",
            values_callable=lambda members: [m.value for m in members],
            validate_strings=True,
        ),
        nullable=False,
    )
    image = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    for_trade = db.Column(db.Boolean, nullable=False, default=False)
    added_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    owner = db.relationship("User", back_populates="collectibles")

    def __repr__(self):
        return f"<Collectible '{self.name}' ({self.series})>"


class Trade(db.Model):
    __tablename__ = "trades"

    id = db.Column(db.Integer, primary_key=True)
    proposer_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    receiver_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    proposer_collectible_id = db.Column(
        db.Integer, db.ForeignKey("collectibles.id"), nullable=False
    )
    receiver_collectible_id = db.Column(
        db.Integer, db.ForeignKey("collectibles.id"), nullable=False
    )
    message = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.Enum(
            TradeStatus,
            name="trade_status",
            values_callable=lambda members: [m.value for m in members],
            validate_strings=True,
        ),
        nullable=False,
        default=TradeStatus.PENDING,
    )
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint("proposer_id != receiver_id", name="ck_trade_not_self"),
    )

    def __repr__(self):
        return f"<Trade {self.id} {self.status.value if self.status else None}>"


class Post(db.Model):
    __tablename__ = "posts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    content = db.Column(db.Text, nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    author = db.relationship("User", back_populates="posts")

    def __repr__(self):
        return f"<Post {self.id} by user {self.user_id}>"


class Like(db.Model):
    __tablename__ = "likes"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    post_id = db.Column(
        db.Integer, db.ForeignKey("posts.id"), nullable=False, index=True
    )
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (db.UniqueConstraint("user_id", "post_id", name="_user_post_uc"),)

    def __repr__(self):
        return f"<Like user {self.user_id} post {self.post_id}>"


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    post_id = db.Column(
        db.Integer, db.ForeignKey("posts.id"), nullable=False, index=True
    )
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<Comment {self.id} on post {self.post_id}>"


class Follow(db.Model):
    __tablename__ = "follows"

    id = db.Column(db.Integer, primary_key=True)
    follower_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    following_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        db.UniqueConstraint(
            "follower_id", "following_id", name="_follower_following_uc"
        ),
        db.CheckConstraint("follower_id != following_id", name="ck_follow_not_self"),
    )

    def __repr__(self):
        return f"<Follow {self.follower_id} -> {self.following_id}>"


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    type = db.Column(
        db.Enum(
            NotificationType,
            name="notification_type",
            values_callable=lambda members: [m.value for m in members],
            validate_strings=True,
        ),
        nullable=False,
    )
    content = db.Column(db.Text, nullable=False)
    source_id = db.Column(db.Integer, nullable=True)
    source_type = db.Column(db.String(20), nullable=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<Notification {self.id} {self.type.value if self.type else None} for user {self.user_id}>"


class ChatMessage(db.Model):
    __tablename__ = "chat_messages"

    id = db.Column(db.Integer, primary_key=True)
    trade_id = db.Column(
        db.Integer,
        db.ForeignKey("trades.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_pinned = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<ChatMessage {self.id} on trade {self.trade_id}>"
