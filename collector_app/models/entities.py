"""
Plain records handed out by the entity stores.

Both store backends return these objects rather than ORM rows, so services
and routes never depend on which backend is configured. Attribute names are
snake_case; ``to_dict`` produces the camelCase keys used on the wire.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value):
    return value.isoformat() if value else None


class Rarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    ULTRA_RARE = "ultra-rare"
    LIMITED = "limited"

    @property
    def rank(self):
        return list(Rarity).index(self)

    @classmethod
    def values(cls):
        return [member.value for member in cls]


class TradeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def is_terminal(self):
        return not TRADE_TRANSITIONS[self]

    def can_transition_to(self, new_status):
        return new_status in TRADE_TRANSITIONS[self]

    @property
    def allows_chat(self):
        return self in (TradeStatus.ACCEPTED, TradeStatus.COMPLETED)


TRADE_TRANSITIONS = {
    TradeStatus.PENDING: {TradeStatus.ACCEPTED, TradeStatus.REJECTED},
    TradeStatus.ACCEPTED: {TradeStatus.COMPLETED},
    TradeStatus.REJECTED: set(),
    TradeStatus.COMPLETED: set(),
}


class NotificationType(str, Enum):
    TRADE_REQUEST = "trade_request"
    TRADE_ACCEPTED = "trade_accepted"
    TRADE_REJECTED = "trade_rejected"
    TRADE_COMPLETED = "trade_completed"
    FOLLOW = "follow"
    LIKE = "like"
    COMMENT = "comment"


# Notification sources. A notification points at exactly one triggering
# entity, persisted as a (source_id, source_type) column pair.


@dataclass(frozen=True)
class TradeSource:
    id: int
    source_type: ClassVar[str] = "trade"


@dataclass(frozen=True)
class PostSource:
    id: int
    source_type: ClassVar[str] = "post"


@dataclass(frozen=True)
class UserSource:
    id: int
    source_type: ClassVar[str] = "user"


SOURCE_TYPES = {
    source_cls.source_type: source_cls
    for source_cls in (TradeSource, PostSource, UserSource)
}


def source_from_columns(source_id, source_type):
    if source_id is None or source_type is None:
        return None
    try:
        return SOURCE_TYPES[source_type](source_id)
    except KeyError:
        raise ValueError(f"Unknown notification source type: {source_type}")


@dataclass
class User:
    id: int
    username: str
    email: str
    password_hash: str
    display_name: str
    bio: Optional[str] = None
    profile_image: Optional[str] = None
    profile_banner: Optional[str] = None
    joined_at: Optional[datetime] = None

    def to_summary_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "displayName": self.display_name,
            "profileImage": self.profile_image,
        }

    def to_public_dict(self):
        data = self.to_summary_dict()
        data.update(
            {
                "profileBanner": self.profile_banner,
                "bio": self.bio,
                "joinedAt": _iso(self.joined_at),
            }
        )
        return data

    def to_self_dict(self):
        data = self.to_public_dict()
        data["email"] = self.email
        return data

    def __repr__(self):
        return f"<User '{self.username}'>"


@dataclass
class Collectible:
    id: int
    user_id: int
    name: str
    series: str
    variant: str
    rarity: Rarity
    image: str
    description: Optional[str] = None
    for_trade: bool = False
    added_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "series": self.series,
            "variant": self.variant,
            "rarity": self.rarity.value,
            "image": self.image,
            "description": self.description,
            "forTrade": self.for_trade,
            "addedAt": _iso(self.added_at),
        }


@dataclass
class Trade:
    id: int
    proposer_id: int
    receiver_id: int
    proposer_collectible_id: int
    receiver_collectible_id: int
    status: TradeStatus
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_party(self, user_id):
        return user_id in (self.proposer_id, self.receiver_id)

    def to_dict(self):
        return {
            "id": self.id,
            "proposerId": self.proposer_id,
            "receiverId": self.receiver_id,
            "proposerCollectibleId": self.proposer_collectible_id,
            "receiverCollectibleId": self.receiver_collectible_id,
            "message": self.message,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class Post:
    id: int
    user_id: int
    content: str
    images: list = field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "content": self.content,
            "images": list(self.images),
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Like:
    id: int
    user_id: int
    post_id: int
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "postId": self.post_id,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Comment:
    id: int
    user_id: int
    post_id: int
    content: str
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "postId": self.post_id,
            "content": self.content,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Follow:
    id: int
    follower_id: int
    following_id: int
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "followerId": self.follower_id,
            "followingId": self.following_id,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Notification:
    id: int
    user_id: int
    type: NotificationType
    content: str
    source: Optional[object] = None
    actor_id: Optional[int] = None
    read: bool = False
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value,
            "content": self.content,
            "sourceId": self.source.id if self.source else None,
            "sourceType": self.source.source_type if self.source else None,
            "actorId": self.actor_id,
            "read": self.read,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class ChatMessage:
    id: int
    trade_id: int
    sender_id: int
    message: str
    is_pinned: bool = False
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "tradeId": self.trade_id,
            "senderId": self.sender_id,
            "message": self.message,
            "isPinned": self.is_pinned,
            "createdAt": _iso(self.created_at),
        }


# Composite read views


@dataclass
class CollectibleWithOwner:
    collectible: Collectible
    owner: User

    def to_dict(self):
        data = self.collectible.to_dict()
        data["user"] = self.owner.to_summary_dict()
        return data


@dataclass
class TradeWithDetails:
    trade: Trade
    proposer: User
    receiver: User
    proposer_collectible: Collectible
    receiver_collectible: Collectible

    def to_dict(self):
        data = self.trade.to_dict()
        data.update(
            {
                "proposer": self.proposer.to_public_dict(),
                "receiver": self.receiver.to_public_dict(),
                "proposerCollectible": self.proposer_collectible.to_dict(),
                "receiverCollectible": self.receiver_collectible.to_dict(),
            }
        )
        return data


@dataclass
class PostWithDetails:
    post: Post
    author: User
    likes_count: int = 0
    comments_count: int = 0
    liked: bool = False

    def to_dict(self):
        data = self.post.to_dict()
        data.update(
            {
                "user": self.author.to_summary_dict(),
                "likesCount": self.likes_count,
                "commentsCount": self.comments_count,
                "liked": self.liked,
            }
        )
        return data


@dataclass
class CommentWithAuthor:
    comment: Comment
    author: User

    def to_dict(self):
        data = self.comment.to_dict()
        data["user"] = self.author.to_summary_dict()
        return data


@dataclass
class NotificationWithActor:
    notification: Notification
    actor: Optional[User] = None

    def to_dict(self):
        data = self.notification.to_dict()
        data["actor"] = self.actor.to_summary_dict() if self.actor else None
        return data


@dataclass
class ChatMessageWithSender:
    message: ChatMessage
    sender: User

    def to_dict(self):
        data = self.message.to_dict()
        data["sender"] = self.sender.to_summary_dict()
        return data
