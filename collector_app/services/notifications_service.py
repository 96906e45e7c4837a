"""
Notification fan-out.

Producers turn trade, follow, like and comment events into notification
records with precomputed display text. Delivery is best-effort: a failure to
record a notification is logged and never undoes the event that caused it.
"""

from flask import current_app

from ..errors import Forbidden, NotFound
from ..models.entities import (
    NotificationType,
    PostSource,
    TradeSource,
    TradeStatus,
    UserSource,
)
from ..storage.factory import get_store

TRADE_STATUS_MESSAGES = {
    TradeStatus.ACCEPTED: (
        NotificationType.TRADE_ACCEPTED,
        "{name} has accepted your trade request.",
    ),
    TradeStatus.REJECTED: (
        NotificationType.TRADE_REJECTED,
        "{name} has rejected your trade request.",
    ),
    TradeStatus.COMPLETED: (
        NotificationType.TRADE_COMPLETED,
        "Your trade with {name} has been completed.",
    ),
}


def _deliver(recipient_id, notification_type, content, source, actor_id):
    try:
        notification = get_store().create_notification(
            {
                "user_id": recipient_id,
                "type": notification_type,
                "content": content,
                "source": source,
                "actor_id": actor_id,
            }
        )
    except Exception as e:
        current_app.logger.error(
            f"Error creating {notification_type.value} notification for user {recipient_id}: {e}"
        )
        return None
    current_app.logger.debug(
        f"Notification {notification.id} ({notification_type.value}) sent to user {recipient_id}."
    )
    return notification


def notify_trade_request(trade, proposer):
    return _deliver(
        trade.receiver_id,
        NotificationType.TRADE_REQUEST,
        f"{proposer.display_name} has requested a trade with you.",
        TradeSource(trade.id),
        proposer.id,
    )


def notify_trade_status(trade, receiver):
    """Tells the proposer that the receiver moved the trade to a new status."""
    notification_type, template = TRADE_STATUS_MESSAGES[trade.status]
    return _deliver(
        trade.proposer_id,
        notification_type,
        template.format(name=receiver.display_name),
        TradeSource(trade.id),
        receiver.id,
    )


def notify_follow(follower, followed_id):
    return _deliver(
        followed_id,
        NotificationType.FOLLOW,
        f"{follower.display_name} started following you.",
        UserSource(follower.id),
        follower.id,
    )


def notify_like(post, liker):
    if post.user_id == liker.id:
        return None
    return _deliver(
        post.user_id,
        NotificationType.LIKE,
        f"{liker.display_name} liked your post.",
        PostSource(post.id),
        liker.id,
    )


def notify_comment(post, commenter):
    if post.user_id == commenter.id:
        return None
    return _deliver(
        post.user_id,
        NotificationType.COMMENT,
        f"{commenter.display_name} commented on your post.",
        PostSource(post.id),
        commenter.id,
    )


def list_notifications(user_id, limit=None, include_read=False):
    if limit is None:
        limit = current_app.config.get("NOTIFICATIONS_DEFAULT_LIMIT", 20)
    return get_store().get_user_notifications(
        user_id, limit=max(int(limit), 0), include_read=include_read
    )


def unread_count(user_id):
    return get_store().count_unread_notifications(user_id)


def _get_own_notification(notification_id, acting_user_id):
    notification = get_store().get_notification(notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    if notification.user_id != acting_user_id:
        raise Forbidden("You can only manage your own notifications")
    return notification


def mark_read(notification_id, acting_user_id):
    _get_own_notification(notification_id, acting_user_id)
    return get_store().mark_notification_read(notification_id)


def mark_all_read(user_id):
    changed = get_store().mark_all_notifications_read(user_id)
    current_app.logger.info(f"Marked {changed} notifications read for user {user_id}.")
    return changed


def delete_notification(notification_id, acting_user_id):
    _get_own_notification(notification_id, acting_user_id)
    get_store().delete_notification(notification_id)
