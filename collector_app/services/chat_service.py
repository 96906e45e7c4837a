from flask import current_app

from ..errors import Forbidden, InvalidRequest, NotFound
from ..storage.factory import get_store


def _get_trade_for_party(trade_id, user_id):
    trade = get_store().get_trade(trade_id)
    if trade is None:
        raise NotFound("Trade not found")
    if not trade.is_party(user_id):
        raise Forbidden("You are not a participant in this trade")
    return trade


def send_trade_message(trade_id, sender_id, message):
    message = (message or "").strip()
    if not message:
        raise InvalidRequest("Message cannot be empty")
    _get_trade_for_party(trade_id, sender_id)
    chat_message = get_store().create_chat_message(
        {
            "trade_id": trade_id,
            "sender_id": sender_id,
            "message": message,
            "is_pinned": False,
        }
    )
    current_app.logger.debug(
        f"User {sender_id} sent message {chat_message.id} on trade {trade_id}."
    )
    return chat_message


def list_trade_messages(trade_id, viewer_id):
    _get_trade_for_party(trade_id, viewer_id)
    return get_store().get_trade_messages(trade_id)


def _set_pinned(trade_id, message_id, acting_user_id, pinned):
    _get_trade_for_party(trade_id, acting_user_id)
    store = get_store()
    chat_message = store.get_chat_message(message_id)
    if chat_message is None or chat_message.trade_id != trade_id:
        raise NotFound("Message not found")
    if chat_message.is_pinned == pinned:
        return chat_message
    return store.set_chat_message_pinned(message_id, pinned)


def pin_trade_message(trade_id, message_id, acting_user_id):
    return _set_pinned(trade_id, message_id, acting_user_id, True)


def unpin_trade_message(trade_id, message_id, acting_user_id):
    return _set_pinned(trade_id, message_id, acting_user_id, False)
