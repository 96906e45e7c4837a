"""
Trade lifecycle.

A trade moves ``pending -> accepted | rejected`` and ``accepted -> completed``.
Only the receiver may accept or reject; either party may complete an accepted
trade. The status change itself is a compare-and-set in the store, so two
concurrent updates of the same pending trade cannot both win.
"""

from flask import current_app

from ..errors import Forbidden, InvalidRequest, InvalidState, InvalidTransition, NotFound
from ..models.entities import TradeStatus
from ..storage.factory import get_store
from . import notifications_service

RECEIVER_ONLY_STATUSES = (TradeStatus.ACCEPTED, TradeStatus.REJECTED)

PINNED_SUMMARY_TEMPLATE = (
    "Trade Accepted!\n\n"
    "{proposer} is trading: {proposer_item}\n\n"
    "For {receiver}'s: {receiver_item}\n\n"
    "Please discuss shipping details and next steps here."
)


def _describe(collectible):
    return (
        f"{collectible.name} #{collectible.id} "
        f"({collectible.series}, {collectible.variant})"
    )


def build_trade_summary(details):
    return PINNED_SUMMARY_TEMPLATE.format(
        proposer=details.proposer.display_name,
        proposer_item=_describe(details.proposer_collectible),
        receiver=details.receiver.display_name,
        receiver_item=_describe(details.receiver_collectible),
    )


def propose_trade(
    proposer_id,
    proposer_collectible_id,
    receiver_id,
    receiver_collectible_id,
    message=None,
):
    store = get_store()
    if proposer_id == receiver_id:
        raise InvalidRequest("You cannot trade with yourself")

    proposer = store.get_user(proposer_id)
    if proposer is None:
        raise NotFound("User not found")
    if store.get_user(receiver_id) is None:
        raise NotFound("Receiver not found")

    offered = store.get_collectible(proposer_collectible_id)
    if offered is None or offered.user_id != proposer_id:
        raise Forbidden("You do not own the collectible you are offering")

    requested = store.get_collectible(receiver_collectible_id)
    if requested is None or requested.user_id != receiver_id:
        raise InvalidRequest("The receiver does not own the requested collectible")

    trade = store.create_trade(
        {
            "proposer_id": proposer_id,
            "receiver_id": receiver_id,
            "proposer_collectible_id": proposer_collectible_id,
            "receiver_collectible_id": receiver_collectible_id,
            "message": (message or "").strip() or None,
        }
    )
    current_app.logger.info(
        f"Trade {trade.id} proposed by user {proposer_id} to user {receiver_id}."
    )
    notifications_service.notify_trade_request(trade, proposer)
    return store.get_trade_with_details(trade.id)


def _coerce_status(value):
    try:
        status = TradeStatus(value)
    except ValueError:
        raise InvalidRequest(f"Invalid trade status '{value}'")
    if status == TradeStatus.PENDING:
        raise InvalidRequest("A trade cannot be moved back to pending")
    return status


def update_trade_status(trade_id, acting_user_id, new_status):
    store = get_store()
    new_status = _coerce_status(new_status)

    trade = store.get_trade(trade_id)
    if trade is None:
        raise NotFound("Trade not found")
    if not trade.is_party(acting_user_id):
        raise Forbidden("You are not a participant in this trade")
    if trade.status.is_terminal:
        raise InvalidTransition(f"Trade is already {trade.status.value}")
    if not trade.status.can_transition_to(new_status):
        raise InvalidTransition(
            f"Cannot change trade status from {trade.status.value} to {new_status.value}"
        )
    if new_status in RECEIVER_ONLY_STATUSES and acting_user_id != trade.receiver_id:
        raise Forbidden(f"Only the receiver can mark a trade as {new_status.value}")

    updated = store.compare_and_set_trade_status(trade_id, trade.status, new_status)
    if updated is None:
        current_app.logger.warning(
            f"Trade {trade_id} changed concurrently; {new_status.value} by user {acting_user_id} lost."
        )
        raise InvalidState("Trade status was changed by another request")
    current_app.logger.info(
        f"Trade {trade_id}: {trade.status.value} -> {new_status.value} by user {acting_user_id}."
    )

    details = store.get_trade_with_details(trade_id)
    notifications_service.notify_trade_status(updated, details.receiver)
    if new_status == TradeStatus.ACCEPTED:
        _pin_trade_summary(details, acting_user_id)
    return details


def _pin_trade_summary(details, sender_id):
    try:
        get_store().create_chat_message(
            {
                "trade_id": details.trade.id,
                "sender_id": sender_id,
                "message": build_trade_summary(details),
                "is_pinned": True,
            }
        )
    except Exception as e:
        current_app.logger.error(
            f"Error creating pinned summary message for trade {details.trade.id}: {e}"
        )


def list_trades_for_user(user_id):
    return get_store().get_user_trades_with_details(user_id)


def get_trade_for_user(trade_id, user_id):
    details = get_store().get_trade_with_details(trade_id)
    if details is None:
        raise NotFound("Trade not found")
    if not details.trade.is_party(user_id):
        raise Forbidden("You are not a participant in this trade")
    return details
