import unittest
from unittest.mock import patch

from collector_app.errors import (
    Forbidden,
    InvalidRequest,
    InvalidState,
    InvalidTransition,
    NotFound,
)
from collector_app.models.entities import NotificationType, TradeSource, TradeStatus
from collector_app.services import trades_service
from tests.test_base import AppTestCase


class TradeLifecycleChecks:
    def _propose(self, message="swap?"):
        return trades_service.propose_trade(
            self.user1_id, self.item1.id, self.user2_id, self.item2.id, message
        )

    def _notifications_of(self, user_id, notification_type=None):
        notifications = [
            n.notification
            for n in self.store.get_user_notifications(user_id, limit=100, include_read=True)
        ]
        if notification_type is not None:
            notifications = [n for n in notifications if n.type == notification_type]
        return notifications

    def test_propose_trade_creates_pending_trade_and_notifies(self):
        with self.app.app_context():
            details = self._propose()
            self.assertEqual(details.trade.status, TradeStatus.PENDING)
            self.assertEqual(details.trade.message, "swap?")
            self.assertEqual(details.proposer.id, self.user1_id)
            self.assertEqual(details.receiver_collectible.id, self.item2.id)

            requests = self._notifications_of(self.user2_id, NotificationType.TRADE_REQUEST)
            self.assertEqual(len(requests), 1)
            self.assertEqual(requests[0].source, TradeSource(details.trade.id))
            self.assertEqual(requests[0].actor_id, self.user1_id)
            self.assertEqual(
                requests[0].content, "Test User One has requested a trade with you."
            )
            self.assertEqual(self._notifications_of(self.user1_id), [])

    def test_blank_message_stored_as_none(self):
        with self.app.app_context():
            details = self._propose(message="   ")
            self.assertIsNone(details.trade.message)

    def test_cannot_offer_collectible_you_do_not_own(self):
        with self.app.app_context():
            with self.assertRaises(Forbidden):
                trades_service.propose_trade(
                    self.user1_id, self.item3.id, self.user2_id, self.item2.id
                )
            with self.assertRaises(Forbidden):
                trades_service.propose_trade(
                    self.user1_id, 999, self.user2_id, self.item2.id
                )
            self.assertEqual(self.store.get_user_trades(self.user1_id), [])

    def test_requested_collectible_must_belong_to_receiver(self):
        with self.app.app_context():
            with self.assertRaises(InvalidRequest):
                trades_service.propose_trade(
                    self.user1_id, self.item1.id, self.user2_id, self.item3.id
                )

    def test_cannot_trade_with_yourself(self):
        with self.app.app_context():
            own_spare = self._create_collectible(self.user1_id, name="Spare")
            with self.assertRaises(InvalidRequest):
                trades_service.propose_trade(
                    self.user1_id, self.item1.id, self.user1_id, own_spare.id
                )

    def test_unknown_receiver(self):
        with self.app.app_context():
            with self.assertRaises(NotFound):
                trades_service.propose_trade(self.user1_id, self.item1.id, 999, self.item2.id)

    def test_accept_sends_one_notification_and_pins_summary(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            details = trades_service.update_trade_status(trade_id, self.user2_id, "accepted")
            self.assertEqual(details.trade.status, TradeStatus.ACCEPTED)

            accepted = self._notifications_of(self.user1_id, NotificationType.TRADE_ACCEPTED)
            self.assertEqual(len(accepted), 1)
            self.assertEqual(accepted[0].actor_id, self.user2_id)
            self.assertEqual(
                accepted[0].content, "Test User Two has accepted your trade request."
            )

            messages = self.store.get_trade_messages(trade_id)
            self.assertEqual(len(messages), 1)
            pinned = messages[0].message
            self.assertTrue(pinned.is_pinned)
            self.assertEqual(pinned.sender_id, self.user2_id)
            self.assertTrue(pinned.message.startswith("Trade Accepted!"))
            self.assertIn(f"Dimoo Candy Series #{self.item1.id}", pinned.message)
            self.assertIn("For Test User Two's: Molly Ocean Series", pinned.message)

    def test_swap_accept_then_reject_scenario(self):
        with self.app.app_context():
            details = self._propose()
            trade_id = details.trade.id
            request = self._notifications_of(self.user2_id, NotificationType.TRADE_REQUEST)[0]
            self.assertEqual(request.actor_id, self.user1_id)

            trades_service.update_trade_status(trade_id, self.user2_id, "accepted")
            self.assertEqual(
                len(self._notifications_of(self.user1_id, NotificationType.TRADE_ACCEPTED)), 1
            )
            pinned = [
                m.message for m in self.store.get_trade_messages(trade_id) if m.message.is_pinned
            ]
            self.assertEqual(len(pinned), 1)
            self.assertIn(f"#{self.item1.id}", pinned[0].message)
            self.assertIn(f"#{self.item2.id}", pinned[0].message)

            with self.assertRaises(InvalidState):
                trades_service.update_trade_status(trade_id, self.user2_id, "rejected")
            self.assertEqual(self.store.get_trade(trade_id).status, TradeStatus.ACCEPTED)

    def test_only_receiver_can_accept_or_reject(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            with self.assertRaises(Forbidden):
                trades_service.update_trade_status(trade_id, self.user1_id, "accepted")
            with self.assertRaises(Forbidden):
                trades_service.update_trade_status(trade_id, self.user1_id, "rejected")
            self.assertEqual(self.store.get_trade(trade_id).status, TradeStatus.PENDING)

    def test_outsider_cannot_touch_trade(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            with self.assertRaises(Forbidden):
                trades_service.update_trade_status(trade_id, self.user3_id, "accepted")
            with self.assertRaises(Forbidden):
                trades_service.get_trade_for_user(trade_id, self.user3_id)

    def test_pending_cannot_skip_to_completed(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            with self.assertRaises(InvalidTransition):
                trades_service.update_trade_status(trade_id, self.user2_id, "completed")

    def test_invalid_status_values(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            with self.assertRaises(InvalidRequest):
                trades_service.update_trade_status(trade_id, self.user2_id, "pending")
            with self.assertRaises(InvalidRequest):
                trades_service.update_trade_status(trade_id, self.user2_id, "shipped")

    def test_terminal_trades_are_immutable(self):
        with self.app.app_context():
            rejected_id = self._propose().trade.id
            trades_service.update_trade_status(rejected_id, self.user2_id, "rejected")
            for status in ("accepted", "rejected", "completed"):
                with self.assertRaises(InvalidState):
                    trades_service.update_trade_status(rejected_id, self.user2_id, status)
            self.assertEqual(self.store.get_trade(rejected_id).status, TradeStatus.REJECTED)

            completed_id = trades_service.propose_trade(
                self.user3_id, self.item3.id, self.user2_id, self.item2.id
            ).trade.id
            trades_service.update_trade_status(completed_id, self.user2_id, "accepted")
            trades_service.update_trade_status(completed_id, self.user3_id, "completed")
            with self.assertRaises(InvalidTransition):
                trades_service.update_trade_status(completed_id, self.user2_id, "completed")
            self.assertEqual(
                self.store.get_trade(completed_id).status, TradeStatus.COMPLETED
            )

    def test_reject_notifies_proposer_without_chat(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            trades_service.update_trade_status(trade_id, self.user2_id, "rejected")
            rejected = self._notifications_of(self.user1_id, NotificationType.TRADE_REJECTED)
            self.assertEqual(len(rejected), 1)
            self.assertEqual(self.store.get_trade_messages(trade_id), [])

    def test_either_party_can_complete(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            trades_service.update_trade_status(trade_id, self.user2_id, "accepted")
            details = trades_service.update_trade_status(trade_id, self.user1_id, "completed")
            self.assertEqual(details.trade.status, TradeStatus.COMPLETED)
            completed = self._notifications_of(self.user1_id, NotificationType.TRADE_COMPLETED)
            self.assertEqual(len(completed), 1)
            self.assertEqual(
                completed[0].content, "Your trade with Test User Two has been completed."
            )

    def test_lost_race_leaves_no_side_effects(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            with patch.object(self.store, "compare_and_set_trade_status", return_value=None):
                with self.assertRaises(InvalidState):
                    trades_service.update_trade_status(trade_id, self.user2_id, "accepted")
            self.assertEqual(
                self._notifications_of(self.user1_id, NotificationType.TRADE_ACCEPTED), []
            )
            self.assertEqual(self.store.get_trade_messages(trade_id), [])

    def test_second_status_change_from_stale_state_fails(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            self.assertIsNotNone(
                self.store.compare_and_set_trade_status(
                    trade_id, TradeStatus.PENDING, TradeStatus.ACCEPTED
                )
            )
            self.assertIsNone(
                self.store.compare_and_set_trade_status(
                    trade_id, TradeStatus.PENDING, TradeStatus.REJECTED
                )
            )

    def test_failed_summary_message_keeps_acceptance(self):
        with self.app.app_context():
            trade_id = self._propose().trade.id
            with patch.object(
                self.store, "create_chat_message", side_effect=RuntimeError("disk full")
            ):
                details = trades_service.update_trade_status(
                    trade_id, self.user2_id, "accepted"
                )
            self.assertEqual(details.trade.status, TradeStatus.ACCEPTED)
            self.assertEqual(self.store.get_trade(trade_id).status, TradeStatus.ACCEPTED)
            self.assertEqual(self.store.get_trade_messages(trade_id), [])

    def test_failed_notification_keeps_trade(self):
        with self.app.app_context():
            with patch.object(
                self.store, "create_notification", side_effect=RuntimeError("offline")
            ):
                details = self._propose()
            self.assertEqual(
                self.store.get_trade(details.trade.id).status, TradeStatus.PENDING
            )

    def test_list_trades_for_user(self):
        with self.app.app_context():
            first = self._propose().trade.id
            second = trades_service.propose_trade(
                self.user3_id, self.item3.id, self.user1_id, self.item1.id
            ).trade.id
            trades = trades_service.list_trades_for_user(self.user1_id)
            self.assertEqual([d.trade.id for d in trades], [second, first])
            self.assertEqual(
                [d.trade.id for d in trades_service.list_trades_for_user(self.user2_id)],
                [first],
            )

    def test_get_trade_for_user_missing(self):
        with self.app.app_context():
            with self.assertRaises(NotFound):
                trades_service.get_trade_for_user(999, self.user1_id)
            with self.assertRaises(NotFound):
                trades_service.update_trade_status(999, self.user1_id, "accepted")


class TestTradesSql(TradeLifecycleChecks, AppTestCase):
    store_backend = "sql"


class TestTradesMemory(TradeLifecycleChecks, AppTestCase):
    store_backend = "memory"


if __name__ == "__main__":
    unittest.main()
