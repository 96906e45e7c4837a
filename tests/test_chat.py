import unittest

from collector_app.errors import Forbidden, InvalidRequest, InvalidState, NotFound
from collector_app.services import chat_service, trades_service
from tests.test_base import AppTestCase


class TradeChatChecks:
    def _accepted_trade_id(self):
        trade_id = trades_service.propose_trade(
            self.user1_id, self.item1.id, self.user2_id, self.item2.id, "swap?"
        ).trade.id
        trades_service.update_trade_status(trade_id, self.user2_id, "accepted")
        return trade_id

    def test_parties_can_chat_after_acceptance(self):
        with self.app.app_context():
            trade_id = self._accepted_trade_id()
            first = chat_service.send_trade_message(trade_id, self.user1_id, "  Shipping Monday  ")
            second = chat_service.send_trade_message(trade_id, self.user2_id, "Sounds good")
            self.assertEqual(first.message, "Shipping Monday")
            self.assertFalse(first.is_pinned)

            messages = chat_service.list_trade_messages(trade_id, self.user1_id)
            # The acceptance summary comes first.
            self.assertEqual(len(messages), 3)
            self.assertTrue(messages[0].message.is_pinned)
            self.assertEqual(
                [m.message.id for m in messages[1:]], [first.id, second.id]
            )
            self.assertEqual(messages[2].sender.username, "testuser2")

    def test_chat_closed_while_pending(self):
        with self.app.app_context():
            trade_id = trades_service.propose_trade(
                self.user1_id, self.item1.id, self.user2_id, self.item2.id
            ).trade.id
            with self.assertRaises(InvalidState):
                chat_service.send_trade_message(trade_id, self.user1_id, "hello?")

    def test_chat_closed_after_rejection(self):
        with self.app.app_context():
            trade_id = trades_service.propose_trade(
                self.user1_id, self.item1.id, self.user2_id, self.item2.id
            ).trade.id
            trades_service.update_trade_status(trade_id, self.user2_id, "rejected")
            with self.assertRaises(InvalidState):
                chat_service.send_trade_message(trade_id, self.user1_id, "please?")

    def test_chat_open_after_completion(self):
        with self.app.app_context():
            trade_id = self._accepted_trade_id()
            trades_service.update_trade_status(trade_id, self.user1_id, "completed")
            message = chat_service.send_trade_message(trade_id, self.user2_id, "Received, thanks!")
            self.assertEqual(message.trade_id, trade_id)

    def test_outsider_cannot_read_or_send(self):
        with self.app.app_context():
            trade_id = self._accepted_trade_id()
            with self.assertRaises(Forbidden):
                chat_service.send_trade_message(trade_id, self.user3_id, "let me in")
            with self.assertRaises(Forbidden):
                chat_service.list_trade_messages(trade_id, self.user3_id)

    def test_blank_message_rejected(self):
        with self.app.app_context():
            trade_id = self._accepted_trade_id()
            with self.assertRaises(InvalidRequest):
                chat_service.send_trade_message(trade_id, self.user1_id, "   ")

    def test_unknown_trade(self):
        with self.app.app_context():
            with self.assertRaises(NotFound):
                chat_service.send_trade_message(999, self.user1_id, "hello")

    def test_pin_and_unpin_are_idempotent(self):
        with self.app.app_context():
            trade_id = self._accepted_trade_id()
            message = chat_service.send_trade_message(trade_id, self.user1_id, "Tracking: 123")

            pinned = chat_service.pin_trade_message(trade_id, message.id, self.user2_id)
            self.assertTrue(pinned.is_pinned)
            again = chat_service.pin_trade_message(trade_id, message.id, self.user2_id)
            self.assertTrue(again.is_pinned)

            unpinned = chat_service.unpin_trade_message(trade_id, message.id, self.user1_id)
            self.assertFalse(unpinned.is_pinned)
            self.assertFalse(
                chat_service.unpin_trade_message(trade_id, message.id, self.user1_id).is_pinned
            )

    def test_pin_requires_message_on_same_trade(self):
        with self.app.app_context():
            trade_id = self._accepted_trade_id()
            other_trade_id = trades_service.propose_trade(
                self.user3_id, self.item3.id, self.user1_id, self.item1.id
            ).trade.id
            trades_service.update_trade_status(other_trade_id, self.user1_id, "accepted")
            foreign = chat_service.send_trade_message(other_trade_id, self.user3_id, "hi")

            with self.assertRaises(NotFound):
                chat_service.pin_trade_message(trade_id, foreign.id, self.user1_id)
            with self.assertRaises(NotFound):
                chat_service.pin_trade_message(trade_id, 999, self.user1_id)
            with self.assertRaises(Forbidden):
                chat_service.pin_trade_message(other_trade_id, foreign.id, self.user2_id)


class TestTradeChatSql(TradeChatChecks, AppTestCase):
    store_backend = "sql"


class TestTradeChatMemory(TradeChatChecks, AppTestCase):
    store_backend = "memory"


if __name__ == "__main__":
    unittest.main()
