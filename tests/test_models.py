import unittest
from datetime import datetime, timezone

from collector_app.models.entities import (
    Collectible,
    CollectibleWithOwner,
    Notification,
    NotificationType,
    NotificationWithActor,
    PostSource,
    Rarity,
    Trade,
    TradeSource,
    TradeStatus,
    User,
    UserSource,
    as_utc,
    source_from_columns,
)


def _user(user_id=1, username="collector"):
    return User(
        id=user_id,
        username=username,
        email=f"{username}@example.com",
        password_hash="hashed-secret",
        display_name=username.title(),
        bio="Loves blind boxes",
        joined_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


class TestTradeStatus(unittest.TestCase):
    def test_pending_can_be_accepted_or_rejected(self):
        self.assertTrue(TradeStatus.PENDING.can_transition_to(TradeStatus.ACCEPTED))
        self.assertTrue(TradeStatus.PENDING.can_transition_to(TradeStatus.REJECTED))
        self.assertFalse(TradeStatus.PENDING.can_transition_to(TradeStatus.COMPLETED))

    def test_accepted_can_only_be_completed(self):
        self.assertTrue(TradeStatus.ACCEPTED.can_transition_to(TradeStatus.COMPLETED))
        self.assertFalse(TradeStatus.ACCEPTED.can_transition_to(TradeStatus.REJECTED))
        self.assertFalse(TradeStatus.ACCEPTED.can_transition_to(TradeStatus.PENDING))

    def test_terminal_statuses(self):
        self.assertTrue(TradeStatus.REJECTED.is_terminal)
        self.assertTrue(TradeStatus.COMPLETED.is_terminal)
        self.assertFalse(TradeStatus.PENDING.is_terminal)
        self.assertFalse(TradeStatus.ACCEPTED.is_terminal)
        for status in TradeStatus:
            self.assertFalse(TradeStatus.REJECTED.can_transition_to(status))
            self.assertFalse(TradeStatus.COMPLETED.can_transition_to(status))

    def test_chat_allowed_only_after_acceptance(self):
        self.assertTrue(TradeStatus.ACCEPTED.allows_chat)
        self.assertTrue(TradeStatus.COMPLETED.allows_chat)
        self.assertFalse(TradeStatus.PENDING.allows_chat)
        self.assertFalse(TradeStatus.REJECTED.allows_chat)


class TestRarity(unittest.TestCase):
    def test_values_in_rank_order(self):
        self.assertEqual(Rarity.values(), ["common", "rare", "ultra-rare", "limited"])
        self.assertLess(Rarity.COMMON.rank, Rarity.LIMITED.rank)

    def test_unknown_rarity_rejected(self):
        with self.assertRaises(ValueError):
            Rarity("legendary")


class TestNotificationSource(unittest.TestCase):
    def test_source_from_columns(self):
        self.assertEqual(source_from_columns(7, "trade"), TradeSource(7))
        self.assertEqual(source_from_columns(3, "post"), PostSource(3))
        self.assertEqual(source_from_columns(2, "user"), UserSource(2))
        self.assertIsNone(source_from_columns(None, None))

    def test_unknown_source_type(self):
        with self.assertRaises(ValueError):
            source_from_columns(1, "group")

    def test_notification_serializes_source_pair(self):
        notification = Notification(
            id=1,
            user_id=2,
            type=NotificationType.TRADE_REQUEST,
            content="Collector has requested a trade with you.",
            source=TradeSource(5),
            actor_id=1,
            read=False,
            created_at=datetime(2024, 5, 2, tzinfo=timezone.utc),
        )
        data = NotificationWithActor(notification=notification, actor=_user()).to_dict()
        self.assertEqual(data["sourceId"], 5)
        self.assertEqual(data["sourceType"], "trade")
        self.assertEqual(data["type"], "trade_request")
        self.assertEqual(data["actor"]["username"], "collector")


class TestSerialization(unittest.TestCase):
    def test_public_user_dict_hides_credentials(self):
        data = _user().to_public_dict()
        self.assertNotIn("passwordHash", data)
        self.assertNotIn("password_hash", data)
        self.assertNotIn("email", data)
        self.assertEqual(data["displayName"], "Collector")
        self.assertEqual(data["joinedAt"], "2024-05-01T00:00:00+00:00")

    def test_self_dict_includes_email(self):
        data = _user().to_self_dict()
        self.assertEqual(data["email"], "collector@example.com")
        self.assertNotIn("passwordHash", data)

    def test_collectible_with_owner(self):
        collectible = Collectible(
            id=4,
            user_id=1,
            name="Dimoo Candy Series",
            series="Dimoo",
            variant="Strawberry Dream",
            rarity=Rarity.RARE,
            image="/uploads/collectibles/dimoo.png",
            for_trade=True,
        )
        data = CollectibleWithOwner(collectible=collectible, owner=_user()).to_dict()
        self.assertEqual(data["rarity"], "rare")
        self.assertTrue(data["forTrade"])
        self.assertEqual(data["user"]["id"], 1)
        self.assertNotIn("email", data["user"])

    def test_trade_is_party(self):
        trade = Trade(
            id=1,
            proposer_id=1,
            receiver_id=2,
            proposer_collectible_id=10,
            receiver_collectible_id=20,
            status=TradeStatus.PENDING,
        )
        self.assertTrue(trade.is_party(1))
        self.assertTrue(trade.is_party(2))
        self.assertFalse(trade.is_party(3))
        self.assertEqual(trade.to_dict()["status"], "pending")

    def test_as_utc_marks_naive_values(self):
        naive = datetime(2024, 1, 1, 12, 0)
        self.assertEqual(as_utc(naive).tzinfo, timezone.utc)
        self.assertIsNone(as_utc(None))


if __name__ == "__main__":
    unittest.main()
