import unittest

from collector_app.errors import Forbidden, NotFound
from collector_app.models.entities import NotificationType, TradeStatus
from collector_app.services import notifications_service, posts_service, social_service
from tests.test_base import AppTestCase


class NotificationChecks:
    def _seed_notifications(self):
        social_service.follow_user(self.user2_id, self.user1_id)
        post_id = posts_service.create_post(self.user1_id, "New shelf").post.id
        posts_service.like_post(post_id, self.user3_id)
        posts_service.add_comment(post_id, self.user2_id, "Nice shelf")
        return post_id

    def test_list_returns_unread_newest_first(self):
        with self.app.app_context():
            self._seed_notifications()
            notifications = notifications_service.list_notifications(self.user1_id)
            self.assertEqual(
                [n.notification.type for n in notifications],
                [NotificationType.COMMENT, NotificationType.LIKE, NotificationType.FOLLOW],
            )
            self.assertEqual(notifications[1].actor.id, self.user3_id)
            self.assertEqual(notifications_service.unread_count(self.user1_id), 3)

    def test_limit(self):
        with self.app.app_context():
            self._seed_notifications()
            notifications = notifications_service.list_notifications(self.user1_id, limit=2)
            self.assertEqual(len(notifications), 2)
            self.assertEqual(notifications_service.list_notifications(self.user1_id, limit=0), [])

    def test_mark_read_hides_from_default_listing(self):
        with self.app.app_context():
            self._seed_notifications()
            newest = notifications_service.list_notifications(self.user1_id)[0].notification
            marked = notifications_service.mark_read(newest.id, self.user1_id)
            self.assertTrue(marked.read)

            unread_ids = [
                n.notification.id for n in notifications_service.list_notifications(self.user1_id)
            ]
            self.assertNotIn(newest.id, unread_ids)
            self.assertEqual(notifications_service.unread_count(self.user1_id), 2)

            everything = notifications_service.list_notifications(
                self.user1_id, include_read=True
            )
            self.assertEqual(len(everything), 3)
            self.assertEqual(everything[0].notification.id, newest.id)

    def test_mark_all_read(self):
        with self.app.app_context():
            self._seed_notifications()
            self.assertEqual(notifications_service.mark_all_read(self.user1_id), 3)
            self.assertEqual(notifications_service.unread_count(self.user1_id), 0)
            self.assertEqual(notifications_service.list_notifications(self.user1_id), [])

    def test_cannot_manage_someone_elses_notifications(self):
        with self.app.app_context():
            self._seed_notifications()
            notification = notifications_service.list_notifications(self.user1_id)[0].notification
            with self.assertRaises(Forbidden):
                notifications_service.mark_read(notification.id, self.user2_id)
            with self.assertRaises(Forbidden):
                notifications_service.delete_notification(notification.id, self.user2_id)
            with self.assertRaises(NotFound):
                notifications_service.mark_read(999, self.user1_id)

    def test_delete_notification(self):
        with self.app.app_context():
            self._seed_notifications()
            notification = notifications_service.list_notifications(self.user1_id)[0].notification
            notifications_service.delete_notification(notification.id, self.user1_id)
            self.assertEqual(notifications_service.unread_count(self.user1_id), 2)

    def test_trade_status_messages(self):
        with self.app.app_context():
            trade = self._create_trade()
            receiver = self.store.get_user(self.user2_id)
            for status, expected_type in (
                (TradeStatus.ACCEPTED, NotificationType.TRADE_ACCEPTED),
                (TradeStatus.REJECTED, NotificationType.TRADE_REJECTED),
                (TradeStatus.COMPLETED, NotificationType.TRADE_COMPLETED),
            ):
                trade.status = status
                notification = notifications_service.notify_trade_status(trade, receiver)
                self.assertEqual(notification.type, expected_type)
                self.assertEqual(notification.user_id, self.user1_id)
                self.assertEqual(notification.actor_id, self.user2_id)

    def test_delivery_failure_is_logged_not_raised(self):
        with self.app.app_context():
            follower = self.store.get_user(self.user1_id)
            with self.assertLogs(self.app.logger, level="ERROR"):
                result = notifications_service.notify_follow(follower, 999)
            self.assertIsNone(result)


class TestNotificationsSql(NotificationChecks, AppTestCase):
    store_backend = "sql"


class TestNotificationsMemory(NotificationChecks, AppTestCase):
    store_backend = "memory"


if __name__ == "__main__":
    unittest.main()
