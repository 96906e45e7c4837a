import unittest

from werkzeug.security import check_password_hash

from collector_app.errors import Conflict, Forbidden, InvalidRequest, NotFound
from collector_app.services import users_service
from tests.test_base import AppTestCase


class UserServiceChecks:
    def test_register_hashes_password(self):
        with self.app.app_context():
            user = users_service.register_user(
                "janedoe", "jane@example.com", "password123", bio="Molly fan"
            )
            self.assertNotEqual(user.password_hash, "password123")
            self.assertTrue(check_password_hash(user.password_hash, "password123"))
            self.assertEqual(user.display_name, "janedoe")
            self.assertEqual(user.bio, "Molly fan")

    def test_register_rejects_duplicates_and_missing_fields(self):
        with self.app.app_context():
            with self.assertRaises(Conflict):
                users_service.register_user("testuser1", "other@example.com", "pw")
            with self.assertRaises(Conflict):
                users_service.register_user("someone", "testuser1@example.com", "pw")
            with self.assertRaises(InvalidRequest):
                users_service.register_user("", "blank@example.com", "pw")
            with self.assertRaises(InvalidRequest):
                users_service.register_user("nopass", "nopass@example.com", "")

    def test_authenticate(self):
        with self.app.app_context():
            self.assertEqual(
                users_service.authenticate_user("testuser1", "password").id, self.user1_id
            )
            self.assertIsNone(users_service.authenticate_user("testuser1", "wrong"))
            self.assertIsNone(users_service.authenticate_user("nobody", "password"))

    def test_resolve_user_by_id_or_username(self):
        with self.app.app_context():
            self.assertEqual(users_service.resolve_user(str(self.user2_id)).id, self.user2_id)
            self.assertEqual(users_service.resolve_user("testuser3").id, self.user3_id)
            with self.assertRaises(NotFound):
                users_service.resolve_user("ghost")

    def test_update_profile_merges_fields(self):
        with self.app.app_context():
            updated = users_service.update_profile(
                self.user1_id,
                self.user1_id,
                {"bio": "Dimoo hunter", "email": "stolen@example.com"},
            )
            self.assertEqual(updated.bio, "Dimoo hunter")
            self.assertEqual(updated.display_name, "Test User One")
            self.assertEqual(updated.email, "testuser1@example.com")

    def test_update_profile_rules(self):
        with self.app.app_context():
            with self.assertRaises(Forbidden):
                users_service.update_profile(self.user1_id, self.user2_id, {"bio": "hacked"})
            with self.assertRaises(InvalidRequest):
                users_service.update_profile(self.user1_id, self.user1_id, {"display_name": " "})

    def test_search_users(self):
        with self.app.app_context():
            self.assertEqual(
                [u.id for u in users_service.search_users("three")], [self.user3_id]
            )
            with self.assertRaises(InvalidRequest):
                users_service.search_users("t")


class TestUserServiceSql(UserServiceChecks, AppTestCase):
    store_backend = "sql"


class TestUserServiceMemory(UserServiceChecks, AppTestCase):
    store_backend = "memory"


if __name__ == "__main__":
    unittest.main()
