import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from helpers import ApiTestCase


class TestAdminRatingsEndpoint(ApiTestCase):
    URL = "/api/admin/ratings"

    def setUp(self):
        super().setUp()
        self.admin = self.make_user("admin", email="b@x.com")
        self.rater = self.make_user("user", email="a@x.com", name="Alice Rater")
        self.store = self.make_store("Corner Shop")

    def test_missing_header_is_401(self):
        r = self.client.get(self.URL)
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json(), {"message": "Authorization header required"})

    def test_invalid_token_is_403(self):
        for header in ("Bearer not-a-token", "Bearer ", "garbage", "Bearer a.b.c"):
            r = self.client.get(self.URL, headers={"Authorization": header})
            self.assertEqual(r.status_code, 403, header)
            self.assertEqual(r.json(), {"message": "Unauthorized"})

    def test_expired_token_is_403(self):
        issued = datetime.now(timezone.utc) - timedelta(days=8)
        token = self.token_for(self.admin, now=issued)
        r = self.client.get(self.URL, headers=self.auth(token))
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json(), {"message": "Unauthorized"})

    def test_token_signed_with_other_key_is_403(self):
        token = self.token_for(self.admin, secret="some-other-secret-0123456789abcdef")
        r = self.client.get(self.URL, headers=self.auth(token))
        self.assertEqual(r.status_code, 403)

    def test_non_admin_roles_are_403(self):
        owner = self.make_user("store_owner")
        for user in (self.rater, owner):
            r = self.client.get(self.URL, headers=self.auth(user))
            self.assertEqual(r.status_code, 403, user["role"])
            self.assertEqual(r.json(), {"message": "Unauthorized"})

    def test_user_token_scenario_is_403(self):
        token = self.token_for({"id": 1, "email": "a@x.com", "role": "user"})
        r = self.client.get(self.URL, headers=self.auth(token))
        self.assertEqual(r.status_code, 403)

    def test_admin_gets_ratings_newest_first(self):
        self.add_rating(self.rater["id"], self.store["id"], 3, created_at="2024-01-01T10:00:00Z")
        other = self.make_user("user", name="Bob Rater")
        self.add_rating(other["id"], self.store["id"], 5, created_at="2024-02-01T10:00:00Z")

        r = self.client.get(self.URL, headers=self.auth(self.admin))
        self.assertEqual(r.status_code, 200)
        ratings = r.json()["ratings"]
        self.assertEqual([x["rating"] for x in ratings], [5, 3])
        self.assertEqual(
            set(ratings[0].keys()),
            {"id", "rating", "created_at", "user_name", "user_email", "store_name"},
        )
        self.assertEqual(ratings[1]["user_name"], "Alice Rater")
        self.assertEqual(ratings[1]["user_email"], "a@x.com")
        self.assertEqual(ratings[1]["store_name"], "Corner Shop")
        self.assertEqual(ratings[0]["created_at"], "2024-02-01T10:00:00Z")

    def test_sorted_descending_for_many_ratings(self):
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        stores = [self.make_store(f"Store number {i}") for i in range(5)]
        for i, store in enumerate(stores):
            ts = (base + timedelta(hours=(i * 7) % 5)).strftime("%Y-%m-%dT%H:%M:%SZ")
            self.add_rating(self.rater["id"], store["id"], 1 + i % 5, created_at=ts)

        r = self.client.get(self.URL, headers=self.auth(self.admin))
        stamps = [x["created_at"] for x in r.json()["ratings"]]
        self.assertEqual(len(stamps), 5)
        self.assertEqual(stamps, sorted(stamps, reverse=True))

    def test_empty_list(self):
        r = self.client.get(self.URL, headers=self.auth(self.admin))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"ratings": []})

    def test_bearer_scheme_is_case_insensitive(self):
        token = self.token_for(self.admin)
        r = self.client.get(self.URL, headers={"Authorization": f"bearer {token}"})
        self.assertEqual(r.status_code, 200)

    def test_query_failure_is_generic_500(self):
        with patch(
            "store_ratings.api.server.list_all_ratings",
            side_effect=RuntimeError('relation "ratings" does not exist: SELECT r.id FROM ratings r'),
        ):
            with self.assertLogs("store_ratings.api.server", "ERROR"):
                r = self.client.get(self.URL, headers=self.auth(self.admin))
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json(), {"message": "Internal server error"})
        self.assertNotIn("SELECT", r.text)
        self.assertNotIn("Traceback", r.text)

    def test_rating_for_deleted_store_disappears(self):
        self.add_rating(self.rater["id"], self.store["id"], 4)
        self.db.query("DELETE FROM stores WHERE id=?", (self.store["id"],))
        r = self.client.get(self.URL, headers=self.auth(self.admin))
        self.assertEqual(r.json()["ratings"], [])


if __name__ == "__main__":
    unittest.main()
