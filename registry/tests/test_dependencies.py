import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from registry.config import Settings
from registry.dependencies import build_user_store
from registry.store import FileUserStore, RedisUserStore


class BuildUserStoreTests(unittest.TestCase):
    def test_file_store_without_redis_url(self):
        store = build_user_store(
            Settings(redis_url=None, users_file_path="data/users.db")
        )
        self.assertIsInstance(store, FileUserStore)
        self.assertEqual(store.path, Path("data/users.db"))

    def test_blank_redis_url_selects_file_store(self):
        store = build_user_store(Settings(redis_url="   "))
        self.assertIsInstance(store, FileUserStore)

    def test_redis_store_with_url(self):
        with patch("registry.store.redis.Redis.from_url") as from_url:
            store = build_user_store(
                Settings(
                    redis_url=" redis://cache:6379/1 ",
                    redis_key_prefix="ws:",
                    store_timeout_seconds=1.5,
                )
            )
            self.assertIsInstance(store, RedisUserStore)
            self.assertEqual(store.url, "redis://cache:6379/1")
            self.assertEqual(store.key_prefix, "ws:")
            self.assertEqual(store.timeout, 1.5)
            from_url.assert_not_called()

    def test_backends_do_not_share_data(self):
        from registry.tests.test_redis_store import FakeRedis

        with tempfile.TemporaryDirectory() as tmpdir:
            path = str(Path(tmpdir) / "users.db")
            file_store = build_user_store(
                Settings(redis_url=None, users_file_path=path)
            )
            file_store.add_user("a@x.com", "Acme")

            with patch("registry.store.redis.Redis.from_url", return_value=FakeRedis()):
                redis_store = build_user_store(
                    Settings(redis_url="redis://cache:6379/0", users_file_path=path)
                )
                self.assertIsNone(redis_store.find_user("a@x.com"))
                redis_store.add_user("b@x.com", "Beta")

            self.assertIsNone(file_store.find_user("b@x.com"))


if __name__ == "__main__":
    unittest.main()
