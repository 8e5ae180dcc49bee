from unittest.mock import patch

from services.change_feed import ChangeFeed
from services.errors import ProviderError
from services.identity import SqlIdentityProvider, hash_password, verify_password
from tests.support import STRONG_PASSWORD, DatabaseTestCase


class TestPasswordHashing(DatabaseTestCase):
    async def test_hash_roundtrip(self):
        with patch("services.identity.BCRYPT_ROUNDS", 4):
            hashed = hash_password("secret-pass")
        self.assertTrue(verify_password("secret-pass", hashed))
        self.assertFalse(verify_password("wrong", hashed))
        self.assertFalse(verify_password("secret-pass", None))


class TestSqlIdentityProvider(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        patcher = patch("services.identity.BCRYPT_ROUNDS", 4)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.feed = ChangeFeed()
        self.provider = SqlIdentityProvider(self.sessionmaker, feed=self.feed, staff_emails={"staff@example.com"})

    async def test_anonymous_session_resolves(self):
        identity, token = await self.provider.create_anonymous()
        self.assertTrue(identity.is_anonymous)
        self.assertEqual(await self.provider.resolve(token), identity)
        self.assertIsNone(await self.provider.resolve("not-a-token"))

    async def test_link_keeps_uid_and_session(self):
        identity, token = await self.provider.create_anonymous()
        auth_events = self.feed.subscribe(f"auth/{identity.uid}")
        linked = await self.provider.link_credentials(identity.uid, "Sam@Example.com", STRONG_PASSWORD)
        self.assertEqual(linked.uid, identity.uid)
        self.assertFalse(linked.is_anonymous)
        self.assertEqual(linked.email, "sam@example.com")
        self.assertEqual((await self.provider.resolve(token)).email, "sam@example.com")
        self.assertEqual(auth_events.queue.get_nowait()["type"], "linked")
        auth_events.close()

    async def test_email_collision(self):
        first, _ = await self.provider.create_anonymous()
        second, _ = await self.provider.create_anonymous()
        await self.provider.link_credentials(first.uid, "sam@example.com", STRONG_PASSWORD)
        with self.assertRaises(ProviderError) as ctx:
            await self.provider.link_credentials(second.uid, "sam@example.com", STRONG_PASSWORD)
        self.assertEqual(ctx.exception.code, "auth/email-already-in-use")

    async def test_link_rejects_bad_input(self):
        identity, _ = await self.provider.create_anonymous()
        with self.assertRaises(ProviderError) as ctx:
            await self.provider.link_credentials(identity.uid, "not-an-email", STRONG_PASSWORD)
        self.assertEqual(ctx.exception.code, "auth/invalid-email")
        with self.assertRaises(ProviderError) as ctx:
            await self.provider.link_credentials(identity.uid, "sam@example.com", "abc")
        self.assertEqual(ctx.exception.code, "auth/weak-password")

    async def test_link_twice_refused(self):
        identity, _ = await self.provider.create_anonymous()
        await self.provider.link_credentials(identity.uid, "sam@example.com", STRONG_PASSWORD)
        with self.assertRaises(ProviderError) as ctx:
            await self.provider.link_credentials(identity.uid, "other@example.com", STRONG_PASSWORD)
        self.assertEqual(ctx.exception.code, "auth/provider-already-linked")

    async def test_sign_in_and_out(self):
        identity, _ = await self.provider.create_anonymous()
        await self.provider.link_credentials(identity.uid, "sam@example.com", STRONG_PASSWORD)
        with self.assertRaises(ProviderError) as ctx:
            await self.provider.sign_in("sam@example.com", "Wrong!Pass1")
        self.assertEqual(ctx.exception.code, "auth/wrong-password")
        signed_in, token = await self.provider.sign_in("SAM@example.com", STRONG_PASSWORD)
        self.assertEqual(signed_in.uid, identity.uid)
        await self.provider.sign_out(token)
        self.assertIsNone(await self.provider.resolve(token))

    async def test_unknown_email(self):
        with self.assertRaises(ProviderError) as ctx:
            await self.provider.sign_in("nobody@example.com", STRONG_PASSWORD)
        self.assertEqual(ctx.exception.code, "auth/user-not-found")

    async def test_staff_emails_promoted(self):
        identity, _ = await self.provider.create_anonymous()
        linked = await self.provider.link_credentials(identity.uid, "staff@example.com", STRONG_PASSWORD)
        self.assertTrue(linked.is_staff)
