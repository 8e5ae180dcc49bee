"""
Identity provider adapter.

The hosted identity service is out of scope; IdentityProvider is the surface
the application calls and SqlIdentityProvider is a local stand-in backed by
the accounts table. Error codes mirror the hosted provider so the submission
error mapping works unchanged.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import Account, AuthSession
from services.change_feed import ChangeFeed
from services.errors import ProviderError
from services.validation import is_valid_email

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12
MIN_PROVIDER_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class Identity:
    uid: str
    is_anonymous: bool
    email: Optional[str] = None
    is_staff: bool = False
    display_name: Optional[str] = None


class IdentityProvider:
    async def create_anonymous(self) -> tuple[Identity, str]:
        raise NotImplementedError

    async def link_credentials(self, uid: str, email: str, password: str) -> Identity:
        raise NotImplementedError

    async def sign_in(self, email: str, password: str) -> tuple[Identity, str]:
        raise NotImplementedError

    async def resolve(self, token: str) -> Optional[Identity]:
        raise NotImplementedError

    async def sign_out(self, token: str) -> None:
        raise NotImplementedError


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError as e:
        logger.error("Password verification error: %s", e)
        return False


def _to_identity(account: Account) -> Identity:
    return Identity(
        uid=account.id,
        is_anonymous=account.is_anonymous,
        email=account.email,
        is_staff=account.is_staff,
        display_name=account.display_name,
    )


class SqlIdentityProvider(IdentityProvider):
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        feed: Optional[ChangeFeed] = None,
        staff_emails: Iterable[str] = (),
    ):
        self.sessionmaker = sessionmaker
        self.feed = feed
        self.staff_emails = {e.lower() for e in staff_emails}

    async def create_anonymous(self) -> tuple[Identity, str]:
        uid = uuid.uuid4().hex
        token = secrets.token_urlsafe(32)
        async with self.sessionmaker() as session:
            account = Account(id=uid, is_anonymous=True, is_staff=False)
            session.add(account)
            session.add(AuthSession(token=token, account_id=uid))
            await session.commit()
        identity = _to_identity(account)
        self._publish(identity, "signed_in")
        return identity, token

    async def link_credentials(self, uid: str, email: str, password: str) -> Identity:
        email = (email or "").strip().lower()
        if not is_valid_email(email):
            raise ProviderError("auth/invalid-email", "Email address format is invalid")
        if len(password or "") < MIN_PROVIDER_PASSWORD_LENGTH:
            raise ProviderError("auth/weak-password", "Password should be at least 6 characters")
        async with self.sessionmaker() as session:
            account = await session.get(Account, uid)
            if account is None:
                raise ProviderError("auth/user-not-found", "No account for this session")
            if not account.is_anonymous:
                raise ProviderError("auth/provider-already-linked", "Account already has credentials")
            existing = await session.execute(select(Account).where(Account.email == email))
            if existing.scalar_one_or_none() is not None:
                raise ProviderError("auth/email-already-in-use", "Email already in use")
            account.email = email
            account.password_hash = hash_password(password)
            account.is_anonymous = False
            account.is_staff = email in self.staff_emails
            account.linked_at = datetime.now(timezone.utc)
            await session.commit()
        identity = _to_identity(account)
        logger.info("Linked anonymous account %s to permanent credentials", uid)
        self._publish(identity, "linked")
        return identity

    async def sign_in(self, email: str, password: str) -> tuple[Identity, str]:
        email = (email or "").strip().lower()
        async with self.sessionmaker() as session:
            result = await session.execute(select(Account).where(Account.email == email))
            account = result.scalar_one_or_none()
            if account is None:
                raise ProviderError("auth/user-not-found", "No account for this email")
            if not verify_password(password, account.password_hash):
                raise ProviderError("auth/wrong-password", "Incorrect password")
            if email in self.staff_emails and not account.is_staff:
                account.is_staff = True
            token = secrets.token_urlsafe(32)
            session.add(AuthSession(token=token, account_id=account.id))
            await session.commit()
        identity = _to_identity(account)
        self._publish(identity, "signed_in")
        return identity, token

    async def resolve(self, token: str) -> Optional[Identity]:
        if not token:
            return None
        async with self.sessionmaker() as session:
            auth = await session.get(AuthSession, token)
            if auth is None:
                return None
            account = await session.get(Account, auth.account_id)
            return _to_identity(account) if account else None

    async def sign_out(self, token: str) -> None:
        async with self.sessionmaker() as session:
            auth = await session.get(AuthSession, token)
            if auth is None:
                return
            uid = auth.account_id
            await session.execute(delete(AuthSession).where(AuthSession.token == token))
            await session.commit()
        if self.feed is not None:
            self.feed.publish(f"auth/{uid}", {"type": "signed_out", "uid": uid})

    async def grant_staff(self, uid: str, is_staff: bool = True) -> None:
        async with self.sessionmaker() as session:
            account = await session.get(Account, uid)
            if account is None:
                raise ProviderError("auth/user-not-found", "No such account")
            account.is_staff = is_staff
            await session.commit()

    def _publish(self, identity: Identity, event: str) -> None:
        if self.feed is not None:
            self.feed.publish(
                f"auth/{identity.uid}",
                {"type": event, "uid": identity.uid, "isAnonymous": identity.is_anonymous},
            )
