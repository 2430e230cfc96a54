# admin_api/services/sessions.py
"""
Admin sessions: access/refresh token issuance with refresh-token rotation.

One administrator identity (username + bcrypt hash). Access tokens are
stateless JWTs. Each refresh token is bound to a session id (``sid``) held in
a ``SessionStore``; using a refresh token deletes its sid and issues a new
one, so a replayed refresh token finds nothing and the caller is logged out.

Expired sessions are not swept: they are discovered and deleted the next
time their refresh token is presented.
"""

import asyncio
import json
import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

import redis.asyncio as aioredis

from admin_api.core.config import Settings
from admin_api.core.errors import AdminApiError, ErrorKind
from admin_api.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    TokenError,
    create_token,
    decode_token,
    generate_secret,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
INVALID_CREDENTIALS = "Invalid username or password"


@dataclass
class Session:
    username: str
    expires_at: float


@dataclass
class AdminIdentity:
    username: str
    password_hash: str


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: str
    expires_in: int
    username: str
    sid: str

    def body(self) -> dict:
        return {
            "accessToken": self.access_token,
            "expiresIn": self.expires_in,
            "user": {"username": self.username, "role": ADMIN_ROLE},
        }


class SessionStore(Protocol):
    async def get(self, sid: str) -> Optional[Session]: ...

    async def put(self, sid: str, session: Session) -> None: ...

    async def delete(self, sid: str) -> None: ...


class InMemorySessionStore:
    """Process-local store; sessions are lost on restart."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    async def get(self, sid: str) -> Optional[Session]:
        return self._sessions.get(sid)

    async def put(self, sid: str, session: Session) -> None:
        self._sessions[sid] = session

    async def delete(self, sid: str) -> None:
        self._sessions.pop(sid, None)

    def __len__(self) -> int:
        return len(self._sessions)


class RedisSessionStore:
    """Shared store for multi-instance deployments. Keys expire with the refresh token."""

    def __init__(self, url: Optional[str] = None, prefix: str = "sng:session:", client=None):
        self._url = url
        self._prefix = prefix
        self._client = client

    async def _get_client(self):
        if self._client is None:
            self._client = aioredis.from_url(self._url, decode_responses=True)
        return self._client

    async def _call(self, method: str, *args, **kwargs):
        try:
            client = await self._get_client()
            return await getattr(client, method)(*args, **kwargs)
        except Exception as exc:
            logger.error("Session store %s failed: %r", method, exc)
            raise AdminApiError(ErrorKind.KV_UNAVAILABLE) from exc

    async def get(self, sid: str) -> Optional[Session]:
        raw = await self._call("get", self._prefix + sid)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return Session(username=data["username"], expires_at=float(data["expires_at"]))
        except (TypeError, ValueError, KeyError):
            logger.warning("Discarding unreadable session %s", sid)
            return None

    async def put(self, sid: str, session: Session) -> None:
        ttl = max(1, int(session.expires_at - time.time()))
        payload = json.dumps({"username": session.username, "expires_at": session.expires_at})
        await self._call("set", self._prefix + sid, payload, ex=ttl)

    async def delete(self, sid: str) -> None:
        await self._call("delete", self._prefix + sid)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def resolve_admin_identity(settings: Settings) -> AdminIdentity:
    """
    Use ADMIN_PASSWORD_HASH when set, otherwise hash ADMIN_PASSWORD once.
    Raises RuntimeError when neither is configured.
    """
    if settings.ADMIN_PASSWORD_HASH:
        return AdminIdentity(settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD_HASH)
    if not settings.ADMIN_PASSWORD:
        raise RuntimeError("Set ADMIN_PASSWORD_HASH or ADMIN_PASSWORD")
    logger.warning("Using ADMIN_PASSWORD (dev). Set ADMIN_PASSWORD_HASH for production.")
    return AdminIdentity(settings.ADMIN_USERNAME, hash_password(settings.ADMIN_PASSWORD, settings.BCRYPT_ROUNDS))


def _secret_or_ephemeral(value: Optional[str], env_name: str) -> str:
    if value:
        return value
    logger.warning("%s is not set. Using an ephemeral key (dev only).", env_name)
    return generate_secret()


class SessionManager:
    def __init__(
        self,
        identity: AdminIdentity,
        store: SessionStore,
        access_secret: str,
        refresh_secret: str,
        access_ttl: int = 60 * 15,
        refresh_ttl: int = 60 * 60 * 24 * 7,
        clock: Callable[[], float] = time.time,
    ):
        self.identity = identity
        self.store = store
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[SessionStore] = None) -> "SessionManager":
        if store is None:
            if settings.SESSION_STORE == "redis":
                if not settings.KV_URL:
                    raise RuntimeError("SESSION_STORE=redis requires KV_URL")
                store = RedisSessionStore(settings.KV_URL, prefix=f"{settings.KV_KEY_PREFIX}session:")
            else:
                store = InMemorySessionStore()
        return cls(
            identity=resolve_admin_identity(settings),
            store=store,
            access_secret=_secret_or_ephemeral(settings.ADMIN_JWT_SECRET, "ADMIN_JWT_SECRET"),
            refresh_secret=_secret_or_ephemeral(settings.ADMIN_REFRESH_SECRET, "ADMIN_REFRESH_SECRET"),
            access_ttl=settings.ACCESS_TOKEN_TTL_SEC,
            refresh_ttl=settings.REFRESH_TOKEN_TTL_SEC,
        )

    async def login(self, username: str, password: str) -> IssuedTokens:
        username_ok = secrets.compare_digest(username.encode("utf-8"), self.identity.username.encode("utf-8"))
        # bcrypt is deliberately slow; keep it off the event loop
        loop = asyncio.get_running_loop()
        password_ok = await loop.run_in_executor(None, verify_password, password, self.identity.password_hash)
        if not (username_ok and password_ok):
            raise AdminApiError(ErrorKind.UNAUTHORIZED, INVALID_CREDENTIALS)
        sid = await self._rotate(username)
        return self._issue(username, sid)

    async def refresh(self, refresh_token: Optional[str]) -> IssuedTokens:
        if not refresh_token:
            raise AdminApiError(ErrorKind.UNAUTHORIZED, "Refresh cookie is missing")
        payload = self._decode_refresh(refresh_token)
        username = payload.get("sub")
        if not isinstance(username, str) or not username:
            raise AdminApiError(ErrorKind.UNAUTHORIZED, "Invalid refresh token")

        sid = payload["sid"]
        session = await self.store.get(sid)
        if session is None or session.username != username or session.expires_at <= self._clock():
            await self.store.delete(sid)
            raise AdminApiError(ErrorKind.UNAUTHORIZED, "Session expired. Please sign in again.")

        new_sid = await self._rotate(username, old_sid=sid)
        return self._issue(username, new_sid)

    async def logout(self, refresh_token: Optional[str]) -> Optional[str]:
        """Best effort: drops the session behind the token if it decodes. Returns the dropped sid."""
        if not refresh_token:
            return None
        try:
            payload = self._decode_refresh(refresh_token)
        except AdminApiError:
            return None
        try:
            await self.store.delete(payload["sid"])
        except AdminApiError as exc:
            # the session stays until its TTL runs out
            logger.warning("Could not drop session %s on logout: %s", payload["sid"], exc.kind.value)
            return None
        return payload["sid"]

    def verify_access(self, token: str) -> str:
        """Return the username carried by a valid access token."""
        try:
            payload = decode_token(token, self.access_secret, ACCESS_TOKEN_TYPE)
        except TokenError as exc:
            raise AdminApiError(ErrorKind.UNAUTHORIZED, "Invalid access token") from exc
        sub = payload.get("sub")
        return sub if isinstance(sub, str) and sub else self.identity.username

    def _decode_refresh(self, token: str) -> dict:
        try:
            payload = decode_token(token, self.refresh_secret, REFRESH_TOKEN_TYPE)
        except TokenError as exc:
            raise AdminApiError(ErrorKind.UNAUTHORIZED, "Invalid refresh token") from exc
        if not isinstance(payload.get("sid"), str):
            raise AdminApiError(ErrorKind.UNAUTHORIZED, "Invalid refresh token")
        return payload

    async def _rotate(self, username: str, old_sid: Optional[str] = None) -> str:
        if old_sid:
            await self.store.delete(old_sid)
        sid = str(uuid.uuid4())
        await self.store.put(sid, Session(username=username, expires_at=self._clock() + self.refresh_ttl))
        return sid

    def _issue(self, username: str, sid: str) -> IssuedTokens:
        access = create_token(
            username,
            ACCESS_TOKEN_TYPE,
            self.access_secret,
            self.access_ttl,
            claims={"role": ADMIN_ROLE},
        )
        refresh = create_token(
            username,
            REFRESH_TOKEN_TYPE,
            self.refresh_secret,
            self.refresh_ttl,
            claims={"sid": sid},
        )
        return IssuedTokens(
            access_token=access,
            refresh_token=refresh,
            expires_in=self.access_ttl,
            username=username,
            sid=sid,
        )
