# admin_api/core/security.py
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

ALGORITHM = "HS256"
ISSUER = "site-sng-admin"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenError(Exception):
    """Token could not be decoded, is expired, or is not of the expected type."""


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # bcrypt.checkpw compares digests in constant time
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("ascii"))
    except ValueError:
        return False


def generate_secret() -> str:
    return secrets.token_hex(48)


def create_token(
    subject: str,
    token_type: str,
    secret: str,
    ttl_seconds: int,
    claims: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> str:
    issued = now or datetime.now(timezone.utc)
    to_encode = dict(claims or {})
    to_encode.update({
        "typ": token_type,
        "sub": subject,
        "iss": ISSUER,
        "iat": issued,
        "exp": issued + timedelta(seconds=ttl_seconds),
    })
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str, token_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM], issuer=ISSUER)
    except JWTError as exc:
        raise TokenError(str(exc)) from exc
    if not isinstance(payload, dict) or payload.get("typ") != token_type:
        raise TokenError("unexpected token type")
    return payload
