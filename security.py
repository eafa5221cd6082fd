"""Password hashing (bcrypt) and signed identity tokens (PyJWT)."""
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import bcrypt
import jwt

from config import Settings

ALGORITHM = "HS256"
# bcrypt only looks at the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72


class InvalidToken(Exception):
    """Token could not be verified: bad signature, malformed or expired."""


@dataclass(frozen=True)
class Identity:
    id: str
    role: str
    issued_at: int
    expires_at: int

    @property
    def is_manager(self) -> bool:
        return self.role in ("manager", "admin")


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def issue_token(user: Mapping[str, Any], settings: Settings, now: Optional[int] = None) -> str:
    issued_at = int(now if now is not None else time.time())
    payload = {
        "id": str(user["_id"]),
        "role": user.get("role", "user"),
        "iat": issued_at,
        "exp": issued_at + settings.jwt_expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def verify_token(token: str, settings: Settings) -> Identity:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[ALGORITHM],
            options={"require": ["id", "role", "iat", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidToken(str(exc)) from exc
    return Identity(
        id=str(payload["id"]),
        role=str(payload["role"]),
        issued_at=int(payload["iat"]),
        expires_at=int(payload["exp"]),
    )
