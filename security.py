"""Password hashing and signed session tokens."""

from datetime import datetime, timedelta, timezone
from typing import Dict

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from errors import AuthenticationFailed

ALGORITHM = "HS256"


class PasswordHasher:
    def __init__(self, rounds: int = 10):
        self.rounds = rounds
        # compared against when no user matches, so both login failures cost one bcrypt check
        self._dummy_hash = self.hash("not-a-real-password")

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(self.rounds)).decode()

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode(), hashed.encode())
        except ValueError:
            return False

    def burn(self, password: str):
        self.verify(password, self._dummy_hash)


class TokenSigner:
    def __init__(self, secret: str, expires_in: int = 86400):
        if not secret:
            raise ValueError("A signing secret is required")
        self.secret = secret
        self.expires_in = expires_in

    def issue(self, principal_id: str, role: str) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": principal_id,
            "role": role,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.expires_in)).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> Dict:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise AuthenticationFailed("Token expired.")
        except JWTError:
            raise AuthenticationFailed("Invalid token.")
        if not claims.get("sub"):
            raise AuthenticationFailed("Invalid token.")
        return claims
