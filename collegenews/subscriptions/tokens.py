from datetime import timedelta
from enum import Enum
from typing import Optional

import jwt

from collegenews.errors import TokenError
from collegenews.utils.tz_utils import utc_now

ALGORITHM = "HS256"


class TokenPurpose(str, Enum):
    verify = "verify"
    unsubscribe = "unsubscribe"


class TokenSigner:
    """
    Tokens assinados e autocontidos {email, propósito, expiração}.
    Nada é persistido: possuir um token válido é a única autorização.
    """

    def __init__(
        self,
        secret: str,
        verify_ttl: timedelta = timedelta(minutes=15),
        unsubscribe_ttl: timedelta = timedelta(days=30),
    ):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.ttls = {
            TokenPurpose.verify: verify_ttl,
            TokenPurpose.unsubscribe: unsubscribe_ttl,
        }

    def sign(self, email: str, purpose: TokenPurpose, ttl: Optional[timedelta] = None) -> str:
        now = utc_now()
        payload = {
            "sub": email,
            "purpose": TokenPurpose(purpose).value,
            "iat": now,
            "exp": now + (ttl if ttl is not None else self.ttls[TokenPurpose(purpose)]),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str, purpose: TokenPurpose) -> str:
        """Retorna o e-mail do token ou levanta TokenError."""
        if not token:
            raise TokenError("missing token")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenError("token expired") from e
        except jwt.InvalidTokenError as e:
            raise TokenError(f"invalid token: {e}") from e

        if payload.get("purpose") != TokenPurpose(purpose).value:
            raise TokenError("token issued for a different purpose")
        email = payload.get("sub")
        if not isinstance(email, str) or not email:
            raise TokenError("token has no email")
        return email
