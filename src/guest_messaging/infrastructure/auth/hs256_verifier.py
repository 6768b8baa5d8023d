from __future__ import annotations

import jwt

from guest_messaging.application.dto.principal import Principal


class HS256Verifier:
    """Shared-secret JWT check for producer services and operators.

    Tokens must carry ``sub``; ``aud`` is enforced only when an audience is
    configured.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", *, audience: str | None = None) -> None:
        if not secret:
            raise ValueError("JWT secret is not configured")
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    async def verify(self, token: str) -> Principal:
        claims = jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            audience=self._audience,
            options={"require": ["sub"], "verify_aud": self._audience is not None},
        )
        return Principal.from_claims(claims)
