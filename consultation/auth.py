from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jwt
from fastapi import HTTPException, Request, status
from fastapi.security import HTTPBearer
from starlette.concurrency import run_in_threadpool


logger = logging.getLogger("consultation.auth")


@dataclass
class AuthenticatedUser:
    subject: str
    claims: Dict[str, Any] = field(default_factory=dict)


class TokenVerifier:
    """
    Verifies bearer JWTs issued by the auth provider.

    Keys are taken from the first configured source: a JWKS endpoint, a PEM
    public key, or a shared HS256 secret.
    """

    def __init__(
        self,
        *,
        jwks_url: str = "",
        public_key: str = "",
        secret: str = "",
        issuer: str = "",
        authorized_parties: Optional[List[str]] = None,
        leeway: float = 5.0,
    ) -> None:
        self.jwks_url = jwks_url
        self.public_key = public_key
        self.secret = secret
        self.issuer = issuer
        self.authorized_parties = list(authorized_parties or [])
        self.leeway = leeway
        self._jwks_client: Optional[jwt.PyJWKClient] = (
            jwt.PyJWKClient(jwks_url, cache_keys=True) if jwks_url else None
        )

    @classmethod
    def from_settings(cls, auth_settings: Dict[str, Any]) -> "TokenVerifier":
        return cls(
            jwks_url=auth_settings.get("jwks_url", ""),
            public_key=auth_settings.get("public_key", ""),
            secret=auth_settings.get("secret", ""),
            issuer=auth_settings.get("issuer", ""),
            authorized_parties=auth_settings.get("authorized_parties") or [],
        )

    @property
    def configured(self) -> bool:
        return bool(self.jwks_url or self.public_key or self.secret)

    def _signing_key(self, token: str) -> tuple[Any, List[str]]:
        if self._jwks_client is not None:
            return self._jwks_client.get_signing_key_from_jwt(token).key, ["RS256"]
        if self.public_key:
            return self.public_key, ["RS256"]
        return self.secret, ["HS256"]

    def verify(self, token: str) -> AuthenticatedUser:
        """
        Decode and validate ``token``; raises ``jwt.PyJWTError`` on any failure.
        """
        key, algorithms = self._signing_key(token)
        claims = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            issuer=self.issuer or None,
            leeway=self.leeway,
            options={"require": ["exp", "sub"], "verify_aud": False},
        )
        if self.authorized_parties:
            azp = claims.get("azp")
            if azp not in self.authorized_parties:
                raise jwt.InvalidTokenError(f"Unauthorised party: {azp!r}")
        return AuthenticatedUser(subject=str(claims["sub"]), claims=claims)


class TokenGuard(HTTPBearer):
    """
    FastAPI dependency that rejects requests without a valid bearer token.
    """

    def __init__(self, verifier: TokenVerifier) -> None:
        super().__init__(auto_error=False)
        self.verifier = verifier

    async def __call__(self, request: Request) -> AuthenticatedUser:  # type: ignore[override]
        if not self.verifier.configured:
            logger.error("Rejecting %s: no token signing keys configured", request.url.path)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication is not configured.",
            )
        credentials = await super().__call__(request)
        if credentials is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        try:
            # JWKS lookups may block on a network fetch.
            user = await run_in_threadpool(self.verifier.verify, credentials.credentials)
        except jwt.PyJWTError as exc:
            logger.info("Rejected bearer token on %s: %s", request.url.path, exc)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid or expired token",
            ) from exc
        return user
