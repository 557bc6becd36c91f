"""Identity verification for WebSocket and REST bearer tokens.

Two verifiers are provided:

- JWTIdentityVerifier: validates a signed JWT locally with PyJWT.
- RemoteIdentityVerifier: delegates to an HTTP identity endpoint that answers
  ``{"uid": ..., "email": ...}`` for a valid ``Authorization: Bearer`` token.

Both raise ``AuthFailure`` on any rejection. ``verify_with_timeout`` bounds
the call so a slow identity provider cannot stall the handshake.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import jwt
from jwt import ExpiredSignatureError, InvalidTokenError
from pydantic import BaseModel

from zerolink.config import PLACEHOLDER_JWT_SECRET, AppSettings
from zerolink.errors import AuthFailure

logger = logging.getLogger(__name__)


class VerifiedIdentity(BaseModel):
    """Principal returned by a successful verification."""
    uid: str
    email: str = ""
    name: str = ""


class IdentityVerifier(ABC):
    """Turns an opaque token into a VerifiedIdentity or raises AuthFailure."""

    @abstractmethod
    async def verify_token(self, token: str) -> VerifiedIdentity:
        """Verify *token*.

        Raises:
            AuthFailure: If the token is missing, malformed, expired or rejected.
        """

    async def aclose(self) -> None:
        """Release any held resources."""


class JWTIdentityVerifier(IdentityVerifier):
    """Verifies HS/RS-signed JWTs with a configured key.

    Claims used: ``uid`` (falls back to ``sub``), ``email``, ``name``.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
    ) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.audience = audience

    async def verify_token(self, token: str) -> VerifiedIdentity:
        if not token:
            raise AuthFailure("Missing token")
        options = {"verify_aud": self.audience is not None}
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options=options,
            )
        except ExpiredSignatureError as exc:
            raise AuthFailure("Token expired") from exc
        except InvalidTokenError as exc:
            raise AuthFailure(f"Invalid token: {exc}") from exc

        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            raise AuthFailure("Token carries no subject")
        email = claims.get("email", "")
        return VerifiedIdentity(uid=str(uid), email=email, name=claims.get("name") or email)


class RemoteIdentityVerifier(IdentityVerifier):
    """Verifies tokens against a remote identity endpoint over HTTP."""

    def __init__(
        self,
        verify_url: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not verify_url:
            raise ValueError("verify_url is required for the remote verifier")
        self.verify_url = verify_url
        self._client = client or httpx.AsyncClient()

    async def verify_token(self, token: str) -> VerifiedIdentity:
        if not token:
            raise AuthFailure("Missing token")
        try:
            resp = await self._client.post(
                self.verify_url,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise AuthFailure(f"Identity provider unreachable: {exc}") from exc

        if resp.status_code != 200:
            raise AuthFailure(f"Identity provider rejected token ({resp.status_code})")

        data = resp.json()
        uid = data.get("uid")
        if not uid:
            raise AuthFailure("Identity provider returned no uid")
        email = data.get("email", "")
        return VerifiedIdentity(uid=uid, email=email, name=data.get("name") or email)

    async def aclose(self) -> None:
        await self._client.aclose()


async def verify_with_timeout(
    verifier: IdentityVerifier, token: str, timeout: float
) -> VerifiedIdentity:
    """Run *verifier* with a deadline; a timeout counts as a rejection."""
    try:
        return await asyncio.wait_for(verifier.verify_token(token), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning(f"[Auth] Token verification timed out after {timeout}s")
        raise AuthFailure("Token verification timed out") from exc


def build_verifier(config: AppSettings) -> IdentityVerifier:
    """Create the verifier selected by ``auth.verifier``.

    Raises:
        ValueError: JWT verification with an empty or placeholder secret.
    """
    if config.auth.verifier == "remote":
        logger.info(f"[Auth] Using remote verifier at {config.auth.verify_url}")
        return RemoteIdentityVerifier(config.auth.verify_url)
    jwt_secrets = config.secrets.jwt
    if not jwt_secrets.secret_key or jwt_secrets.secret_key == PLACEHOLDER_JWT_SECRET:
        raise ValueError(
            "secrets.jwt.secret_key is not set; add it to zerolink.secrets.yaml "
            "or select the remote verifier"
        )
    logger.info(f"[Auth] Using JWT verifier ({jwt_secrets.algorithm})")
    return JWTIdentityVerifier(
        secret_key=jwt_secrets.secret_key,
        algorithm=jwt_secrets.algorithm,
        audience=jwt_secrets.audience,
    )
