"""Auth router and bearer-token dependency.

Endpoints:
    POST /api/auth/verify  - Verify the bearer token, return {uid, email}
    GET  /api/protected    - Greets the verified caller
"""
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from zerolink.chat.relay import get_relay
from zerolink.errors import AuthFailure

from .verifier import VerifiedIdentity, verify_with_timeout

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="No token provided")
    return authorization[len("Bearer "):].strip()


async def require_identity(
    authorization: Optional[str] = Header(None),
) -> VerifiedIdentity:
    """FastAPI dependency: verify ``Authorization: Bearer <token>``.

    Raises:
        HTTPException 401: If the header is missing or the token is rejected.
    """
    token = _bearer_token(authorization)
    relay = get_relay()
    try:
        return await verify_with_timeout(
            relay.verifier, token, relay.verify_timeout
        )
    except AuthFailure as exc:
        logger.warning(f"[Auth] Bearer token rejected: {exc}")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/auth/verify")
async def verify(authorization: Optional[str] = Header(None)) -> dict:
    """Verify the caller's token and return the principal."""
    identity = await require_identity(authorization)
    return {"uid": identity.uid, "email": identity.email}


@router.get("/protected")
async def protected(authorization: Optional[str] = Header(None)) -> dict:
    """Minimal authenticated endpoint clients use to check their token."""
    identity = await require_identity(authorization)
    return {"message": f"Hello, {identity.email}"}
