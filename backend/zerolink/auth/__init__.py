"""Authentication module.

Verifiers:
    - JWTIdentityVerifier: local PyJWT validation.
    - RemoteIdentityVerifier: HTTP identity endpoint via httpx.
"""
