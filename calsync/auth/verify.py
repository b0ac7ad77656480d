"""
verify.py
---------
Purpose:
    JWT verification against the identity provider's JWKS (ES256), plus
    resolution of the tenant a request acts in.

Notes:
    - `auth_dependency` returns the decoded claims; `sub` is the user id.
    - `tenant_dependency` reads the `X-Tenant-ID` header and falls back to
      `app_metadata.tenant_id` in the claims; a header naming another tenant
      than the token is rejected with 403.
"""

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from calsync.config import settings

AUDIENCE = "authenticated"

_jwk_client = PyJWKClient(settings.jwks_url())
_security = HTTPBearer()


def verify_jwt(token: str) -> dict:
    try:
        signing_key = _jwk_client.get_signing_key_from_jwt(token)
        decoded = jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            audience=AUDIENCE,
            options={"verify_exp": True},
        )
        return decoded
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)


def user_id_from_claims(claims: dict) -> str:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return user_id


def tenant_dependency(
    claims: dict = Depends(auth_dependency),
    x_tenant_id: str | None = Header(default=None),
) -> str:
    token_tenant_id = (claims.get("app_metadata") or {}).get("tenant_id")
    if x_tenant_id and token_tenant_id and x_tenant_id != token_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant ID mismatch between Token and Header",
        )

    tenant_id = x_tenant_id or token_tenant_id
    if not tenant_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tenant context missing")
    return tenant_id
