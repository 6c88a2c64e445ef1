"""Bearer token extraction dependency for FastAPI."""

from fastapi import Header, HTTPException


async def bearer_token(authorization: str = Header(None)) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header.

    The token is forwarded to workers and to the storage service as is;
    issuing and validating it is up to the identity service.
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Missing or invalid token")
    return token
