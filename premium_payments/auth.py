import os
from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from premium_payments.dependencies import get_store


def verify_token(authorization: str = Header(None)) -> dict:
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Unsupported authorization scheme")
        claims = jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=["HS256"])
    except (AttributeError, ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    if not (claims.get("sub") or claims.get("uid")) or not claims.get("email"):
        raise HTTPException(status_code=401, detail="Token is missing uid or email")
    return claims


def get_current_user(claims: dict = Depends(verify_token), store=Depends(get_store)):
    """Local account for the token holder, created on first sight."""
    return store.get_or_create_user(
        firebase_uid=claims.get("sub") or claims.get("uid"),
        email=claims["email"],
        name=claims.get("name"),
        photo_url=claims.get("picture"),
    )


def require_admin(user=Depends(get_current_user)):
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
