from typing import Optional

from fastapi import Header, HTTPException, status

from ..config.settings import settings

def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """Resolve the bearer token to a user id"""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no token")

    token = authorization[len("Bearer "):].strip()
    user_id = settings.get_api_tokens().get(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, token failed")
    return user_id
