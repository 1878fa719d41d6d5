from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from app.core.security import decode_token

# Tokens come from the external auth service; this API never issues them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> str:
    """Return the authenticated user id carried in the bearer token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    user_id = payload.get("sub")
    token_type = payload.get("type")

    if not user_id or token_type != "access":
        raise credentials_exception

    return str(user_id)
