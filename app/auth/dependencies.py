from fastapi import Cookie, Depends, Header, HTTPException, status
from jose import JWTError, jwt
from pydantic import BaseModel

from app.db import settings

ADMIN_ROLE = "admin"


class TokenData(BaseModel):
    sub: str
    role: str | None = None


def _decode_token(token: str) -> TokenData:
    payload = None
    last_error: Exception | None = None
    for secret in settings.AUTH_SECRETS_LIST:
        try:
            payload = jwt.decode(token, secret, algorithms=[settings.auth_algorithm])
            break
        except JWTError as exc:
            last_error = exc
            continue
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from last_error

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return TokenData(sub=str(sub), role=payload.get("role"))


def get_token_data(
    authorization: str | None = Header(default=None, alias="Authorization"),
    token_cookie: str | None = Cookie(default=None, alias="admin_token"),
) -> TokenData:
    token: str | None = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    elif token_cookie:
        token = token_cookie

    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing credentials")
    return _decode_token(token)


def get_current_user_id(token: TokenData = Depends(get_token_data)) -> str:
    return token.sub


def require_admin(token: TokenData = Depends(get_token_data)) -> TokenData:
    if token.role != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
    return token
