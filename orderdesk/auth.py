from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from .config import settings


class Identity(BaseModel):
    """Who is talking: the chat identity keys the session, the name is stored on orders."""

    identity: str
    name: str


def create_token(identity: str, name: str) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_min)
    payload = {"sub": identity, "name": name, "exp": exp}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)


def decode_token(token: str) -> Optional[Identity]:
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except JWTError:
        return None
    sub = str(data.get("sub") or "").strip()
    if not sub:
        return None
    # the display name falls back to the identity itself
    return Identity(identity=sub, name=str(data.get("name") or sub))
