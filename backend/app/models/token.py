from typing import Optional
from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: Optional[str] = None
    jti: Optional[str] = None
    exp: Optional[int] = None
    purpose: Optional[str] = None
