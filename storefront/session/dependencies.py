from dataclasses import dataclass
from typing import Optional
from fastapi import Request, status
from storefront.common.errors import AppError


@dataclass(frozen=True)
class Shopper:
    session_id: str
    user_id: Optional[str] = None


def get_shopper(request: Request) -> Shopper:
    # populated by StorefrontSessionMiddleware
    session_id = getattr(request.state, "storefront_session_id", None)
    if not session_id:
        raise AppError("SESSION_REQUIRED", "No storefront session on this request", status.HTTP_401_UNAUTHORIZED)
    return Shopper(session_id=session_id, user_id=getattr(request.state, "storefront_user_id", None))
