from pydantic import Field
from storefront.common.models import ApiModel


class RevokeSessionIn(ApiModel):
    session_id: str = Field(..., min_length=1, max_length=64)


class AttachUserIn(ApiModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=64)
