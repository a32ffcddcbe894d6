from typing import Literal, Optional

from pydantic import BaseModel, Field


class RevokeSchema(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ShareSchema(BaseModel):
    is_public: Optional[bool] = None
    platform: Optional[Literal['facebook', 'twitter', 'linkedin', 'instagram']] = None
