# backend/pawsync/models/storage_model.py
"""Object store metadata models."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class ObjectHead(BaseModel):
    """Existence and size of one stored key."""

    key: str
    size: int = Field(..., ge=0)
    uploaded_at: Optional[datetime] = None
    content_type: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class ObjectListing(BaseModel):
    """One entry of a prefix listing."""

    key: str
    size: int = Field(..., ge=0)
    last_modified: Optional[datetime] = None
