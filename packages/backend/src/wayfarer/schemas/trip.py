"""Pydantic schemas for trips (read-only listing)."""

import uuid
from datetime import datetime
from typing import Optional

from wayfarer.schemas.base import CamelModel


class TripRead(CamelModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    destination: Optional[str] = None
    created_at: datetime
