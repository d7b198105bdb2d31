"""Trips API — read-only listing over a row-secured table.

Learn: There is no WHERE owner_id = ... here. The session comes from
get_scoped_db, whose connections carry the caller's account id, and the
database's row-level security policy does the filtering. SQLite has no
RLS; there the scoped session adds the same owner predicate itself.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wayfarer.auth.dependencies import get_scoped_db
from wayfarer.db.models import Trip
from wayfarer.schemas.trip import TripRead

router = APIRouter(prefix="/trips")


@router.get("", response_model=list[TripRead])
async def list_trips(db: AsyncSession = Depends(get_scoped_db)):
    result = await db.execute(select(Trip).order_by(Trip.created_at.desc()))
    return list(result.scalars().all())
