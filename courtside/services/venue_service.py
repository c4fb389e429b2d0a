"""
Venue listing. Venues are shared across groups; creating and editing them
happens elsewhere.
"""

from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Venue
from courtside.services.authorization import Action, authorize
from courtside.services.view_filter import visible_venues


async def list_venues(session: AsyncSession, user, group_id: Optional[int]) -> List[Dict]:
    authorize(user, group_id, Action.VIEW_GROUP)
    result = await session.execute(select(Venue).order_by(Venue.name.asc()))
    return [
        {
            "id": v.id,
            "name": v.name,
            "location": v.location,
            "court_count": v.court_count,
            "group_id": v.group_id,
        }
        for v in visible_venues(result.scalars().all(), group_id)
    ]
