"""Delete court-day lock rows for dates that can no longer be booked.

Run with: python -m scripts.prune_locks
Admission writes one lock row per (facility, court, date) it has ever
admitted; rows before today are dead weight.
"""

import asyncio

from courtgrid.core.clock import Clock
from courtgrid.core.database import async_session_factory
from courtgrid.services.admission import prune_day_locks


async def prune():
    today = Clock().today()
    async with async_session_factory() as db:
        removed = await prune_day_locks(db, today)
        await db.commit()
    print(f"Removed {removed} lock row(s) dated before {today}")


if __name__ == "__main__":
    asyncio.run(prune())
