from sqlalchemy.ext.asyncio import AsyncEngine

from app.db.base_class import Base
from app.db.session import engine

# Import models so they register on Base.metadata
from app.domains.accounts.models.user import User  # noqa: F401
from app.domains.listings.models.listing import Listing, ListingImage  # noqa: F401
from app.domains.chat.models.message import Message  # noqa: F401


async def init_db(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
