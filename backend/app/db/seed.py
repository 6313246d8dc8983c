"""
Development seed data: one owner and one tenant linked to fixed external
identities. Safe to run repeatedly.

    python -m app.db.seed
"""
import asyncio
import logging
from typing import List

import click
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession

load_dotenv()

from app.db.init_db import init_db  # noqa: E402
from app.db.session import AsyncSessionLocal  # noqa: E402
from app.domains.accounts.models.user import User, ROLE_OWNER, ROLE_TENANT  # noqa: E402
from app.domains.accounts.services.user_service import UserService  # noqa: E402

logger = logging.getLogger(__name__)

SEED_USERS = (
    {"external_id": "seed-fb-1", "email": "owner@example.com", "name": "Owner One", "role": ROLE_OWNER},
    {"external_id": "seed-fb-2", "email": "tenant@example.com", "name": "Tenant One", "role": ROLE_TENANT},
)


async def seed_users(db: AsyncSession) -> List[User]:
    """Create the seed accounts that do not exist yet; returns all of them."""
    users = []
    for data in SEED_USERS:
        user = await UserService.get_user_by_email(db, data["email"])
        if user is None:
            user = User(**data)
            db.add(user)
            logger.info(f"Seeding user {data['email']}")
        users.append(user)
    await db.commit()
    return users


@click.command()
@click.option('--create-tables/--no-create-tables', default=True, show_default=True)
def seed(create_tables: bool):
    """Insert the development owner and tenant accounts."""
    async def main():
        if create_tables:
            await init_db()
        async with AsyncSessionLocal() as db:
            users = await seed_users(db)
        for user in users:
            click.echo(f"{user.role:<7} {user.email} (id={user.id})")

    asyncio.run(main())


if __name__ == '__main__':
    seed()
