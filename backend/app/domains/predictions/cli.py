import asyncio
import click
from dotenv import load_dotenv
from sqlalchemy import select

# Load environment variables from .env file
load_dotenv()

from app.db.session import AsyncSessionLocal  # noqa: E402
from app.domains.listings.models.listing import Listing  # noqa: E402
from .queue import create_prediction_queue  # noqa: E402


@click.group()
def predictions_cli():
    """CLI for operating the rent prediction pipeline."""
    pass


@predictions_cli.command()
def worker():
    """Run the prediction worker in the foreground."""
    from arq import run_worker
    from .worker import WorkerSettings

    run_worker(WorkerSettings)


@predictions_cli.command()
@click.argument('listing_id')
def enqueue(listing_id: str):
    """
    Queue a prediction for one listing.
    LISTING_ID: The listing to (re)score.
    """
    async def main():
        queue = await create_prediction_queue()
        try:
            if not queue.available:
                raise click.ClickException("Prediction queue is unavailable; is Redis running?")
            job_id = await queue.enqueue(listing_id)
            click.echo(f"Queued job {job_id} for listing {listing_id}")
        finally:
            await queue.close()

    asyncio.run(main())


@predictions_cli.command()
@click.option('--limit', default=500, show_default=True, help='Maximum number of listings to queue.')
def backfill(limit: int):
    """Queue predictions for listings that have none yet."""
    async def main():
        queue = await create_prediction_queue()
        try:
            if not queue.available:
                raise click.ClickException("Prediction queue is unavailable; is Redis running?")
            async with AsyncSessionLocal() as db:
                result = await db.execute(
                    select(Listing.id)
                    .where(Listing.predicted_rent.is_(None))
                    .order_by(Listing.created_at)
                    .limit(limit)
                )
                listing_ids = result.scalars().all()
            for listing_id in listing_ids:
                await queue.enqueue(listing_id)
            click.echo(f"Queued {len(listing_ids)} listings without predictions.")
        finally:
            await queue.close()

    asyncio.run(main())


if __name__ == '__main__':
    predictions_cli()
