# tests/test_prediction_worker.py

"""Tests for the prediction job: write-back, races and the retry policy."""

import pytest
from arq import Retry
from sqlalchemy import delete, update

from app.domains.listings.models.listing import Listing
from app.domains.predictions.processor import PredictionProcessor
from app.domains.predictions.worker import WorkerSettings, predict_listing, retry_delay
from app.domains.predictions.queue import PREDICT_JOB_NAME
from app.shared.exceptions import ScoringServiceException
from conftest import ScoringStub, fetch_listing, insert_listing, make_scoring_client


@pytest.fixture
def processor(session_factory, scoring_client):
    return PredictionProcessor(session_factory, scoring_client)


def job_ctx(processor, job_try=1):
    return {"processor": processor, "job_try": job_try, "job_id": "job-test"}


async def test_prediction_is_written_back(session_factory, owner, processor):
    """A successful score lands in predicted_rent."""
    listing = await insert_listing(session_factory, owner.id, bhk=2)

    outcome = await predict_listing(job_ctx(processor), listing.id)

    assert outcome == {"status": "ok", "predicted": 42000.0, "model_version": "v1"}
    stored = await fetch_listing(session_factory, listing.id)
    assert stored.predicted_rent == 42000
    assert stored.prediction_model_version == "v1"
    assert stored.predicted_at is not None


async def test_write_back_does_not_touch_owner_fields(session_factory, owner, processor):
    """Only prediction columns change; updated_at keeps tracking owner edits."""
    listing = await insert_listing(session_factory, owner.id)
    before = await fetch_listing(session_factory, listing.id)

    await predict_listing(job_ctx(processor), listing.id)

    after = await fetch_listing(session_factory, listing.id)
    assert after.updated_at == before.updated_at
    assert after.title == before.title
    assert after.price == before.price


async def test_payload_snapshot_is_ignored(session_factory, owner, processor, scoring_stub):
    """Features are re-derived from the current row, not the enqueued snapshot."""
    listing = await insert_listing(session_factory, owner.id, city="Chennai")

    await predict_listing(job_ctx(processor), listing.id, features={"City": "Stale"})

    assert scoring_stub.requests[0]["City"] == "Chennai"


async def test_missing_listing_completes_as_noop(session_factory, processor, scoring_stub):
    """A job for a listing that is already gone succeeds without scoring."""
    outcome = await predict_listing(job_ctx(processor), "00000000-0000-0000-0000-000000000000")

    assert outcome == {"status": "skipped", "reason": "listing-deleted"}
    assert scoring_stub.requests == []


async def test_listing_deleted_while_scoring_is_not_recreated(session_factory, owner, processor, scoring_stub):
    """Deleting the listing mid-flight turns the write into a no-op."""
    listing = await insert_listing(session_factory, owner.id)

    async def delete_listing():
        async with session_factory() as session:
            await session.execute(delete(Listing).where(Listing.id == listing.id))
            await session.commit()

    scoring_stub.before_reply = delete_listing

    outcome = await predict_listing(job_ctx(processor), listing.id)

    assert outcome == {"status": "skipped", "reason": "listing-deleted"}
    assert await fetch_listing(session_factory, listing.id) is None


async def test_owner_edit_during_scoring_survives(session_factory, owner, processor, scoring_stub):
    """An edit made while the job runs is kept alongside the prediction."""
    listing = await insert_listing(session_factory, owner.id, title="Old title", price=20000.0)

    async def edit_listing():
        async with session_factory() as session:
            await session.execute(
                update(Listing).where(Listing.id == listing.id).values(title="New title", price=21000.0)
            )
            await session.commit()

    scoring_stub.before_reply = edit_listing

    await predict_listing(job_ctx(processor), listing.id)

    stored = await fetch_listing(session_factory, listing.id)
    assert stored.title == "New title"
    assert stored.price == 21000.0
    assert stored.predicted_rent == 42000


async def test_last_completed_write_wins(session_factory, owner, scoring_client, scoring_stub):
    """Two runs for the same listing leave the later result."""
    listing = await insert_listing(session_factory, owner.id)
    processor = PredictionProcessor(session_factory, scoring_client)

    await processor.process(listing.id)
    scoring_stub.payload = {"predicted_price": 43500, "model_version": "v2"}
    await processor.process(listing.id)

    stored = await fetch_listing(session_factory, listing.id)
    assert stored.predicted_rent == 43500
    assert stored.prediction_model_version == "v2"


def test_retry_delays_double_from_base():
    """Backoff is base * 2^(attempt-1)."""
    assert [retry_delay(attempt, 2.0) for attempt in range(1, 5)] == [2.0, 4.0, 8.0, 16.0]


async def test_failures_retry_with_backoff_then_fail(session_factory, owner):
    """Five attempts at most: four deferred retries, then the error surfaces."""
    listing = await insert_listing(session_factory, owner.id)
    failing = make_scoring_client(ScoringStub({"detail": "boom"}, status_code=500))
    processor = PredictionProcessor(session_factory, failing)

    deferrals = []
    try:
        for attempt in range(1, 5):
            with pytest.raises(Retry) as exc_info:
                await predict_listing(
                    job_ctx(processor, job_try=attempt), listing.id, max_attempts=5, backoff_seconds=2.0
                )
            deferrals.append(exc_info.value.defer_score)

        with pytest.raises(ScoringServiceException):
            await predict_listing(job_ctx(processor, job_try=5), listing.id, max_attempts=5, backoff_seconds=2.0)
    finally:
        await failing.close()

    assert deferrals == [2000, 4000, 8000, 16000]
    stored = await fetch_listing(session_factory, listing.id)
    assert stored.predicted_rent is None


async def test_malformed_response_is_retried(session_factory, owner):
    """A response without a usable value counts as a failed attempt."""
    listing = await insert_listing(session_factory, owner.id)
    malformed = make_scoring_client(ScoringStub({"predicted_price": "n/a"}))
    processor = PredictionProcessor(session_factory, malformed)
    try:
        with pytest.raises(Retry):
            await predict_listing(job_ctx(processor, job_try=1), listing.id, max_attempts=3, backoff_seconds=1.0)
    finally:
        await malformed.close()


def test_worker_registers_prediction_job():
    """The worker exposes the job under the name producers enqueue."""
    names = [function.name for function in WorkerSettings.functions]
    assert names == [PREDICT_JOB_NAME]
    assert WorkerSettings.max_tries == WorkerSettings.functions[0].max_tries
