# tests/test_scoring_client.py

"""Tests for the HTTP client of the external rent scoring service."""

import httpx
import pytest

from app.domains.predictions.scoring_client import PredictionResult, parse_prediction
from app.shared.exceptions import ScoringServiceException
from conftest import ScoringStub, auth_headers, insert_listing, make_scoring_client


async def test_score_posts_features_and_parses_result():
    """Features go out as the JSON body and the prediction comes back."""
    stub = ScoringStub({"predicted_price": 42000, "model_version": "rent-v3"})
    client = make_scoring_client(stub)
    try:
        result = await client.score({"City": "Pune", "BHK": 2})
    finally:
        await client.close()
    assert result == PredictionResult(predicted_value=42000.0, model_version="rent-v3")
    assert stub.requests == [{"City": "Pune", "BHK": 2}]


async def test_score_accepts_currency_suffixed_field():
    """Older deployments answer with predicted_price_inr."""
    client = make_scoring_client(ScoringStub({"predicted_price_inr": "31000.5"}))
    try:
        result = await client.score({})
    finally:
        await client.close()
    assert result.predicted_value == 31000.5
    assert result.model_version is None


async def test_remote_error_status_is_reported():
    """Non-2xx answers raise with the remote status code."""
    client = make_scoring_client(ScoringStub({"detail": "model not loaded"}, status_code=503))
    try:
        with pytest.raises(ScoringServiceException) as exc_info:
            await client.score({})
    finally:
        await client.close()
    assert exc_info.value.reason == ScoringServiceException.REMOTE_STATUS
    assert exc_info.value.status_code == 503


async def test_timeout_is_reported():
    """A read timeout maps to the timeout reason."""
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_scoring_client(handler)
    try:
        with pytest.raises(ScoringServiceException) as exc_info:
            await client.score({})
    finally:
        await client.close()
    assert exc_info.value.reason == ScoringServiceException.TIMEOUT


async def test_connection_failure_is_reported():
    """A refused connection maps to the network reason."""
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_scoring_client(handler)
    try:
        with pytest.raises(ScoringServiceException) as exc_info:
            await client.score({})
    finally:
        await client.close()
    assert exc_info.value.reason == ScoringServiceException.NETWORK


async def test_non_json_body_is_malformed():
    """A body that is not JSON is a malformed response."""
    client = make_scoring_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    try:
        with pytest.raises(ScoringServiceException) as exc_info:
            await client.score({})
    finally:
        await client.close()
    assert exc_info.value.reason == ScoringServiceException.MALFORMED_RESPONSE


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"predicted_price": None},
        {"predicted_price": True},
        {"predicted_price": -1},
        {"predicted_price": "abc"},
        {"predicted_price": [1]},
        [42000],
    ],
)
def test_parse_prediction_rejects_unusable_values(body):
    """Missing, boolean, negative or non-numeric values are malformed."""
    with pytest.raises(ScoringServiceException) as exc_info:
        parse_prediction(body)
    assert exc_info.value.reason == ScoringServiceException.MALFORMED_RESPONSE


def test_parse_prediction_rejects_infinity():
    """Non-finite values are malformed."""
    with pytest.raises(ScoringServiceException):
        parse_prediction({"predicted_price": float("inf")})


@pytest.mark.parametrize("value", [10 ** 400, "9" * 400])
def test_parse_prediction_rejects_oversized_values(value):
    """Values beyond float range are malformed rather than unclassified errors."""
    with pytest.raises(ScoringServiceException) as exc_info:
        parse_prediction({"predicted_price": value})
    assert exc_info.value.reason == ScoringServiceException.MALFORMED_RESPONSE


async def test_predict_now_reports_oversized_prediction_as_bad_gateway(client, admin, owner, scoring_stub, session_factory):
    """An out-of-range value from the scoring service answers 502."""
    listing = await insert_listing(session_factory, owner.id)
    scoring_stub.payload = {"predicted_price": "9" * 400}

    response = await client.post(f"/api/v1/listings/{listing.id}/predict-now", headers=auth_headers(admin))

    assert response.status_code == 502
    assert response.json()["details"]["reason"] == "malformed_response"
