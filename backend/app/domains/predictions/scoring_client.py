# Standard library imports
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

# Third-party imports
import httpx

# App imports
from app.config import get_settings
from app.shared.exceptions import ScoringServiceException

logger = logging.getLogger(__name__)

PREDICT_ENDPOINT = "/predict"
# Older model deployments answer with the currency-suffixed name
PREDICTED_VALUE_FIELDS = ("predicted_price", "predicted_price_inr")


@dataclass(frozen=True)
class PredictionResult:
    predicted_value: float
    model_version: Optional[str] = None


def parse_prediction(data: Any) -> PredictionResult:
    """Pull the predicted value out of a scoring response body."""
    if not isinstance(data, dict):
        raise ScoringServiceException(
            ScoringServiceException.MALFORMED_RESPONSE, f"expected a JSON object, got {type(data).__name__}"
        )

    raw_value = None
    for field in PREDICTED_VALUE_FIELDS:
        if data.get(field) is not None:
            raw_value = data[field]
            break

    if raw_value is None:
        raise ScoringServiceException(
            ScoringServiceException.MALFORMED_RESPONSE, f"no predicted value in response keys {sorted(data)}"
        )
    if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float, str)):
        raise ScoringServiceException(
            ScoringServiceException.MALFORMED_RESPONSE, f"predicted value {raw_value!r} is not numeric"
        )
    try:
        value = float(raw_value)
    except (ValueError, OverflowError):
        raise ScoringServiceException(
            ScoringServiceException.MALFORMED_RESPONSE, f"predicted value {raw_value!r} is not numeric"
        )
    if not math.isfinite(value) or value < 0:
        raise ScoringServiceException(
            ScoringServiceException.MALFORMED_RESPONSE, f"predicted value {value} is out of range"
        )

    model_version = data.get("model_version")
    return PredictionResult(
        predicted_value=value,
        model_version=str(model_version) if model_version is not None else None,
    )


class ScoringClient:
    """Client for the external rent prediction service."""
    _client: httpx.AsyncClient

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.ml_base_url).rstrip('/')
        self.timeout = timeout if timeout is not None else settings.ml_timeout_seconds
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=transport)

    async def close(self):
        await self._client.aclose()

    async def score(self, features: Dict[str, Any]) -> PredictionResult:
        """
        Request a prediction for one feature mapping.

        Raises:
            ScoringServiceException: on timeout, connection failure, non-2xx
                status or a response without a usable predicted value
        """
        try:
            response = await self._client.post(PREDICT_ENDPOINT, json=features)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ScoringServiceException(
                ScoringServiceException.TIMEOUT, f"no response within {self.timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise ScoringServiceException(
                ScoringServiceException.REMOTE_STATUS,
                e.response.text[:200] or e.response.reason_phrase,
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise ScoringServiceException(ScoringServiceException.NETWORK, str(e) or type(e).__name__) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ScoringServiceException(
                ScoringServiceException.MALFORMED_RESPONSE, "response body is not JSON"
            ) from e

        result = parse_prediction(data)
        logger.debug(f"Scoring service returned {result.predicted_value} (model {result.model_version})")
        return result
