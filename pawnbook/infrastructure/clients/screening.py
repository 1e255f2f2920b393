"""Screening providers: HTTP client for a real watchlist service and an in-process simulator"""

import asyncio
import logging
import random
from typing import Callable, Optional

import httpx

from pawnbook.config import settings
from pawnbook.domain.enums import ScreeningCheck, ScreeningStatus
from pawnbook.domain.exceptions import ScreeningProviderError
from pawnbook.domain.models import ScreeningResult
from pawnbook.infrastructure.observability.metrics import record_screening_check

logger = logging.getLogger(__name__)


class ScreeningClient:
    """Client for an external screening API (one call per check)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.screening_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.screening_max_retries
        self.backoff_base = settings.screening_backoff_base if backoff_base is None else backoff_base
        self.transport = transport

    async def check(self, check: ScreeningCheck, customer_name: str) -> ScreeningResult:
        """
        Run one check against the provider.

        Retries network failures and 5xx responses with exponential backoff;
        4xx responses and malformed bodies fail immediately.

        Raises:
            ScreeningProviderError: On timeout, HTTP errors, or invalid response
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    response = await client.post(
                        f"{self.base_url}/screening/{check.value}",
                        json={"name": customer_name},
                    )
                    response.raise_for_status()
                    data = response.json()
                    status = ScreeningStatus(data["status"])
                    result = ScreeningResult(status=status.value, details=data.get("details"))
                    record_screening_check(check.value, result.status)
                    return result

                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500:
                        raise ScreeningProviderError(f"Screening API error: {e.response.status_code}") from e
                    error: Exception = e
                except httpx.RequestError as e:
                    error = e
                except (KeyError, ValueError, TypeError) as e:
                    raise ScreeningProviderError(f"Invalid screening response: {e}") from e

                attempt += 1
                record_screening_check(check.value, "error")
                if attempt >= self.max_retries:
                    raise ScreeningProviderError(
                        f"Screening API unavailable after {attempt} attempts"
                    ) from error
                backoff = self.backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    "Screening call failed, retrying",
                    extra={"check": check.value, "attempt": attempt, "backoff_s": backoff},
                )
                await asyncio.sleep(backoff)


class SimulatedScreeningProvider:
    """Stand-in provider: mostly clear, occasionally a potential match for manual review"""

    FLAGGED_DETAILS = "Potential match found - requires manual review"

    def __init__(
        self,
        clear_ratio: Optional[float] = None,
        delay_seconds: Optional[float] = None,
        rng: Optional[Callable[[], float]] = None,
    ):
        self.clear_ratio = settings.screening_simulated_clear_ratio if clear_ratio is None else clear_ratio
        self.delay_seconds = settings.screening_simulated_delay_seconds if delay_seconds is None else delay_seconds
        self.rng = rng or random.random

    async def check(self, check: ScreeningCheck, customer_name: str) -> ScreeningResult:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.rng() < self.clear_ratio:
            result = ScreeningResult(status=ScreeningStatus.CLEAR.value)
        else:
            result = ScreeningResult(status=ScreeningStatus.FLAGGED.value, details=self.FLAGGED_DETAILS)
        record_screening_check(check.value, result.status)
        return result


def build_screening_provider():
    """Real client when an API base is configured, simulator otherwise"""
    if settings.screening_api_base:
        return ScreeningClient()
    return SimulatedScreeningProvider()
