"""Scoring service HTTP client"""

import httpx
from typing import Optional
from credit_workflow.config import settings
from credit_workflow.domain.exceptions import ScoringUnavailable
from credit_workflow.domain.models import ApplicantData, ScoringResult
from credit_workflow.domain.serialization import applicant_data_to_dict, scoring_result_from_dict


class ScoringClient:
    """Client for a remote scoring oracle exposing POST /score"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.scoring_api_base
        self.timeout = timeout or settings.scoring_timeout_seconds
        self.transport = transport

    async def score(self, applicant_data: ApplicantData) -> ScoringResult:
        """
        Ask the scoring service for an approval probability.

        Raises:
            ScoringUnavailable: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/score",
                    json=applicant_data_to_dict(applicant_data),
                )
                response.raise_for_status()
                return scoring_result_from_dict(response.json())

            except httpx.TimeoutException as e:
                raise ScoringUnavailable(f"Scoring API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ScoringUnavailable(f"Scoring API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ScoringUnavailable(f"Scoring API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ScoringUnavailable(f"Invalid scoring response: {e}") from e
