"""Integration tests for the remote scoring client against the mock scoring server"""

import httpx
import pytest
from credit_workflow.domain.exceptions import ScoringUnavailable
from credit_workflow.domain.models import ApplicantData
from credit_workflow.domain.scoring import HeuristicScoringModel
from credit_workflow.infrastructure.clients.scoring import ScoringClient
from mock_services.scoring_server.main import app as scoring_app

pytestmark = pytest.mark.integration

DATA = ApplicantData(
    revenues=250000,
    charges=80000,
    debt=50000,
    amount_asked=150000,
    guarantee_estimated_value=500000,
)


async def test_score_against_mock_server():
    client = ScoringClient(base_url="http://scoring", transport=httpx.ASGITransport(app=scoring_app))

    result = await client.score(DATA)

    expected = HeuristicScoringModel().evaluate(DATA)
    assert result.probability == expected.probability
    assert result.shap_values == expected.shap_values
    assert result.risk_factors == expected.risk_factors


async def test_mock_server_rejects_invalid_data():
    client = ScoringClient(base_url="http://scoring", transport=httpx.ASGITransport(app=scoring_app))

    with pytest.raises(ScoringUnavailable, match="422"):
        await client.score(ApplicantData(revenues=0, charges=0, debt=0, amount_asked=1000))


async def test_server_error_is_unavailable():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"detail": "boom"}))
    client = ScoringClient(base_url="http://scoring", transport=transport)

    with pytest.raises(ScoringUnavailable, match="500"):
        await client.score(DATA)


async def test_timeout_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    client = ScoringClient(base_url="http://scoring", timeout=0.1, transport=httpx.MockTransport(handler))

    with pytest.raises(ScoringUnavailable, match="timeout"):
        await client.score(DATA)


async def test_connection_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = ScoringClient(base_url="http://scoring", transport=httpx.MockTransport(handler))

    with pytest.raises(ScoringUnavailable, match="unreachable"):
        await client.score(DATA)


@pytest.mark.parametrize("body", [{"score": 0.7}, {"probability": "high"}])
async def test_malformed_response_is_unavailable(body):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
    client = ScoringClient(base_url="http://scoring", transport=transport)

    with pytest.raises(ScoringUnavailable, match="Invalid scoring response"):
        await client.score(DATA)


async def test_request_carries_applicant_data():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={"probability": 0.42})

    client = ScoringClient(base_url="http://scoring", transport=httpx.MockTransport(handler))
    result = await client.score(DATA)

    assert result.probability == 0.42
    assert seen["url"] == "http://scoring/score"
    assert b'"amount_asked"' in seen["body"]
