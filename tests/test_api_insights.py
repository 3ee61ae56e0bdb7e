"""
Tests for the /v1/insights endpoints.

POST: evaluates posted statistics, phases and budget.
GET: reads a meter's telemetry through the aggregation service with a
best-effort Redis cache in front of it.

CHANGELOG:
- 2026-10-17: Add GET /v1/insights tests (STORY-029)
- 2026-10-16: Initial creation (STORY-026)

TODO:
- None
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

AUTH_HEADER = {"Authorization": "Bearer test-token-abc"}
METER_ID = "meter-001"
INSIGHTS_URL = "/v1/insights"

NORMAL_STATS = {
    "currentEnergyKWh": 10.0,
    "priorEnergyKWh": 10.0,
    "averageVoltage": 230.0,
    "minVoltage": 225.0,
    "maxVoltage": 235.0,
    "nightLoadKW": 0.5,
    "peakPowerW": 2000.0,
    "powerFactor": 0.9,
}


def _phases(p1: float, p2: float, p3: float) -> list[dict]:
    return [
        {"phaseId": 1, "contributionPercent": p1},
        {"phaseId": 2, "contributionPercent": p2},
        {"phaseId": 3, "contributionPercent": p3},
    ]


def _phase_row(phase: int, energy_wh: float) -> dict:
    """Build one grouped phase row as returned by the phase query."""
    return {
        "phase": phase,
        "avg_voltage": 230.0,
        "avg_current": 4.0,
        "avg_power": 900.0,
        "energy_wh": energy_wh,
    }


def _override_db_factory(mock_session: AsyncMock):
    """Create a dependency override for get_db that yields mock_session."""

    async def _override():
        yield mock_session

    return _override


def _mock_redis_client(
    cached_value: str | None = None,
    get_side_effect: Exception | None = None,
) -> AsyncMock:
    """Create a mock Redis client with configurable get() behaviour."""
    mock = AsyncMock()
    if get_side_effect is not None:
        mock.get = AsyncMock(side_effect=get_side_effect)
    else:
        mock.get = AsyncMock(return_value=cached_value)
    mock.set = AsyncMock()
    mock.aclose = AsyncMock()
    return mock


def _telemetry_session(
    totals: dict | None = None,
    power_factor: float | None = 0.9,
    phase_rows: list[dict] | None = None,
) -> AsyncMock:
    """Mock session answering the stats, power factor and phase queries."""
    totals_row = {
        "current_wh": 10000.0,
        "prior_wh": 10000.0,
        "avg_voltage": 230.0,
        "min_voltage": 226.0,
        "max_voltage": 234.0,
        "peak_power_w": 3000.0,
        "night_power_w": 400.0,
    }
    totals_row.update(totals or {})

    totals_result = MagicMock()
    totals_result.mappings.return_value.one.return_value = totals_row
    pf_result = MagicMock()
    pf_result.mappings.return_value.one.return_value = {"power_factor": power_factor}
    phase_result = MagicMock()
    phase_result.mappings.return_value.all.return_value = phase_rows or []

    session = AsyncMock()
    session.execute = AsyncMock(side_effect=[totals_result, pf_result, phase_result])
    return session


# ---------------------------------------------------------------------------
# POST /v1/insights
# ---------------------------------------------------------------------------


class TestPostInsights:
    """Evaluation of caller-supplied statistics."""

    def test_requires_auth(self, client: TestClient) -> None:
        """Missing token returns 401."""
        response = client.post(INSIGHTS_URL, json={"stats": NORMAL_STATS})
        assert response.status_code == 401

    def test_all_normal(self, client: TestClient) -> None:
        """Stable statistics return the single all-normal insight."""
        response = client.post(
            INSIGHTS_URL, json={"stats": NORMAL_STATS}, headers=AUTH_HEADER
        )
        assert response.status_code == 200
        insights = response.json()["insights"]
        assert len(insights) == 1
        assert insights[0]["severity"] == "info"
        assert set(insights[0]) == {"message", "severity", "icon"}

    def test_voltage_alerts(self, client: TestClient) -> None:
        """200-260 V gives two critical insights and a warning."""
        stats = {**NORMAL_STATS, "minVoltage": 200.0, "maxVoltage": 260.0}
        response = client.post(INSIGHTS_URL, json={"stats": stats}, headers=AUTH_HEADER)
        severities = [i["severity"] for i in response.json()["insights"]]
        assert severities == ["critical", "critical", "warning"]

    def test_phases_and_budget_appended(self, client: TestClient) -> None:
        """Phase imbalance then budget follow the rule insights."""
        response = client.post(
            INSIGHTS_URL,
            json={
                "stats": NORMAL_STATS,
                "phases": _phases(40.0, 30.0, 30.0),
                "budget": {"currentCost": 1500, "monthlyBudget": 3000, "dayOfMonth": 10},
            },
            headers=AUTH_HEADER,
        )
        assert response.status_code == 200
        icons = [i["icon"] for i in response.json()["insights"]]
        assert icons == ["✅", "⚖️", "💰"]

    def test_phases_must_cover_three(self, client: TestClient) -> None:
        """Two phases fail validation with 422."""
        response = client.post(
            INSIGHTS_URL,
            json={"stats": NORMAL_STATS, "phases": _phases(40.0, 30.0, 30.0)[:2]},
            headers=AUTH_HEADER,
        )
        assert response.status_code == 422

    def test_zero_prior_does_not_fail(self, client: TestClient) -> None:
        """A zero prior period degrades to no trend insight."""
        stats = {**NORMAL_STATS, "priorEnergyKWh": 0.0}
        response = client.post(INSIGHTS_URL, json={"stats": stats}, headers=AUTH_HEADER)
        assert response.status_code == 200
        assert len(response.json()["insights"]) == 1


# ---------------------------------------------------------------------------
# GET /v1/insights
# ---------------------------------------------------------------------------


class TestGetInsightsAuth:
    """Meter ownership checks."""

    def test_requires_auth(self, client: TestClient) -> None:
        """Missing token returns 401."""
        from gridbill.api.deps import get_db
        from gridbill.api.main import app

        app.dependency_overrides[get_db] = _override_db_factory(_telemetry_session())
        response = client.get(INSIGHTS_URL, params={"meter_id": METER_ID})
        assert response.status_code == 401

    def test_other_meter_forbidden(self, client: TestClient) -> None:
        """A token for meter-001 cannot read meter-999."""
        from gridbill.api.deps import get_db
        from gridbill.api.main import app

        app.dependency_overrides[get_db] = _override_db_factory(_telemetry_session())
        response = client.get(
            INSIGHTS_URL, params={"meter_id": "meter-999"}, headers=AUTH_HEADER
        )
        assert response.status_code == 403


class TestGetInsightsFromTelemetry:
    """Cache miss path through the aggregation service."""

    def test_computes_and_caches(self, client: TestClient) -> None:
        """Insights are computed from the DB and written to Redis."""
        from gridbill.api.deps import get_db
        from gridbill.api.main import app

        session = _telemetry_session(totals={"peak_power_w": 6500.0})
        app.dependency_overrides[get_db] = _override_db_factory(session)
        redis_client = _mock_redis_client()

        with patch(
            "gridbill.cache.redis_client.get_redis",
            new=AsyncMock(return_value=redis_client),
        ):
            response = client.get(
                INSIGHTS_URL, params={"meter_id": METER_ID}, headers=AUTH_HEADER
            )

        assert response.status_code == 200
        data = response.json()
        assert data["meterId"] == METER_ID
        assert [i["icon"] for i in data["insights"]] == ["📊"]
        assert session.execute.await_count == 3

        key, payload = redis_client.set.call_args[0]
        assert key == f"insights:{METER_ID}"
        assert json.loads(payload)[0]["icon"] == "📊"
        assert redis_client.set.call_args[1]["ex"] == 60

    def test_phase_imbalance_from_store(self, client: TestClient) -> None:
        """Stored per-phase energy feeds the imbalance check."""
        from gridbill.api.deps import get_db
        from gridbill.api.main import app

        rows = [_phase_row(1, 5000.0), _phase_row(2, 2500.0), _phase_row(3, 2500.0)]
        app.dependency_overrides[get_db] = _override_db_factory(
            _telemetry_session(phase_rows=rows)
        )

        with patch(
            "gridbill.cache.redis_client.get_redis",
            new=AsyncMock(return_value=_mock_redis_client()),
        ):
            response = client.get(
                INSIGHTS_URL, params={"meter_id": METER_ID}, headers=AUTH_HEADER
            )

        icons = [i["icon"] for i in response.json()["insights"]]
        assert icons == ["✅", "⚖️"]

    def test_redis_down_still_answers(self, client: TestClient) -> None:
        """Redis failures fall back to the database."""
        from gridbill.api.deps import get_db
        from gridbill.api.main import app

        app.dependency_overrides[get_db] = _override_db_factory(_telemetry_session())

        with patch(
            "gridbill.cache.redis_client.get_redis",
            new=AsyncMock(side_effect=ConnectionError("redis down")),
        ):
            response = client.get(
                INSIGHTS_URL, params={"meter_id": METER_ID}, headers=AUTH_HEADER
            )

        assert response.status_code == 200
        assert response.json()["insights"][0]["icon"] == "✅"


class TestGetInsightsCacheHit:
    """Cache hit path."""

    def test_cached_payload_skips_db(self, client: TestClient) -> None:
        """A cached list is returned without querying the database."""
        from gridbill.api.deps import get_db
        from gridbill.api.main import app

        session = _telemetry_session()
        app.dependency_overrides[get_db] = _override_db_factory(session)
        cached = json.dumps(
            [{"message": "cached", "severity": "warning", "icon": "📊"}]
        )

        with patch(
            "gridbill.cache.redis_client.get_redis",
            new=AsyncMock(return_value=_mock_redis_client(cached_value=cached)),
        ):
            response = client.get(
                INSIGHTS_URL, params={"meter_id": METER_ID}, headers=AUTH_HEADER
            )

        assert response.status_code == 200
        assert response.json()["insights"] == [
            {"message": "cached", "severity": "warning", "icon": "📊"}
        ]
        session.execute.assert_not_awaited()
