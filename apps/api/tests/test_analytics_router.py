import pytest

import main
from analytics.insights import InsightGenerator
from analytics.models import Insight


class StaticInsights(InsightGenerator):
    async def generate(self, aggregate):
        return [Insight(title="Reach", description=f"{aggregate.aggregate_metrics.total_views} unique views")]


class FailingInsights(InsightGenerator):
    async def generate(self, aggregate):
        raise RuntimeError("insight backend offline")


async def _seed(client):
    for payload in (
        {"id": "R", "platform": "youtube", "content_type": "video", "creator_id": "creator-1"},
        {"id": "C", "platform": "youtube", "content_type": "short_video", "creator_id": "creator-1", "parent_id": "R"},
    ):
        response = await client.post("/graph/nodes", json=payload)
        assert response.status_code == 201
    edge = await client.post(
        "/graph/edges",
        json={
            "source_id": "R",
            "target_id": "C",
            "relationship_type": "derivative",
            "confidence": 0.9,
            "creation_method": "ai_suggested",
        },
    )
    assert edge.status_code == 201
    for content_id, day, metrics in (
        ("R", "2026-10-05", {"views": 10000, "likes": 500, "comments": 100, "shares": 50}),
        ("C", "2026-10-06", {"views": 4000}),
    ):
        response = await client.post(f"/analytics/metrics/{content_id}", json={"day": day, "metrics": metrics})
        assert response.status_code == 200


RANGE = {"start": "2026-10-01T00:00:00Z", "end": "2026-10-31T23:59:59Z"}


@pytest.mark.asyncio
async def test_standardize_endpoint(api_client):
    response = await api_client.post(
        "/analytics/standardize",
        json={
            "platform": "youtube",
            "content_type": "video",
            "content_id": "root",
            "metrics": {"views": 10000, "likes": 500, "comments": 100, "shares": 50},
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["engagements"] == pytest.approx(595.0)
    assert payload["engagement_rate"] == pytest.approx(5.95)

    invalid = await api_client.post(
        "/analytics/standardize",
        json={"platform": "orkut", "content_type": "video", "metrics": {}},
    )
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_standardize_endpoint_tolerates_out_of_range_numbers(api_client):
    response = await api_client.post(
        "/analytics/standardize",
        content='{"platform": "youtube", "content_type": "video", "metrics": {"views": 1e400, "likes": 3, "reach": 1e400}}',
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["views"] == 0
    assert payload["likes"] == 3
    assert payload["platform_specific_metrics"]["reach"] == "inf"


@pytest.mark.asyncio
async def test_standardize_time_series_endpoint(api_client):
    response = await api_client.post(
        "/analytics/standardize/time-series",
        json={
            "platform": "tiktok",
            "content_type": "short_video",
            "points": [
                {"date": "2026-10-01", "views": 100},
                {"date": "2026-10-01", "views": 40},
                {"date": "2026-10-03", "views": 10},
            ],
        },
    )

    assert response.status_code == 200
    series = response.json()["series"]
    assert [point["day"] for point in series] == ["2026-10-01", "2026-10-03"]
    assert series[0]["metrics"]["views"] == 140


@pytest.mark.asyncio
async def test_family_metrics_endpoint(api_client):
    await _seed(api_client)

    response = await api_client.get("/analytics/families/R", params={"period": "custom", **RANGE})

    assert response.status_code == 200
    payload = response.json()
    assert payload["aggregate_metrics"]["total_views"] == 13300
    assert payload["aggregate_metrics"]["raw_total_views"] == 14000
    assert payload["audience_overlap"]["estimated_duplication"] == 5.0
    assert payload["content_count"] == 2


@pytest.mark.asyncio
async def test_family_metrics_errors(api_client):
    missing = await api_client.get("/analytics/families/nope", params=RANGE)
    assert missing.status_code == 404

    await _seed(api_client)
    half_range = await api_client.get("/analytics/families/R", params={"start": RANGE["start"]})
    assert half_range.status_code == 422

    custom_without_range = await api_client.get("/analytics/families/R", params={"period": "custom"})
    assert custom_without_range.status_code == 422

    unknown_period = await api_client.get("/analytics/families/R", params={"period": "fortnight"})
    assert unknown_period.status_code == 422


@pytest.mark.asyncio
async def test_creator_metrics_endpoint(api_client):
    await _seed(api_client)

    response = await api_client.get("/analytics/creators/creator-1", params=RANGE)

    assert response.status_code == 200
    payload = response.json()
    assert payload["content_family_count"] == 1
    assert payload["total_content_count"] == 2
    assert payload["aggregate_metrics"]["total_views"] == 13300
    assert payload["growth_metrics"] == {}


@pytest.mark.asyncio
async def test_insights_are_attached_on_request(api_client, services):
    services.insight_generator = StaticInsights()
    await _seed(api_client)

    response = await api_client.get(
        "/analytics/families/R", params={"include_insights": True, **RANGE}
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["insights"] == [{"title": "Reach", "description": "13300 unique views", "priority": 2}]
    assert payload["insight_error"] is None
    assert payload["aggregate"]["root_content_id"] == "R"


@pytest.mark.asyncio
async def test_insight_failure_still_returns_the_aggregate(api_client, services):
    services.insight_generator = FailingInsights()
    await _seed(api_client)

    response = await api_client.get(
        "/analytics/creators/creator-1", params={"include_insights": True, **RANGE}
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["insights"] == []
    assert payload["insight_error"] == "insight backend offline"
    assert payload["aggregate"]["creator_id"] == "creator-1"


@pytest.mark.asyncio
async def test_health_endpoints(api_client):
    live = await api_client.get("/health/live")
    assert live.json() == {"alive": True}

    ready = await api_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json() == {"ready": True}


def test_run_serves_the_app_with_configured_host_and_port(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.setattr(main.settings, "API_HOST", "127.0.0.1")
    monkeypatch.setattr(main.settings, "API_PORT", 9001)
    monkeypatch.setattr(main.settings, "LOG_LEVEL", "WARNING")

    main.run()

    assert calls == [(("main:app",), {"host": "127.0.0.1", "port": 9001, "log_level": "warning"})]
