import pytest

CHANNEL = "UC-test-channel"


def linear_views(n=40):
    return [1000.0 + 10 * i for i in range(n)]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_run_forecast_and_read_it_back(client, seed_series):
    await seed_series(linear_views())

    response = await client.post("/api/v1/ml/forecast/run", json={"channel_id": CHANNEL, "horizon_days": 3})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["predictions_generated"] == 6
    assert body["active_model_type"] == "holt-winters"
    assert {m["model_type"] for m in body["models"]} == {"holt-winters", "linear-regression"}

    response = await client.get("/api/v1/ml/forecast", params={"channel_id": CHANNEL})
    assert response.status_code == 200
    forecast = response.json()
    assert forecast["model_type"] == "holt-winters"
    assert [p["horizon_days"] for p in forecast["points"]] == [1, 2, 3]


@pytest.mark.asyncio
async def test_forecast_run_with_short_history(client, seed_series):
    await seed_series(linear_views(10))

    response = await client.post("/api/v1/ml/forecast/run", json={"channel_id": CHANNEL})

    assert response.status_code == 200
    assert response.json()["status"] == "insufficient_data"
    assert response.json()["models"] == []


@pytest.mark.asyncio
async def test_forecast_run_without_data_is_not_found(client):
    response = await client.post("/api/v1/ml/forecast/run", json={"channel_id": "UC-empty"})

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "ML_SERIES_EMPTY"


@pytest.mark.asyncio
async def test_forecast_run_rejects_bad_payload(client):
    response = await client.post("/api/v1/ml/forecast/run", json={"channel_id": CHANNEL, "horizon_days": 0})
    assert response.status_code == 422

    response = await client.post("/api/v1/ml/forecast/run", json={"channel_id": CHANNEL, "target_metric": "likes"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_anomaly_run_list_and_trend(client, seed_series, anomaly_scenario_values):
    await seed_series(anomaly_scenario_values)

    response = await client.post("/api/v1/ml/anomalies/run", json={"channel_id": CHANNEL})
    assert response.status_code == 200
    run = response.json()
    assert run["analyzed_points"] == 60
    assert run["anomalies_detected"] > 0

    response = await client.get(
        "/api/v1/ml/anomalies",
        params={"channel_id": CHANNEL, "date_from": "2026-01-01", "date_to": "2026-03-01"},
    )
    assert response.status_code == 200
    listing = response.json()
    assert listing["total"] == run["anomalies_detected"]
    assert len(listing["items"]) == listing["total"]

    response = await client.get(
        "/api/v1/ml/anomalies",
        params=[
            ("channel_id", CHANNEL),
            ("date_from", "2026-01-01"),
            ("date_to", "2026-03-01"),
            ("severity", "critical"),
        ],
    )
    assert response.status_code == 200
    assert all(item["severity"] == "critical" for item in response.json()["items"])

    response = await client.get(
        "/api/v1/ml/trend",
        params={"channel_id": CHANNEL, "date_from": "2026-01-01", "date_to": "2026-03-01"},
    )
    assert response.status_code == 200
    trend = response.json()
    assert len(trend["points"]) == 60
    assert trend["seasonality_period_days"] == 7


@pytest.mark.asyncio
async def test_inverted_range_is_unprocessable(client):
    response = await client.get(
        "/api/v1/ml/trend",
        params={"channel_id": CHANNEL, "date_from": "2026-02-10", "date_to": "2026-02-01"},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "ML_TREND_INVALID_RANGE"
