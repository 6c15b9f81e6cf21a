def test_ready(client):
    response = client.get("/ready")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["trace_id"]


def test_metrics_exposes_feature_counters(client):
    client.get("/zeus/features/UNKNOWN/allowed")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "feature_evaluations_total" in response.text
