# tests/test_monitoring.py

def test_health_check(client):
    r = client.get("/health")

    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "company_service", "database": "ok"}


def test_metrics_use_templated_paths(client, created_company):
    client.get(f"/companies/{created_company['id']}")

    r = client.get("/metrics")

    assert r.status_code == 200
    assert 'endpoint="/companies/{id}"' in r.text
    assert "company_companies_created_total" in r.text
