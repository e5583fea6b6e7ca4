"""API tests for risk checks, fraud reports, and statistics."""

from __future__ import annotations

MEMBER = {"X-API-KEY": "dev-member-token"}
MEMBER_2 = {"X-API-KEY": "dev-member2-token"}
ADMIN = {"X-API-KEY": "dev-admin-token"}


def _report(client, headers=MEMBER, **overrides):
    payload = {
        "target_entity": "(763) 274-3899",
        "category": "Phishing",
        "description": "Caller claimed to be from my bank and asked for OTP",
    }
    payload.update(overrides)
    return client.post("/fraud/report", json=payload, headers=headers)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_check_risk_for_unknown_entity_is_safe(client):
    response = client.post("/check-risk", json={"entity": "9000000000"})

    assert response.status_code == 200
    body = response.json()
    assert body["risk_level"] == "safe"
    assert body["risk_color"] == "green"
    assert body["entity_kind"] == "phone"


def test_report_then_check_risk(client, services):
    created = _report(client)
    assert created.status_code == 201
    assert created.json()["report"]["target_entity"] == "7632743899"
    services.clock.advance(minutes=1)
    _report(client, headers=MEMBER_2, category="Identity Theft")

    body = client.get("/check-risk/763-274-3899", headers=MEMBER).json()

    assert body["risk_score"] == 6
    assert body["risk_level"] == "high_risk"
    assert body["categories"] == ["Phishing", "Identity Theft"]
    actions = [entry.action_type for entry in services.activity.list_user_activity("member_1")]
    assert "check_risk" in actions


def test_report_requires_token(client):
    assert _report(client, headers={}).status_code == 401
    assert _report(client, headers={"X-API-KEY": "bogus"}).status_code == 403


def test_report_validation_errors(client):
    assert _report(client, description="short").status_code == 422

    response = _report(client, target_entity="(-)")

    assert response.status_code == 400
    assert response.json()["field"] == "target_entity"


def test_my_reports_paginates(client):
    for _ in range(3):
        _report(client)
    _report(client, headers=MEMBER_2)

    body = client.get("/fraud/my-reports", params={"page": 2, "limit": 2}, headers=MEMBER).json()

    assert len(body["reports"]) == 1
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}


def test_deactivation_requires_admin(client):
    report_id = _report(client).json()["report"]["report_id"]

    assert client.post(f"/fraud/reports/{report_id}/deactivate", headers=MEMBER).status_code == 403
    response = client.post(f"/fraud/reports/{report_id}/deactivate", headers=ADMIN)
    assert response.status_code == 200
    assert client.get("/check-risk/7632743899").json()["risk_score"] == 0

    assert client.post(f"/fraud/reports/{report_id}/reactivate", headers=ADMIN).json()["is_active"] is True
    assert client.post("/fraud/reports/missing/deactivate", headers=ADMIN).status_code == 404


def test_stats_overview(client):
    _report(client)
    _report(client, category="Spam")

    body = client.get("/stats/overview").json()

    assert body["total_reports"] == 2
    assert body["recent_reports"] == 2
    assert {item["category"] for item in body["top_categories"]} == {"Phishing", "Spam"}
