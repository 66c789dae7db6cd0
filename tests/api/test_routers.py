"""
API 路由测试

使用 SQLite 内存库，调用方通过 X-User-Id 头标识
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_jobs
from api.main import app
from core.config import Settings
from core.scheduler import JobManager
from db.crud import DeliveryCRUD

PREFIX = "/api/v1"
USER = {"X-User-Id": "user_1"}
OTHER = {"X-User-Id": "user_2"}

ERROR_RATE_RULE = {
    "name": "OpenAI errors",
    "type": "error_rate",
    "severity": "high",
    "conditions": {"metric": "error_rate", "operator": "gt", "threshold": 10, "timeWindow": 60},
}


@pytest.fixture
def client(engine, session_factory):
    app.dependency_overrides[get_jobs] = lambda: JobManager(session_factory=session_factory, settings=Settings())
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestEnvelope:
    """统一响应格式"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["status"] == "healthy"

    def test_request_id_header(self, client):
        response = client.get(f"{PREFIX}/alerts", headers=USER)
        assert response.headers["X-Request-ID"] == response.json()["request_id"]
        assert "X-Response-Time" in response.headers

    def test_missing_user_header(self, client):
        response = client.get(f"{PREFIX}/alerts")
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["code"] == 40003
        assert data["error"]["type"] == "ValidationError"


class TestAlertsAPI:
    """告警 API"""

    def test_list_scoped_to_user(self, client, make_alert):
        mine = make_alert(metadata_={"error_rate": 12.0})
        make_alert(user_id="user_2")

        response = client.get(f"{PREFIX}/alerts", headers=USER)

        assert response.status_code == 200
        data = response.json()["data"]
        assert [a["id"] for a in data["items"]] == [mine.id]
        assert data["items"][0]["metadata"] == {"error_rate": 12.0}
        assert data["pagination"]["total_items"] == 1

    def test_list_filters(self, client, make_alert):
        make_alert(severity="low")
        critical = make_alert(severity="critical", type="slow_response")

        response = client.get(f"{PREFIX}/alerts", params={"severity": "critical"}, headers=USER)
        assert [a["id"] for a in response.json()["data"]["items"]] == [critical.id]

        response = client.get(f"{PREFIX}/alerts", params={"severity": "urgent"}, headers=USER)
        assert response.status_code == 400

    def test_get_other_users_alert(self, client, make_alert):
        alert = make_alert()

        response = client.get(f"{PREFIX}/alerts/{alert.id}", headers=OTHER)

        assert response.status_code == 404
        assert response.json()["code"] == 40402

    def test_read_and_resolve(self, client, make_alert):
        alert = make_alert()

        response = client.post(f"{PREFIX}/alerts/{alert.id}/read", headers=USER)
        assert response.json()["data"]["is_read"] is True

        response = client.post(f"{PREFIX}/alerts/{alert.id}/resolve", headers=USER)
        data = response.json()["data"]
        assert data["is_resolved"] is True
        assert data["resolved_at"] is not None

        # 再次解决原样返回
        response = client.post(f"{PREFIX}/alerts/{alert.id}/resolve", headers=USER)
        assert response.status_code == 200

    def test_bulk_operations(self, client, make_alert):
        a, b = make_alert(), make_alert(type="slow_response")
        foreign = make_alert(user_id="user_2")

        response = client.post(f"{PREFIX}/alerts/read", json={"alert_ids": [a.id, foreign.id]}, headers=USER)
        assert response.json()["data"]["updated"] == 1

        response = client.post(f"{PREFIX}/alerts/read-all", headers=USER)
        assert response.json()["data"]["updated"] == 1

        response = client.post(f"{PREFIX}/alerts/bulk-resolve", json={"alert_ids": [a.id, b.id]}, headers=USER)
        assert response.json()["data"]["updated"] == 2

        response = client.post(f"{PREFIX}/alerts/bulk-resolve", json={"alert_ids": []}, headers=USER)
        assert response.status_code == 400

    def test_stats(self, client, make_alert):
        make_alert()
        make_alert(type="slow_response", severity="low", is_read=True)

        data = client.get(f"{PREFIX}/alerts/stats", headers=USER).json()["data"]

        assert data["total"] == 2
        assert data["unread"] == 1
        assert data["by_type"]["slow_response"] == 1
        assert data["by_severity"]["critical"] == 0

    def test_delete(self, client, make_alert):
        alert = make_alert()

        assert client.delete(f"{PREFIX}/alerts/{alert.id}", headers=OTHER).status_code == 404
        assert client.delete(f"{PREFIX}/alerts/{alert.id}", headers=USER).status_code == 200
        assert client.get(f"{PREFIX}/alerts/{alert.id}", headers=USER).status_code == 404

    def test_generate(self, client, provider, add_metrics, make_channel):
        make_channel(type="in_app")
        add_metrics("user_1", "openai", [500] * 10)

        data = client.post(f"{PREFIX}/alerts/generate", headers=USER).json()["data"]

        assert data["created"] == 1
        assert data["alerts"][0]["severity"] == "critical"

        # 去重
        assert client.post(f"{PREFIX}/alerts/generate", headers=USER).json()["data"]["created"] == 0


class TestRulesAPI:
    """规则 API"""

    def create(self, client, **overrides):
        return client.post(f"{PREFIX}/alerts/rules", json={**ERROR_RATE_RULE, **overrides}, headers=USER)

    def test_create(self, client):
        response = self.create(client)

        assert response.status_code == 201
        data = response.json()
        assert data["code"] == 201
        assert data["data"]["conditions"]["time_window_minutes"] == 60
        assert data["data"]["trigger_count"] == 0

    def test_invalid_conditions(self, client):
        response = self.create(client, conditions={"metric": "error_rate", "operator": "gt"})

        assert response.status_code == 400
        assert response.json()["code"] == 40001

    def test_unknown_provider(self, client):
        response = self.create(client, provider_id="anthropic")

        assert response.status_code == 404
        assert response.json()["code"] == 40401

    def test_invalid_type(self, client):
        response = self.create(client, type="latency")

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "type"

    def test_update_toggle_delete(self, client):
        rule_id = self.create(client).json()["data"]["id"]

        response = client.patch(f"{PREFIX}/alerts/rules/{rule_id}", json={"severity": "critical"}, headers=USER)
        assert response.json()["data"]["severity"] == "critical"

        response = client.post(f"{PREFIX}/alerts/rules/{rule_id}/toggle", headers=USER)
        assert response.json()["data"]["is_active"] is False

        response = client.get(f"{PREFIX}/alerts/rules", params={"is_active": "false"}, headers=USER)
        assert response.json()["data"]["pagination"]["total_items"] == 1

        assert client.delete(f"{PREFIX}/alerts/rules/{rule_id}", headers=OTHER).status_code == 404
        assert client.delete(f"{PREFIX}/alerts/rules/{rule_id}", headers=USER).status_code == 200

    def test_test_rule(self, client, provider, add_metrics):
        rule_id = self.create(client).json()["data"]["id"]
        add_metrics("user_1", "openai", [200] * 5 + [500] * 5)

        data = client.post(f"{PREFIX}/alerts/rules/{rule_id}/test", headers=USER).json()["data"]

        assert data["triggered"] is True
        assert data["current_value"] == pytest.approx(50.0)
        assert data["alert_created"] is False
        assert client.get(f"{PREFIX}/alerts", headers=USER).json()["data"]["items"] == []

    def test_stats(self, client):
        self.create(client)
        self.create(client, is_active=False, type="downtime")

        data = client.get(f"{PREFIX}/alerts/rules/stats", headers=USER).json()["data"]
        assert data["total_rules"] == 2
        assert data["active_rules"] == 1


class TestNotificationsAPI:
    """渠道、偏好与投递 API"""

    def test_create_channel_masks_secret(self, client):
        response = client.post(f"{PREFIX}/notifications/channels", json={
            "name": "Ops webhook",
            "type": "webhook",
            "config": {"url": "https://example.com/hook", "secret": "s3cr3t"},
        }, headers=USER)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["config"]["secret"] == "***"
        assert data["is_verified"] is False

    def test_invalid_channel_config(self, client):
        response = client.post(f"{PREFIX}/notifications/channels", json={
            "name": "Mail", "type": "email", "config": {},
        }, headers=USER)

        assert response.status_code == 400
        assert response.json()["code"] == 40002
        assert response.json()["error"]["detail"] == "Email address is required"

    def test_verify_test_reset(self, client, make_channel):
        channel = make_channel(type="in_app", is_verified=False, failure_count=6)

        assert client.post(
            f"{PREFIX}/notifications/channels/{channel.id}/verify", headers=USER,
        ).json()["data"]["is_verified"] is True
        assert client.post(
            f"{PREFIX}/notifications/channels/{channel.id}/test", headers=USER,
        ).json()["data"]["success"] is True
        assert client.post(
            f"{PREFIX}/notifications/channels/{channel.id}/reset", headers=USER,
        ).json()["data"]["failure_count"] == 0
        assert client.post(
            f"{PREFIX}/notifications/channels/{channel.id}/verify", headers=OTHER,
        ).status_code == 404

    def test_preferences(self, client, make_channel):
        channel = make_channel(type="in_app")

        response = client.put(f"{PREFIX}/notifications/preferences", json={
            "alert_type": "error_rate", "severity": "high", "channel_id": channel.id,
        }, headers=USER)
        assert response.status_code == 200
        pref_id = response.json()["data"]["id"]

        prefs = client.get(f"{PREFIX}/notifications/preferences", headers=USER).json()["data"]
        assert [p["id"] for p in prefs] == [pref_id]

        assert client.delete(f"{PREFIX}/notifications/preferences/{pref_id}", headers=USER).status_code == 200
        assert client.delete(f"{PREFIX}/notifications/preferences/{pref_id}", headers=USER).status_code == 404

    def test_preference_for_foreign_channel(self, client, make_channel):
        channel = make_channel(user_id="user_2", type="in_app")

        response = client.put(f"{PREFIX}/notifications/preferences", json={
            "alert_type": "error_rate", "severity": "high", "channel_id": channel.id,
        }, headers=USER)
        assert response.status_code == 404

    def test_deliveries_and_retry(self, client, db_session, make_channel, make_alert):
        channel = make_channel(type="in_app")
        alert = make_alert()
        delivery = DeliveryCRUD.create(db_session, alert.id, channel.id)
        delivery.status, delivery.error = "failed", "HTTP 400"
        db_session.commit()

        data = client.get(
            f"{PREFIX}/notifications/deliveries", params={"status": "failed"}, headers=USER,
        ).json()["data"]
        assert [d["id"] for d in data] == [delivery.id]

        response = client.post(f"{PREFIX}/notifications/channels/{channel.id}/retry", headers=USER)
        assert response.json()["data"]["requeued"] == 1

        data = client.get(f"{PREFIX}/notifications/deliveries", headers=USER).json()["data"]
        assert data[0]["status"] == "retrying"

        assert client.get(f"{PREFIX}/notifications/deliveries", headers=OTHER).json()["data"] == []


class TestJobsAPI:
    """任务管理 API"""

    def test_status(self, client):
        data = client.get(f"{PREFIX}/admin/jobs").json()["data"]
        assert set(data) == {"alert_evaluation", "heuristic_alerts", "notification_delivery", "cleanup"}

    def test_run_once(self, client):
        response = client.post(f"{PREFIX}/admin/jobs/cleanup/run")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["job"] == "cleanup"
        assert data["skipped"] is False
        assert data["details"]["alerts_deleted"] == 0

    def test_unknown_job(self, client):
        assert client.post(f"{PREFIX}/admin/jobs/nope/run").status_code == 404
        assert client.post(f"{PREFIX}/admin/jobs/nope/restart", json={"interval_minutes": 5}).status_code == 404

    def test_restart_validation(self, client):
        response = client.post(f"{PREFIX}/admin/jobs/cleanup/restart", json={"interval_minutes": 0})
        assert response.status_code == 400
