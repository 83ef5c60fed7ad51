# Overview: Pytest coverage for the /api/fbr routes and the health endpoint.

import httpx
import pytest

from posfiscal.models import FbrQueueItem
from posfiscal.services.fbr_errors import NOT_CONFIGURED_MESSAGE


@pytest.fixture
def sale_a(db_session, org_a, make_product, make_sale):
    return make_sale(org_a, [(make_product(org_a), 1)])


class TestServiceToken:
    def test_missing_token(self, client, db_session):
        response = client.get('/api/fbr/orgs/1/stats')

        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required"}

    def test_wrong_token(self, client, db_session):
        response = client.get('/api/fbr/orgs/1/stats', headers={'Authorization': 'Bearer nope'})

        assert response.status_code == 401
        assert response.get_json() == {"error": "Invalid or expired token"}


class TestSubmitRoutes:
    def test_submit_sale(self, client, service_headers, fbr_config_a, sale_a, fbr_gateway):
        response = client.post(f'/api/fbr/sales/{sale_a.id}/submit', headers=service_headers)

        assert response.status_code == 200
        result = response.get_json()["result"]
        assert result["status"] == "synced"
        assert result["fbr_invoice_number"].startswith("7000007DI")

    def test_submit_unknown_sale(self, client, service_headers, db_session):
        response = client.post('/api/fbr/sales/999/submit', headers=service_headers)

        assert response.status_code == 404

    def test_sale_status_lists_queue_history(self, client, service_headers, db_session, fbr_config_a, sale_a, fbr_gateway):
        fbr_gateway.script("submit", httpx.ReadTimeout("timed out"))
        client.post(f'/api/fbr/sales/{sale_a.id}/submit', headers=service_headers)

        response = client.get(f'/api/fbr/sales/{sale_a.id}', headers=service_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data["sale"]["fbr_status"] == "pending"
        assert [item["status"] for item in data["queue_items"]] == ["pending"]
        assert "invoice_payload" not in data["queue_items"][0]

    def test_retry_failed_validates_sale_ids(self, client, service_headers, org_a):
        response = client.post(
            f'/api/fbr/orgs/{org_a.id}/retry-failed',
            headers=service_headers,
            json={"sale_ids": ["1"]},
        )

        assert response.status_code == 400

    def test_retry_failed(self, client, service_headers, org_a, fbr_config_a, make_product, make_sale, fbr_gateway):
        sale = make_sale(org_a, [(make_product(org_a), 1)], fbr_status="failed")

        response = client.post(f'/api/fbr/orgs/{org_a.id}/retry-failed', headers=service_headers, json={})

        data = response.get_json()
        assert response.status_code == 200
        assert data["retried"] == 1
        assert data["synced"] == 1
        assert data["results"][0]["sale_id"] == sale.id

    def test_process_queue(self, client, service_headers, db_session, fbr_config_a, sale_a, fbr_gateway):
        fbr_gateway.script("submit", httpx.ReadTimeout("timed out"))
        client.post(f'/api/fbr/sales/{sale_a.id}/submit', headers=service_headers)

        response = client.post('/api/fbr/queue/process', headers=service_headers, json={"batch_size": 5})

        assert response.status_code == 200
        assert response.get_json()["summary"]["completed"] == 1
        assert db_session.query(FbrQueueItem).one().status == "completed"

    @pytest.mark.parametrize("batch_size", [0, -1, "10", True])
    def test_process_queue_rejects_bad_batch_size(self, client, service_headers, db_session, batch_size):
        response = client.post('/api/fbr/queue/process', headers=service_headers, json={"batch_size": batch_size})

        assert response.status_code == 400


class TestConfigRoutes:
    def test_put_then_get_config(self, client, service_headers, org_a):
        response = client.put(
            f'/api/fbr/orgs/{org_a.id}/config',
            headers=service_headers,
            json={"bearer_token": "sandbox-token-abcd1234", "sandbox_mode": True},
        )
        assert response.status_code == 200

        response = client.get(f'/api/fbr/orgs/{org_a.id}/config', headers=service_headers)
        config = response.get_json()["config"]
        assert config["token_hint"] == "****1234"
        assert config["environment"] == "sandbox"
        assert "sandbox-token-abcd1234" not in response.get_data(as_text=True)

    def test_get_missing_config(self, client, service_headers, org_a):
        response = client.get(f'/api/fbr/orgs/{org_a.id}/config', headers=service_headers)

        assert response.status_code == 404

    def test_put_without_token_on_create(self, client, service_headers, org_a):
        response = client.put(f'/api/fbr/orgs/{org_a.id}/config', headers=service_headers, json={"sandbox_mode": False})

        assert response.status_code == 400
        assert response.get_json()["error"] == "bearer_token required"

    def test_put_rejects_non_boolean_flags(self, client, service_headers, org_a):
        response = client.put(
            f'/api/fbr/orgs/{org_a.id}/config',
            headers=service_headers,
            json={"bearer_token": "abc12345", "is_active": "yes"},
        )

        assert response.status_code == 400

    def test_put_unknown_org(self, client, service_headers, db_session):
        response = client.put('/api/fbr/orgs/999/config', headers=service_headers, json={"bearer_token": "abc"})

        assert response.status_code == 404

    def test_test_connection(self, client, service_headers, org_a, fbr_config_a, fbr_gateway):
        response = client.post(f'/api/fbr/orgs/{org_a.id}/test-connection', headers=service_headers)

        assert response.status_code == 200
        assert response.get_json() == {"success": True, "environment": "sandbox", "error": None}

    def test_test_connection_not_configured(self, client, service_headers, org_a, fbr_gateway):
        response = client.post(f'/api/fbr/orgs/{org_a.id}/test-connection', headers=service_headers)

        assert response.status_code == 400


class TestReferenceAndStats:
    def test_reference_provinces(self, client, service_headers, org_a, fbr_config_a, fbr_gateway):
        response = client.get(f'/api/fbr/orgs/{org_a.id}/reference/provinces', headers=service_headers)

        assert response.status_code == 200
        assert response.get_json()["data"][1]["stateProvinceDesc"] == "SINDH"

    def test_reference_unknown_kind(self, client, service_headers, org_a, fbr_config_a, fbr_gateway):
        response = client.get(f'/api/fbr/orgs/{org_a.id}/reference/currencies', headers=service_headers)

        assert response.status_code == 404

    def test_reference_gateway_failure(self, client, service_headers, org_a, fbr_config_a, fbr_gateway):
        fbr_gateway.script("uom", httpx.Response(500, text="down"))

        response = client.get(f'/api/fbr/orgs/{org_a.id}/reference/uom', headers=service_headers)

        assert response.status_code == 502

    def test_reference_not_configured(self, client, service_headers, org_a, fbr_gateway):
        response = client.get(f'/api/fbr/orgs/{org_a.id}/reference/provinces', headers=service_headers)

        assert response.status_code == 400
        assert response.get_json()["error"] == NOT_CONFIGURED_MESSAGE
        assert fbr_gateway.requests == []

    def test_stats(self, client, service_headers, org_a, sale_a):
        response = client.get(f'/api/fbr/orgs/{org_a.id}/stats', headers=service_headers)

        assert response.status_code == 200
        assert response.get_json()["sales"]["pending"] == 1

    def test_stats_unknown_org(self, client, service_headers, db_session):
        response = client.get('/api/fbr/orgs/999/stats', headers=service_headers)

        assert response.status_code == 404


def test_health(client, db_session, org_a):
    response = client.get('/health')

    data = response.get_json()
    assert response.status_code == 200
    assert data["status"] == "healthy"
    assert data["database"]["details"]["organizations"] == 1
