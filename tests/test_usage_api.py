"""
Tests for GET /api-keys/{id}/usage.
"""


def _validate(client, api_key, scope="orders:read"):
    return client.post("/validate", json={"apiKey": api_key, "scope": scope, "service": "svc"})


class TestUsageEndpoint:
    def test_shape(self, client, issue_key):
        key = issue_key(owner="billing-service")
        _validate(client, key["key"])

        response = client.get(f"/api-keys/{key['id']}/usage")
        assert response.status_code == 200
        data = response.json()
        assert data["keyId"] == key["id"]
        assert data["totalRequests"] == 1
        assert data["keyInfo"] == {"owner": "billing-service", "status": "active", "deleted_at": None}

        [record] = data["records"]
        assert set(record) >= {"id", "timestamp", "action", "endpoint", "ip", "user_agent", "metadata"}
        assert record["owner"] == "billing-service"
        assert record["status"] == "active"

    def test_key_without_usage(self, client, issue_key):
        key = issue_key()
        data = client.get(f"/api-keys/{key['id']}/usage").json()
        assert data["totalRequests"] == 0
        assert data["records"] == []
        assert data["keyInfo"]["owner"] == "billing-service"

    def test_unknown_key_is_empty_not_404(self, client):
        response = client.get("/api-keys/999999/usage")
        assert response.status_code == 200
        assert response.json() == {"keyId": 999999, "totalRequests": 0, "keyInfo": None, "records": []}

    def test_deleted_key_history_survives(self, client, issue_key):
        key = issue_key()
        _validate(client, key["key"])
        client.delete(f"/api-keys/{key['id']}")
        _validate(client, key["key"])

        data = client.get(f"/api-keys/{key['id']}/usage").json()
        # the post-delete attempt matched no key, so it is not attributed here
        assert data["totalRequests"] == 1
        assert data["keyInfo"]["deleted_at"] is not None
        assert data["records"][0]["deleted_at"] is not None

    def test_revoked_status_reflected(self, client, issue_key):
        key = issue_key()
        _validate(client, key["key"])
        client.patch(f"/api-keys/{key['id']}", json={"status": "revoked"})

        data = client.get(f"/api-keys/{key['id']}/usage").json()
        assert data["keyInfo"]["status"] == "revoked"
        assert data["records"][0]["status"] == "revoked"

    def test_records_are_scoped_to_the_key(self, client, issue_key):
        mine = issue_key(owner="mine")
        other = issue_key(owner="other")
        _validate(client, mine["key"])
        _validate(client, other["key"])
        _validate(client, other["key"])

        assert client.get(f"/api-keys/{mine['id']}/usage").json()["totalRequests"] == 1
        assert client.get(f"/api-keys/{other['id']}/usage").json()["totalRequests"] == 2
