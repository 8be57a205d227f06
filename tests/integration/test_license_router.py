"""Integration tests for the licensing, usage and statistics endpoints."""

from tests.conftest import PREFIX


async def generate(client, headers, **body):
    payload = {"version": "1.0", "userid": "u-1", "productid": "p-1"}
    payload.update(body)
    resp = await client.post(f"{PREFIX}/licenses/generate", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "licensary"


class TestLifecycle:
    async def test_generate_issue_activate_verify(self, client, admin_headers, user_headers):
        lic = await generate(client, admin_headers)
        assert lic["status"] == "inactive"
        assert lic["userid"] == "u-1"
        assert lic["productid"] == "p-1"
        key = lic["key"]

        resp = await client.post(f"{PREFIX}/licenses/issue", json={
            "license_key": key, "user_id": 7,
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["issued_to"] == 7

        resp = await client.post(f"{PREFIX}/licenses/activate", params={"key": key},
                                 headers=user_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

        resp = await client.get(f"{PREFIX}/licenses/verify", params={
            "key": key, "userid": "u-1", "productid": "p-1",
        })
        assert resp.status_code == 200
        assert resp.json() == {"valid": True, "status": "active"}

    async def test_activate_twice_conflicts(self, client, admin_headers):
        key = (await generate(client, admin_headers))["key"]
        await client.post(f"{PREFIX}/licenses/activate", params={"key": key}, headers=admin_headers)
        resp = await client.post(f"{PREFIX}/licenses/activate", params={"key": key},
                                 headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json()["code"] == "ALREADY_ACTIVE"

    async def test_activate_unknown_key(self, client, admin_headers):
        resp = await client.post(f"{PREFIX}/licenses/activate", params={"key": "NOPE"},
                                 headers=admin_headers)
        assert resp.status_code == 404

    async def test_get_license(self, client, admin_headers, user_headers):
        key = (await generate(client, admin_headers))["key"]
        resp = await client.get(f"{PREFIX}/licenses/{key}", headers=user_headers)
        assert resp.status_code == 200
        assert resp.json()["key"] == key

        resp = await client.get(f"{PREFIX}/licenses/MISSING", headers=user_headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": "License not found", "code": "NOT_FOUND", "detail": ""}


class TestVerify:
    async def test_missing_params(self, client):
        resp = await client.get(f"{PREFIX}/licenses/verify", params={"key": "X"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "BAD_REQUEST"

    async def test_unknown_key(self, client):
        resp = await client.get(f"{PREFIX}/licenses/verify", params={
            "key": "NOPE", "userid": "u", "productid": "p",
        })
        assert resp.status_code == 404

    async def test_binding_mismatch_is_logged(self, client, admin_headers):
        key = (await generate(client, admin_headers))["key"]
        resp = await client.get(f"{PREFIX}/licenses/verify", params={
            "key": key, "userid": "someone-else", "productid": "p-1",
        })
        assert resp.status_code == 400

        resp = await client.get(f"{PREFIX}/licenses/usage/{key}")
        actions = [u["action"] for u in resp.json()["usages"]]
        assert actions == ["verify binding mismatch"]

    async def test_inactive_license_within_window_is_valid(self, client, admin_headers):
        key = (await generate(client, admin_headers))["key"]
        resp = await client.get(f"{PREFIX}/licenses/verify", params={
            "key": key, "userid": "u-1", "productid": "p-1",
        })
        assert resp.json() == {"valid": True, "status": "inactive"}

    async def test_revoked_license_is_invalid(self, client, admin_headers):
        key = (await generate(client, admin_headers))["key"]
        await client.put(f"{PREFIX}/licenses/{key}", json={"status": "revoked"},
                         headers=admin_headers)
        resp = await client.get(f"{PREFIX}/licenses/verify", params={
            "key": key, "userid": "u-1", "productid": "p-1",
        })
        assert resp.json() == {"valid": False, "status": "revoked"}


class TestUsage:
    async def test_usage_history_newest_first(self, client, admin_headers):
        key = (await generate(client, admin_headers))["key"]
        params = {"key": key, "userid": "u-1", "productid": "p-1"}
        await client.get(f"{PREFIX}/licenses/verify", params=params)
        await client.put(f"{PREFIX}/licenses/{key}", json={"status": "revoked"},
                         headers=admin_headers)
        await client.get(f"{PREFIX}/licenses/verify", params=params)

        resp = await client.get(f"{PREFIX}/licenses/usage/{key}")
        assert resp.status_code == 200
        usages = resp.json()["usages"]
        assert [u["action"] for u in usages] == ["verify license false", "verify license true"]
        assert usages[0]["license_key"] == key

    async def test_usage_for_unknown_key_is_empty(self, client):
        resp = await client.get(f"{PREFIX}/licenses/usage/NOPE")
        assert resp.status_code == 200
        assert resp.json() == {"usages": []}


class TestUpsert:
    async def test_put_creates_active_license(self, client, admin_headers):
        resp = await client.put(f"{PREFIX}/licenses/NEW-KEY", json={
            "userid": "u-9", "productid": "p-9",
        }, headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "License created"
        assert data["license"]["status"] == "active"
        assert data["license"]["valid_until"][:4] >= "2035"

    async def test_put_patches_fields(self, client, admin_headers):
        key = (await generate(client, admin_headers))["key"]
        resp = await client.put(f"{PREFIX}/licenses/{key}", json={
            "version": "2.0", "validuntil": "2030-01-02T03:04:05.000000", "permissions": "",
        }, headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "License updated"
        assert data["license"]["version"] == "2.0"
        assert data["license"]["valid_until"].startswith("2030-01-02T03:04:05")
        assert data["license"]["userid"] == "u-1"

    async def test_put_unknown_status(self, client, admin_headers):
        resp = await client.put(f"{PREFIX}/licenses/K", json={"status": "bogus"},
                                headers=admin_headers)
        assert resp.status_code == 400

    async def test_put_requires_admin(self, client, user_headers):
        resp = await client.put(f"{PREFIX}/licenses/K", json={}, headers=user_headers)
        assert resp.status_code == 403


class TestListAndDelete:
    async def test_list_with_filters(self, client, admin_headers):
        await generate(client, admin_headers, userid="a")
        await generate(client, admin_headers, userid="b")
        await client.put(f"{PREFIX}/licenses/ACTIVE-1", json={"userid": "a"},
                         headers=admin_headers)

        resp = await client.get(f"{PREFIX}/licenses", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 3

        resp = await client.get(f"{PREFIX}/licenses", params={"userid": "a"},
                                headers=admin_headers)
        assert resp.json()["total"] == 2

        resp = await client.get(f"{PREFIX}/licenses", params={"status": "active"},
                                headers=admin_headers)
        assert [lic["key"] for lic in resp.json()["licenses"]] == ["ACTIVE-1"]

    async def test_list_pagination(self, client, admin_headers):
        for _ in range(3):
            await generate(client, admin_headers)
        resp = await client.get(f"{PREFIX}/licenses", params={"page": 2, "page_size": 2},
                                headers=admin_headers)
        data = resp.json()
        assert data["total"] == 3
        assert len(data["licenses"]) == 1
        assert data["page"] == 2

    async def test_bad_page_size(self, client, admin_headers):
        resp = await client.get(f"{PREFIX}/licenses", params={"page_size": 0},
                                headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid input"

    async def test_delete(self, client, admin_headers):
        key = (await generate(client, admin_headers))["key"]
        resp = await client.delete(f"{PREFIX}/licenses/{key}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "License deleted"}

        resp = await client.delete(f"{PREFIX}/licenses/{key}", headers=admin_headers)
        assert resp.status_code == 404


class TestAccessControl:
    async def test_generate_requires_token(self, client):
        resp = await client.post(f"{PREFIX}/licenses/generate", json={})
        assert resp.status_code == 401
        assert resp.json()["code"] == "UNAUTHORIZED"

    async def test_generate_requires_admin(self, client, user_headers):
        resp = await client.post(f"{PREFIX}/licenses/generate", json={}, headers=user_headers)
        assert resp.status_code == 403

    async def test_bad_token(self, client):
        resp = await client.get(f"{PREFIX}/licenses/ANY",
                                headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401


class TestStatistics:
    async def test_statistics(self, client, admin_headers):
        key = (await generate(client, admin_headers, productid="p-stats"))["key"]
        await client.post(f"{PREFIX}/licenses/activate", params={"key": key},
                          headers=admin_headers)
        await client.get(f"{PREFIX}/licenses/verify", params={
            "key": key, "userid": "u-1", "productid": "p-stats",
        })

        resp = await client.get(f"{PREFIX}/licenses/statistics", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_licenses"] == 1
        assert data["active_licenses"] == 1
        assert data["licenses_by_product"] == {"p-stats": 1}
        today = data["daily_usage"][-1]
        assert today["total_checks"] == 1
        assert today["new_activations"] == 1
        assert today["active_users"] == 1

    async def test_bad_date(self, client, admin_headers):
        resp = await client.get(f"{PREFIX}/licenses/statistics",
                                params={"start_date": "yesterday"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "start_date" in resp.json()["error"]

    async def test_statistics_requires_admin(self, client, user_headers):
        resp = await client.get(f"{PREFIX}/licenses/statistics", headers=user_headers)
        assert resp.status_code == 403
