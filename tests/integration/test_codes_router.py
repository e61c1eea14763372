"""Integration tests for admin license code endpoints."""

import pytest


class TestGenerateCodes:
    async def test_generate(self, client, admin_headers):
        resp = await client.post("/admin/codes/generate", json={
            "amount": 3, "credit_type": "both", "video_minutes": 60, "article_count": 2,
        }, headers=admin_headers)
        assert resp.status_code == 201
        data = resp.json()
        assert data["count"] == 3
        assert data["requested"] == 3
        assert data["message"] == "Codes generated successfully"
        assert len({c["code"] for c in data["codes"]}) == 3
        for code in data["codes"]:
            assert code["code"].startswith("GIFT-")
            assert code["redeemed"] is False
            assert code["credit_value"] == 0

    async def test_custom_prefix(self, client, admin_headers):
        resp = await client.post("/admin/codes/generate", json={
            "amount": 1, "credit_value": 10, "prefix": "summer",
        }, headers=admin_headers)
        assert resp.json()["codes"][0]["code"].startswith("SUMMER-")

    @pytest.mark.parametrize("amount", [0, 101])
    async def test_amount_out_of_range(self, client, admin_headers, amount):
        resp = await client.post("/admin/codes/generate", json={
            "amount": amount, "credit_value": 10,
        }, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_value_too_large(self, client, admin_headers):
        resp = await client.post("/admin/codes/generate", json={
            "amount": 1, "credit_value": 2**70,
        }, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_unknown_credit_type(self, client, admin_headers):
        resp = await client.post("/admin/codes/generate", json={
            "amount": 1, "credit_type": "gold", "credit_value": 10,
        }, headers=admin_headers)
        assert resp.status_code == 400

    async def test_requires_admin(self, client):
        resp = await client.post("/admin/codes/generate", json={"amount": 1, "credit_value": 10})
        assert resp.status_code == 403

    async def test_wrong_admin_key(self, client):
        resp = await client.post(
            "/admin/codes/generate",
            json={"amount": 1, "credit_value": 10},
            headers={"X-Ledger-Api-Key": "wrong"},
        )
        assert resp.status_code == 403

    async def test_generated_code_is_redeemable(self, client, admin_headers, user_headers):
        resp = await client.post("/admin/codes/generate", json={
            "amount": 1, "credit_value": 25,
        }, headers=admin_headers)
        code = resp.json()["codes"][0]["code"]

        redeem = await client.post(
            "/credits/redeem", json={"code": code.lower()}, headers=user_headers("user-1"),
        )
        assert redeem.status_code == 200
        assert redeem.json()["credits"]["balance"] == 25


class TestLicenseReport:
    async def _seed(self, client, admin_headers, user_headers):
        resp = await client.post("/admin/codes/generate", json={
            "amount": 3, "credit_value": 10, "prefix": "RPT",
        }, headers=admin_headers)
        codes = [c["code"] for c in resp.json()["codes"]]
        await client.post("/credits/redeem", json={"code": codes[0]}, headers=user_headers("buyer-1"))
        return codes

    async def test_report(self, client, admin_headers, user_headers):
        await self._seed(client, admin_headers, user_headers)
        resp = await client.get("/admin/reports/licenses", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["pagination"]["total"] == 3
        assert len(data["data"]) == 3

    async def test_filters(self, client, admin_headers, user_headers):
        codes = await self._seed(client, admin_headers, user_headers)

        redeemed = await client.get(
            "/admin/reports/licenses", params={"status": "redeemed"}, headers=admin_headers,
        )
        rows = redeemed.json()["data"]
        assert [r["code"] for r in rows] == [codes[0]]
        assert rows[0]["redeemed_by"] == "buyer-1"

        search = await client.get(
            "/admin/reports/licenses", params={"search": codes[1][-4:]}, headers=admin_headers,
        )
        assert codes[1] in [r["code"] for r in search.json()["data"]]

    async def test_pagination(self, client, admin_headers, user_headers):
        await self._seed(client, admin_headers, user_headers)
        resp = await client.get(
            "/admin/reports/licenses", params={"page": 2, "limit": 2}, headers=admin_headers,
        )
        data = resp.json()
        assert len(data["data"]) == 1
        assert data["pagination"]["pages"] == 2

    async def test_invalid_status(self, client, admin_headers):
        resp = await client.get(
            "/admin/reports/licenses", params={"status": "expired"}, headers=admin_headers,
        )
        assert resp.status_code == 400

    async def test_requires_admin(self, client):
        resp = await client.get("/admin/reports/licenses")
        assert resp.status_code == 403


class TestGetCode:
    async def test_lookup(self, client, admin_headers, user_headers):
        resp = await client.post("/admin/codes/generate", json={
            "amount": 1, "credit_value": 15,
        }, headers=admin_headers)
        code = resp.json()["codes"][0]["code"]
        await client.post("/credits/redeem", json={"code": code}, headers=user_headers("buyer-1"))

        found = await client.get(f"/admin/codes/{code.lower()}", headers=admin_headers)
        assert found.status_code == 200
        data = found.json()
        assert data["code"] == code
        assert data["credit_value"] == 15
        assert data["redeemed"] is True
        assert data["redeemed_by"] == "buyer-1"

    async def test_unknown_code(self, client, admin_headers):
        resp = await client.get("/admin/codes/GIFT-NOPE0000", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    async def test_requires_admin(self, client):
        resp = await client.get("/admin/codes/GIFT-NOPE0000")
        assert resp.status_code == 403
