"""User management route tests"""

import pytest

from tests.factories import PASSWORD


class TestUserAdmin:

    @pytest.mark.asyncio
    async def test_admin_lists_users(self, test_client, admin, member):
        response = await test_client.get("/users", headers=admin["headers"])

        assert response.status_code == 200
        emails = [u["email"] for u in response.json()]
        assert "alice@example.com" in emails

    @pytest.mark.asyncio
    async def test_member_cannot_list_users(self, test_client, member):
        response = await test_client.get("/users", headers=member["headers"])
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_add_and_remove_team_member(self, test_client, admin, member, team):
        added = await test_client.post(
            f"/users/{member['id']}/teams", json={"team_id": team["id"]}, headers=admin["headers"]
        )
        assert added.json()["teams"] == [team["id"]]

        removed = await test_client.delete(f"/users/{member['id']}/teams/{team['id']}", headers=admin["headers"])
        assert removed.json()["teams"] == []

    @pytest.mark.asyncio
    async def test_delete_user(self, test_client, admin, member):
        response = await test_client.delete(f"/users/{member['id']}", headers=admin["headers"])
        assert response.status_code == 200

        login = await test_client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert login.status_code == 401

        me = await test_client.get("/auth/me", headers=member["headers"])
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_cannot_delete_self(self, test_client, admin):
        response = await test_client.delete(f"/users/{admin['id']}", headers=admin["headers"])
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_missing_user(self, test_client, admin):
        response = await test_client.delete("/users/missing", headers=admin["headers"])
        assert response.status_code == 404
