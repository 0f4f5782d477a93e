"""
Tests for authorization boundaries — route-level role enforcement and
cross-participant isolation.

These tests verify three properties:

1. **Authentication**: every league, account and admin endpoint rejects
   requests without a bearer token (401).

2. **Role enforcement**: USER accounts, and STAFF accounts without the
   matching permission, cannot reach any /admin/* endpoint. The permission
   gate runs BEFORE any lookup, so a 403 never leaks whether the target
   exists.

3. **Account isolation**: participants and directors only see the accounts
   they own or direct; seeing a league's accounts in aggregate is open to
   any signed-in user.
"""

import uuid

import pytest
import pytest_asyncio

from league_ledger.models.user import Role


FAKE_ID = str(uuid.uuid4())

ADMIN_ENDPOINTS = [
    ("POST", "/admin/leagues", {"name": "Night Series", "season": 1}),
    ("POST", f"/admin/leagues/{FAKE_ID}/teams", {"name": "Pit Wall"}),
    (
        "POST",
        f"/admin/leagues/{FAKE_ID}/participants",
        {"user_id": FAKE_ID, "team_id": FAKE_ID, "roles": ["director"]},
    ),
    ("POST", f"/admin/leagues/{FAKE_ID}/matches", {"round": 1, "match_date": "2026-03-01"}),
    ("PUT", f"/admin/matches/{FAKE_ID}", {"status": "completed"}),
    (
        "POST",
        f"/admin/leagues/{FAKE_ID}/transactions",
        {"from_account_id": FAKE_ID, "to_account_id": FAKE_ID, "amount": 1, "category": "prize"},
    ),
    ("GET", f"/admin/leagues/{FAKE_ID}/finance/audit", None),
    ("GET", "/admin/users", None),
    ("GET", f"/admin/users/{FAKE_ID}", None),
    ("PUT", f"/admin/users/{FAKE_ID}/role", {"role": "ADMIN", "version": 1}),
    ("PUT", f"/admin/users/{FAKE_ID}/permissions", {"permissions": ["*"], "version": 1}),
    ("GET", f"/admin/users/{FAKE_ID}/history", None),
    ("GET", "/admin/permission-history", None),
    ("GET", "/admin/permissions", None),
    ("GET", "/admin/stats", None),
]

LEAGUE_ENDPOINTS = [
    ("GET", f"/leagues/{FAKE_ID}", None),
    ("GET", f"/leagues/{FAKE_ID}/teams", None),
    ("GET", f"/leagues/{FAKE_ID}/accounts", None),
    ("GET", f"/leagues/{FAKE_ID}/my-account", None),
    ("GET", f"/leagues/{FAKE_ID}/transactions", None),
    (
        "POST",
        f"/leagues/{FAKE_ID}/transactions",
        {"to_account_id": FAKE_ID, "amount": 1, "category": "prize"},
    ),
    ("GET", f"/leagues/{FAKE_ID}/finance/stats", None),
    ("GET", f"/accounts/{FAKE_ID}", None),
    ("GET", f"/accounts/{FAKE_ID}/balance", None),
    ("GET", f"/accounts/{FAKE_ID}/transactions", None),
]


class TestAuthenticationRequired:
    """No token, no access."""

    @pytest.mark.parametrize("method,path,body", ADMIN_ENDPOINTS + LEAGUE_ENDPOINTS)
    async def test_rejects_anonymous(self, client, method, path, body):
        resp = await client.request(method, path, json=body)
        assert resp.status_code == 401


class TestNonAdminBlockedFromAdminEndpoints:
    """USER and unprivileged STAFF cannot reach any /admin/* endpoint.

    Every admin route depends on require_permission (or
    require_fund_manager), which checks the role and stored permission
    codes and returns 403. The fake ids would 404 if the gate let the
    request through.
    """

    @pytest.mark.parametrize("method,path,body", ADMIN_ENDPOINTS)
    async def test_user_is_forbidden(self, client, make_user, method, path, body):
        user = await make_user("driver@example.com")
        resp = await client.request(method, path, json=body, headers=user["headers"])
        assert resp.status_code == 403

    @pytest.mark.parametrize("method,path,body", ADMIN_ENDPOINTS)
    async def test_staff_without_permissions_is_forbidden(
        self, client, make_user, method, path, body
    ):
        staff = await make_user("steward@example.com", role=Role.STAFF)
        resp = await client.request(method, path, json=body, headers=staff["headers"])
        assert resp.status_code == 403

    async def test_wildcard_staff_passes_the_gate(self, client, make_user):
        staff = await make_user("chief@example.com", role=Role.STAFF, permissions=["*"])
        resp = await client.get(f"/admin/users/{FAKE_ID}", headers=staff["headers"])
        assert resp.status_code == 404

    async def test_permission_is_scoped_to_its_endpoint(self, client, make_user):
        """fund.view opens the audit, not user administration."""
        viewer = await make_user("treasurer@example.com", role=Role.STAFF, permissions=["fund.view"])

        resp = await client.get(
            f"/admin/leagues/{FAKE_ID}/finance/audit", headers=viewer["headers"]
        )
        assert resp.status_code == 404

        resp = await client.get("/admin/users", headers=viewer["headers"])
        assert resp.status_code == 403

    async def test_participant_director_is_not_staff(self, client, league, director):
        """Directing a team grants nothing on /admin/*."""
        resp = await client.get(
            f"/admin/leagues/{league['id']}/finance/audit", headers=director["headers"]
        )
        assert resp.status_code == 403


class TestCrossParticipantAccountAccess:
    """Participants only see the accounts they own or direct."""

    @pytest_asyncio.fixture
    async def driver(self, client, admin, league, make_user):
        """A plain participant on team B."""
        user = await make_user("driver@example.com", nickname="Rookie")
        resp = await client.post(
            f"/admin/leagues/{league['id']}/participants",
            json={"user_id": str(user["id"]), "team_id": league["team_b"]["id"], "roles": []},
            headers=admin["headers"],
        )
        assert resp.status_code == 201, resp.text
        user["participant_account_id"] = resp.json()["account"]["id"]
        return user

    @pytest.mark.parametrize("suffix", ["", "/balance", "/transactions"])
    async def test_driver_cannot_view_other_team(self, client, league, driver, suffix):
        resp = await client.get(
            f"/accounts/{league['team_a']['account_id']}{suffix}", headers=driver["headers"]
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize("suffix", ["", "/balance", "/transactions"])
    async def test_driver_cannot_view_own_team_without_directing(
        self, client, league, driver, suffix
    ):
        resp = await client.get(
            f"/accounts/{league['team_b']['account_id']}{suffix}", headers=driver["headers"]
        )
        assert resp.status_code == 403

    async def test_director_cannot_view_another_participant(self, client, director, driver):
        resp = await client.get(
            f"/accounts/{driver['participant_account_id']}", headers=director["headers"]
        )
        assert resp.status_code == 403

    async def test_driver_cannot_view_system_account(self, client, league, driver):
        resp = await client.get(
            f"/accounts/{league['system_account_id']}", headers=driver["headers"]
        )
        assert resp.status_code == 403

    async def test_driver_sees_own_account(self, client, driver):
        resp = await client.get(
            f"/accounts/{driver['participant_account_id']}/balance", headers=driver["headers"]
        )
        assert resp.status_code == 200
        assert resp.json()["match"] is True

    async def test_driver_cannot_transfer(self, client, league, driver):
        resp = await client.post(
            f"/leagues/{league['id']}/transactions",
            json={
                "from_account_id": league["team_b"]["account_id"],
                "to_account_id": league["team_a"]["account_id"],
                "amount": 10,
                "category": "transfer",
            },
            headers=driver["headers"],
        )
        assert resp.status_code == 403

    async def test_league_aggregates_are_open_to_signed_in_users(self, client, league, driver):
        for path in ("", "/teams", "/accounts", "/transactions", "/finance/stats"):
            resp = await client.get(f"/leagues/{league['id']}{path}", headers=driver["headers"])
            assert resp.status_code == 200, path
