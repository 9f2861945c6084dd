"""API tests for teams and team membership."""
from tracker_core import crud
from tracker_core.models import UserRole

URL = "/api/teams/"


class TestTeams:
    def test_admin_creates_team(self, client, auth_headers, admin):
        response = client.post(URL, json={"name": "Beta Squad"}, headers=auth_headers(admin))

        assert response.status_code == 201
        assert response.json()["name"] == "Beta Squad"
        assert response.json()["created_by_user_id"] == str(admin.id)

    def test_scrum_master_cannot_create_team(self, client, auth_headers, scrum_master):
        response = client.post(URL, json={"name": "Beta Squad"}, headers=auth_headers(scrum_master))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "admin_required"

    def test_duplicate_name(self, client, auth_headers, admin, team):
        response = client.post(URL, json={"name": team.name}, headers=auth_headers(admin))
        assert response.status_code == 409

    def test_list_is_scoped_for_non_admins(self, client, db, auth_headers, admin, make_user, team):
        crud.create_team(db, name="Other Team")
        user = make_user()
        crud.add_team_member(db, team.id, user.id)

        as_admin = client.get(URL, headers=auth_headers(admin))
        as_user = client.get(URL, headers=auth_headers(user))

        assert {t["name"] for t in as_admin.json()} == {"Alpha Squad", "Other Team"}
        assert [t["name"] for t in as_user.json()] == ["Alpha Squad"]

    def test_delete_requires_admin(self, client, auth_headers, scrum_master, team):
        response = client.delete(f"{URL}{team.id}", headers=auth_headers(scrum_master))
        assert response.status_code == 403

    def test_delete_blocked_while_team_owns_projects(self, client, auth_headers, admin, team, project):
        response = client.delete(f"{URL}{team.id}", headers=auth_headers(admin))
        assert response.status_code == 400

    def test_delete_empty_team(self, client, db, auth_headers, admin, team):
        response = client.delete(f"{URL}{team.id}", headers=auth_headers(admin))

        assert response.status_code == 204
        db.expire_all()
        assert crud.get_team(db, team.id) is None

    def test_team_projects(self, client, auth_headers, admin, team, project):
        response = client.get(f"{URL}{team.id}/projects", headers=auth_headers(admin))
        assert [p["key"] for p in response.json()] == ["ECOMM"]


class TestTeamMembers:
    def test_add_and_list_members(self, client, auth_headers, scrum_master, make_user, team):
        user = make_user()

        added = client.post(
            f"{URL}{team.id}/members",
            json={"user_id": str(user.id)},
            headers=auth_headers(scrum_master),
        )
        assert added.status_code == 201
        assert added.json()["role"] == "MEMBER"
        assert added.json()["user"]["email"] == user.email

        listed = client.get(f"{URL}{team.id}/members", headers=auth_headers(scrum_master))
        assert [m["user_id"] for m in listed.json()] == [str(user.id)]

    def test_duplicate_member(self, client, db, auth_headers, admin, make_user, team):
        user = make_user()
        crud.add_team_member(db, team.id, user.id)

        response = client.post(f"{URL}{team.id}/members", json={"user_id": str(user.id)}, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_unknown_user(self, client, auth_headers, admin, team):
        response = client.post(
            f"{URL}{team.id}/members",
            json={"user_id": "00000000-0000-0000-0000-000000000000"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 404

    def test_regular_user_cannot_add_members(self, client, auth_headers, make_user, team):
        user = make_user(UserRole.USER)

        response = client.post(
            f"{URL}{team.id}/members",
            json={"user_id": str(user.id)},
            headers=auth_headers(user),
        )
        assert response.status_code == 403

    def test_remove_member(self, client, db, auth_headers, admin, make_user, team):
        user = make_user()
        crud.add_team_member(db, team.id, user.id)

        response = client.delete(f"{URL}{team.id}/members/{user.id}", headers=auth_headers(admin))

        assert response.status_code == 204
        db.expire_all()
        assert not crud.is_team_member(db, team.id, user.id)
