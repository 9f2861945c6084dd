"""API tests for projects and temporary project members."""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from tracker_core import crud
from tracker_core.crud import Store
from tracker_core.models import ProjectMemberRole, UserRole, WorkItemType, utcnow
from tracker_core.permissions import MSG_ENTITY_DELETE

URL = "/api/projects/"


@pytest.fixture
def developer(db, make_user, team):
    user = make_user(UserRole.USER)
    crud.add_team_member(db, team.id, user.id)
    return user


class TestCreateProject:
    def test_scrum_master_creates_project(self, client, auth_headers, scrum_master, team):
        response = client.post(
            URL,
            json={"key": "MOBILE", "name": "Mobile App", "team_id": str(team.id)},
            headers=auth_headers(scrum_master),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["key"] == "MOBILE"
        assert body["status"] == "ACTIVE"
        assert body["created_by_user_id"] == str(scrum_master.id)

    def test_regular_user_cannot_create(self, client, auth_headers, make_user):
        response = client.post(
            URL,
            json={"key": "NOPE", "name": "Nope"},
            headers=auth_headers(make_user(UserRole.USER)),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "scrum_master_required"

    def test_duplicate_key(self, client, auth_headers, admin, project):
        response = client.post(URL, json={"key": project.key, "name": "Again"}, headers=auth_headers(admin))
        assert response.status_code == 409

    def test_unknown_team(self, client, auth_headers, admin):
        response = client.post(
            URL,
            json={"key": "LOST", "name": "Lost", "team_id": "00000000-0000-0000-0000-000000000000"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 404

    def test_key_must_be_uppercase(self, client, auth_headers, admin):
        response = client.post(URL, json={"key": "lower", "name": "Lower"}, headers=auth_headers(admin))
        assert response.status_code == 422


class TestListProjects:
    def test_admin_sees_everything(self, client, db, auth_headers, admin, project):
        crud.create_project(db, key="SOLO", name="No team")

        response = client.get(URL, headers=auth_headers(admin))

        assert response.status_code == 200
        assert {p["key"] for p in response.json()} == {"ECOMM", "SOLO"}

    def test_user_sees_team_and_granted_projects(self, client, db, auth_headers, developer, project):
        granted = crud.create_project(db, key="GRANT", name="Granted")
        expired = crud.create_project(db, key="OLD", name="Expired grant")
        crud.create_project(db, key="HIDDEN", name="Hidden")
        crud.add_project_member(db, granted.id, developer.id, expires_at=utcnow() + timedelta(days=1))
        crud.add_project_member(db, expired.id, developer.id, expires_at=utcnow() - timedelta(days=1))

        response = client.get(URL, headers=auth_headers(developer))

        assert {p["key"] for p in response.json()} == {"ECOMM", "GRANT"}

    def test_expired_grant_hides_team_project(self, client, db, auth_headers, developer, project):
        crud.add_project_member(db, project.id, developer.id, expires_at=utcnow() - timedelta(days=1))

        listed = client.get(URL, headers=auth_headers(developer))
        fetched = client.get(f"{URL}{project.id}", headers=auth_headers(developer))

        assert listed.json() == []
        assert fetched.status_code == 403
        assert fetched.json()["detail"]["error"] == "access_expired"


class TestProjectAccess:
    def test_team_member_reads_project(self, client, auth_headers, developer, project):
        response = client.get(f"{URL}{project.id}", headers=auth_headers(developer))

        assert response.status_code == 200
        assert response.json()["name"] == "E-Commerce Platform"

    def test_outsider_is_denied(self, client, auth_headers, make_user, project):
        response = client.get(f"{URL}{project.id}", headers=auth_headers(make_user()))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "project_access_denied"

    def test_expired_grant_is_denied(self, client, db, auth_headers, make_user, project):
        user = make_user()
        crud.add_project_member(db, project.id, user.id, expires_at=utcnow() - timedelta(minutes=5))

        response = client.get(f"{URL}{project.id}", headers=auth_headers(user))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "access_expired"

    def test_unknown_project(self, client, auth_headers, admin):
        response = client.get(f"{URL}00000000-0000-0000-0000-000000000000", headers=auth_headers(admin))
        assert response.status_code == 404

    def test_store_failure_is_reported_as_500(self, client, auth_headers, admin, project):
        headers = auth_headers(admin)
        failure = OperationalError("SELECT projects", {}, Exception("connection refused"))

        with patch.object(Store, "get_project", side_effect=failure):
            response = client.get(f"{URL}{project.id}", headers=headers)

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}
        assert "connection refused" not in response.text

    def test_team_members_listing(self, client, auth_headers, developer, project):
        response = client.get(f"{URL}{project.id}/team-members", headers=auth_headers(developer))

        assert response.status_code == 200
        assert [u["id"] for u in response.json()] == [str(developer.id)]
        assert "password_hash" not in response.json()[0]

    def test_project_work_items(self, client, db, auth_headers, developer, project):
        crud.create_work_item(db, project.id, WorkItemType.TASK, "One")
        crud.create_work_item(db, project.id, WorkItemType.BUG, "Two")

        response = client.get(f"{URL}{project.id}/work-items?type=BUG", headers=auth_headers(developer))

        assert response.status_code == 200
        assert [w["title"] for w in response.json()] == ["Two"]


class TestUpdateAndDeleteProject:
    def test_patch_applies_explicit_null(self, client, auth_headers, scrum_master, project):
        response = client.patch(
            f"{URL}{project.id}",
            json={"team_id": None, "description": "Unassigned"},
            headers=auth_headers(scrum_master),
        )

        assert response.status_code == 200
        assert response.json()["team_id"] is None
        assert response.json()["description"] == "Unassigned"

    def test_scrum_master_cannot_delete(self, client, auth_headers, scrum_master, project):
        response = client.delete(f"{URL}{project.id}", headers=auth_headers(scrum_master))

        assert response.status_code == 403
        assert response.json()["detail"]["message"] == MSG_ENTITY_DELETE

    def test_admin_deletes(self, client, db, auth_headers, admin, project):
        response = client.delete(f"{URL}{project.id}", headers=auth_headers(admin))

        assert response.status_code == 204
        db.expire_all()
        assert crud.get_project(db, project.id) is None


class TestProjectMembers:
    def test_grant_temporary_access(self, client, auth_headers, scrum_master, make_user, project):
        user = make_user()
        expires_at = (utcnow() + timedelta(days=3)).isoformat()

        response = client.post(
            f"{URL}{project.id}/members",
            json={"user_id": str(user.id), "role": "MEMBER", "expires_at": expires_at},
            headers=auth_headers(scrum_master),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["role"] == "MEMBER"
        assert body["added_by_user_id"] == str(scrum_master.id)

    def test_team_member_cannot_be_granted(self, client, auth_headers, admin, developer, project):
        response = client.post(
            f"{URL}{project.id}/members",
            json={"user_id": str(developer.id)},
            headers=auth_headers(admin),
        )
        assert response.status_code == 400

    def test_duplicate_grant(self, client, db, auth_headers, admin, make_user, project):
        user = make_user()
        crud.add_project_member(db, project.id, user.id)

        response = client.post(
            f"{URL}{project.id}/members",
            json={"user_id": str(user.id)},
            headers=auth_headers(admin),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "User already has access to this project"

    def test_unknown_user(self, client, auth_headers, admin, project):
        response = client.post(
            f"{URL}{project.id}/members",
            json={"user_id": "00000000-0000-0000-0000-000000000000"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 404

    def test_list_and_revoke(self, client, db, auth_headers, admin, make_user, project):
        user = make_user()
        crud.add_project_member(db, project.id, user.id, role=ProjectMemberRole.VIEWER)

        listed = client.get(f"{URL}{project.id}/members", headers=auth_headers(admin))
        assert [m["user_id"] for m in listed.json()] == [str(user.id)]

        revoked = client.delete(f"{URL}{project.id}/members/{user.id}", headers=auth_headers(admin))
        assert revoked.status_code == 204

        again = client.delete(f"{URL}{project.id}/members/{user.id}", headers=auth_headers(admin))
        assert again.status_code == 404
