"""Tests for demo data seeding and default roadmap templates."""
from tracker_core import crud
from tracker_core.hierarchy_validation import is_valid_parent_child
from tracker_core.models import RoadmapTemplate, WorkItem
from tracker_core.seed import seed


class TestSeed:
    def test_seed_inserts_once(self, db):
        assert seed(db) is True
        assert seed(db) is False

        assert crud.get_user_by_email(db, "admin@company.com") is not None
        assert len(crud.get_team_members(db, crud.get_team_by_name(db, "Alpha Squad").id)) == 3

    def test_seeded_tree_is_valid(self, db):
        seed(db)

        items = db.query(WorkItem).all()
        assert len(items) == 3
        for item in items:
            if item.parent is not None:
                assert is_valid_parent_child(item.parent.type, item.type)

    def test_default_templates(self, db):
        seed(db)

        templates = crud.get_roadmap_templates(db)
        assert {t.name for t in templates} == {"Product Roadmap", "Digital Marketing Plan", "Sales & CRM"}
        assert all(len(t.streams) == 5 for t in templates)

    def test_template_seed_keeps_existing_rows(self, db):
        crud.create_roadmap_template(db, name="Custom", streams=["One"])

        templates = crud.seed_roadmap_templates(db)

        assert [t.name for t in templates] == ["Custom"]
        assert db.query(RoadmapTemplate).count() == 1


class TestRoadmapTemplateApi:
    def test_crud_cycle(self, client, auth_headers, scrum_master):
        headers = auth_headers(scrum_master)

        created = client.post(
            "/api/roadmap-templates/",
            json={"name": "Ops", "streams": ["Infra", "Security"]},
            headers=headers,
        )
        assert created.status_code == 201
        template_id = created.json()["id"]

        updated = client.put(
            f"/api/roadmap-templates/{template_id}",
            json={"name": "Ops v2", "streams": ["Infra"]},
            headers=headers,
        )
        assert updated.json()["name"] == "Ops v2"
        assert updated.json()["streams"] == ["Infra"]

        assert client.delete(f"/api/roadmap-templates/{template_id}", headers=headers).status_code == 204
        assert client.delete(f"/api/roadmap-templates/{template_id}", headers=headers).status_code == 404

    def test_seed_endpoint(self, client, auth_headers, admin):
        response = client.post("/api/roadmap-templates/seed", headers=auth_headers(admin))

        assert response.status_code == 200
        assert len(response.json()) == 3

    def test_regular_user_reads_only(self, client, auth_headers, make_user):
        user = make_user()

        assert client.get("/api/roadmap-templates/", headers=auth_headers(user)).status_code == 200
        response = client.post("/api/roadmap-templates/", json={"name": "Mine"}, headers=auth_headers(user))
        assert response.status_code == 403
