"""Integration tests for prompt template routes.

Tests cover:
- Creating user templates with placeholders and LLM settings
- Listing: system templates plus the viewer's own, scope and inactive filters
- Other users' templates are invisible (404 E_TEMPLATE_NOT_FOUND)
- System templates are read-only through the public API (403)
- Usage counting and the most-used listing
- System templates created through the internal API
"""

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from nexustech.db.models import PromptTemplate
from nexustech.services.prompt_templates import clamp_popular_limit
from tests.factories import (
    create_test_notebook_for,
    create_test_prompt_template,
    create_test_user,
)
from tests.helpers import auth_headers, create_test_subject, guest_headers

PLACEHOLDER = {"name": "TOPIC", "label": "Topic", "type": "textarea"}


def _create(client: TestClient, headers: dict, **overrides):
    body = {"name": "Explain", "template_content": "Explain [TOPIC]", **overrides}
    return client.post("/prompt-templates", json=body, headers=headers)


def _names(response) -> list[str]:
    return [row["name"] for row in response.json()["data"]]


class TestCreatePromptTemplate:
    def test_create_user_template(self, client: TestClient, subject: str):
        response = _create(
            client,
            auth_headers(subject),
            placeholders=[PLACEHOLDER],
            llm_config={"model_name": "openai/gpt-4o", "temperature": 0.3},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["owner_id"] == subject
        assert data["is_system_defined"] is False
        assert data["is_active"] is True
        assert data["usage_count"] == 0
        assert data["last_used_at"] is None
        assert data["placeholders"][0]["name"] == "TOPIC"
        assert data["placeholders"][0]["optional"] is False
        assert data["llm_config"]["temperature"] == 0.3

    def test_dropdown_needs_options(self, client: TestClient, subject: str):
        response = _create(
            client,
            auth_headers(subject),
            placeholders=[{"name": "STYLE", "label": "Style", "type": "dropdown"}],
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_placeholder_names_must_be_unique(self, client: TestClient, subject: str):
        response = _create(client, auth_headers(subject), placeholders=[PLACEHOLDER, PLACEHOLDER])

        assert response.status_code == 400

    def test_empty_content_is_rejected(self, client: TestClient, subject: str):
        assert _create(client, auth_headers(subject), template_content="").status_code == 400

    def test_guests_cannot_create(self, client: TestClient, engine):
        assert _create(client, guest_headers()).status_code == 401

    def test_linked_tags_must_be_visible(self, client: TestClient, db_session: Session):
        owner = create_test_user(db_session)
        _, notebook_id = create_test_notebook_for(db_session, owner)
        tag = client.post(
            f"/notebooks/{notebook_id}/tags",
            json={"name": "ideas"},
            headers=auth_headers(owner.subject),
        ).json()["data"]

        linked = _create(client, auth_headers(owner.subject), tag_ids=[tag["id"]])
        foreign = _create(client, auth_headers(create_test_subject()), tag_ids=[tag["id"]])

        assert linked.json()["data"]["tag_ids"] == [tag["id"]]
        assert foreign.status_code == 404
        assert foreign.json()["error"]["code"] == "E_TAG_NOT_FOUND"


class TestListPromptTemplates:
    def test_system_and_own_templates_oldest_first(
        self, client: TestClient, db_session: Session, subject: str
    ):
        create_test_prompt_template(db_session, subject, name="Mine", created_at=2000)
        create_test_prompt_template(db_session, None, name="System", created_at=1000)
        create_test_prompt_template(db_session, "someone_else", name="Theirs", created_at=1500)

        response = client.get("/prompt-templates", headers=auth_headers(subject))

        assert response.status_code == 200
        assert _names(response) == ["System", "Mine"]

    def test_scope_filters(self, client: TestClient, db_session: Session, subject: str):
        create_test_prompt_template(db_session, subject, name="Mine")
        create_test_prompt_template(db_session, None, name="System")
        headers = auth_headers(subject)

        system = client.get("/prompt-templates", params={"scope": "system"}, headers=headers)
        mine = client.get("/prompt-templates", params={"scope": "mine"}, headers=headers)

        assert _names(system) == ["System"]
        assert _names(mine) == ["Mine"]

    def test_inactive_templates(self, client: TestClient, db_session: Session, subject: str):
        create_test_prompt_template(db_session, subject, name="Draft", is_active=False)
        create_test_prompt_template(db_session, None, name="Retired", is_active=False)
        headers = auth_headers(subject)

        default = client.get("/prompt-templates", headers=headers)
        with_inactive = client.get(
            "/prompt-templates", params={"include_inactive": True}, headers=headers
        )

        assert _names(default) == []
        # include_inactive reveals only the viewer's own templates
        assert _names(with_inactive) == ["Draft"]

    def test_guests_see_system_templates(self, client: TestClient, db_session: Session):
        create_test_prompt_template(db_session, None, name="System")
        create_test_prompt_template(db_session, "someone_else", name="Theirs")

        response = client.get("/prompt-templates", headers=guest_headers())
        mine = client.get("/prompt-templates", params={"scope": "mine"}, headers=guest_headers())

        assert _names(response) == ["System"]
        assert mine.json()["data"] == []

    def test_invalid_scope(self, client: TestClient, subject: str):
        response = client.get(
            "/prompt-templates", params={"scope": "everyone"}, headers=auth_headers(subject)
        )

        assert response.status_code == 400


class TestGetUpdateDelete:
    def test_other_users_template_is_not_found(
        self, client: TestClient, db_session: Session, subject: str
    ):
        template_id = create_test_prompt_template(db_session, "someone_else")
        headers = auth_headers(subject)

        for response in (
            client.get(f"/prompt-templates/{template_id}", headers=headers),
            client.patch(f"/prompt-templates/{template_id}", json={"name": "x"}, headers=headers),
            client.delete(f"/prompt-templates/{template_id}", headers=headers),
            client.post(f"/prompt-templates/{template_id}/use", headers=headers),
        ):
            assert response.status_code == 404
            assert response.json()["error"]["code"] == "E_TEMPLATE_NOT_FOUND"

    def test_partial_update(self, client: TestClient, subject: str):
        headers = auth_headers(subject)
        template = _create(client, headers, description="old").json()["data"]

        response = client.patch(
            f"/prompt-templates/{template['id']}",
            json={"description": "new", "is_active": False, "name": None},
            headers=headers,
        )

        data = response.json()["data"]
        assert data["description"] == "new"
        assert data["is_active"] is False
        assert data["name"] == "Explain"
        assert data["template_content"] == "Explain [TOPIC]"

    def test_update_replaces_placeholders(self, client: TestClient, subject: str):
        headers = auth_headers(subject)
        template = _create(client, headers, placeholders=[PLACEHOLDER]).json()["data"]
        dropdown = {"name": "STYLE", "label": "Style", "type": "dropdown", "options": ["a"]}

        response = client.patch(
            f"/prompt-templates/{template['id']}",
            json={"placeholders": [dropdown]},
            headers=headers,
        )

        assert [row["name"] for row in response.json()["data"]["placeholders"]] == ["STYLE"]

    def test_system_templates_are_read_only(
        self, client: TestClient, db_session: Session, subject: str
    ):
        template_id = create_test_prompt_template(db_session, None)
        headers = auth_headers(subject)

        read = client.get(f"/prompt-templates/{template_id}", headers=headers)
        update = client.patch(
            f"/prompt-templates/{template_id}", json={"name": "mine now"}, headers=headers
        )
        delete = client.delete(f"/prompt-templates/{template_id}", headers=headers)

        assert read.status_code == 200
        assert update.status_code == 403
        assert delete.status_code == 403

    def test_delete(self, client: TestClient, db_session: Session, subject: str):
        headers = auth_headers(subject)
        template = _create(client, headers).json()["data"]

        response = client.delete(f"/prompt-templates/{template['id']}", headers=headers)

        assert response.status_code == 204
        assert client.get(f"/prompt-templates/{template['id']}", headers=headers).status_code == 404
        db_session.expire_all()
        assert db_session.scalars(select(PromptTemplate)).all() == []


class TestUsage:
    def test_use_counts_and_stamps(self, client: TestClient, subject: str):
        headers = auth_headers(subject)
        template = _create(client, headers).json()["data"]

        client.post(f"/prompt-templates/{template['id']}/use", headers=headers)
        response = client.post(f"/prompt-templates/{template['id']}/use", headers=headers)

        data = response.json()["data"]
        assert data["usage_count"] == 2
        assert data["last_used_at"] is not None
        assert data["updated_at"] == data["last_used_at"]

    def test_guests_can_use_system_templates(self, client: TestClient, db_session: Session):
        template_id = create_test_prompt_template(db_session, None)

        response = client.post(f"/prompt-templates/{template_id}/use", headers=guest_headers())

        assert response.status_code == 200
        assert response.json()["data"]["usage_count"] == 1

    def test_popular_most_used_first(self, client: TestClient, db_session: Session, subject: str):
        create_test_prompt_template(db_session, None, name="Sometimes", usage_count=3)
        create_test_prompt_template(db_session, subject, name="Often", usage_count=9)
        create_test_prompt_template(db_session, None, name="Never", usage_count=0)
        create_test_prompt_template(
            db_session, None, name="Retired", usage_count=50, is_active=False
        )
        create_test_prompt_template(db_session, "someone_else", name="Theirs", usage_count=20)
        headers = auth_headers(subject)

        response = client.get("/prompt-templates/popular", headers=headers)
        limited = client.get("/prompt-templates/popular", params={"limit": 1}, headers=headers)

        assert _names(response) == ["Often", "Sometimes"]
        assert _names(limited) == ["Often"]

    def test_popular_limit_is_clamped(self):
        assert clamp_popular_limit(0) == 1
        assert clamp_popular_limit(10) == 10
        assert clamp_popular_limit(500) == 50


class TestSystemTemplates:
    def test_internal_create_is_shared(self, client: TestClient, engine):
        response = client.post(
            "/internal/prompt-templates",
            json={
                "name": "Knowledge Graph",
                "template_content": "Map [TOPIC]",
                "placeholders": [PLACEHOLDER],
            },
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["is_system_defined"] is True
        assert data["owner_id"] is None

        listed = client.get("/prompt-templates", headers=auth_headers(create_test_subject()))
        assert _names(listed) == ["Knowledge Graph"]
