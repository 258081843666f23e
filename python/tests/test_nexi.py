"""Integration tests for nexus and notebook routes.

Tests cover:
- Create, list, get, update and delete nexi
- Home page ordering: the public manual first, then own nexi by order
- Reorder rewrites order from list indexes
- Guest nexus creation and its one-per-session limit
- Notebooks are listed in content-item order
- The public manual is readable but not writable
- Other users' nexi look missing
"""

from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nexustech.db.models import Notebook
from tests.factories import create_test_manual, create_test_notebook
from tests.helpers import auth_headers, create_test_subject, guest_headers


def _create_nexus(client: TestClient, headers: dict, name: str = "My Nexus") -> dict:
    response = client.post("/nexi", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _create_notebook(client: TestClient, headers: dict, nexus_id: str, name: str) -> dict:
    response = client.post(f"/nexi/{nexus_id}/notebooks", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestNexusCrud:
    def test_create_returns_owned_nexus(self, client: TestClient, subject: str):
        nexus = _create_nexus(client, auth_headers(subject), "Physics")

        assert nexus["name"] == "Physics"
        assert nexus["owner_id"] == subject
        assert nexus["is_shared"] is False
        assert nexus["order"] == 0

    def test_get_update_delete(self, client: TestClient, subject: str):
        headers = auth_headers(subject)
        nexus = _create_nexus(client, headers)

        fetched = client.get(f"/nexi/{nexus['id']}", headers=headers)
        assert fetched.json()["data"]["id"] == nexus["id"]

        updated = client.patch(
            f"/nexi/{nexus['id']}", json={"description": "notes"}, headers=headers
        )
        assert updated.status_code == 200
        assert updated.json()["data"]["description"] == "notes"
        assert updated.json()["data"]["name"] == "My Nexus"

        deleted = client.delete(f"/nexi/{nexus['id']}", headers=headers)
        assert deleted.status_code == 204
        assert client.get(f"/nexi/{nexus['id']}", headers=headers).status_code == 404

    def test_other_users_nexus_is_not_found(self, client: TestClient, subject: str):
        nexus = _create_nexus(client, auth_headers(subject))
        stranger = auth_headers(create_test_subject())

        assert client.get(f"/nexi/{nexus['id']}", headers=stranger).status_code == 404
        assert client.delete(f"/nexi/{nexus['id']}", headers=stranger).status_code == 404

    def test_missing_nexus_is_not_found(self, client: TestClient, subject: str):
        response = client.get(f"/nexi/{uuid4()}", headers=auth_headers(subject))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_NEXUS_NOT_FOUND"

    def test_blank_name_is_rejected(self, client: TestClient, subject: str):
        response = client.post("/nexi", json={"name": ""}, headers=auth_headers(subject))
        assert response.status_code == 400


class TestHomeOrdering:
    def test_manual_first_then_own_by_order(
        self, client: TestClient, db_session: Session, subject: str
    ):
        headers = auth_headers(subject)
        create_test_manual(db_session)
        first = _create_nexus(client, headers, "First")
        second = _create_nexus(client, headers, "Second")
        _create_nexus(client, auth_headers(create_test_subject()), "Not mine")

        names = [nexus["name"] for nexus in client.get("/nexi", headers=headers).json()["data"]]
        assert names == ["USER MANUAL", "First", "Second"]

        reordered = client.post(
            "/nexi/reorder", json={"nexus_ids": [second["id"], first["id"]]}, headers=headers
        )

        assert reordered.status_code == 200
        assert [nexus["name"] for nexus in reordered.json()["data"]] == [
            "USER MANUAL",
            "Second",
            "First",
        ]
        assert reordered.json()["data"][0]["is_shared"] is True

    def test_reorder_ignores_foreign_ids(self, client: TestClient, subject: str):
        headers = auth_headers(subject)
        mine = _create_nexus(client, headers)
        theirs = _create_nexus(client, auth_headers(create_test_subject()))

        response = client.post(
            "/nexi/reorder", json={"nexus_ids": [theirs["id"], mine["id"]]}, headers=headers
        )

        assert [nexus["id"] for nexus in response.json()["data"]] == [mine["id"]]


class TestGuestNexus:
    def test_guest_creates_one_nexus(self, client: TestClient):
        headers = guest_headers("guest-abc")

        created = client.post("/guest/nexi", json={"name": "Scratch"}, headers=headers)
        assert created.status_code == 201
        nexus = created.json()["data"]
        assert nexus["owner_id"] is None
        assert nexus["is_shared"] is True

        again = client.post("/guest/nexi", json={"name": "Another"}, headers=headers)
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "E_GUEST_NEXUS_LIMIT"

    def test_guest_post_to_nexi_creates_guest_nexus(self, client: TestClient):
        headers = guest_headers("guest-def")

        client.post("/nexi", json={"name": "Scratch"}, headers=headers)
        listed = client.get("/nexi", headers=headers).json()["data"]

        assert [nexus["name"] for nexus in listed] == ["Scratch"]

    def test_guest_nexus_is_private_to_its_session(self, client: TestClient):
        nexus = client.post(
            "/guest/nexi", json={"name": "Scratch"}, headers=guest_headers("g-1")
        ).json()["data"]

        assert client.get(f"/nexi/{nexus['id']}", headers=guest_headers("g-1")).status_code == 200
        assert client.get(f"/nexi/{nexus['id']}", headers=guest_headers("g-2")).status_code == 404

    def test_signed_in_user_cannot_use_guest_route(self, client: TestClient, subject: str):
        response = client.post("/guest/nexi", json={"name": "x"}, headers=auth_headers(subject))
        assert response.status_code == 400

    def test_guest_can_add_notebooks_to_own_nexus(self, client: TestClient):
        headers = guest_headers("g-nb")
        nexus = client.post("/guest/nexi", json={"name": "Scratch"}, headers=headers).json()[
            "data"
        ]

        notebook = _create_notebook(client, headers, nexus["id"], "Ideas")

        assert notebook["owner_id"] is None


class TestNotebooks:
    def test_notebooks_listed_in_creation_order(self, client: TestClient, subject: str):
        headers = auth_headers(subject)
        nexus = _create_nexus(client, headers)
        for name in ("A", "B", "C"):
            _create_notebook(client, headers, nexus["id"], name)

        listed = client.get(f"/nexi/{nexus['id']}/notebooks", headers=headers).json()["data"]

        assert [notebook["name"] for notebook in listed] == ["A", "B", "C"]

    def test_notebook_order_follows_locus_reorder(self, client: TestClient, subject: str):
        headers = auth_headers(subject)
        nexus = _create_nexus(client, headers)
        ids = [_create_notebook(client, headers, nexus["id"], n)["id"] for n in ("A", "B")]

        client.post(
            f"/loci/{nexus['id']}/reorder",
            json={"content_type": "notebook", "ordered_content_ids": list(reversed(ids))},
            headers=headers,
        )
        listed = client.get(f"/nexi/{nexus['id']}/notebooks", headers=headers).json()["data"]

        assert [notebook["name"] for notebook in listed] == ["B", "A"]

    def test_get_update_delete_notebook(
        self, client: TestClient, db_session: Session, subject: str
    ):
        headers = auth_headers(subject)
        nexus = _create_nexus(client, headers)
        notebook = _create_notebook(client, headers, nexus["id"], "Draft")

        updated = client.patch(
            f"/notebooks/{notebook['id']}",
            json={"name": "Final", "meta_question": "Why?"},
            headers=headers,
        )
        assert updated.json()["data"]["name"] == "Final"
        assert updated.json()["data"]["meta_question"] == "Why?"
        assert client.get(f"/notebooks/{notebook['id']}", headers=headers).status_code == 200

        assert client.delete(f"/notebooks/{notebook['id']}", headers=headers).status_code == 204
        assert client.get(f"/notebooks/{notebook['id']}", headers=headers).status_code == 404
        assert db_session.scalar(select(func.count()).select_from(Notebook)) == 0

    def test_deleting_nexus_removes_notebooks(
        self, client: TestClient, db_session: Session, subject: str
    ):
        headers = auth_headers(subject)
        nexus = _create_nexus(client, headers)
        _create_notebook(client, headers, nexus["id"], "A")

        client.delete(f"/nexi/{nexus['id']}", headers=headers)

        assert db_session.scalar(select(func.count()).select_from(Notebook)) == 0


class TestPublicManual:
    def test_manual_is_readable_by_users_and_guests(
        self, client: TestClient, db_session: Session, subject: str
    ):
        manual_id = create_test_manual(db_session)
        create_test_notebook(db_session, manual_id, None, name="Welcome")

        for headers in (auth_headers(subject), guest_headers()):
            listed = client.get(f"/nexi/{manual_id}/notebooks", headers=headers)
            assert [notebook["name"] for notebook in listed.json()["data"]] == ["Welcome"]

    def test_manual_is_read_only(self, client: TestClient, db_session: Session, subject: str):
        manual_id = create_test_manual(db_session)
        notebook_id = create_test_notebook(db_session, manual_id, None)
        headers = auth_headers(subject)

        for response in (
            client.patch(f"/nexi/{manual_id}", json={"name": "Mine"}, headers=headers),
            client.delete(f"/nexi/{manual_id}", headers=headers),
            client.post(f"/nexi/{manual_id}/notebooks", json={"name": "x"}, headers=headers),
            client.delete(f"/notebooks/{notebook_id}", headers=headers),
        ):
            assert response.status_code == 403
            assert response.json()["error"]["code"] == "E_FORBIDDEN"
