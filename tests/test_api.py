"""
HTTP tests for the /api/v1 surface: auth, error envelope, RBAC and task
dependency endpoints.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_api_root(client: AsyncClient):
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    assert response.json()["api"] == "v1"


@pytest.mark.asyncio
async def test_request_id_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


# ---------------------------------------------------------------------------
# Authentication / error envelope
# ---------------------------------------------------------------------------


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/v1/rbac/roles")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/rbac/roles", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_forbidden_envelope(self, client: AsyncClient, make, auth_headers):
        user = await make.user()
        response = await client.get(
            "/api/v1/rbac/roles", headers={**auth_headers(user.id), "X-Request-ID": "req-1"}
        )
        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "FORBIDDEN"
        assert error["status"] == 403
        assert error["request_id"] == "req-1"
        assert "role.read" in error["message"]


# ---------------------------------------------------------------------------
# RBAC
# ---------------------------------------------------------------------------


class TestRbacEndpoints:
    @pytest.mark.asyncio
    async def test_check_and_permissions(self, client: AsyncClient, make, developer, auth_headers):
        headers = auth_headers(developer.id)

        response = await client.get(
            "/api/v1/rbac/check",
            params={"user_id": developer.id, "permission": "dependency.create", "project_id": 5},
            headers=headers,
        )
        assert response.json() == {"allowed": True}

        response = await client.post(
            "/api/v1/rbac/check",
            json={"user_id": developer.id, "permission": "dependency.create", "project_id": 6},
            headers=headers,
        )
        assert response.json() == {"allowed": False}

        response = await client.get(
            "/api/v1/rbac/permissions", params={"user_id": developer.id, "project_id": 5}, headers=headers
        )
        assert "dependency.create" in response.json()["permissions"]

        response = await client.get(
            "/api/v1/rbac/permissions", params={"user_id": developer.id}, headers=headers
        )
        assert response.json()["permissions"] == []

    @pytest.mark.asyncio
    async def test_check_requires_user_id(self, client: AsyncClient, make, auth_headers):
        user = await make.user()
        response = await client.get(
            "/api/v1/rbac/check", params={"permission": "task.read"}, headers=auth_headers(user.id)
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_is_admin(self, client: AsyncClient, admin, developer, auth_headers):
        headers = auth_headers(developer.id)
        response = await client.get("/api/v1/rbac/is-admin", params={"user_id": admin.id}, headers=headers)
        assert response.json() == {"admin": True}
        response = await client.get(
            "/api/v1/rbac/is-admin", params={"user_id": developer.id}, headers=headers
        )
        assert response.json() == {"admin": False}

    @pytest.mark.asyncio
    async def test_role_admin_flow(self, client: AsyncClient, make, admin, auth_headers):
        headers = auth_headers(admin.id)

        response = await client.post(
            "/api/v1/rbac/roles", json={"name": "qa", "description": "Testers"}, headers=headers
        )
        assert response.status_code == 201
        role = response.json()
        assert role["is_system_role"] is False

        response = await client.post("/api/v1/rbac/roles", json={"name": "qa"}, headers=headers)
        assert response.status_code == 409

        response = await client.get("/api/v1/rbac/permissions/list", headers=headers)
        by_key = {p["key"]: p["id"] for p in response.json()}

        response = await client.put(
            f"/api/v1/rbac/roles/{role['id']}/permissions",
            json={"permission_ids": [by_key["task.read"], by_key["report.view"]]},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["role"]["permissions_count"] == 2

        response = await client.get(f"/api/v1/rbac/roles/{role['id']}/permissions", headers=headers)
        assert sorted(p["key"] for p in response.json()["permissions"]) == ["report.view", "task.read"]

        response = await client.patch(
            f"/api/v1/rbac/roles/{role['id']}", json={"name": "quality"}, headers=headers
        )
        assert response.json()["name"] == "quality"

        user = await make.user()
        response = await client.post(
            "/api/v1/rbac/bindings",
            json={"user_id": user.id, "role_id": role["id"], "scope_type": "project", "scope_id": 3},
            headers=headers,
        )
        assert response.status_code == 201
        assert response.json()["scope_id"] == 3

        response = await client.get(f"/api/v1/rbac/users/{user.id}/bindings", headers=headers)
        assert len(response.json()) == 1

        response = await client.post(
            "/api/v1/rbac/bindings/revoke",
            json={"user_id": user.id, "role_id": role["id"], "scope_type": "project", "scope_id": 3},
            headers=headers,
        )
        assert response.status_code == 204

        response = await client.delete(f"/api/v1/rbac/roles/{role['id']}", headers=headers)
        assert response.status_code == 204

        response = await client.get("/api/v1/rbac/roles", headers=headers)
        assert "quality" not in {r["name"] for r in response.json()}

    @pytest.mark.asyncio
    async def test_system_role_delete_refused(self, client: AsyncClient, make, admin, auth_headers):
        viewer = await make.system_role("viewer")
        response = await client.delete(f"/api/v1/rbac/roles/{viewer.id}", headers=auth_headers(admin.id))
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Cannot delete system role"

    @pytest.mark.asyncio
    async def test_invalid_binding_scope(self, client: AsyncClient, admin, auth_headers):
        response = await client.post(
            "/api/v1/rbac/bindings",
            json={"user_id": admin.id, "role_id": 1, "scope_type": "project"},
            headers=auth_headers(admin.id),
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TestTaskEndpoints:
    @pytest.mark.asyncio
    async def test_dependency_lifecycle(self, client: AsyncClient, make, developer, auth_headers):
        headers = auth_headers(developer.id)
        a, b = await make.task("A"), await make.task("B")

        response = await client.post(
            f"/api/v1/tasks/{a.id}/dependencies", json={"depends_on_task_id": b.id}, headers=headers
        )
        assert response.status_code == 201
        body = response.json()
        assert body["blocked"] is True
        assert body["status"] == "waiting"

        response = await client.get(f"/api/v1/tasks/{a.id}/dependencies/blocking", headers=headers)
        assert response.json() == [{"id": b.id, "title": "B", "status": "pending"}]

        response = await client.post(
            f"/api/v1/tasks/{b.id}/dependencies", json={"depends_on_task_id": a.id}, headers=headers
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DEPENDENCY_CYCLE"

        response = await client.post(
            f"/api/v1/tasks/{a.id}/dependencies", json={"depends_on_task_id": b.id}, headers=headers
        )
        assert response.json()["error"]["code"] == "DUPLICATE_DEPENDENCY"

        response = await client.post(
            f"/api/v1/tasks/{a.id}/dependencies", json={"depends_on_task_id": a.id}, headers=headers
        )
        assert response.json()["error"]["code"] == "SELF_DEPENDENCY"

        response = await client.post(
            f"/api/v1/tasks/{b.id}/status", json={"status": "completed"}, headers=headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["task"]["final"] is True
        assert body["cascade"]["unblocked_task_ids"] == [a.id]

        response = await client.get(f"/api/v1/tasks/{a.id}/dependencies/blocking", headers=headers)
        assert response.json() == []

        response = await client.delete(f"/api/v1/tasks/{a.id}/dependencies/{b.id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["blocked"] is False

        response = await client.delete(f"/api/v1/tasks/{a.id}/dependencies/{b.id}", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_status_body_validation(self, client: AsyncClient, make, developer, auth_headers):
        a = await make.task()
        response = await client.post(
            f"/api/v1/tasks/{a.id}/status",
            json={"status": "completed", "task_status_id": 1},
            headers=auth_headers(developer.id),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_dynamic_status(self, client: AsyncClient, make, developer, auth_headers):
        a = await make.task()
        response = await client.post(
            f"/api/v1/tasks/{a.id}/status", json={"task_status_id": 9999}, headers=auth_headers(developer.id)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_manual_unblock_and_delete(self, client: AsyncClient, make, developer, auth_headers):
        headers = auth_headers(developer.id)
        a, b, c = await make.task(), await make.task(), await make.task()
        await client.post(
            f"/api/v1/tasks/{a.id}/dependencies", json={"depends_on_task_id": b.id}, headers=headers
        )
        await client.post(
            f"/api/v1/tasks/{c.id}/dependencies", json={"depends_on_task_id": b.id}, headers=headers
        )

        response = await client.post(f"/api/v1/tasks/{a.id}/unblock", headers=headers)
        assert response.json() == {"task_id": a.id, "unblocked": True}

        response = await client.delete(f"/api/v1/tasks/{b.id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["unblocked_task_ids"] == [c.id]

        response = await client.get(f"/api/v1/tasks/{b.id}/dependencies/blocking", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_project_scope_enforced(self, client: AsyncClient, make, developer, auth_headers):
        a, b = await make.task(project_id=6), await make.task(project_id=6)
        response = await client.post(
            f"/api/v1/tasks/{a.id}/dependencies",
            json={"depends_on_task_id": b.id},
            headers=auth_headers(developer.id),
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"
