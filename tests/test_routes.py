"""
HTTP tests for the permission administration routes and route declarations.
"""
import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from rbac.core.database.engine import get_db
from rbac.features.authorization.dependencies import HasPermissions, require_policies
from rbac.features.permissions.routes import MANAGE_PERMISSIONS, READ_PERMISSIONS
from rbac.main import app


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin(make_token):
    return bearer(make_token(MANAGE_PERMISSIONS, subject="admin"))


@pytest.fixture
def reader(make_token):
    return bearer(make_token(READ_PERMISSIONS, subject="reader"))


async def create(client, headers, name):
    response = await client.post("/permissions/", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuthentication:

    async def test_public_endpoints(self, client):
        assert (await client.get("/health")).json() == {"status": "healthy"}
        assert (await client.get("/")).status_code == 200

    async def test_missing_token(self, client):
        response = await client.get("/permissions/")

        assert response.status_code == 401

    async def test_invalid_token(self, client):
        response = await client.get("/permissions/", headers=bearer("not-a-jwt"))

        assert response.status_code == 401

    async def test_missing_permission(self, client, reader):
        response = await client.post("/permissions/", json={"name": "Orders.Read"}, headers=reader)

        assert response.status_code == 403
        assert MANAGE_PERMISSIONS in response.json()["detail"]

    async def test_permission_claim_case_insensitive(self, client, make_token):
        headers = bearer(make_token(MANAGE_PERMISSIONS.upper()))

        response = await client.post("/permissions/", json={"name": "Orders.Read"}, headers=headers)

        assert response.status_code == 201


class TestPermissionRoutes:

    async def test_create_and_get(self, client, admin, reader):
        created = await create(client, admin, "Orders.Read")

        response = await client.get(f"/permissions/{created['id']}", headers=reader)

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Orders.Read"
        assert body["normalized_name"] == "orders.read"
        assert body["concurrency_stamp"] == created["concurrency_stamp"]

    async def test_duplicate_name_conflicts(self, client, admin):
        await create(client, admin, "Orders.Read")

        response = await client.post("/permissions/", json={"name": "ORDERS.READ"}, headers=admin)

        assert response.status_code == 409
        assert response.json()["detail"]["errors"][0]["code"] == "DuplicatePermissionName"

    async def test_blank_name_rejected(self, client, admin):
        response = await client.post("/permissions/", json={"name": "   "}, headers=admin)

        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "InvalidPermissionName"

    async def test_missing_body_field(self, client, admin):
        response = await client.post("/permissions/", json={}, headers=admin)

        assert response.status_code == 400
        assert "name" in response.json()

    async def test_unknown_id(self, client, reader):
        response = await client.get("/permissions/01ARZ3NDEKTSV4RRFFQ69G5FAV", headers=reader)

        assert response.status_code == 404

    async def test_list_filters_by_prefix(self, client, admin, reader):
        for name in ["Orders.Write", "Billing.View", "Orders.Read"]:
            await create(client, admin, name)

        response = await client.get("/permissions/", params={"name": "ORDERS."}, headers=reader)

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Orders.Read", "Orders.Write"]

    async def test_list_paginates(self, client, admin, reader):
        for name in ["a", "b", "c"]:
            await create(client, admin, name)

        response = await client.get("/permissions/", params={"skip": 1, "limit": 1}, headers=reader)

        assert [p["name"] for p in response.json()] == ["b"]

    async def test_rename_with_stale_stamp(self, client, admin):
        created = await create(client, admin, "Orders.Read")
        url = f"/permissions/{created['id']}"

        first = await client.put(
            url, json={"name": "Orders.View", "concurrency_stamp": created["concurrency_stamp"]}, headers=admin
        )
        stale = await client.put(
            url, json={"name": "Orders.List", "concurrency_stamp": created["concurrency_stamp"]}, headers=admin
        )

        assert first.status_code == 200
        assert first.json()["normalized_name"] == "orders.view"
        assert first.json()["concurrency_stamp"] != created["concurrency_stamp"]
        assert stale.status_code == 409
        assert stale.json()["detail"]["errors"][0]["code"] == "ConcurrencyFailure"

        retry = await client.put(
            url, json={"name": "Orders.List", "concurrency_stamp": first.json()["concurrency_stamp"]}, headers=admin
        )
        assert retry.status_code == 200
        assert retry.json()["name"] == "Orders.List"

    async def test_rename_to_taken_name(self, client, admin):
        await create(client, admin, "Orders.Read")
        other = await create(client, admin, "Orders.Write")

        response = await client.put(
            f"/permissions/{other['id']}",
            json={"name": "orders.read", "concurrency_stamp": other["concurrency_stamp"]},
            headers=admin,
        )

        assert response.status_code == 409

    async def test_delete(self, client, admin, reader):
        created = await create(client, admin, "Orders.Read")
        url = f"/permissions/{created['id']}"

        stale = await client.delete(url, params={"concurrency_stamp": "stale"}, headers=admin)
        deleted = await client.delete(url, params={"concurrency_stamp": created["concurrency_stamp"]}, headers=admin)

        assert stale.status_code == 409
        assert deleted.status_code == 204
        assert (await client.get(url, headers=reader)).status_code == 404


class TestCheckRoute:

    async def test_or_within_declaration(self, client, make_token):
        headers = bearer(make_token("Orders.Write"))

        response = await client.post(
            "/permissions/check", json={"policies": ["Rbac:Orders.Read,Orders.Write"]}, headers=headers
        )

        assert response.json() == {"succeeded": True, "unsatisfied": []}

    async def test_and_across_declarations(self, client, make_token):
        headers = bearer(make_token("Orders.Read"))

        response = await client.post(
            "/permissions/check", json={"policies": ["Rbac:Orders.Read", "Rbac:Billing.View"]}, headers=headers
        )

        assert response.json() == {"succeeded": False, "unsatisfied": [["Billing.View"]]}

    async def test_unknown_policy(self, client, make_token):
        response = await client.post(
            "/permissions/check", json={"policies": ["Admins"]}, headers=bearer(make_token("a"))
        )

        assert response.status_code == 400

    async def test_empty_policies(self, client, make_token):
        response = await client.post("/permissions/check", json={"policies": []}, headers=bearer(make_token("a")))

        assert response.status_code == 400


class TestRouteDeclarations:

    @pytest_asyncio.fixture
    async def declared(self):
        declared_app = FastAPI()

        @declared_app.get(
            "/orders",
            dependencies=[Depends(HasPermissions("Orders.Read", "Orders.Write"))],
        )
        async def list_orders():
            return {"ok": True}

        @declared_app.get(
            "/invoice",
            dependencies=[
                Depends(HasPermissions("Orders.Read")),
                Depends(HasPermissions("Billing.View")),
            ],
        )
        async def get_invoice():
            return {"ok": True}

        @declared_app.get("/report")
        async def get_report(principal=Depends(require_policies("Rbac:Reports.Read", "rbac:Reports.Export"))):
            return {"subject": principal.subject}

        async with AsyncClient(transport=ASGITransport(app=declared_app), base_url="http://test") as client:
            yield client

    @pytest.mark.parametrize("held,expected", [
        (["Orders.Write"], 200),
        (["Orders.Delete"], 403),
        ([], 403),
    ])
    async def test_single_declaration(self, declared, make_token, held, expected):
        response = await declared.get("/orders", headers=bearer(make_token(*held)))

        assert response.status_code == expected

    @pytest.mark.parametrize("held,expected", [
        (["Orders.Read"], 403),
        (["Billing.View"], 403),
        (["Orders.Read", "Billing.View"], 200),
    ])
    async def test_declarations_combine_with_and(self, declared, make_token, held, expected):
        response = await declared.get("/invoice", headers=bearer(make_token(*held)))

        assert response.status_code == expected

    async def test_require_policies_returns_principal(self, declared, make_token):
        allowed = await declared.get(
            "/report", headers=bearer(make_token("reports.read", "REPORTS.EXPORT", subject="u-9"))
        )
        denied = await declared.get("/report", headers=bearer(make_token("Reports.Read")))

        assert allowed.json() == {"subject": "u-9"}
        assert denied.status_code == 403

    def test_declaration_rejects_comma(self):
        with pytest.raises(ValueError):
            HasPermissions("Orders.Read,Orders.Write")
