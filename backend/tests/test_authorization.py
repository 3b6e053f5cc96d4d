"""
Authorization tests for the GymPOS API.

Verifies:
- Unauthenticated requests return 401
- Staff are denied owner-only operations (403)
- Gym owners can perform privileged operations
- Super admins pass every role check but must name the gym
"""

import pytest

from gympos.services.session_service import revoke_session
from conftest import auth_headers, issue_token


@pytest.fixture
def staff_headers(staff_a):
    return auth_headers(issue_token(staff_a))


@pytest.fixture
def owner_headers(owner_a):
    return auth_headers(issue_token(owner_a))


@pytest.fixture
def admin_headers(super_admin):
    return auth_headers(issue_token(super_admin))


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/members"),
            ("GET", "/api/discounts"),
            ("GET", "/api/pos/transactions"),
            ("POST", "/api/pos/transactions"),
            ("GET", "/api/pos/stats"),
            ("GET", "/api/wallets"),
            ("GET", "/api/wallets/transactions"),
            ("POST", "/api/wallets/cash/top-up"),
            ("GET", "/api/gym-invoices"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "UNAUTHENTICATED"

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("deadbeef"))
        assert resp.status_code == 401

    def test_non_bearer_scheme(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401

    def test_revoked_token(self, client, staff_a):
        token = issue_token(staff_a)
        assert revoke_session(token) is True

        resp = client.get("/api/products", headers=auth_headers(token))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"


# =============================================================================
# STAFF DENIED OWNER OPERATIONS (403)
# =============================================================================


class TestStaffDenied:

    def test_cannot_create_product(self, client, staff_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Day Pass", "category": "membership", "price": "25000"},
            headers=staff_headers,
        )
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["code"] == "FORBIDDEN"
        assert body["details"]["required_roles"] == ["gym_owner"]

    def test_cannot_create_discount(self, client, staff_headers):
        resp = client.post(
            "/api/discounts",
            json={"code": "FREE", "name": "Free", "type": "percentage", "value": "100"},
            headers=staff_headers,
        )
        assert resp.status_code == 403

    def test_cannot_top_up_wallet(self, client, staff_headers):
        resp = client.post("/api/wallets/cash/top-up", json={"amount": "1000"}, headers=staff_headers)
        assert resp.status_code == 403

    def test_cannot_read_gym_invoices(self, client, staff_headers):
        resp = client.get("/api/gym-invoices", headers=staff_headers)
        assert resp.status_code == 403

    def test_can_read_products(self, client, staff_headers, product_a):
        resp = client.get("/api/products", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["meta"]["total"] == 1

    def test_can_settle_sale(self, client, staff_headers, staff_a, product_a):
        resp = client.post(
            "/api/pos/transactions",
            json={"items": [{"product_id": product_a.id, "quantity": 1}], "payment_method": "cash"},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["staff_id"] == staff_a.id


# =============================================================================
# OWNER ALLOWED
# =============================================================================


class TestOwnerAllowed:

    def test_create_product(self, client, owner_headers, gym_a):
        resp = client.post(
            "/api/products",
            json={"name": "Day Pass", "category": "membership", "price": "25000", "duration": 1},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert product["gym_id"] == gym_a.id
        assert product["price"] == "25000.00"

    def test_body_gym_id_cannot_escape_tenant(self, client, owner_headers, gym_b):
        resp = client.post(
            "/api/products",
            json={"gym_id": gym_b.id, "name": "Day Pass", "category": "membership", "price": "25000"},
            headers=owner_headers,
        )
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "GYM_NOT_FOUND"

    def test_foreign_product_is_not_found(self, client, owner_headers, product_b):
        resp = client.get(f"/api/products/{product_b.id}", headers=owner_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "PRODUCT_NOT_FOUND"

    def test_deactivate_product(self, client, owner_headers, product_a):
        resp = client.delete(f"/api/products/{product_a.id}", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json()["product"]["is_active"] is False


# =============================================================================
# SUPER ADMIN
# =============================================================================


class TestSuperAdmin:

    def test_must_name_gym(self, client, admin_headers):
        resp = client.get("/api/products", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "gym_id required"

    def test_acts_on_named_gym(self, client, admin_headers, gym_b, product_b):
        resp = client.get(f"/api/products?gym_id={gym_b.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.get_json()["data"]] == [product_b.id]

    def test_passes_owner_role_check(self, client, admin_headers, gym_a):
        resp = client.post(
            "/api/wallets/cash/top-up",
            json={"gym_id": gym_a.id, "amount": "5000"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["wallet"]["current_balance"] == "5000.00"
