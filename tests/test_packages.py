from decimal import Decimal

import pytest

from billflow.errors import ConflictError, NotFoundError, ValidationError
from billflow.extensions import db
from billflow.models import BillingCycle, Package
from billflow.schemas import PackageCreateRequest, PackageUpdateRequest


@pytest.fixture()
def package_body():
    return {
        "name": "Growth",
        "description": "For growing firms",
        "priceMonthly": 49.99,
        "priceYearly": 499,
        "discount": 5,
        "billingCycle": "Annual",
        "extraAddOn": [{"module": "Billing", "feature": "Installments", "monthlyPrice": 20, "yearlyPrice": 200}],
        "stripeMonthlyPriceId": "price_growth_m",
        "stripeYearlyPriceId": "price_growth_y",
    }


# ==================== SERVICE ====================

def test_create_package(services):
    fields = PackageCreateRequest.model_validate({"name": "Basic", "priceMonthly": "10.50"}).fields()

    package = services.catalog.create_package(fields)

    assert package.id is not None
    assert package.price_monthly == Decimal("10.50")
    assert package.billing_cycle == BillingCycle.MONTHLY
    assert package.is_active is True
    assert package.extra_add_on == []


def test_create_package_with_taken_name_conflicts(services, package):
    with pytest.raises(ConflictError) as exc:
        services.catalog.create_package({"name": package.name})
    assert exc.value.message == "Package with this name already exists"


def test_deleted_package_name_can_be_reused(services, package):
    services.catalog.delete_package(package.id)

    reused = services.catalog.create_package({"name": package.name})

    assert reused.id != package.id


def test_update_package_applies_allowed_fields(services, package):
    changes = PackageUpdateRequest.model_validate(
        {"priceMonthly": 120, "discount": 0, "stripeCouponId": "coupon_launch", "total": 1}
    ).changes()

    updated = services.catalog.update_package(package.id, changes)

    assert updated.price_monthly == Decimal("120")
    assert updated.discount == Decimal("0")
    assert updated.stripe_coupon_id == "coupon_launch"
    assert updated.name == package.name


def test_update_package_rejects_unknown_fields(services, package):
    with pytest.raises(ValidationError):
        services.catalog.update_package(package.id, {"is_delete": True})


def test_rename_to_taken_name_conflicts(services, package, make_package):
    other = make_package()
    with pytest.raises(ConflictError):
        services.catalog.update_package(other.id, {"name": package.name})


def test_update_keeping_same_name_is_allowed(services, package):
    updated = services.catalog.update_package(package.id, {"name": package.name, "description": "Same plan"})
    assert updated.description == "Same plan"


def test_update_does_not_touch_customer_add_on_snapshot(services, customer, customer_package, package):
    services.catalog.select_add_ons(customer.id, package.id, [{"module": "Billing", "feature": "Installments"}])

    services.catalog.update_package(package.id, {"extra_add_on": []})

    assert services.catalog.get_customer_package(customer.id).add_ons[0]["monthlyPrice"] == 20


def test_new_orders_price_from_updated_package(services, customer_package, package):
    services.catalog.update_package(package.id, {"price_monthly": Decimal("200.00"), "discount": Decimal("0")})

    order, invoice, _ = services.orders.create_order(customer_package.customer_id, 1)

    assert order.total == Decimal("200.00")
    assert invoice.amount == Decimal("200.00")


def test_delete_package_is_soft(services, package, customer):
    services.catalog.delete_package(package.id)

    deleted = db.session.get(Package, package.id)
    assert deleted.is_delete is True
    assert deleted.is_active is False
    with pytest.raises(NotFoundError):
        services.catalog.find_package(package.id)
    with pytest.raises(NotFoundError):
        services.catalog.select_package(customer.id, package.id)


def test_list_packages(services, package, make_package):
    retired = make_package(is_active=False)
    gone = make_package()
    services.catalog.delete_package(gone.id)

    assert {p.id for p in services.catalog.list_packages()} == {package.id, retired.id}
    assert [p.id for p in services.catalog.list_packages(active_only=True)] == [package.id]


# ==================== SCHEMAS ====================

def test_add_ons_are_stored_with_camel_case_keys(package_body):
    fields = PackageCreateRequest.model_validate(package_body).fields()

    assert fields["extra_add_on"] == [
        {
            "module": "Billing",
            "feature": "Installments",
            "monthlyPrice": 20.0,
            "yearlyPrice": 200.0,
            "discount": 0.0,
            "description": None,
        }
    ]


def test_unknown_billing_cycle_is_rejected(client, auth_headers, package_body):
    package_body["billingCycle"] = "Weekly"
    response = client.post("/api/packages", json=package_body, headers=auth_headers)
    assert response.status_code == 400
    assert response.get_json()["message"].startswith("billingCycle:")


# ==================== HTTP ====================

def test_package_admin_endpoints(client, auth_headers, package_body):
    response = client.post("/api/packages", json=package_body, headers=auth_headers)
    assert response.status_code == 201
    created = response.get_json()["data"]
    assert created["priceMonthly"] == 49.99
    assert created["billingCycle"] == "Annual"
    assert created["stripeYearlyPriceId"] == "price_growth_y"
    assert created["extraAddOn"][0]["feature"] == "Installments"

    again = client.post("/api/packages", json=package_body, headers=auth_headers)
    assert again.status_code == 409
    assert again.get_json() == {"success": False, "message": "Package with this name already exists"}

    response = client.put(f"/api/packages/{created['id']}", json={"isActive": False}, headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["data"]["isActive"] is False

    response = client.get("/api/packages/active", headers=auth_headers)
    assert response.get_json()["data"] == []

    response = client.get(f"/api/packages/{created['id']}", headers=auth_headers)
    assert response.status_code == 200

    response = client.delete(f"/api/packages/{created['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["message"] == "Package deleted successfully"

    assert client.get(f"/api/packages/{created['id']}", headers=auth_headers).status_code == 404
    assert client.get("/api/packages", headers=auth_headers).get_json()["data"] == []


def test_package_endpoints_require_token(client):
    assert client.get("/api/packages").status_code == 401
