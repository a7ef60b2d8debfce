import pytest

from billflow.errors import NotFoundError, ValidationError
from billflow.extensions import db
from billflow.models import Customer, CustomerPackage


def test_select_package_creates_customer_package(services, customer, package):
    customer_package = services.catalog.select_package(customer.id, package.id)

    assert customer_package.package_id == package.id
    assert customer_package.add_ons == []
    assert db.session.get(Customer, customer.id).package_id == package.id


def test_switching_package_clears_add_ons(services, customer, customer_package, package, make_package):
    services.catalog.select_add_ons(customer.id, package.id, [{"module": "Billing", "feature": "Installments"}])
    other = make_package()

    switched = services.catalog.select_package(customer.id, other.id)

    assert switched.id == customer_package.id
    assert switched.package_id == other.id
    assert switched.add_ons == []


def test_reselecting_same_package_keeps_add_ons(services, customer, customer_package, package):
    services.catalog.select_add_ons(customer.id, package.id, [{"module": "Billing", "feature": "Installments"}])

    reselected = services.catalog.select_package(customer.id, package.id)

    assert len(reselected.add_ons) == 1
    assert CustomerPackage.query.filter_by(customer_id=customer.id).count() == 1


def test_select_inactive_package_is_not_found(services, customer, make_package):
    retired = make_package(is_active=False)
    with pytest.raises(NotFoundError) as exc:
        services.catalog.select_package(customer.id, retired.id)
    assert exc.value.message == "Package not found"


def test_add_on_prices_come_from_package(services, customer, customer_package, package):
    selected = [
        {"module": "Billing", "feature": "Installments", "monthlyPrice": 0},
        {"module": "Billing", "feature": "Installments"},
        {"module": "Nope", "feature": "Not offered"},
    ]

    updated = services.catalog.select_add_ons(customer.id, package.id, selected)

    assert updated.add_ons == [
        {
            "module": "Billing",
            "feature": "Installments",
            "monthlyPrice": 20,
            "yearlyPrice": 200,
            "discount": 5,
            "description": "Installment plans",
        }
    ]


def test_add_ons_merge_with_existing_selection(services, customer, customer_package, package):
    services.catalog.select_add_ons(customer.id, package.id, [{"module": "Billing", "feature": "Installments"}])
    updated = services.catalog.select_add_ons(customer.id, package.id, [{"module": "Matters", "feature": "Document storage"}])

    assert sorted(a["feature"] for a in updated.add_ons) == ["Document storage", "Installments"]


def test_add_ons_for_other_package_are_rejected(services, customer, customer_package, make_package):
    other = make_package()
    with pytest.raises(ValidationError):
        services.catalog.select_add_ons(customer.id, other.id, [])


def test_add_ons_need_a_selected_package(services, customer, package):
    with pytest.raises(ValidationError) as exc:
        services.catalog.select_add_ons(customer.id, package.id, [])
    assert exc.value.message == "Select a package first"


# ==================== HTTP ====================

def test_package_and_add_on_endpoints(client, auth_headers, customer, package):
    response = client.post(
        f"/api/customers/{customer.id}/package",
        json={"packageId": package.id},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.get_json()["message"] == "Package selected successfully"

    response = client.post(
        f"/api/customers/{customer.id}/packages/{package.id}/add-ons",
        json={"selectedAddOns": [{"module": "Matters", "feature": "Document storage"}]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert [a["feature"] for a in response.get_json()["data"]["addOns"]] == ["Document storage"]


def test_select_package_for_unknown_customer(client, auth_headers, package):
    response = client.post("/api/customers/9999/package", json={"packageId": package.id}, headers=auth_headers)
    assert response.status_code == 404
    assert response.get_json()["message"] == "Customer not found"
