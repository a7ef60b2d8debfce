import pytest

from billflow.errors import NotFoundError, ValidationError
from billflow.extensions import db
from billflow.models import PaymentMethod
from billflow.utils.encryption import decrypt


@pytest.mark.db
def test_card_fields_are_encrypted_at_rest(app, payment_method, card_data):
    stored = db.session.get(PaymentMethod, payment_method.id)

    for name in ("card_number", "card_expiry_date", "card_cvv"):
        value = getattr(stored, name)
        assert value != card_data[name]
        assert ":" in value
        assert decrypt(value, app.config["ENCRYPTION_KEY"]) == card_data[name]


def test_serialize_masks_card_data(services, payment_method):
    data = services.vault.serialize(payment_method)

    assert data["cardNumber"] == "4242-****-****-****"
    assert data["cardCvv"] == "***"
    assert data["cardExpiryDate"] == "**/**"
    assert data["isDefault"] is True


def test_second_method_for_same_gateway_is_rejected(services, customer, payment_method, card_data):
    with pytest.raises(ValidationError) as exc:
        services.vault.create(customer.id, card_data)
    assert exc.value.message == "Payment method already exists. Please update it instead."


def test_only_one_default_per_customer(services, customer, payment_method, card_data):
    card_data["payment_method"] = "paypal"
    second = services.vault.create(customer.id, card_data)

    methods = services.vault.list_for_customer(customer.id)
    assert [m.id for m in methods if m.is_default] == [second.id]
    assert methods[0].id == second.id

    services.vault.set_default(payment_method.id)
    assert services.vault.get_default(customer.id).id == payment_method.id
    assert PaymentMethod.query.filter_by(customer_id=customer.id, is_default=True).count() == 1


def test_update_re_encrypts_and_switches_default(app, services, customer, payment_method, card_data):
    card_data["payment_method"] = "paypal"
    card_data["is_default"] = False
    other = services.vault.create(customer.id, card_data)

    updated = services.vault.update(other.id, {"card_number": "5555555555554444", "is_default": True})

    assert decrypt(updated.card_number, app.config["ENCRYPTION_KEY"]) == "5555555555554444"
    assert services.vault.get_default(customer.id).id == other.id
    assert db.session.get(PaymentMethod, payment_method.id).is_default is False


def test_delete_is_soft_and_clears_default(services, customer, payment_method):
    services.vault.delete(payment_method.id)

    assert db.session.get(PaymentMethod, payment_method.id).is_delete is True
    with pytest.raises(NotFoundError):
        services.vault.get(payment_method.id)
    with pytest.raises(NotFoundError) as exc:
        services.vault.get_default(customer.id)
    assert exc.value.message == "No default payment method found"


def test_create_for_unknown_customer(services, card_data):
    with pytest.raises(NotFoundError):
        services.vault.create(9999, card_data)


# ==================== HTTP ====================

def test_create_payment_method_endpoint(client, auth_headers, customer):
    response = client.post(
        "/api/payment-methods",
        json={
            "customerId": customer.id,
            "paymentMethod": "Stripe",
            "cardNumber": "4242 4242 4242 4242",
            "cardHolderName": "Ada Lovelace",
            "cardExpiryDate": "0830",
            "cardCvv": "321",
            "country": "gb",
            "isDefault": True,
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["message"] == "Payment method created successfully"
    assert body["data"]["paymentMethod"] == "stripe"
    assert body["data"]["cardNumber"] == "4242-****-****-****"
    assert "4242424242424242" not in response.get_data(as_text=True)


def test_create_payment_method_requires_card_number(client, auth_headers, customer):
    response = client.post(
        "/api/payment-methods",
        json={"customerId": customer.id, "paymentMethod": "stripe", "cardHolderName": "Ada"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.get_json()["message"].startswith("cardNumber")


def test_payment_method_endpoints(client, auth_headers, customer, payment_method):
    listed = client.get(f"/api/payment-methods/customer/{customer.id}", headers=auth_headers)
    assert [m["id"] for m in listed.get_json()["data"]] == [payment_method.id]

    default = client.get(f"/api/payment-methods/customer/{customer.id}/default", headers=auth_headers)
    assert default.get_json()["data"]["id"] == payment_method.id

    updated = client.put(
        f"/api/payment-methods/{payment_method.id}",
        json={"zipCode": "10001", "paymentMethod": "paypal"},
        headers=auth_headers,
    )
    assert updated.status_code == 200
    assert updated.get_json()["data"]["zipCode"] == "10001"
    assert updated.get_json()["data"]["paymentMethod"] == "stripe"

    made_default = client.patch(f"/api/payment-methods/{payment_method.id}/default", headers=auth_headers)
    assert made_default.status_code == 200

    deleted = client.delete(f"/api/payment-methods/{payment_method.id}", headers=auth_headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/payment-methods/{payment_method.id}", headers=auth_headers).status_code == 404
