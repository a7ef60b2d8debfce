from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from billflow import create_app
from billflow.config import ConfigurationError, ProductionConfig, get_config
from billflow.error_handlers import first_validation_message
from billflow.extensions import db
from billflow.schemas import OrderUpdateRequest, PayNowRequest


def test_unexpected_errors_return_generic_500(client, auth_headers, services):
    with patch.object(services.orders, "get_order", side_effect=RuntimeError("password=hunter2")):
        response = client.get("/api/orders/1", headers=auth_headers)

    assert response.status_code == 500
    assert response.get_json() == {"success": False, "message": "Something went wrong. Please try again later."}
    assert "hunter2" not in response.get_data(as_text=True)


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    body = response.get_json()
    assert body["success"] is False
    assert body["error"] == "Not Found"


def test_invalid_token(client):
    response = client.get("/api/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.get_json()["message"] == "Invalid token. Please provide a valid authentication token."


def test_malformed_json_is_a_validation_error(client, auth_headers):
    response = client.post(
        "/api/payments/pay-now",
        data="{not json",
        headers={**auth_headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_request_id_is_generated_when_missing(client):
    response = client.get("/health")
    assert response.headers["X-Request-ID"]


def test_first_validation_message_uses_field_alias():
    with pytest.raises(PydanticValidationError) as exc:
        PayNowRequest.model_validate({"customerId": 1, "orderId": 0, "invoiceId": 2})
    assert first_validation_message(exc.value).startswith("orderId:")


def test_order_update_changes_only_sent_fields():
    assert OrderUpdateRequest.model_validate({"note": "hi", "total": 5}).changes() == {"note": "hi"}


# ==================== HEALTH ====================

def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == "healthy"
    assert body["environment"] == "testing"


def test_health_check_degraded_when_database_fails(client):
    with patch.object(db.session, "execute", side_effect=RuntimeError("connection refused")):
        response = client.get("/health")
    assert response.status_code == 503
    assert response.get_json()["status"] == "degraded"


# ==================== CONFIG ====================

def test_get_config_rejects_unknown_environment():
    with pytest.raises(ConfigurationError):
        get_config("staging")


def test_get_config_reads_app_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "Production")
    assert get_config() is ProductionConfig


def test_production_requires_secrets():
    with patch.object(ProductionConfig, "STRIPE_WEBHOOK_SECRET", None):
        assert "STRIPE_WEBHOOK_SECRET" in ProductionConfig.validate()
        with pytest.raises(ConfigurationError):
            create_app("production")
