from unittest.mock import patch

import pytest
import stripe
from payments.gateway import get_gateway, reset_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import GatewayError, GatewayUnavailableError, IntentNotFoundError, IntentStatus
from payments.gateway.stripe_adapter import StripeGateway, from_minor_units, normalize_status, to_minor_units


@pytest.fixture()
def gateway():
    return StripeGateway(api_key="sk_test_123", webhook_secret="whsec_test")


def _intent(status="requires_payment_method", amount=2999, currency="usd", **extra):
    return {
        "id": "pi_123",
        "client_secret": "pi_123_secret_abc",
        "status": status,
        "amount": amount,
        "currency": currency,
        "last_payment_error": None,
        **extra,
    }


class TestMinorUnits:
    def test_two_decimal_currency(self):
        assert to_minor_units(29.99, "USD") == 2999
        assert from_minor_units(2999, "usd") == 29.99

    def test_zero_decimal_currency(self):
        assert to_minor_units(500, "JPY") == 500
        assert from_minor_units(500, "jpy") == 500.0

    def test_rounding(self):
        assert to_minor_units(0.1 + 0.2, "usd") == 30


class TestNormalizeStatus:
    @pytest.mark.parametrize(
        "stripe_status, error, expected",
        [
            ("succeeded", None, "succeeded"),
            ("canceled", None, "failed"),
            ("requires_payment_method", None, "requires_confirmation"),
            ("requires_payment_method", {"code": "card_declined"}, "failed"),
            ("requires_action", None, "requires_confirmation"),
            ("processing", None, "requires_confirmation"),
            ("something_new", None, "requires_confirmation"),
        ],
    )
    def test_collapses_statuses(self, stripe_status, error, expected):
        assert normalize_status(stripe_status, error) == expected


class TestStripeGateway:
    def test_create_sends_minor_units_and_idempotency_key(self, gateway):
        with patch.object(stripe.PaymentIntent, "create", return_value=_intent()) as create:
            result = gateway.create_payment_intent(29.99, "USD", idempotency_key="checkout:cart-1:1")

        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 2999
        assert kwargs["currency"] == "usd"
        assert kwargs["idempotency_key"] == "checkout:cart-1:1"
        assert kwargs["api_key"] == "sk_test_123"
        assert result.amount == 29.99
        assert result.currency == "USD"
        assert result.status == IntentStatus.REQUIRES_CONFIRMATION.value

    def test_declined_intent_carries_decline_code(self, gateway):
        declined = _intent(
            last_payment_error={"code": "card_declined", "decline_code": "insufficient_funds",
                                "message": "Your card has insufficient funds."}
        )
        with patch.object(stripe.PaymentIntent, "retrieve", return_value=declined):
            result = gateway.retrieve_payment_intent("pi_123")

        assert result.failed
        assert result.failure_code == "insufficient_funds"
        assert result.failure_message == "Your card has insufficient funds."

    def test_canceled_intent_fails(self, gateway):
        with patch.object(stripe.PaymentIntent, "retrieve", return_value=_intent(status="canceled")):
            result = gateway.retrieve_payment_intent("pi_123")
        assert result.failed
        assert result.failure_code == "canceled"

    def test_card_error_on_confirm_returns_the_failed_intent(self, gateway):
        declined = _intent(last_payment_error={"code": "card_declined", "message": "Your card was declined."})
        card_error = stripe.CardError("Your card was declined.", None, "card_declined")
        with (
            patch.object(stripe.PaymentIntent, "confirm", side_effect=card_error),
            patch.object(stripe.PaymentIntent, "retrieve", return_value=declined),
        ):
            result = gateway.confirm_payment_intent("pi_123", payment_method_id="pm_card_visa")

        assert result.failed
        assert result.failure_code == "card_declined"

    def test_confirm_passes_payment_method(self, gateway):
        with patch.object(stripe.PaymentIntent, "confirm", return_value=_intent(status="succeeded")) as confirm:
            result = gateway.confirm_payment_intent("pi_123", payment_method_id="pm_card_visa")

        assert confirm.call_args.kwargs["payment_method"] == "pm_card_visa"
        assert result.succeeded

    def test_missing_intent(self, gateway):
        error = stripe.InvalidRequestError("No such payment_intent: 'pi_404'", "intent", code="resource_missing")
        with patch.object(stripe.PaymentIntent, "retrieve", side_effect=error):
            with pytest.raises(IntentNotFoundError):
                gateway.retrieve_payment_intent("pi_404")

    def test_connection_error_is_unavailable(self, gateway):
        with patch.object(stripe.PaymentIntent, "retrieve", side_effect=stripe.APIConnectionError("Network down")):
            with pytest.raises(GatewayUnavailableError) as exc_info:
                gateway.retrieve_payment_intent("pi_123")
        assert exc_info.value.code == "api_connection_error"

    def test_other_errors_keep_their_code(self, gateway):
        error = stripe.InvalidRequestError("Amount must be at least 50 cents", "amount", code="amount_too_small")
        with patch.object(stripe.PaymentIntent, "create", side_effect=error):
            with pytest.raises(GatewayError) as exc_info:
                gateway.create_payment_intent(0.10, "usd", idempotency_key="k1")
        assert exc_info.value.code == "amount_too_small"
        assert exc_info.value.message == "Amount must be at least 50 cents"

    def test_webhook_signature(self, gateway):
        with patch.object(stripe.Webhook, "construct_event", return_value={}):
            assert gateway.verify_webhook_signature("{}", "t=1,v1=abc") is True

        failure = stripe.SignatureVerificationError("No signatures found", "t=1,v1=bad")
        with patch.object(stripe.Webhook, "construct_event", side_effect=failure):
            assert gateway.verify_webhook_signature("{}", "t=1,v1=bad") is False


class TestGatewayFactory:
    def setup_method(self):
        reset_gateway()

    def teardown_method(self):
        reset_gateway()

    def test_fake_without_api_key(self, monkeypatch):
        monkeypatch.delenv("STRIPE_API_KEY", raising=False)
        assert isinstance(get_gateway(), FakeGateway)

    def test_stripe_with_api_key(self, monkeypatch):
        monkeypatch.setenv("STRIPE_API_KEY", "sk_test_123")
        gateway = get_gateway()
        assert isinstance(gateway, StripeGateway)
        assert gateway.api_key == "sk_test_123"
