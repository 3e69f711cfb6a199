import pytest

from src.integrations.mpgs.exceptions import (
    MPGSConfigurationError,
    MPGSGatewayRejected,
    MPGSGatewayUnreachable,
    MPGSProtocolError,
)
from src.integrations.mpgs.models import normalize_session_response
from src.integrations.mpgs.negotiation import (
    SessionNegotiator,
    default_shape_classifier,
    make_shape_classifier,
)

RETURN_URL = "http://testserver/api/payments/mpgs/return?orderId=42"


@pytest.mark.parametrize(
    "explanation, retryable",
    [
        ("unsupported field: sourceOfFunds.type", True),
        ("Invalid request", True),
        ("Missing parameter interaction.returnUrl", True),
        ("Field is not allowed for this operation", True),
        ("Unexpected parameter 'order.amount'", True),
        ("order already exists and is paid", False),
        ("", False),
    ],
)
def test_default_shape_classifier(explanation, retryable):
    assert default_shape_classifier(explanation) is retryable


def test_custom_classifier_pattern():
    classifier = make_shape_classifier(r"try again")
    assert classifier("Please TRY AGAIN later")
    assert not classifier("unsupported field")


def test_normalize_accepts_known_shapes():
    nested = normalize_session_response(
        {"session": {"id": "S1", "successIndicator": "I1"}, "checkoutJs": "https://js"}
    )
    assert (nested.session_id, nested.success_indicator, nested.checkout_js) == (
        "S1",
        "I1",
        "https://js",
    )

    flat = normalize_session_response({"sessionId": "S2", "successIndicator": "I2"})
    assert (flat.session_id, flat.success_indicator) == ("S2", "I2")


def test_normalize_rejects_unknown_shape():
    with pytest.raises(MPGSProtocolError, match="unrecognized gateway response shape"):
        normalize_session_response({"result": "SUCCESS", "id": "looks-like-a-session"})


@pytest.mark.asyncio
class TestCheckoutSessionChain:
    async def test_minimal_payload_is_tried_first(self, mpgs_client, gateway):
        gateway.session("SESSION1", "IND1")
        negotiator = SessionNegotiator(mpgs_client)

        result = await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert result.session.session_id == "SESSION1"
        assert result.session.success_indicator == "IND1"
        assert result.attempts == ["CREATE_CHECKOUT_SESSION(minimal)"]
        assert gateway.payloads == [
            {"apiOperation": "CREATE_CHECKOUT_SESSION", "order": {"id": "42"}}
        ]

    async def test_falls_back_to_variant_without_rejected_field(self, mpgs_client, gateway):
        gateway.reject("unsupported field: sourceOfFunds.type")
        gateway.session("SESSION2", "IND2")
        negotiator = SessionNegotiator(mpgs_client)

        result = await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert len(gateway.requests) == 2
        assert result.accepted_label == "CREATE_CHECKOUT_SESSION(withAmount)"
        assert result.session.session_id == "SESSION2"
        accepted = gateway.payloads[1]
        assert "sourceOfFunds" not in accepted
        assert accepted["order"] == {"id": "42", "amount": "25.50", "currency": "JOD"}

    async def test_non_retryable_rejection_short_circuits(self, mpgs_client, gateway):
        gateway.reject("order already exists and is paid")
        negotiator = SessionNegotiator(mpgs_client)

        with pytest.raises(MPGSGatewayRejected) as exc_info:
            await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert exc_info.value.explanation == "order already exists and is paid"
        assert len(gateway.requests) == 1

    async def test_amount_rejection_skips_with_amount_variant(self, mpgs_client, gateway):
        gateway.reject("Invalid value for order.amount")
        gateway.session("SESSION3")
        negotiator = SessionNegotiator(mpgs_client)

        result = await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert result.attempts == [
            "CREATE_CHECKOUT_SESSION(minimal)",
            "INITIATE_CHECKOUT",
        ]
        enhanced = gateway.payloads[1]
        assert enhanced["apiOperation"] == "INITIATE_CHECKOUT"
        assert enhanced["sourceOfFunds"] == {"type": "CARD"}
        assert enhanced["interaction"]["returnUrl"] == RETURN_URL

    async def test_full_chain_drops_source_of_funds_last(self, mpgs_client, gateway):
        gateway.reject("Missing parameter")
        gateway.reject("Invalid request")
        gateway.reject("Unexpected parameter sourceOfFunds")
        gateway.session("SESSION4", "IND4")
        negotiator = SessionNegotiator(mpgs_client)

        result = await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert result.attempts == [
            "CREATE_CHECKOUT_SESSION(minimal)",
            "CREATE_CHECKOUT_SESSION(withAmount)",
            "INITIATE_CHECKOUT",
            "INITIATE_CHECKOUT(no sourceOfFunds)",
        ]
        assert gateway.operations == [
            "CREATE_CHECKOUT_SESSION",
            "CREATE_CHECKOUT_SESSION",
            "INITIATE_CHECKOUT",
            "INITIATE_CHECKOUT",
        ]
        assert "sourceOfFunds" not in gateway.payloads[3]
        assert result.session.success_indicator == "IND4"

    async def test_initiate_rejection_unrelated_to_source_of_funds_stops(
        self, mpgs_client, gateway
    ):
        gateway.reject("Missing parameter")
        gateway.reject("Invalid request")
        gateway.reject("Invalid value for interaction.returnUrl")
        negotiator = SessionNegotiator(mpgs_client)

        with pytest.raises(MPGSGatewayRejected) as exc_info:
            await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert "interaction.returnUrl" in exc_info.value.explanation
        assert len(gateway.requests) == 3

    async def test_source_of_funds_rejection_drops_it_whatever_the_wording(
        self, mpgs_client, gateway
    ):
        gateway.reject("Unsupported field: interaction")
        gateway.reject("Invalid request")
        gateway.reject("Field sourceOfFunds.type is not supported for this merchant")
        gateway.session("S1")
        negotiator = SessionNegotiator(mpgs_client)

        result = await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert result.session.session_id == "S1"
        assert result.accepted_label == "INITIATE_CHECKOUT(no sourceOfFunds)"
        assert len(gateway.requests) == 4
        assert "sourceOfFunds" not in gateway.payloads[-1]

    async def test_exhausted_chain_raises_last_rejection(self, mpgs_client, gateway):
        gateway.reject("Missing parameter")
        gateway.reject("Invalid request")
        gateway.reject("sourceOfFunds is not allowed")
        gateway.reject("Invalid request, still")
        negotiator = SessionNegotiator(mpgs_client)

        with pytest.raises(MPGSGatewayRejected) as exc_info:
            await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert exc_info.value.explanation == "Invalid request, still"
        assert len(gateway.requests) == 4

    async def test_unreachable_gateway_is_not_retried(self, mpgs_client, gateway):
        gateway.fail()
        negotiator = SessionNegotiator(mpgs_client)

        with pytest.raises(MPGSGatewayUnreachable):
            await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert len(gateway.requests) == 1

    async def test_injected_classifier_controls_retry(self, mpgs_client, gateway):
        gateway.reject("unsupported field")
        negotiator = SessionNegotiator(mpgs_client, is_retryable=lambda explanation: False)

        with pytest.raises(MPGSGatewayRejected):
            await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert len(gateway.requests) == 1

    async def test_missing_password_makes_no_calls(self, gateway):
        from src.integrations.mpgs.client import MPGSClient

        client = MPGSClient(api_password="", transport=gateway.transport)
        negotiator = SessionNegotiator(client)

        with pytest.raises(MPGSConfigurationError):
            await negotiator.create_checkout_session(42, "25.50", "JOD", RETURN_URL)

        assert gateway.requests == []


@pytest.mark.asyncio
class TestHostedSessions:
    async def test_hosted_checkout_carries_merchant_and_urls(self, mpgs_client, gateway):
        gateway.session("HC1", "HCIND")
        negotiator = SessionNegotiator(mpgs_client, merchant_name="Test Store")

        result = await negotiator.create_hosted_checkout(
            42, "25.50", "JOD", RETURN_URL, "http://testserver/cancel"
        )

        assert result.accepted_label == "CREATE_CHECKOUT_SESSION(hostedCheckout)"
        payload = gateway.payloads[0]
        assert payload["interaction"] == {
            "operation": "PURCHASE",
            "returnUrl": RETURN_URL,
            "cancelUrl": "http://testserver/cancel",
            "merchant": {"name": "Test Store"},
        }
        assert payload["order"]["amount"] == "25.50"

    async def test_hosted_checkout_falls_back_to_initiate(self, mpgs_client, gateway):
        gateway.reject("Unsupported operation")
        gateway.session("HC2")
        negotiator = SessionNegotiator(mpgs_client)

        result = await negotiator.create_hosted_checkout(42, "25.50", "JOD", RETURN_URL)

        assert gateway.operations == ["CREATE_CHECKOUT_SESSION", "INITIATE_CHECKOUT"]
        assert result.accepted_label == "INITIATE_CHECKOUT(hostedCheckout fallback)"

    async def test_hosted_session_sets_locale(self, mpgs_client, gateway):
        gateway.session("HS1", "HSIND")
        negotiator = SessionNegotiator(mpgs_client)

        await negotiator.create_hosted_session(
            42, "25.50", "JOD", RETURN_URL, locale="ar_JO", description="Order #42"
        )

        payload = gateway.payloads[0]
        assert payload["apiOperation"] == "INITIATE_CHECKOUT"
        assert payload["interaction"]["locale"] == "ar_JO"
        assert payload["order"]["description"] == "Order #42"

    async def test_return_url_is_required(self, mpgs_client, gateway):
        negotiator = SessionNegotiator(mpgs_client)

        with pytest.raises(ValueError):
            await negotiator.create_hosted_session(42, "25.50", "JOD", "")

        assert gateway.requests == []
