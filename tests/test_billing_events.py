import pytest

from conftest import make_event
from svc.billing_events import (
    CHECKOUT_COMPLETED,
    INVOICE_PAYMENT_FAILED,
    INVOICE_PAYMENT_SUCCEEDED,
    SUBSCRIPTION_DELETED,
    SUBSCRIPTION_UPDATED,
    CheckoutCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    MissingEventDataError,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnrecognizedEvent,
    parse_billing_event,
)


def _checkout_session(**overrides):
    session = {
        "id": "cs_test_123",
        "client_reference_id": "user-1",
        "metadata": {"plan_id": "pro", "supabase_user_id": "user-1"},
        "customer": "cus_123",
        "subscription": "sub_123",
    }
    session.update(overrides)
    return session


class TestCheckoutCompleted:
    def test_parses_required_fields(self):
        parsed = parse_billing_event(make_event(CHECKOUT_COMPLETED, _checkout_session()))

        assert parsed == CheckoutCompleted(
            event_id="evt_test_1",
            session_id="cs_test_123",
            user_id="user-1",
            plan_id="pro",
            customer_id="cus_123",
            subscription_id="sub_123",
        )

    def test_expanded_customer_and_subscription_are_reduced_to_ids(self):
        session = _checkout_session(customer={"id": "cus_999", "object": "customer"}, subscription={"id": "sub_999"})

        parsed = parse_billing_event(make_event(CHECKOUT_COMPLETED, session))

        assert parsed.customer_id == "cus_999"
        assert parsed.subscription_id == "sub_999"

    def test_missing_fields_are_all_reported(self):
        session = _checkout_session(client_reference_id=None, metadata={}, subscription=None)

        with pytest.raises(MissingEventDataError) as excinfo:
            parse_billing_event(make_event(CHECKOUT_COMPLETED, session))

        assert excinfo.value.missing == ["client_reference_id", "metadata.plan_id", "subscription"]
        assert excinfo.value.event_type == CHECKOUT_COMPLETED
        assert excinfo.value.event_id == "evt_test_1"


class TestInvoiceEvents:
    def test_payment_succeeded(self):
        parsed = parse_billing_event(make_event(INVOICE_PAYMENT_SUCCEEDED, {"id": "in_1", "subscription": "sub_1"}))
        assert parsed == InvoicePaymentSucceeded(event_id="evt_test_1", subscription_id="sub_1")

    def test_payment_failed(self):
        parsed = parse_billing_event(make_event(INVOICE_PAYMENT_FAILED, {"id": "in_1", "subscription": "sub_1"}))
        assert parsed == InvoicePaymentFailed(event_id="evt_test_1", subscription_id="sub_1")

    def test_subscription_read_from_parent_details(self):
        invoice = {
            "id": "in_2",
            "parent": {"type": "subscription_details", "subscription_details": {"subscription": "sub_nested"}},
        }

        parsed = parse_billing_event(make_event(INVOICE_PAYMENT_SUCCEEDED, invoice))

        assert parsed.subscription_id == "sub_nested"

    def test_one_off_invoice_without_subscription_is_missing_data(self):
        with pytest.raises(MissingEventDataError) as excinfo:
            parse_billing_event(make_event(INVOICE_PAYMENT_FAILED, {"id": "in_3", "subscription": None}))
        assert excinfo.value.missing == ["subscription"]


class TestSubscriptionEvents:
    def test_updated_with_price(self):
        subscription = {
            "id": "sub_1",
            "status": "past_due",
            "items": {"data": [{"id": "si_1", "price": {"id": "price_pro_monthly"}}]},
        }

        parsed = parse_billing_event(make_event(SUBSCRIPTION_UPDATED, subscription))

        assert parsed == SubscriptionUpdated(
            event_id="evt_test_1", subscription_id="sub_1", status="past_due", price_id="price_pro_monthly"
        )

    def test_updated_without_items_has_no_price(self):
        parsed = parse_billing_event(make_event(SUBSCRIPTION_UPDATED, {"id": "sub_1", "status": "active"}))
        assert parsed.price_id is None

    def test_updated_without_status_is_missing_data(self):
        with pytest.raises(MissingEventDataError) as excinfo:
            parse_billing_event(make_event(SUBSCRIPTION_UPDATED, {"id": "sub_1"}))
        assert excinfo.value.missing == ["status"]

    def test_deleted(self):
        parsed = parse_billing_event(make_event(SUBSCRIPTION_DELETED, {"id": "sub_1", "status": "canceled"}))
        assert parsed == SubscriptionDeleted(event_id="evt_test_1", subscription_id="sub_1")


def test_unknown_type_is_unrecognized():
    parsed = parse_billing_event(make_event("customer.created", {"id": "cus_1"}))
    assert parsed == UnrecognizedEvent(event_id="evt_test_1", event_type="customer.created")
