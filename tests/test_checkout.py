"""Tests for Checkout Session creation and the return landing.

Covers:
- Session arguments: plan item, correlation metadata, return URLs
- Known, missing and remotely deleted Stripe customers
- Failures produce "" / {"available": false}, never a broken session
- Route auth + ownership guards
- Return route never marks an invoice paid
- Card route creates the customer or attaches the card
"""

from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import stripe

from membership_gateway.extensions import db
from membership_gateway.models.invoice import Invoice
from membership_gateway.models.member import Member
from membership_gateway.models.subscription import Subscription
from membership_gateway.services import checkout_service, external_ids
from membership_gateway.services.stripe_gateway import get_gateway
from tests.helpers import login_admin, login_member


API_KEY = "sk_test_fake"
CUSTOMER_RETRIEVE = "membership_gateway.services.stripe_gateway.stripe.Customer.retrieve"


def _session(session_id="cs_test_123"):
    return stripe.checkout.Session.construct_from(
        {"id": session_id, "object": "checkout.session"}, API_KEY
    )


def _customer(**values):
    return stripe.Customer.construct_from({"object": "customer", **values}, API_KEY)


class TestCreateSession:

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_new_customer_uses_email(self, mock_create, gateway, seed_data):
        mock_create.return_value = _session()
        member = db.session.get(Member, seed_data["member_id"])

        session_id = checkout_service.create_session(
            member, seed_data["gold_id"], seed_data["subscription_id"],
            "process_purchase", gateway,
        )

        assert session_id == "cs_test_123"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["payment_method_types"] == ["card"]
        assert kwargs["customer_email"] == "jane@example.com"
        assert "customer" not in kwargs
        assert kwargs["subscription_data"]["items"] == [
            {"plan": external_ids.plan_id(seed_data["gold_id"], gateway.settings)}
        ]
        assert kwargs["subscription_data"]["metadata"] == {
            "ms_relationship_id": seed_data["subscription_id"]
        }

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_return_urls(self, mock_create, gateway, seed_data):
        mock_create.return_value = _session()
        member = db.session.get(Member, seed_data["member_id"])

        checkout_service.create_session(
            member, seed_data["gold_id"], seed_data["subscription_id"], "renew", gateway,
        )

        kwargs = mock_create.call_args.kwargs
        success = urlparse(kwargs["success_url"])
        query = parse_qs(success.query)
        assert success.path == "/checkout/return"
        assert query["success"] == ["1"]
        assert query["step"] == ["renew"]
        assert query["gateway"] == ["stripecheckout"]
        assert query["ms_relationship_id"] == [str(seed_data["subscription_id"])]
        assert checkout_service.verify_return_nonce(
            gateway.settings, seed_data["subscription_id"], query["nonce"][0]
        )
        assert parse_qs(urlparse(kwargs["cancel_url"]).query)["success"] == ["0"]

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    @patch(CUSTOMER_RETRIEVE)
    def test_known_customer_attached(self, mock_retrieve, mock_create, gateway, seed_data):
        mock_retrieve.return_value = _customer(id="cus_1")
        mock_create.return_value = _session()
        member = db.session.get(Member, seed_data["member_id"])
        member.set_gateway_profile("stripecheckout", "customer_id", "cus_1")

        checkout_service.create_session(
            member, seed_data["gold_id"], seed_data["subscription_id"], "process_purchase", gateway,
        )

        kwargs = mock_create.call_args.kwargs
        assert kwargs["customer"] == "cus_1"
        assert "customer_email" not in kwargs

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    @patch(CUSTOMER_RETRIEVE)
    def test_deleted_customer_falls_back_to_email(self, mock_retrieve, mock_create, gateway, seed_data):
        mock_retrieve.return_value = _customer(id="cus_1", deleted=True)
        mock_create.return_value = _session()
        member = db.session.get(Member, seed_data["member_id"])
        member.set_gateway_profile("stripecheckout", "customer_id", "cus_1")

        checkout_service.create_session(
            member, seed_data["gold_id"], seed_data["subscription_id"], "process_purchase", gateway,
        )

        kwargs = mock_create.call_args.kwargs
        assert kwargs["customer_email"] == "jane@example.com"
        assert member.get_gateway_profile("stripecheckout", "customer_id") == ""

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_stripe_error_returns_empty(self, mock_create, gateway, seed_data):
        mock_create.side_effect = stripe.InvalidRequestError("No such plan", "plan")
        member = db.session.get(Member, seed_data["member_id"])

        assert checkout_service.create_session(
            member, seed_data["gold_id"], seed_data["subscription_id"], "process_purchase", gateway,
        ) == ""

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_unconfigured_returns_empty(self, mock_create, gateway, seed_data):
        gateway.settings.set_keys("test")
        member = db.session.get(Member, seed_data["member_id"])

        assert checkout_service.create_session(
            member, seed_data["gold_id"], seed_data["subscription_id"], "process_purchase", gateway,
        ) == ""
        mock_create.assert_not_called()


class TestSessionRoute:

    def test_requires_login(self, client, seed_data):
        resp = client.post("/checkout/session", json={"subscription_id": seed_data["subscription_id"]})
        assert resp.status_code == 401

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_returns_session(self, mock_create, client, seed_data):
        mock_create.return_value = _session("cs_test_abc")
        login_member(client)

        resp = client.post("/checkout/session", json={"subscription_id": seed_data["subscription_id"]})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data == {
            "available": True,
            "session_id": "cs_test_abc",
            "publishable_key": "pk_test_fake",
            "sandbox": True,
            "checkout_version": "v3",
        }

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_plan_comes_from_subscription(self, mock_create, client, seed_data):
        mock_create.return_value = _session()
        login_member(client)

        resp = client.post("/checkout/session", json={
            "subscription_id": seed_data["subscription_id"],
            "membership_id": seed_data["free_id"],
        })

        assert resp.status_code == 200
        subscription_data = mock_create.call_args.kwargs["subscription_data"]
        assert subscription_data["items"] == [
            {"plan": external_ids.plan_id(seed_data["gold_id"], get_gateway().settings)}
        ]
        assert subscription_data["metadata"] == {
            "ms_relationship_id": seed_data["subscription_id"]
        }

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    @patch(CUSTOMER_RETRIEVE)
    def test_known_customer_session(self, mock_retrieve, mock_create, client, seed_data):
        mock_retrieve.return_value = _customer(id="cus_1", email="jane@example.com")
        mock_create.return_value = _session()
        member = db.session.get(Member, seed_data["member_id"])
        member.set_gateway_profile("stripecheckout", "customer_id", "cus_1")
        db.session.commit()
        login_member(client)

        resp = client.post("/checkout/session", json={"subscription_id": seed_data["subscription_id"]})

        assert resp.get_json()["available"] is True
        assert mock_create.call_args.kwargs["customer"] == "cus_1"

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_failure_hides_checkout(self, mock_create, client, seed_data):
        mock_create.side_effect = stripe.APIConnectionError("down")
        login_member(client)

        resp = client.post("/checkout/session", json={"subscription_id": seed_data["subscription_id"]})

        assert resp.status_code == 200
        assert resp.get_json() == {"available": False}

    @patch("membership_gateway.services.stripe_gateway.stripe.checkout.Session.create")
    def test_cancelled_subscription_not_offered(self, mock_create, client, seed_data):
        subscription = db.session.get(Subscription, seed_data["subscription_id"])
        subscription.status = Subscription.STATUS_CANCELED
        db.session.commit()
        login_member(client)

        resp = client.post("/checkout/session", json={"subscription_id": seed_data["subscription_id"]})

        assert resp.get_json() == {"available": False}
        mock_create.assert_not_called()

    def test_other_members_subscription_404(self, client, seed_data):
        login_admin(client)
        resp = client.post("/checkout/session", json={"subscription_id": seed_data["subscription_id"]})
        assert resp.status_code == 404


class TestReturnRoute:

    def _query(self, app, subscription_id, success=1):
        settings = get_gateway().settings
        return {
            "success": success,
            "ms_relationship_id": subscription_id,
            "nonce": checkout_service.make_return_nonce(settings, subscription_id),
        }

    def test_success_return_does_not_pay(self, app, client, seed_data):
        login_member(client)

        resp = client.get(
            "/checkout/return", query_string=self._query(app, seed_data["subscription_id"])
        )

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["returned_from"] == "success"
        assert data["confirmed"] is False
        assert data["invoice_status"] == Invoice.STATUS_BILLED
        assert db.session.get(Invoice, seed_data["invoice_id"]).status == Invoice.STATUS_BILLED

    def test_reports_paid_invoice(self, app, client, seed_data):
        invoice = db.session.get(Invoice, seed_data["invoice_id"])
        invoice.pay_it("stripecheckout", "in_1")
        db.session.commit()
        login_member(client)

        resp = client.get(
            "/checkout/return", query_string=self._query(app, seed_data["subscription_id"], 0)
        )

        data = resp.get_json()
        assert data["confirmed"] is True
        assert data["returned_from"] == "cancel"
        assert data["subscription_status"] == Subscription.STATUS_ACTIVE

    def test_bad_nonce_rejected(self, client, seed_data):
        login_member(client)
        resp = client.get("/checkout/return", query_string={
            "success": 1,
            "ms_relationship_id": seed_data["subscription_id"],
            "nonce": "forged",
        })
        assert resp.status_code == 400


class TestCardRoute:

    def test_requires_login(self, client, seed_data):
        resp = client.post("/checkout/card", json={"token": "tok_visa"})
        assert resp.status_code == 401

    def test_token_required(self, client, seed_data):
        login_member(client)
        resp = client.post("/checkout/card", json={})
        assert resp.status_code == 400

    @patch("membership_gateway.services.stripe_gateway.stripe.Customer.create")
    def test_first_card_creates_customer(self, mock_create, client, seed_data):
        mock_create.return_value = _customer(id="cus_new")
        login_member(client)

        resp = client.post("/checkout/card", json={"token": "tok_visa"})

        assert resp.status_code == 200
        assert resp.get_json()["updated"] is True
        mock_create.assert_called_once_with(source="tok_visa", email="jane@example.com")
        member = db.session.get(Member, seed_data["member_id"])
        assert member.get_gateway_profile("stripecheckout", "customer_id") == "cus_new"

    @patch("membership_gateway.services.stripe_gateway.stripe.Customer.modify")
    @patch("membership_gateway.services.stripe_gateway.stripe.Customer.create_source")
    @patch(CUSTOMER_RETRIEVE)
    def test_card_added_to_known_customer(self, mock_retrieve, mock_source, mock_modify,
                                          client, seed_data):
        member = db.session.get(Member, seed_data["member_id"])
        member.set_gateway_profile("stripecheckout", "customer_id", "cus_1")
        db.session.commit()
        mock_retrieve.return_value = _customer(id="cus_1")
        mock_source.return_value = stripe.Card.construct_from(
            {"id": "card_1", "object": "card", "exp_year": 2030, "exp_month": 4, "last4": "4242"},
            API_KEY,
        )
        login_member(client)

        resp = client.post("/checkout/card", json={"token": "tok_visa"})

        assert resp.get_json() == {
            "updated": True,
            "card_num": "4242",
            "card_exp": "2030-04-01",
        }
        mock_modify.assert_called_once_with("cus_1", default_source="card_1")

    @patch("membership_gateway.services.stripe_gateway.stripe.Customer.create")
    def test_stripe_failure_not_updated(self, mock_create, client, seed_data):
        mock_create.side_effect = stripe.CardError("Card declined", "number", "card_declined")
        login_member(client)

        resp = client.post("/checkout/card", json={"token": "tok_bad"})

        assert resp.status_code == 200
        assert resp.get_json() == {"updated": False}
        member = db.session.get(Member, seed_data["member_id"])
        assert member.get_gateway_profile("stripecheckout", "customer_id") in (None, "")
