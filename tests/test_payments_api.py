"""
Tests for the /api/payments endpoints, including the Stripe webhook.
"""
import json

from app.db.models import CandidatePayment, Subscription, User


def register(client, email, user_type):
    response = client.post("/api/auth/register", json={
        "email": email, "password": "testpass123", "first_name": "Pat", "user_type": user_type,
    })
    assert response.status_code == 201
    return response.json()


def auth_header(tokens):
    return {"Authorization": f"Bearer {tokens['access']}"}


def post_event(client, headers, event):
    return client.post("/api/payments/webhook", content=json.dumps(event), headers=headers)


# ============================================
# ✅ CATALOG
# ============================================

def test_plans_hide_price_ids(client):
    plans = client.get("/api/payments/plans").json()["plans"]
    assert [p["id"] for p in plans] == ["free", "basic", "pro", "pro_plus"]
    assert all("stripe_price_id" not in p for p in plans)


def test_candidate_packages(client):
    packages = client.get("/api/payments/candidate-packages").json()["packages"]
    assert {p["id"]: p["price"] for p in packages} == {
        "base": 5, "subdomain_addon": 2, "single_domain_bundle": 10, "full_bundle": 18,
    }


# ============================================
# ✅ CHECKOUT
# ============================================

def test_vendor_checkout(client, gateway):
    tokens = register(client, "vendor@example.com", "vendor")
    response = client.post("/api/payments/checkout", json={"planId": "pro"}, headers=auth_header(tokens))
    assert response.status_code == 200
    assert response.json()["url"].startswith("https://checkout.stripe.test/")
    assert gateway.subscription_checkouts[0]["metadata"]["plan"] == "pro"


def test_vendor_checkout_forbidden_for_candidates(client, gateway):
    tokens = register(client, "cand@example.com", "candidate")
    response = client.post("/api/payments/checkout", json={"planId": "pro"}, headers=auth_header(tokens))
    assert response.status_code == 403
    assert response.json() == {"error": "Vendor account required for subscription plans"}
    assert gateway.subscription_checkouts == []


def test_vendor_checkout_requires_auth(client):
    assert client.post("/api/payments/checkout", json={"planId": "pro"}).status_code == 401


def test_vendor_checkout_free_plan_is_400(client):
    tokens = register(client, "vendor@example.com", "vendor")
    response = client.post("/api/payments/checkout", json={"planId": "free"}, headers=auth_header(tokens))
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid plan or free plan selected"}


def test_candidate_checkout(client, gateway):
    tokens = register(client, "cand@example.com", "candidate")
    response = client.post(
        "/api/payments/candidate-checkout",
        json={"packageId": "base", "domain": "contract", "subdomains": ["c2c"]},
        headers=auth_header(tokens),
    )
    assert response.status_code == 200
    metadata = gateway.payment_checkouts[0]["metadata"]
    assert metadata["package_id"] == "base"
    assert metadata["user_id"] == tokens["user"]["id"]


def test_candidate_checkout_forbidden_for_vendors(client):
    tokens = register(client, "vendor@example.com", "vendor")
    response = client.post(
        "/api/payments/candidate-checkout",
        json={"packageId": "full_bundle"},
        headers=auth_header(tokens),
    )
    assert response.status_code == 403


def test_candidate_checkout_bad_domain_is_400(client):
    tokens = register(client, "cand@example.com", "candidate")
    response = client.post(
        "/api/payments/candidate-checkout",
        json={"packageId": "base", "domain": "gig", "subdomains": ["c2c"]},
        headers=auth_header(tokens),
    )
    assert response.status_code == 400


def test_portal_without_customer_is_400(client):
    tokens = register(client, "vendor@example.com", "vendor")
    response = client.post("/api/payments/portal", headers=auth_header(tokens))
    assert response.status_code == 400
    assert response.json() == {"error": "No billing account found. Please subscribe first."}


# ============================================
# ✅ WEBHOOK
# ============================================

def test_webhook_rejects_bad_signature(client, db):
    tokens = register(client, "cand@example.com", "candidate")
    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1", "mode": "payment",
            "metadata": {"user_id": tokens["user"]["id"], "package_id": "full_bundle"},
        }},
    }
    response = client.post(
        "/api/payments/webhook",
        content=json.dumps(event),
        headers={"stripe-signature": "t=1,v1=forged"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}
    assert db.query(CandidatePayment).count() == 0


def test_webhook_without_signature_header(client):
    response = client.post("/api/payments/webhook", content=b"{}")
    assert response.status_code == 400


def test_webhook_payment_grants_visibility(client, db, webhook_headers):
    tokens = register(client, "cand@example.com", "candidate")
    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1", "mode": "payment", "amount_total": 1800,
            "metadata": {"user_id": tokens["user"]["id"], "package_id": "full_bundle",
                         "domain": "", "subdomains": "[]"},
        }},
    }

    assert post_event(client, webhook_headers, event).json() == {"received": True}
    # Stripe retries deliver the same session again
    assert post_event(client, webhook_headers, event).status_code == 200

    assert db.query(CandidatePayment).count() == 1
    me = client.get("/api/auth/verify", headers=auth_header(tokens)).json()["user"]
    assert me["has_purchased_visibility"] is True
    assert me["membership_config"] == {
        "contract": ["1099", "c2c", "c2h", "w2"],
        "full_time": ["c2h", "direct_hire", "salary", "w2"],
    }


def test_webhook_subscription_lifecycle(client, db, webhook_headers, notifier):
    tokens = register(client, "vendor@example.com", "vendor")
    client.post("/api/payments/checkout", json={"planId": "pro"}, headers=auth_header(tokens))
    customer_id = db.query(Subscription).filter(Subscription.user_id == tokens["user"]["id"]).first().stripe_customer_id

    def event(event_type):
        return {
            "id": f"evt_{event_type}",
            "type": event_type,
            "data": {"object": {
                "id": "sub_1", "customer": customer_id, "status": "active", "current_period_end": 1767225600,
                "items": {"data": [{"price": {"id": "price_pro_test"}}]},
            }},
        }

    post_event(client, webhook_headers, event("customer.subscription.created"))
    subscription = client.get("/api/payments/subscription", headers=auth_header(tokens)).json()["subscription"]
    assert subscription["plan"] == "pro"
    assert subscription["stripe_subscription_id"] == "sub_1"
    assert ("subscription_activated", "vendor@example.com", "pro") in notifier.sent

    # A fresh login picks the new plan up in its claims
    login = client.post("/api/auth/login", json={"email": "vendor@example.com", "password": "testpass123"})
    assert login.json()["user"]["plan"] == "pro"

    post_event(client, webhook_headers, event("customer.subscription.deleted"))
    subscription = client.get("/api/payments/subscription", headers=auth_header(tokens)).json()["subscription"]
    assert subscription["plan"] == "free"
    assert subscription["status"] == "canceled"


def test_webhook_ignores_unknown_events(client, webhook_headers):
    response = post_event(client, webhook_headers, {"id": "evt_x", "type": "invoice.paid", "data": {"object": {}}})
    assert response.json() == {"received": True}


def test_webhook_payment_for_unknown_user_is_acknowledged(client, db, webhook_headers):
    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_1", "mode": "payment",
                            "metadata": {"user_id": "ghost", "package_id": "base"}}},
    }
    assert post_event(client, webhook_headers, event).status_code == 200
    assert db.query(User).count() == 0
    assert db.query(CandidatePayment).count() == 0


def test_webhook_handler_runs_off_the_event_loop():
    import inspect

    from app.api.routes import billing_webhook

    assert not inspect.iscoroutinefunction(billing_webhook.stripe_webhook)
    assert inspect.iscoroutinefunction(billing_webhook.raw_body)


def test_webhook_reads_exact_raw_body(client, gateway, webhook_headers):
    seen = []
    original = gateway.construct_event

    def recording(payload, signature):
        seen.append(payload)
        return original(payload, signature)

    gateway.construct_event = recording
    body = b'{"id": "evt_raw",   "type": "invoice.paid", "data": {"object": {}}}'
    response = client.post("/api/payments/webhook", content=body, headers=webhook_headers)

    assert response.status_code == 200
    assert seen == [body]
