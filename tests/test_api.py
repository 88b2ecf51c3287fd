"""
HTTP API tests.

Verifies routing, the admin API-key guard and the mapping from operation
errors to status codes, using the TestClient bound to the test database.
"""

from decimal import Decimal

API = "/api/v1"
BUYER = "900000000000000001"


def _checkout(client, product_id, user_id=BUYER, **extra):
    body = {"user_id": user_id, "user_name": "Buyer", "product_id": product_id, **extra}
    return client.post(f"{API}/payments", json=body)


def test_health_and_root(client, settings):
    health = client.get(f"{API}/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    root = client.get("/")
    assert root.json()["docs"] == "/docs"


class TestAdminGuard:

    def test_missing_key(self, client):
        response = client.get(f"{API}/payments/pending")
        assert response.status_code == 401

    def test_wrong_key(self, client):
        response = client.get(f"{API}/audit", headers={"X-API-Key": "wrong"})
        assert response.status_code == 401

    def test_valid_key(self, client, admin_headers):
        response = client.get(f"{API}/audit", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 0


class TestProducts:

    def test_admin_creates_product(self, client, admin_headers):
        response = client.post(
            f"{API}/products",
            json={"type": "Valorant", "price": "59.90", "details": {"rank": "Gold"}},
            headers=admin_headers,
        )

        assert response.status_code == 201
        product = response.json()
        assert product["type"] == "valorant"
        assert Decimal(product["price"]) == Decimal("59.90")

    def test_listing_and_filters(self, client, make_product):
        make_product(type="lol")
        make_product(type="valorant")

        listed = client.get(f"{API}/products", params={"type": "lol"}).json()

        assert listed["total"] == 1
        assert listed["products"][0]["type"] == "lol"

    def test_invalid_order_is_rejected(self, client):
        assert client.get(f"{API}/products", params={"order_by": "name"}).status_code == 422

    def test_get_product_records_view(self, client, make_product):
        product = make_product()

        response = client.get(f"{API}/products/{product.id}", params={"user_id": BUYER})
        history = client.get(f"{API}/users/{BUYER}/history").json()

        assert response.status_code == 200
        assert history[0]["action"] == "PRODUCT_VIEW"
        assert history[0]["data"]["product_id"] == product.id

    def test_unknown_product(self, client):
        assert client.get(f"{API}/products/missing").status_code == 404

    def test_price_quote(self, client, make_product, admin_headers):
        product = make_product(price=Decimal("59.90"))
        client.post(
            f"{API}/promotions",
            json={"type": "flash", "discount": 10, "duration_hours": 24},
            headers=admin_headers,
        )

        quote = client.get(f"{API}/products/{product.id}/price").json()

        assert quote["has_discount"] is True
        assert Decimal(quote["discounted_price"]) == Decimal("53.91")

    def test_search(self, client, make_product):
        make_product(name="Immortal smurf")
        assert client.get(f"{API}/products/search", params={"q": "immortal"}).json()["total"] == 1
        assert client.get(f"{API}/products/search", params={"q": "im"}).json()["total"] == 0

    def test_sync_disabled(self, client, admin_headers):
        report = client.post(f"{API}/products/sync", headers=admin_headers).json()
        assert report == {
            "success": False, "added": 0, "updated": 0, "errors": 0,
            "message": "Marketplace sync is disabled",
        }


class TestPayments:

    def test_checkout_and_approval(self, client, make_product, admin_headers):
        product = make_product(price=Decimal("100.00"))

        created = _checkout(client, product.id, promo_code=None)
        assert created.status_code == 201
        payment = created.json()
        assert payment["status"] == "PENDING"
        assert payment["pix_details"]["transaction_id"].startswith("DISCBOT")
        assert payment["delivery_details"] is None

        pending = client.get(f"{API}/payments/pending", headers=admin_headers).json()
        assert [p["id"] for p in pending["payments"]] == [payment["id"]]

        approved = client.post(f"{API}/payments/{payment['id']}/approve", headers=admin_headers)
        assert approved.status_code == 200
        body = approved.json()
        assert body["payment"]["status"] == "COMPLETED"
        assert body["account_credentials"]["login"].startswith("user_")
        assert body["loyalty_points"] == 100

        again = client.post(f"{API}/payments/{payment['id']}/approve", headers=admin_headers)
        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "INVALID_STATE"

        loyalty = client.get(f"{API}/loyalty/{BUYER}").json()
        assert loyalty["balance"] == 100

        purchases = client.get(f"{API}/users/{BUYER}/purchases").json()
        assert purchases[0]["payment_id"] == payment["id"]

    def test_checkout_of_sold_product(self, client, make_product):
        product = make_product(available=False, sold=True)

        response = _checkout(client, product.id)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "ALREADY_SOLD"

    def test_unknown_payment(self, client):
        response = client.get(f"{API}/payments/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == {"error": "NOT_FOUND", "message": "Payment not found"}

    def test_only_buyer_can_cancel(self, client, make_product):
        payment = _checkout(client, make_product().id).json()

        forbidden = client.post(f"{API}/payments/{payment['id']}/cancel", json={"user_id": "intruder"})
        cancelled = client.post(f"{API}/payments/{payment['id']}/cancel", json={"user_id": BUYER})

        assert forbidden.status_code == 403
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"

    def test_gateway_and_reject(self, client, make_product, admin_headers):
        payment = _checkout(client, make_product().id).json()

        processing = client.post(
            f"{API}/payments/{payment['id']}/gateway", json={"status": "approved"}, headers=admin_headers,
        )
        rejected = client.post(
            f"{API}/payments/{payment['id']}/reject", json={"reason": "wrong amount"}, headers=admin_headers,
        )

        assert processing.json()["status"] == "PROCESSING"
        assert rejected.json()["status"] == "REJECTED"
        assert rejected.json()["approval_info"]["rejection_reason"] == "wrong amount"

    def test_user_pending_and_sweep(self, client, make_product, admin_headers):
        _checkout(client, make_product().id)

        assert client.get(f"{API}/payments/user/{BUYER}/pending").json()["total"] == 1
        assert client.post(f"{API}/payments/sweep", headers=admin_headers).json() == {"expired": 0}

    def test_report(self, client, make_product, admin_headers):
        _checkout(client, make_product().id)

        rows = client.get(f"{API}/payments/report", headers=admin_headers).json()

        assert rows[0]["status"] == "PENDING"
        assert rows[0]["total"] == 1


class TestPromotions:

    def test_out_of_bounds_discount(self, client, admin_headers):
        response = client.post(
            f"{API}/promotions",
            json={"type": "flash", "discount": 60, "duration_hours": 24},
            headers=admin_headers,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

    def test_create_list_and_end(self, client, admin_headers):
        created = client.post(
            f"{API}/promotions",
            json={"type": "season", "discount": 15, "duration_hours": 12, "promo_code": "SUMMER"},
            headers=admin_headers,
        ).json()

        assert client.get(f"{API}/promotions").json()["total"] == 1
        assert client.get(f"{API}/promotions/code/summer").json()["id"] == created["id"]

        assert client.post(f"{API}/promotions/{created['id']}/end", headers=admin_headers).status_code == 200
        second = client.post(f"{API}/promotions/{created['id']}/end", headers=admin_headers)
        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "ALREADY_INACTIVE"
        assert client.get(f"{API}/promotions").json()["total"] == 0

    def test_update_with_null_fields(self, client, admin_headers):
        created = client.post(
            f"{API}/promotions",
            json={"type": "flash", "discount": 10, "duration_hours": 24},
            headers=admin_headers,
        ).json()

        for body in ({"duration_hours": None}, {"start_date": None}, {"discount": None}):
            response = client.patch(f"{API}/promotions/{created['id']}", json=body, headers=admin_headers)
            assert response.status_code == 422
            assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

        unchanged = client.get(f"{API}/promotions/{created['id']}").json()
        assert unchanged["end_date"] == created["end_date"]
        assert unchanged["discount"] == 10


class TestLoyalty:

    def test_spend_more_than_balance(self, client, admin_headers):
        client.post(f"{API}/loyalty/{BUYER}/add", json={"amount": 30}, headers=admin_headers)

        response = client.post(f"{API}/loyalty/{BUYER}/use", json={"amount": 50})

        assert response.status_code == 400
        assert response.json()["detail"]["details"] == {"current": 30, "requested": 50}

    def test_spend_without_account(self, client):
        response = client.post(f"{API}/loyalty/{BUYER}/use", json={"amount": 5})
        assert response.json()["detail"]["error"] == "NO_ACCOUNT"

    def test_invalid_amount(self, client, admin_headers):
        response = client.post(f"{API}/loyalty/{BUYER}/add", json={"amount": 0}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "INVALID_AMOUNT"


class TestUsers:

    def test_profile_lifecycle(self, client, admin_headers):
        client.put(f"{API}/users", json={"user_id": BUYER, "username": "lucas"})

        blocked = client.post(f"{API}/users/{BUYER}/block", json={"reason": "spam"}, headers=admin_headers)
        assert blocked.json()["is_blocked"] is True

        unblocked = client.post(f"{API}/users/{BUYER}/unblock", headers=admin_headers)
        assert unblocked.json()["is_blocked"] is False

        again = client.post(f"{API}/users/{BUYER}/unblock", headers=admin_headers)
        assert again.status_code == 409

        preferences = client.patch(f"{API}/users/{BUYER}/preferences", json={"theme": "dark"}).json()
        assert preferences["theme"] == "dark"

    def test_unknown_user(self, client):
        assert client.get(f"{API}/users/missing").status_code == 404

    def test_blocked_user_cannot_check_out(self, client, make_product, admin_headers):
        client.put(f"{API}/users", json={"user_id": BUYER, "username": "lucas"})
        client.post(f"{API}/users/{BUYER}/block", json={"reason": "fraud"}, headers=admin_headers)

        response = _checkout(client, make_product().id)

        assert response.status_code == 403

    def test_recommendations(self, client, make_product):
        make_product()
        result = client.get(f"{API}/users/{BUYER}/recommendations").json()
        assert result["total"] == 1


class TestAssistant:

    def test_ask_and_feedback(self, client):
        answer = client.post(f"{API}/assistant/ask", json={"user_id": BUYER, "question": "How to pay?"}).json()
        assert "PIX" in answer["answer"]

        feedback = client.post(
            f"{API}/assistant/feedback",
            json={"response_id": answer["id"], "user_id": BUYER, "feedback_type": "helpful"},
        )
        assert feedback.json() == {"recorded": True}

        unknown = client.post(
            f"{API}/assistant/feedback",
            json={"response_id": "nope", "user_id": BUYER, "feedback_type": "helpful"},
        )
        assert unknown.status_code == 404


def test_audit_search_and_cleanup(client, make_product, admin_headers):
    _checkout(client, make_product().id)

    found = client.get(f"{API}/audit", params={"action": "PAYMENT_CREATED"}, headers=admin_headers).json()
    stats = client.get(f"{API}/audit/stats", headers=admin_headers).json()
    cleanup = client.post(f"{API}/audit/cleanup", headers=admin_headers).json()

    assert found["total"] == 1
    assert stats["total"] >= 1
    assert cleanup == {"deleted": 0}
