"""Order listing and escrow release endpoint tests"""

import pytest

from app import Payment


@pytest.fixture
def placed_order(client, make_user, make_gig, login):
    seller = make_user(name="Alice")
    buyer = make_user(role="HIRER", name="Bob")
    gig = make_gig(seller)

    login(buyer)
    body = client.post(f"/api/gigs/{gig.id}/order", json={
        "packageIndex": 2,
        "packageData": {"name": "Premium", "price": 1500, "deliveryDays": 3, "features": ["brand kit"]},
    }).get_json()
    return seller, buyer, body


def test_buyer_and_seller_order_lists(client, login, placed_order):
    seller, buyer, body = placed_order

    bought = client.get("/api/orders").get_json()["orders"]
    assert [o["id"] for o in bought] == [body["orderId"]]
    assert bought[0]["payment"]["status"] == "ESCROW"
    assert bought[0]["status"] == "IN_PROGRESS"

    login(seller)
    sold = client.get("/api/orders?role=seller").get_json()["orders"]
    assert [o["id"] for o in sold] == [body["orderId"]]
    assert client.get("/api/orders").get_json()["orders"] == []


def test_unknown_role(client, placed_order):
    assert client.get("/api/orders?role=admin").status_code == 400


def test_release_payment(client, placed_order, reload):
    _, _, body = placed_order

    response = client.post(f"/api/payments/{body['paymentId']}/release")

    assert response.status_code == 200
    assert response.get_json()["payment"]["status"] == "RELEASED"
    assert reload(Payment, body["paymentId"]).released_at is not None

    orders = client.get("/api/orders").get_json()["orders"]
    assert orders[0]["status"] == "COMPLETED"

    again = client.post(f"/api/payments/{body['paymentId']}/release")
    assert again.status_code == 400


def test_seller_cannot_release(client, login, placed_order):
    seller, _, body = placed_order
    login(seller)

    response = client.post(f"/api/payments/{body['paymentId']}/release")

    assert response.status_code == 403
    assert response.get_json() == {"error": "Only the buyer can release this payment"}


def test_release_requires_login(client, placed_order):
    with client.session_transaction() as sess:
        sess.clear()

    assert client.post(f"/api/payments/{placed_order[2]['paymentId']}/release").status_code == 401
