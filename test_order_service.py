"""Gig order / escrow transaction tests"""

import threading

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from app import (
    Gig,
    GigOrder,
    Notification,
    Payment,
    User,
    app as flask_app,
    db,
    order_service,
)
from errors import InternalError, InvalidInput, InvalidOperation, InvalidState, NotFound, Unauthorized
from order_service import OrderService, derive_order_status
from schemas import PackageClaim


def basic_claim(**overrides):
    data = {"name": "Basic", "price": 500, "delivery_days": 7, "features": ["1 concept", "source files"]}
    data.update(overrides)
    return PackageClaim(**data)


def write_counts():
    db.session.expire_all()
    return (GigOrder.query.count(), Payment.query.count(), Notification.query.count())


@pytest.fixture
def seller(make_user):
    return make_user(role="FREELANCER", name="Alice")


@pytest.fixture
def buyer(make_user):
    return make_user(role="HIRER", name="Bob")


@pytest.fixture
def gig(make_gig, seller):
    return make_gig(seller)


def test_order_creates_order_payment_and_increments_count(gig, buyer, seller, reload):
    result = order_service.place_order(buyer.id, gig.id, 0, basic_claim())

    assert write_counts() == (1, 1, 2)

    order = reload(GigOrder, result.order_id)
    assert order.kind == "gig_order"
    assert order.buyer_id == buyer.id
    assert order.freelancer_id == seller.id
    assert order.is_accepted is True
    assert order.accepted_at is not None
    assert order.package_name == "Basic"

    payment = reload(Payment, result.payment_id)
    assert payment.status == "ESCROW"
    assert payment.currency == "USDC"
    assert payment.amount == 500
    assert payment.from_user_id == buyer.id
    assert payment.to_user_id == seller.id
    assert payment.order_id == order.id
    assert payment.escrow_address.startswith("escrow_")

    assert reload(Gig, gig.id).order_count == 1


def test_order_notifies_seller_and_buyer(gig, buyer, seller):
    result = order_service.place_order(buyer.id, gig.id, 0, basic_claim())

    seller_note = Notification.query.filter_by(user_id=seller.id).one()
    buyer_note = Notification.query.filter_by(user_id=buyer.id).one()

    assert seller_note.notification_type == "GIG_ORDER"
    assert seller_note.title == "New Gig Order!"
    assert "Bob" in seller_note.message
    assert buyer_note.notification_type == "ORDER_CONFIRMATION"
    assert "Alice" in buyer_note.message
    assert f'"orderId": {result.order_id}' in buyer_note.data
    assert seller_note.delivered_at is None


def test_logo_design_scenario(gig, buyer):
    body = order_service.place_order(buyer.id, gig.id, 0, basic_claim()).to_dict()

    assert body["success"] is True
    assert body["order"]["amount"] == 500
    assert body["order"]["status"] == "IN_PROGRESS"
    assert body["order"]["gigTitle"] == gig.title


@pytest.mark.parametrize("status", ["PAUSED", "INACTIVE"])
def test_inactive_gig_cannot_be_ordered(make_gig, seller, buyer, status):
    gig = make_gig(seller, status=status)

    with pytest.raises(InvalidState):
        order_service.place_order(buyer.id, gig.id, 0, basic_claim())

    assert write_counts() == (0, 0, 0)


def test_self_order_is_rejected(gig, seller, reload):
    with pytest.raises(InvalidOperation, match="Cannot order your own gig"):
        order_service.place_order(seller.id, gig.id, 0, basic_claim())

    assert write_counts() == (0, 0, 0)
    assert reload(Gig, gig.id).order_count == 0


@pytest.mark.parametrize("index,claim", [
    (0, {"price": 499}),
    (1, {"price": 500}),
    (2, {}),
])
def test_price_mismatch_is_rejected(gig, buyer, index, claim, reload):
    with pytest.raises(InvalidInput, match="Invalid package selection"):
        order_service.place_order(buyer.id, gig.id, index, basic_claim(**claim))

    assert write_counts() == (0, 0, 0)
    assert reload(Gig, gig.id).order_count == 0


def test_package_index_past_catalog_is_rejected(make_gig, seller, buyer):
    single = [{"name": "Basic", "description": "Single concept with source files", "price": 500.0,
               "deliveryDays": 7, "revisions": 1, "features": ["1 concept"]}]
    gig = make_gig(seller, packages=single)

    with pytest.raises(InvalidInput):
        order_service.place_order(buyer.id, gig.id, 2, basic_claim())

    assert write_counts() == (0, 0, 0)


def test_missing_buyer_gig_and_user(gig):
    with pytest.raises(Unauthorized):
        order_service.place_order(None, gig.id, 0, basic_claim())
    with pytest.raises(NotFound, match="Gig not found"):
        order_service.place_order(12345, 99999, 0, basic_claim())
    with pytest.raises(NotFound, match="User not found"):
        order_service.place_order(12345, gig.id, 0, basic_claim())


def test_concurrent_orders_do_not_lose_updates(gig, make_user, reload):
    n = 8
    buyers = [make_user(role="HIRER").id for _ in range(n)]
    gig_id = gig.id
    db.session.remove()

    barrier = threading.Barrier(n)
    results, failures = [], []

    def place(buyer_id):
        with flask_app.app_context():
            barrier.wait()
            try:
                results.append(order_service.place_order(buyer_id, gig_id, 0, basic_claim()))
            except Exception as e:
                failures.append(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=place, args=(b,)) for b in buyers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert failures == []
    assert len({r.order_id for r in results}) == n
    assert len({r.payment_id for r in results}) == n

    assert reload(Gig, gig_id).order_count == n
    handles = [p.escrow_address for p in Payment.query.all()]
    assert len(handles) == n
    assert len(set(handles)) == n


def test_storage_fault_before_payment_rolls_back_order(gig, buyer, reload):
    def failing_payment(**kwargs):
        raise OperationalError("INSERT INTO payment", {}, Exception("disk I/O error"))

    service = OrderService(db, Gig, User, GigOrder, failing_payment, Notification)

    with pytest.raises(InternalError):
        service.place_order(buyer.id, gig.id, 0, basic_claim())

    assert write_counts() == (0, 0, 0)
    assert reload(Gig, gig.id).order_count == 0


def test_gig_paused_mid_transaction_aborts_order(gig, buyer, reload):
    def pausing_order(**kwargs):
        # Another writer pauses the gig after validation
        db.session.query(Gig).filter(Gig.id == kwargs["gig_id"]).update(
            {Gig.status: "PAUSED"}, synchronize_session=False
        )
        return GigOrder(**kwargs)

    service = OrderService(db, Gig, User, pausing_order, Payment, Notification)

    with pytest.raises(InvalidState):
        service.place_order(buyer.id, gig.id, 0, basic_claim())

    assert write_counts() == (0, 0, 0)
    refreshed = reload(Gig, gig.id)
    assert refreshed.status == "ACTIVE"
    assert refreshed.order_count == 0


def test_release_payment_moves_escrow_to_released(gig, buyer, seller, reload):
    result = order_service.place_order(buyer.id, gig.id, 0, basic_claim())

    payment = order_service.release_payment(buyer.id, result.payment_id)

    assert payment.status == "RELEASED"
    assert payment.released_at is not None
    note = Notification.query.filter_by(user_id=seller.id, notification_type="PAYMENT_RELEASED").one()
    assert "500 USDC" in note.message

    with pytest.raises(InvalidState):
        order_service.release_payment(buyer.id, result.payment_id)


def test_only_buyer_can_release(gig, buyer, seller):
    from errors import Forbidden

    result = order_service.place_order(buyer.id, gig.id, 0, basic_claim())

    with pytest.raises(Forbidden):
        order_service.release_payment(seller.id, result.payment_id)
    with pytest.raises(NotFound):
        order_service.release_payment(buyer.id, 99999)


def test_list_orders_by_role(gig, buyer, seller):
    order_service.place_order(buyer.id, gig.id, 1, basic_claim(name="Standard", price=900, delivery_days=5))

    bought = order_service.list_orders(buyer.id, "buyer")
    sold = order_service.list_orders(seller.id, "seller")

    assert len(bought) == 1
    assert bought[0]["packageName"] == "Standard"
    assert bought[0]["status"] == "IN_PROGRESS"
    assert bought[0]["payment"]["amount"] == 900
    assert bought[0]["gigTitle"] == gig.title
    assert [o["id"] for o in sold] == [bought[0]["id"]]
    assert order_service.list_orders(seller.id, "buyer") == []


def test_derive_order_status():
    assert derive_order_status("ESCROW") == "IN_PROGRESS"
    assert derive_order_status("RELEASED") == "COMPLETED"
    assert derive_order_status("REFUNDED") == "CANCELLED"
    assert derive_order_status(None) == "PENDING"


def test_list_orders_query_count_does_not_grow_with_orders(gig, buyer):
    def count_statements(role_user_id):
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(db.engine, "before_cursor_execute", record)
        try:
            db.session.expire_all()
            orders = order_service.list_orders(role_user_id, "buyer")
        finally:
            event.remove(db.engine, "before_cursor_execute", record)
        return len(orders), len(statements)

    order_service.place_order(buyer.id, gig.id, 0, basic_claim())
    one = count_statements(buyer.id)

    for _ in range(3):
        order_service.place_order(buyer.id, gig.id, 0, basic_claim())
    four = count_statements(buyer.id)

    assert one[0] == 1
    assert four[0] == 4
    assert four[1] == one[1]
