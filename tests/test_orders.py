"""
Testes da criação de pedidos
============================
Preço congelado, totais exatos, validação de produtos e numeração sequencial
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

import pdv.core.orders as orders_module
from pdv.core.errors import ConflictError, DUPLICATE_ORDER_NUMBER
from pdv.core.models import Order, OrderItem, User
from pdv.extensions import db


def _post_order(client, headers, items, payment="CASH", **extra):
    body = {"items": items, "paymentMethod": payment, **extra}
    return client.post("/api/orders", json=body, headers=headers)


# ═══════════════════════════════════════════════════════════
# MONTAGEM E TOTAIS
# ═══════════════════════════════════════════════════════════

def test_create_order_computes_subtotals_and_total(app, client, auth, catalog):
    resp = _post_order(
        client, auth("ATTENDANT"),
        [{"productId": catalog["burger"], "quantity": 2}, {"productId": catalog["soda"], "quantity": 3, "note": "sem gelo"}],
        payment="PIX", customerName="Maria",
    )
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["orderNumber"] == 1
    assert data["status"] == "PENDING"
    assert data["paymentMethod"] == "PIX"
    assert data["customerName"] == "Maria"
    assert data["total"] == 33.5
    assert data["user"]["email"] == "atendente@pdv.com"
    assert [i["subtotal"] for i in data["items"]] == [20.0, 13.5]
    assert data["items"][1]["note"] == "sem gelo"
    assert data["items"][0]["product"]["name"] == "Hambúrguer"

    with app.app_context():
        order = db.session.get(Order, data["id"])
        assert order.total == Decimal("33.50")
        assert order.total == sum(i.subtotal for i in order.items)
        for item in order.items:
            assert item.subtotal == item.price * item.quantity


def test_exact_decimal_totals_without_float_drift(app, client, auth, catalog):
    client.put(f"/api/products/{catalog['soda']}", json={"price": "0.10"}, headers=auth("ADMIN"))
    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 3}])
    assert resp.status_code == 201
    with app.app_context():
        order = db.session.get(Order, resp.get_json()["id"])
        assert order.total == Decimal("0.30")


def test_price_is_snapshot_at_order_time(app, client, auth, catalog):
    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["burger"], "quantity": 1}])
    order_id = resp.get_json()["id"]

    client.put(f"/api/products/{catalog['burger']}", json={"price": 99}, headers=auth("ADMIN"))

    detail = client.get(f"/api/orders/{order_id}", headers=auth("ADMIN")).get_json()
    assert detail["items"][0]["price"] == 10.0
    assert detail["total"] == 10.0
    assert detail["items"][0]["product"]["price"] == 99.0


# ═══════════════════════════════════════════════════════════
# VALIDAÇÃO
# ═══════════════════════════════════════════════════════════

def test_missing_and_unavailable_products_are_all_reported(app, client, auth, catalog):
    resp = _post_order(client, auth("ADMIN"), [
        {"productId": 9999, "quantity": 1},
        {"productId": catalog["unavailable"], "quantity": 1},
        {"productId": catalog["burger"], "quantity": 1},
    ])
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "INVALID_PRODUCT"
    assert sorted(d["productId"] for d in body["details"]) == sorted([9999, catalog["unavailable"]])

    with app.app_context():
        assert Order.query.count() == 0
        assert OrderItem.query.count() == 0


@pytest.mark.parametrize("items", [
    [],
    [{"productId": 1, "quantity": 0}],
    [{"productId": 1, "quantity": -2}],
    [{"productId": 1, "quantity": 1.5}],
    [{"productId": 1}],
])
def test_invalid_items_payload_is_rejected(client, auth, catalog, items):
    resp = _post_order(client, auth("ADMIN"), items)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"


def test_invalid_payment_method_is_rejected(client, auth, catalog):
    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["burger"], "quantity": 1}], payment="CHEQUE")
    assert resp.status_code == 400
    fields = [d["field"] for d in resp.get_json()["details"]]
    assert "paymentMethod" in fields


def test_create_order_requires_authentication(client, catalog):
    resp = _post_order(client, {}, [{"productId": catalog["burger"], "quantity": 1}])
    assert resp.status_code == 401


def test_non_json_body_is_rejected(client, auth, catalog):
    resp = client.post("/api/orders", data="x", headers=auth("ADMIN"))
    assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════
# NUMERAÇÃO
# ═══════════════════════════════════════════════════════════

def test_order_numbers_are_sequential_without_gaps(client, auth, catalog):
    numbers = []
    for _ in range(5):
        resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
        numbers.append(resp.get_json()["orderNumber"])
    assert numbers == [1, 2, 3, 4, 5]


def test_numbering_continues_after_existing_max(app, client, auth, users, catalog):
    with app.app_context():
        db.session.add(Order(order_number=41, total=Decimal("0"), user_id=users["ADMIN"]["id"], payment_method="CASH"))
        db.session.commit()

    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    assert resp.get_json()["orderNumber"] == 42


def test_rejected_order_does_not_consume_a_number(client, auth, catalog):
    _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    bad = _post_order(client, auth("ADMIN"), [{"productId": 9999, "quantity": 1}])
    assert bad.status_code == 400
    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    assert resp.get_json()["orderNumber"] == 2


def test_duplicate_number_conflict_is_retried(client, auth, catalog, monkeypatch):
    calls = {"n": 0}
    original = orders_module._build_order

    def flaky(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConflictError("Número de pedido duplicado", DUPLICATE_ORDER_NUMBER, "orderNumber")
        return original(*args, **kwargs)

    monkeypatch.setattr(orders_module, "_build_order", flaky)
    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["burger"], "quantity": 1}])
    assert resp.status_code == 201
    assert calls["n"] == 2


def test_real_unique_violation_retries_then_succeeds(app, client, auth, catalog, monkeypatch):
    first = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    assert first.get_json()["orderNumber"] == 1

    numbers = iter([1, 2])
    monkeypatch.setattr(orders_module, "next_order_number", lambda: next(numbers))
    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    assert resp.status_code == 201
    assert resp.get_json()["orderNumber"] == 2
    with app.app_context():
        assert Order.query.count() == 2


def test_exhausted_retries_surface_conflict(app, client, auth, catalog, monkeypatch):
    _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    monkeypatch.setattr(orders_module, "next_order_number", lambda: 1)

    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == DUPLICATE_ORDER_NUMBER
    assert body["field"] == "orderNumber"
    with app.app_context():
        assert Order.query.count() == 1
        assert OrderItem.query.count() == 1


def test_counter_failure_falls_back_to_clock_number(client, auth, catalog, monkeypatch, caplog):
    def broken_update(*args, **kwargs):
        raise OperationalError("UPDATE order_sequences", {}, Exception("no such table: order_sequences"))

    monkeypatch.setattr(orders_module, "update", broken_update)
    monkeypatch.setattr(orders_module, "_fallback_order_number", lambda: 777777)

    with caplog.at_level("WARNING", logger="pdv.core.orders"):
        resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["burger"], "quantity": 1}])

    assert resp.status_code == 201
    assert resp.get_json()["orderNumber"] == 777777
    assert any("relógio" in r.getMessage() for r in caplog.records)


def test_lock_error_is_not_masked_by_fallback(app, client, auth, catalog, monkeypatch):
    def locked_update(*args, **kwargs):
        raise OperationalError("UPDATE order_sequences", {}, Exception("database is locked"))

    monkeypatch.setattr(orders_module, "update", locked_update)
    resp = _post_order(client, auth("ADMIN"), [{"productId": catalog["burger"], "quantity": 1}])
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "DATABASE_BUSY"
    with app.app_context():
        assert Order.query.count() == 0


def test_concurrent_creation_yields_contiguous_numbers(app, users, catalog, make_order):
    """Criações simultâneas recebem números consecutivos, sem repetição nem buraco"""
    make_order([("soda", 1)])
    workers = 8
    barrier = threading.Barrier(workers, timeout=30)
    numbers, errors = [], []

    def worker():
        with app.app_context():
            try:
                admin = db.session.get(User, users["ADMIN"]["id"])
                barrier.wait()
                order = orders_module.create_order(
                    admin, [orders_module.OrderLine(catalog["burger"], 1)], "CASH"
                )
                numbers.append(order.order_number)
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)

    assert errors == []
    assert sorted(numbers) == list(range(2, workers + 2))
    with app.app_context():
        assert Order.query.count() == workers + 1


def test_order_creation_takes_write_lock_at_begin(app, users, catalog):
    statements = []

    def record(conn, cursor, statement, *args):
        statements.append(statement)

    with app.app_context():
        admin = db.session.get(User, users["ADMIN"]["id"])
        event.listen(db.engine, "before_cursor_execute", record)
        try:
            orders_module.create_order(admin, [orders_module.OrderLine(catalog["soda"], 1)], "PIX")
        finally:
            event.remove(db.engine, "before_cursor_execute", record)
    assert "BEGIN IMMEDIATE" in statements


# ═══════════════════════════════════════════════════════════
# CONSULTA, ALTERAÇÃO E REMOÇÃO
# ═══════════════════════════════════════════════════════════

def test_list_orders_scope_and_pagination(client, auth, users, catalog):
    for _ in range(3):
        _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}])
    _post_order(client, auth("ATTENDANT"), [{"productId": catalog["burger"], "quantity": 1}])

    own = client.get("/api/orders", headers=auth("ATTENDANT")).get_json()
    assert own["pagination"]["totalItems"] == 1
    assert own["data"][0]["userId"] == users["ATTENDANT"]["id"]

    page = client.get("/api/orders?page=2&limit=3", headers=auth("MANAGER")).get_json()
    assert page["pagination"] == {"totalItems": 4, "totalPages": 2, "currentPage": 2, "pageSize": 3}
    assert len(page["data"]) == 1
    assert page["data"][0]["orderNumber"] == 1

    by_user = client.get(f"/api/orders?userId={users['ATTENDANT']['id']}", headers=auth("ADMIN")).get_json()
    assert by_user["pagination"]["totalItems"] == 1

    bad = client.get("/api/orders?status=ANY", headers=auth("ADMIN"))
    assert bad.status_code == 400


def test_order_detail_is_restricted_to_owner_or_staff(client, auth, catalog):
    order_id = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}]).get_json()["id"]

    assert client.get(f"/api/orders/{order_id}", headers=auth("ATTENDANT")).status_code == 403
    detail = client.get(f"/api/orders/{order_id}", headers=auth("MANAGER")).get_json()
    assert detail["comments"] == []
    assert client.get("/api/orders/999", headers=auth("ADMIN")).status_code == 404


def test_manager_replaces_items_and_recomputes_total(app, client, auth, catalog):
    order_id = _post_order(client, auth("ATTENDANT"), [{"productId": catalog["soda"], "quantity": 1}]).get_json()["id"]

    resp = client.put(
        f"/api/orders/{order_id}",
        json={"items": [{"productId": catalog["burger"], "quantity": 3}], "customerName": "João", "paymentMethod": "CASH"},
        headers=auth("MANAGER"),
    )
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["total"] == 30.0
    assert data["customerName"] == "João"
    assert [(i["productId"], i["quantity"]) for i in data["items"]] == [(catalog["burger"], 3)]
    with app.app_context():
        assert OrderItem.query.count() == 1

    assert client.put(f"/api/orders/{order_id}", json={"customerName": "x"}, headers=auth("ATTENDANT")).status_code == 403


def test_update_with_unavailable_product_keeps_previous_items(app, client, auth, catalog):
    order_id = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 2}]).get_json()["id"]
    resp = client.put(
        f"/api/orders/{order_id}",
        json={"items": [{"productId": catalog["unavailable"], "quantity": 1}]},
        headers=auth("ADMIN"),
    )
    assert resp.status_code == 400
    with app.app_context():
        order = db.session.get(Order, order_id)
        assert order.total == Decimal("9.00")
        assert [i.product_id for i in order.items] == [catalog["soda"]]


def test_admin_deletes_order_with_items_and_comments(app, client, auth, catalog):
    order_id = _post_order(client, auth("ADMIN"), [{"productId": catalog["soda"], "quantity": 1}]).get_json()["id"]
    client.post("/api/comments", json={"orderId": order_id, "content": "Mesa 4"}, headers=auth("ADMIN"))

    assert client.delete(f"/api/orders/{order_id}", headers=auth("MANAGER")).status_code == 403
    assert client.delete(f"/api/orders/{order_id}", headers=auth("ADMIN")).status_code == 204
    with app.app_context():
        assert Order.query.count() == 0
        assert OrderItem.query.count() == 0
    assert client.get("/api/comments", headers=auth("ADMIN")).get_json() == []


def test_service_create_order_directly(app, catalog):
    with app.app_context():
        admin = User.query.filter_by(role="ADMIN").one()
        order = orders_module.create_order(
            admin, [orders_module.OrderLine(catalog["burger"], 1)], "DEBIT_CARD", "  "
        )
        assert order.customer_name is None
        assert order.payment_method == "DEBIT_CARD"
        assert order.total == Decimal("10.00")
