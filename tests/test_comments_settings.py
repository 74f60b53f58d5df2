"""
Testes de comentários de pedido e configurações da loja
"""

import pytest


# ═══════════════════════════════════════════════════════════
# COMENTÁRIOS
# ═══════════════════════════════════════════════════════════

def _comment(client, headers, order_id, content):
    return client.post("/api/comments", json={"orderId": order_id, "content": content}, headers=headers)


def test_create_comment_and_show_in_order(client, auth, make_order):
    order_id = make_order([("burger", 1)])
    resp = _comment(client, auth("KITCHEN"), order_id, "  Sem cebola ")
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["content"] == "Sem cebola"
    assert body["user"]["role"] == "KITCHEN"

    order = client.get(f"/api/orders/{order_id}", headers=auth("ADMIN")).get_json()
    assert [c["content"] for c in order["comments"]] == ["Sem cebola"]


@pytest.mark.parametrize("payload,field", [
    ({"orderId": 1}, "content"),
    ({"orderId": 1, "content": "   "}, "content"),
    ({"content": "oi"}, "orderId"),
    ({"orderId": "abc", "content": "oi"}, "orderId"),
])
def test_comment_validation(client, auth, make_order, payload, field):
    make_order([("burger", 1)])
    resp = client.post("/api/comments", json=payload, headers=auth("ADMIN"))
    assert resp.status_code == 400
    assert resp.get_json()["details"][0]["field"] == field


def test_comment_on_missing_order_is_404(client, auth, catalog):
    assert _comment(client, auth("ADMIN"), 999, "oi").status_code == 404


def test_list_comments_newest_first_and_filtered(client, auth, make_order):
    first = make_order([("burger", 1)])
    second = make_order([("soda", 1)])
    _comment(client, auth("ADMIN"), first, "primeiro")
    _comment(client, auth("ADMIN"), first, "segundo")
    _comment(client, auth("ADMIN"), second, "outro pedido")

    listed = client.get(f"/api/comments?orderId={first}", headers=auth("ATTENDANT")).get_json()
    assert [c["content"] for c in listed] == ["segundo", "primeiro"]
    assert len(client.get("/api/comments", headers=auth("ATTENDANT")).get_json()) == 3


def test_only_author_or_admin_edits_comment(client, auth, make_order):
    order_id = make_order([("burger", 1)])
    comment_id = _comment(client, auth("KITCHEN"), order_id, "pronto em 5 min").get_json()["id"]

    other = client.put(f"/api/comments/{comment_id}", json={"content": "x"}, headers=auth("ATTENDANT"))
    assert other.status_code == 403

    own = client.put(f"/api/comments/{comment_id}", json={"content": "pronto em 10 min"}, headers=auth("KITCHEN"))
    assert own.status_code == 200
    assert own.get_json()["content"] == "pronto em 10 min"

    assert client.delete(f"/api/comments/{comment_id}", headers=auth("MANAGER")).status_code == 403
    assert client.delete(f"/api/comments/{comment_id}", headers=auth("ADMIN")).status_code == 204
    assert client.get(f"/api/comments/{comment_id}", headers=auth("ADMIN")).status_code == 404


def test_deleting_order_removes_comments(client, auth, make_order):
    order_id = make_order([("burger", 1)])
    _comment(client, auth("ADMIN"), order_id, "cliente pediu troco")
    assert client.delete(f"/api/orders/{order_id}", headers=auth("ADMIN")).status_code == 204
    assert client.get("/api/comments", headers=auth("ADMIN")).get_json() == []


# ═══════════════════════════════════════════════════════════
# CONFIGURAÇÕES DA LOJA
# ═══════════════════════════════════════════════════════════

FULL_SETTINGS = {
    "storeName": "Lanchonete Central",
    "address": "Rua A, 100",
    "phone": "(11) 5555-0000",
    "email": "contato@central.com",
    "taxRate": "5,5",
    "enableAutoBackup": True,
    "backupFrequency": "daily",
}


def test_settings_defaults(client, auth, users):
    resp = client.get("/api/settings", headers=auth("ATTENDANT"))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["storeName"] == "Minha Loja"
    assert data["currency"] == "BRL"
    assert data["backupFrequency"] == "weekly"
    assert data["taxRate"] == 0


def test_update_settings(client, auth, users):
    resp = client.put("/api/settings", json=FULL_SETTINGS, headers=auth("ADMIN"))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["storeName"] == "Lanchonete Central"
    assert data["taxRate"] == 5.5
    assert data["enableAutoBackup"] is True
    assert data["receiptFooter"] == "Volte sempre!"

    again = client.get("/api/settings", headers=auth("ADMIN")).get_json()
    assert again["id"] == data["id"]
    assert again["backupFrequency"] == "daily"


def test_update_settings_requires_core_fields(client, auth, users):
    resp = client.put("/api/settings", json={"storeName": "Só nome"}, headers=auth("ADMIN"))
    assert resp.status_code == 400
    fields = {d["field"] for d in resp.get_json()["details"]}
    assert fields == {"address", "phone", "email"}


def test_update_settings_rejects_bad_values(client, auth, users):
    bad_freq = client.put("/api/settings", json={**FULL_SETTINGS, "backupFrequency": "hourly"}, headers=auth("ADMIN"))
    assert bad_freq.status_code == 400
    bad_tax = client.put("/api/settings", json={**FULL_SETTINGS, "taxRate": -1}, headers=auth("ADMIN"))
    assert bad_tax.status_code == 400


def test_settings_write_is_admin_only(client, auth, users):
    assert client.put("/api/settings", json=FULL_SETTINGS, headers=auth("MANAGER")).status_code == 403
    assert client.post("/api/settings/reset", headers=auth("MANAGER")).status_code == 403


def test_reset_settings_restores_defaults(client, auth, users):
    client.put("/api/settings", json=FULL_SETTINGS, headers=auth("ADMIN"))
    resp = client.post("/api/settings/reset", headers=auth("ADMIN"))
    assert resp.status_code == 200
    assert resp.get_json()["storeName"] == "Minha Loja"
    assert client.get("/api/settings", headers=auth("ADMIN")).get_json()["enableAutoBackup"] is False
