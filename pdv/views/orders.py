# pdv/views/orders.py
from __future__ import annotations

import math

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from pdv.auth.decorators import roles_required
from pdv.core.errors import ValidationError
from pdv.core.forms import parse_int_arg
from pdv.core.orders import (
    STATUS_ROLES, check_status, create_order, delete_order, get_order_for,
    list_orders, update_order, update_order_status,
)
from pdv.core.schemas import OrderCreate, OrderUpdate
from pdv.core.serializers import order_to_dict
from pdv.core.services import transaction
from pdv.core.statistics import daily_sales, parse_date_range, top_products

bp = Blueprint("orders", __name__)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Corpo JSON (objeto) obrigatório")
    return payload


# ----------------------------
# Listagem e detalhe
# ----------------------------
@bp.get("/")
@login_required
def list_():
    page = parse_int_arg(request.args.get("page"), "page", 1)
    limit = parse_int_arg(request.args.get("limit"), "limit", 10)
    rows, total = list_orders(
        current_user,
        status=request.args.get("status") or None,
        user_id=parse_int_arg(request.args.get("userId"), "userId"),
        page=page,
        limit=limit,
    )
    return jsonify(
        data=[order_to_dict(o) for o in rows],
        pagination={
            "totalItems": total,
            "totalPages": math.ceil(total / limit) if total else 0,
            "currentPage": page,
            "pageSize": limit,
        },
    )


@bp.get("/<int:order_id>")
@login_required
def detail(order_id: int):
    order = get_order_for(current_user, order_id)
    return jsonify(order_to_dict(order, with_comments=True))


# ----------------------------
# Criação e alterações
# ----------------------------
@bp.post("/")
@login_required
def create():
    payload = OrderCreate.model_validate(_json_body())
    order = create_order(
        current_user,
        payload.lines(),
        payload.payment_method,
        payload.customer_name,
    )
    return jsonify(order_to_dict(order)), 201


@bp.put("/<int:order_id>")
@roles_required("ADMIN", "MANAGER")
def update(order_id: int):
    payload = OrderUpdate.model_validate(_json_body())
    with transaction():
        order = update_order(order_id, payload.changes(), payload.lines())
    return jsonify(order_to_dict(order))


@bp.patch("/<int:order_id>/status")
@login_required
def update_status(order_id: int):
    status = _json_body().get("status")
    check_status(status)
    with transaction():
        get_order_for(current_user, order_id, roles=STATUS_ROLES)
        order = update_order_status(order_id, status)
    return jsonify(order_to_dict(order))


@bp.delete("/<int:order_id>")
@roles_required("ADMIN")
def delete(order_id: int):
    with transaction():
        delete_order(order_id)
    return "", 204


# ----------------------------
# Estatísticas
# ----------------------------
@bp.get("/stats/daily")
@roles_required("ADMIN", "MANAGER")
def stats_daily():
    rng = parse_date_range(request.args.get("startDate"), request.args.get("endDate"))
    return jsonify(daily_sales(rng))


@bp.get("/stats/products")
@roles_required("ADMIN", "MANAGER")
def stats_products():
    rng = parse_date_range(request.args.get("startDate"), request.args.get("endDate"))
    limit = parse_int_arg(request.args.get("limit"), "limit", 10)
    return jsonify(top_products(rng, limit=limit))
