# pdv/views/products.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from pdv.auth.decorators import roles_required
from pdv.core.forms import ProductForm, parse_bool_arg, parse_int_arg
from pdv.core.serializers import product_to_dict
from pdv.core.services import (
    create_product, delete_product, get_product, list_products,
    transaction, update_product,
)

bp = Blueprint("products", __name__)


@bp.get("/")
@login_required
def list_():
    items = list_products(
        category_id=parse_int_arg(request.args.get("categoryId"), "categoryId"),
        available=parse_bool_arg(request.args.get("available"), "available"),
    )
    return jsonify([product_to_dict(p) for p in items])


@bp.get("/<int:product_id>")
@login_required
def detail(product_id: int):
    return jsonify(product_to_dict(get_product(product_id)))


@bp.post("/")
@roles_required("ADMIN", "MANAGER")
def create():
    form = ProductForm().validate_or_raise()
    with transaction():
        p = create_product(form.present_data())
    return jsonify(product_to_dict(p)), 201


@bp.put("/<int:product_id>")
@roles_required("ADMIN", "MANAGER")
def update(product_id: int):
    form = ProductForm().validate_or_raise()
    with transaction():
        p = update_product(product_id, form.present_data())
    return jsonify(product_to_dict(p))


@bp.delete("/<int:product_id>")
@roles_required("ADMIN", "MANAGER")
def delete(product_id: int):
    with transaction():
        delete_product(product_id)
    return "", 204
