# pdv/views/categories.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from pdv.auth.decorators import roles_required
from pdv.core.forms import CategoryForm, parse_bool_arg
from pdv.core.serializers import category_to_dict
from pdv.core.services import (
    create_category, delete_category, get_category, list_categories,
    transaction, update_category,
)

bp = Blueprint("categories", __name__)


@bp.get("/")
@login_required
def list_():
    cats = list_categories(active=parse_bool_arg(request.args.get("active"), "active"))
    return jsonify([category_to_dict(c) for c in cats])


@bp.get("/<int:category_id>")
@login_required
def detail(category_id: int):
    cat = get_category(category_id)
    return jsonify(category_to_dict(cat, products_count=cat.products.count()))


@bp.post("/")
@roles_required("ADMIN", "MANAGER")
def create():
    form = CategoryForm().validate_or_raise()
    with transaction():
        cat = create_category(form.present_data())
    return jsonify(category_to_dict(cat)), 201


@bp.put("/<int:category_id>")
@roles_required("ADMIN", "MANAGER")
def update(category_id: int):
    form = CategoryForm().validate_or_raise()
    with transaction():
        cat = update_category(category_id, form.present_data())
    return jsonify(category_to_dict(cat))


@bp.delete("/<int:category_id>")
@roles_required("ADMIN", "MANAGER")
def delete(category_id: int):
    force = parse_bool_arg(request.args.get("force"), "force") or False
    delete_products = parse_bool_arg(request.args.get("deleteProducts"), "deleteProducts") or False
    with transaction():
        result = delete_category(category_id, force=force, delete_products=delete_products)
    return jsonify(result)
