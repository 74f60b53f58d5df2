# pdv/views/users.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from pdv.auth.decorators import roles_required
from pdv.core.forms import UserForm
from pdv.core.serializers import user_to_dict
from pdv.core.services import (
    create_user, delete_user, get_user, list_users,
    require_owner_or_admin, transaction, update_user,
)

bp = Blueprint("users", __name__)


@bp.get("/")
@roles_required("ADMIN")
def list_():
    return jsonify([user_to_dict(u) for u in list_users()])


@bp.get("/<int:user_id>")
@login_required
def detail(user_id: int):
    require_owner_or_admin(current_user, user_id)
    return jsonify(user_to_dict(get_user(user_id)))


@bp.post("/")
@roles_required("ADMIN")
def create():
    form = UserForm().validate_or_raise()
    with transaction():
        u = create_user(form.present_data())
    return jsonify(user_to_dict(u)), 201


@bp.put("/<int:user_id>")
@login_required
def update(user_id: int):
    form = UserForm().validate_or_raise()
    with transaction():
        u = update_user(user_id, form.present_data(), current_user)
    return jsonify(user_to_dict(u))


@bp.delete("/<int:user_id>")
@roles_required("ADMIN")
def delete(user_id: int):
    with transaction():
        delete_user(user_id, current_user)
    return "", 204
