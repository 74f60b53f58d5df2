# pdv/views/comments.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from pdv.core.forms import CommentForm, parse_int_arg
from pdv.core.serializers import comment_to_dict
from pdv.core.services import (
    create_comment, delete_comment, get_comment, list_comments,
    transaction, update_comment,
)

bp = Blueprint("comments", __name__)


@bp.get("/")
@login_required
def list_():
    order_id = parse_int_arg(request.args.get("orderId"), "orderId")
    return jsonify([comment_to_dict(c) for c in list_comments(order_id)])


@bp.get("/<int:comment_id>")
@login_required
def detail(comment_id: int):
    return jsonify(comment_to_dict(get_comment(comment_id)))


@bp.post("/")
@login_required
def create():
    form = CommentForm().validate_or_raise()
    with transaction():
        c = create_comment(form.order_id.data, form.content.data, current_user)
    return jsonify(comment_to_dict(c)), 201


@bp.put("/<int:comment_id>")
@login_required
def update(comment_id: int):
    form = CommentForm().validate_or_raise()
    with transaction():
        c = update_comment(comment_id, form.content.data, current_user)
    return jsonify(comment_to_dict(c))


@bp.delete("/<int:comment_id>")
@login_required
def delete(comment_id: int):
    with transaction():
        delete_comment(comment_id, current_user)
    return "", 204
