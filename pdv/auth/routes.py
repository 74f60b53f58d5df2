# pdv/auth/routes.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from pdv.auth.tokens import issue_token
from pdv.core.forms import LoginForm, RegisterForm
from pdv.core.serializers import user_to_dict
from pdv.core.services import authenticate, register_user, transaction
from pdv.logging_config import get_logger

bp = Blueprint("auth", __name__)

logger = get_logger(__name__)


@bp.post("/register")
def register():
    form = RegisterForm().validate_or_raise()
    with transaction():
        user = register_user(form.present_data())
    logger.info("Usuário registrado", extra={"userId": user.id})
    return jsonify(user=user_to_dict(user), token=issue_token(user)), 201


@bp.post("/login")
def login():
    form = LoginForm().validate_or_raise()
    user = authenticate(form.email.data, form.password.data)
    logger.info("Login", extra={"userId": user.id})
    return jsonify(user=user_to_dict(user), token=issue_token(user))


@bp.get("/me")
@login_required
def me():
    return jsonify(user_to_dict(current_user))
