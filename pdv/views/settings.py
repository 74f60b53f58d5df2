# pdv/views/settings.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from pdv.auth.decorators import roles_required
from pdv.core.forms import StoreSettingsForm
from pdv.core.serializers import settings_to_dict
from pdv.core.services import get_settings, reset_settings, transaction, update_settings

bp = Blueprint("settings", __name__)


@bp.get("/")
@login_required
def show():
    with transaction():
        s = get_settings()
    return jsonify(settings_to_dict(s))


@bp.put("/")
@roles_required("ADMIN")
def update():
    form = StoreSettingsForm().validate_or_raise()
    with transaction():
        s = update_settings(form.present_data())
    return jsonify(settings_to_dict(s))


@bp.post("/reset")
@roles_required("ADMIN")
def reset():
    with transaction():
        s = reset_settings()
    return jsonify(settings_to_dict(s))
