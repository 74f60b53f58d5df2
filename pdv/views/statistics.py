# pdv/views/statistics.py
from __future__ import annotations

from flask import Blueprint, jsonify, request

from pdv.auth.decorators import roles_required
from pdv.core.errors import ValidationError
from pdv.core.forms import parse_int_arg
from pdv.core.schemas import StatisticsReportRequest
from pdv.core.statistics import dashboard as build_dashboard, parse_date_range, range_for_period, sales_report

bp = Blueprint("statistics", __name__)


@bp.get("/dashboard")
@roles_required("ADMIN", "MANAGER")
def dashboard():
    days = parse_int_arg(request.args.get("days"), "days", 30)
    return jsonify(build_dashboard(days=days))


@bp.get("/reports")
@roles_required("ADMIN", "MANAGER")
def report():
    rng = range_for_period(
        request.args.get("period"),
        request.args.get("startDate"),
        request.args.get("endDate"),
    )
    return jsonify(sales_report(rng))


@bp.post("/reports")
@roles_required("ADMIN", "MANAGER")
def report_with_trends():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Corpo JSON (objeto) obrigatório")
    req = StatisticsReportRequest.model_validate(payload)
    rng = parse_date_range(req.start_date, req.end_date)
    return jsonify(sales_report(
        rng,
        exclude_cancelled=not req.include_cancelled,
        with_trends=True,
        top_limit=req.limit,
    ))
