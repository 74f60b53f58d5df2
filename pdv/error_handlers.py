# pdv/error_handlers.py
"""
Handlers centralizados: toda falha vira JSON {"error", "code", ...}.
"""
from __future__ import annotations

from http import HTTPStatus

from flask import Flask, current_app, jsonify
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from pdv.core.errors import ServiceError, UnexpectedError
from pdv.core.schemas import pydantic_details
from pdv.logging_config import get_logger

logger = get_logger(__name__)


def _expose_detail() -> bool:
    return current_app.config.get("ENV_NAME") != "production"


def _unexpected_body(message: str, exc: BaseException) -> dict:
    body = {"error": message, "code": UnexpectedError.code}
    if _expose_detail():
        cause = exc.__cause__ or exc
        body["detail"] = f"{type(cause).__name__}: {cause}"
    return body


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(ServiceError)
    def handle_service_error(e: ServiceError):
        if e.status_code >= 500:
            logger.error("Erro inesperado: %s", e, exc_info=True)
            return jsonify(_unexpected_body(e.message, e)), e.status_code
        logger.warning("Erro de serviço %s: %s", e.status_code, e.message, extra={"code": e.code})
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(PydanticValidationError)
    def handle_pydantic_validation_error(e: PydanticValidationError):
        logger.warning("Payload inválido: %s", e.error_count())
        return jsonify(
            error="Dados inválidos", code="VALIDATION_ERROR", details=pydantic_details(e)
        ), HTTPStatus.BAD_REQUEST

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e: SQLAlchemyError):
        logger.error("Erro de banco de dados: %s", e, exc_info=True)
        return jsonify(_unexpected_body("Erro de banco de dados", e)), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        logger.warning("HTTP %s: %s", e.code, e.description)
        return jsonify(error=e.description or e.name, code=e.name.upper().replace(" ", "_")), e.code

    @app.errorhandler(Exception)
    def handle_generic_exception(e: Exception):
        logger.error("Exceção não tratada: %s", e, exc_info=True)
        return jsonify(_unexpected_body("Erro interno do servidor", e)), HTTPStatus.INTERNAL_SERVER_ERROR
