# pdv/extensions.py
from __future__ import annotations

import sqlite3

from flask import jsonify
from flask_cors import CORS
from flask_login import LoginManager, AnonymousUserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
login_manager = LoginManager()

# Opção de execução da conexão: abre a transação com BEGIN IMMEDIATE
SQLITE_BEGIN_IMMEDIATE = "pdv_sqlite_begin_immediate"


# SQLite: FKs ligadas e transações controladas pelo SQLAlchemy, para que
# SAVEPOINT (begin_nested) funcione com o driver pysqlite.
@event.listens_for(Engine, "connect")
def _sqlite_on_connect(dbapi_connection, connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@event.listens_for(Engine, "begin")
def _sqlite_on_begin(conn):
    if conn.dialect.name != "sqlite":
        return
    # Escritas com leitura prévia (ex.: criação de pedido) pegam o lock de
    # escrita já no BEGIN; o upgrade SHARED -> RESERVED daria "database is locked".
    if conn.get_execution_options().get(SQLITE_BEGIN_IMMEDIATE):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


class _Anon(AnonymousUserMixin):
    id = None
    role = None


def init_extensions(app):
    db.init_app(app)
    login_manager.init_app(app)
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    login_manager.anonymous_user = _Anon

    # Import tardio para evitar import circular
    from pdv.auth.tokens import user_from_request

    @login_manager.request_loader
    def load_user_from_request(request):
        return user_from_request(request)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify(error="Autenticação necessária", code="UNAUTHENTICATED"), 401
