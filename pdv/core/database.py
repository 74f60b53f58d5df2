# pdv/core/database.py
"""
Inicialização explícita do banco e verificação de saúde por entidade.

initialize_database roda uma vez no create_app (e no comando `init-db`);
é idempotente e devolve um InitResult tipado em vez de marcar um flag
global. Quem precisa saber se o banco está pronto chama check_health.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError

from pdv.extensions import db
from pdv.logging_config import get_logger
from pdv.core.models import (
    ensure_admin, Category, Product, User, Order, OrderItem,
    OrderSequence, Comment, StoreSettings,
)
from pdv.core.services import get_settings, transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class InitResult:
    tables_created: bool
    admin_created: bool
    settings_created: bool
    admin_email: str


@dataclass(frozen=True)
class TableCheck:
    name: str
    check: Callable[[], None]


@dataclass
class TableStatus:
    name: str
    ok: bool
    error: str = ""


@dataclass
class HealthReport:
    tables: List[TableStatus] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(t.ok for t in self.tables)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "tables": [
                {"name": t.name, "ok": t.ok, **({"error": t.error} if t.error else {})}
                for t in self.tables
            ],
        }


def _query_check(model) -> Callable[[], None]:
    def check():
        db.session.execute(select(model).limit(1)).first()
    return check


TABLE_CHECKS: Tuple[TableCheck, ...] = (
    TableCheck("categories", _query_check(Category)),
    TableCheck("products", _query_check(Product)),
    TableCheck("users", _query_check(User)),
    TableCheck("orders", _query_check(Order)),
    TableCheck("order_items", _query_check(OrderItem)),
    TableCheck("order_sequences", _query_check(OrderSequence)),
    TableCheck("comments", _query_check(Comment)),
    TableCheck("store_settings", _query_check(StoreSettings)),
)


def check_health(checks: Tuple[TableCheck, ...] = TABLE_CHECKS) -> HealthReport:
    report = HealthReport()
    for item in checks:
        try:
            item.check()
            report.tables.append(TableStatus(item.name, True))
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning("Falha no health check", extra={"table": item.name, "cause": str(e)})
            report.tables.append(TableStatus(item.name, False, type(e).__name__))
    return report


def initialize_database(app) -> InitResult:
    """Cria tabelas, admin padrão e configurações da loja se faltarem."""
    with app.app_context():
        existing = set(inspect(db.engine).get_table_names())
        missing = [t.name for t in TABLE_CHECKS if t.name not in existing]
        db.create_all()

        with transaction():
            had_settings = StoreSettings.query.first() is not None
            get_settings()
            admin, admin_created = ensure_admin(
                app.config["ADMIN_EMAIL"],
                app.config["ADMIN_PASS"],
                app.config.get("ADMIN_NAME", "Administrador"),
            )
            admin_email = admin.email

        result = InitResult(
            tables_created=bool(missing),
            admin_created=admin_created,
            settings_created=not had_settings,
            admin_email=admin_email,
        )
    app.extensions["pdv.init"] = result
    logger.info(
        "Banco inicializado",
        extra={
            "tablesCreated": result.tables_created,
            "adminCreated": result.admin_created,
            "settingsCreated": result.settings_created,
        },
    )
    return result
