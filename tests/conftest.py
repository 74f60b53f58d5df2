"""
Fixtures compartilhadas: app com SQLite em arquivo temporário, usuários por
papel com token Bearer, catálogo de exemplo e fábrica de pedidos.
"""

from decimal import Decimal

import pytest

from pdv import create_app
from pdv.auth.tokens import issue_token
from pdv.core.models import Category, Order, Product, User
from pdv.core.orders import OrderLine, create_order
from pdv.core.services import create_user, transaction
from pdv.extensions import db


ADMIN_EMAIL = "admin@pdv.com"
PASSWORD = "segredo123"


# ═══════════════════════════════════════════════════════════
# APP E CLIENTE
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def app(tmp_path):
    """App de teste com banco SQLite isolado por teste"""
    app = create_app(
        "testing",
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'pdv_test.db'}",
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════
# USUÁRIOS
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def users(app):
    """Ids e tokens por papel: {"ADMIN": {"id", "token"}, ...}"""
    out = {}
    with app.app_context():
        admin = User.query.filter_by(email=ADMIN_EMAIL).one()
        out["ADMIN"] = {"id": admin.id, "token": issue_token(admin)}
        for role, email in (
            ("MANAGER", "gerente@pdv.com"),
            ("ATTENDANT", "atendente@pdv.com"),
            ("KITCHEN", "cozinha@pdv.com"),
        ):
            with transaction():
                u = create_user({"name": role.title(), "email": email, "password": PASSWORD, "role": role})
            out[role] = {"id": u.id, "token": issue_token(u)}
    return out


@pytest.fixture
def auth(users):
    """auth("ADMIN") -> headers com Bearer do papel"""
    def _headers(role="ADMIN"):
        return {"Authorization": f"Bearer {users[role]['token']}"}
    return _headers


# ═══════════════════════════════════════════════════════════
# CATÁLOGO E PEDIDOS
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def catalog(app):
    """Categoria Lanches com hambúrguer (10,00), refrigerante (4,50) e um indisponível"""
    with app.app_context():
        with transaction():
            cat = Category(name="Lanches", color="#FF0000")
            db.session.add(cat)
            db.session.flush()
            burger = Product(name="Hambúrguer", price=Decimal("10.00"), category_id=cat.id)
            soda = Product(name="Refrigerante", price=Decimal("4.50"), category_id=cat.id)
            old = Product(name="Pastel", price=Decimal("7.00"), category_id=cat.id, is_available=False)
            db.session.add_all([burger, soda, old])
            db.session.flush()
            ids = {"category": cat.id, "burger": burger.id, "soda": soda.id, "unavailable": old.id}
    return ids


@pytest.fixture
def make_order(app, catalog):
    """Cria pedido pelo builder e, se pedido, força status/data de criação"""
    def _make(lines, payment="CASH", status=None, created_at=None, email=ADMIN_EMAIL):
        with app.app_context():
            user = User.query.filter_by(email=email).one()
            order = create_order(user, [OrderLine(catalog[name], qty) for name, qty in lines], payment)
            order_id = order.id
            if status or created_at:
                with transaction():
                    o = db.session.get(Order, order_id)
                    if status:
                        o.status = status
                    if created_at:
                        o.created_at = created_at
        return order_id
    return _make
