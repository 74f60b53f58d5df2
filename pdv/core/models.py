# pdv/core/models.py
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from flask_login import UserMixin
from sqlalchemy import (
    CheckConstraint, Column, Integer, String, Text, DateTime,
    Boolean, ForeignKey, Numeric, Enum, Index
)
from sqlalchemy.orm import relationship, validates
from werkzeug.security import generate_password_hash as _wzh, check_password_hash as _wzc

from pdv.extensions import db


# =============================================================================
# Utilidades e Mixins
# =============================================================================

MONEY = Numeric(12, 2)   # 999.999.999,99 máx

def utcnow() -> datetime:
    """Agora em UTC, sem tzinfo (o SQLite guarda datetimes ingênuos)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def _as_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# =============================================================================
# Enums
# =============================================================================

ROLES = ("ADMIN", "MANAGER", "ATTENDANT", "KITCHEN")
ORDER_STATUSES = ("PENDING", "PREPARING", "READY", "DELIVERED", "CANCELLED")
PAYMENT_METHODS = ("CASH", "CREDIT_CARD", "DEBIT_CARD", "PIX")

RoleEnum = Enum(*ROLES, name="role_enum")
OrderStatusEnum = Enum(*ORDER_STATUSES, name="order_status_enum")
PaymentMethodEnum = Enum(*PAYMENT_METHODS, name="payment_method_enum")


# =============================================================================
# Catálogo
# =============================================================================

class Category(db.Model, TimestampMixin):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(20), nullable=True)
    active = Column(Boolean, default=True, nullable=False, index=True)

    products = relationship("Product", back_populates="category", lazy="dynamic")

    def __repr__(self):
        return f"<Category {self.id} {self.name}>"


class Product(db.Model, TimestampMixin):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(MONEY, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True)
    is_available = Column(Boolean, default=True, nullable=False, index=True)

    category = relationship("Category", back_populates="products")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price"),
    )

    @validates("price")
    def _val_price(self, key, value):
        return _as_money(value)

    def __repr__(self):
        return f"<Product {self.id} {self.name} {self.price}>"


# =============================================================================
# Usuários
# =============================================================================

class User(db.Model, UserMixin, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(180), nullable=False, unique=True, index=True)
    _password_hash = Column("password_hash", String(255), nullable=False)
    role = Column(RoleEnum, nullable=False, default="ATTENDANT", index=True)
    active = Column(Boolean, default=True, nullable=False)

    def set_password(self, raw: str):
        if not raw or len(raw) < 6:
            raise ValueError("Senha muito curta")
        # PBKDF2 do Werkzeug evita dependência de bcrypt
        self._password_hash = _wzh(raw, method="pbkdf2:sha256", salt_length=16)

    def check_password(self, raw: str) -> bool:
        if not self._password_hash or not raw:
            return False
        return _wzc(self._password_hash, raw)

    @property
    def is_active(self):
        return bool(self.active)

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @validates("email")
    def _val_email(self, key, value):
        if not value or "@" not in value:
            raise ValueError("Email inválido")
        return value.strip().lower()

    def __repr__(self):
        return f"<User {self.id} {self.email} {self.role}>"


# =============================================================================
# Pedidos
# =============================================================================

class Order(db.Model, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(Integer, nullable=False, unique=True, index=True)
    status = Column(OrderStatusEnum, nullable=False, default="PENDING", index=True)
    total = Column(MONEY, nullable=False, default=Decimal("0.00"))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    customer_name = Column(String(160), nullable=True)
    payment_method = Column(PaymentMethodEnum, nullable=False, index=True)

    user = relationship("User")
    items = relationship(
        "OrderItem", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    comments = relationship(
        "Comment", back_populates="order",
        cascade="all, delete-orphan", order_by="Comment.created_at.desc()"
    )

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_orders_total"),
        Index("ix_orders_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return f"<Order #{self.order_number} {self.status} {self.total}>"


class OrderItem(db.Model, TimestampMixin):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(MONEY, nullable=False)      # snapshot do preço no momento do pedido
    subtotal = Column(MONEY, nullable=False)
    note = Column(String(255), nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        CheckConstraint("price >= 0", name="ck_order_items_price"),
    )


class OrderSequence(db.Model):
    """Contador atômico do número de pedido (SQLite não tem sequence)."""
    __tablename__ = "order_sequences"

    name = Column(String(40), primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class Comment(db.Model, TimestampMixin):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    content = Column(Text, nullable=False)

    order = relationship("Order", back_populates="comments")
    user = relationship("User")


# =============================================================================
# Configurações da loja
# =============================================================================

STORE_DEFAULTS = {
    "store_name": "Minha Loja",
    "address": "",
    "phone": "",
    "email": "",
    "receipt_header": "Obrigado pela preferência!",
    "receipt_footer": "Volte sempre!",
    "tax_rate": Decimal("0.00"),
    "currency": "BRL",
    "time_zone": "America/Sao_Paulo",
    "date_format": "DD/MM/YYYY",
    "enable_auto_backup": False,
    "backup_frequency": "weekly",
}


class StoreSettings(db.Model, TimestampMixin):
    __tablename__ = "store_settings"

    id = Column(Integer, primary_key=True)
    store_name = Column(String(120), nullable=False, default=STORE_DEFAULTS["store_name"])
    address = Column(String(255), nullable=False, default="")
    phone = Column(String(40), nullable=False, default="")
    email = Column(String(180), nullable=False, default="")
    receipt_header = Column(Text, nullable=True, default=STORE_DEFAULTS["receipt_header"])
    receipt_footer = Column(Text, nullable=True, default=STORE_DEFAULTS["receipt_footer"])
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    currency = Column(String(8), nullable=False, default="BRL")
    time_zone = Column(String(40), nullable=False, default="America/Sao_Paulo")
    date_format = Column(String(20), nullable=False, default="DD/MM/YYYY")
    enable_auto_backup = Column(Boolean, nullable=False, default=False)
    backup_frequency = Column(String(20), nullable=False, default="weekly")

    __table_args__ = (
        CheckConstraint("tax_rate >= 0", name="ck_store_settings_tax"),
    )


# =============================================================================
# Seeds e utilidades
# =============================================================================

def ensure_admin(email: str, password: str, name: str = "Administrador") -> Tuple[User, bool]:
    """
    Cria o admin padrão se ainda não houver nenhum ADMIN.
    Retorna (usuário, criado?). Não faz commit.
    """
    admin: Optional[User] = User.query.filter_by(role="ADMIN").order_by(User.id).first()
    if admin:
        return admin, False

    existing = User.query.filter_by(email=email.strip().lower()).first()
    if existing:
        raise ValueError(f"Email do admin já usado por um usuário {existing.role}")

    admin = User(name=name, email=email, role="ADMIN", active=True)
    admin.set_password(password)
    db.session.add(admin)
    return admin, True
