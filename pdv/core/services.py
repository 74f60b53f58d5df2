# pdv/core/services.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError

from pdv.extensions import db, SQLITE_BEGIN_IMMEDIATE
from pdv.logging_config import get_logger
from pdv.core.errors import (
    ServiceError, ValidationError, NotFoundError, ConflictError,
    AuthorizationError, UnexpectedError,
    DUPLICATE_ORDER_NUMBER, FOREIGN_KEY_VIOLATION, DUPLICATE_EMAIL,
    DATABASE_BUSY, INTEGRITY_VIOLATION,
)
from pdv.core.models import (
    _as_money, ROLES, STORE_DEFAULTS,
    Category, Product, User, Order, OrderItem, Comment, StoreSettings,
)

logger = get_logger(__name__)

UNCATEGORIZED_NAME = "Sem categoria"
UNCATEGORIZED_COLOR = "#CCCCCC"


# =============================================================================
# Transação e utilidades
# =============================================================================

def _ensure(cond: Any, msg: str, field: Optional[str] = None):
    if not cond:
        if field:
            raise ValidationError.for_field(field, msg)
        raise ValidationError(msg)

def _get_or_404(model, obj_id: int, label: str):
    obj = db.session.get(model, obj_id)
    if obj is None:
        raise NotFoundError(f"{label} não encontrado(a)")
    return obj

def is_lock_error(exc: BaseException) -> bool:
    return isinstance(exc, OperationalError) and "locked" in str(exc.orig).lower()

def conflict_from_integrity(ie: IntegrityError) -> ConflictError:
    msg = str(ie.orig)
    if "orders.order_number" in msg or "order_sequences" in msg:
        return ConflictError("Número de pedido duplicado", DUPLICATE_ORDER_NUMBER, "orderNumber")
    if "users.email" in msg:
        return ConflictError("Email já cadastrado", DUPLICATE_EMAIL, "email")
    if "FOREIGN KEY" in msg.upper():
        return ConflictError("Referência inválida a outro registro", FOREIGN_KEY_VIOLATION)
    return ConflictError(f"Violação de integridade: {msg}", INTEGRITY_VIOLATION)

@contextmanager
def transaction():
    """
    Unidade de trabalho: commit no fim ou rollback em qualquer erro.
    Erros do banco saem já traduzidos para a taxonomia de ServiceError.
    """
    try:
        yield
        db.session.commit()
    except IntegrityError as ie:
        db.session.rollback()
        raise conflict_from_integrity(ie) from ie
    except OperationalError as oe:
        db.session.rollback()
        if is_lock_error(oe):
            raise ConflictError("Banco de dados ocupado, tente novamente", DATABASE_BUSY) from oe
        raise UnexpectedError("Falha no banco de dados") from oe
    except ServiceError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        raise UnexpectedError("Erro inesperado ao gravar") from e

@contextmanager
def write_transaction():
    """
    transaction() que já começa com o lock de escrita (BEGIN IMMEDIATE no
    SQLite). Escritores concorrentes esperam na fila do busy timeout em vez
    de colidirem no upgrade do lock. A transação de leitura aberta na sessão
    (ex.: carga do usuário autenticado) é encerrada antes.
    """
    if db.session().in_transaction():
        db.session.commit()
    with transaction():
        db.session.connection(execution_options={SQLITE_BEGIN_IMMEDIATE: True})
        yield

def require_role(user: Optional[User], allowed: Iterable[str]):
    if user is None or not getattr(user, "is_authenticated", False):
        raise AuthorizationError("Autenticação necessária", authenticated=False)
    if not user.active:
        raise AuthorizationError("Usuário inativo")
    if user.role not in allowed and "*" not in allowed:
        raise AuthorizationError("Permissão negada")

def require_owner_or_admin(user: User, owner_id: Optional[int], roles: Iterable[str] = ("ADMIN",)):
    if user.id != owner_id and user.role not in roles:
        raise AuthorizationError("Permissão negada")


# =============================================================================
# Categorias
# =============================================================================

CATEGORY_FIELDS = ("name", "description", "color", "active")

def list_categories(active: Optional[bool] = None) -> List[Category]:
    q = Category.query
    if active is not None:
        q = q.filter(Category.active.is_(active))
    return q.order_by(Category.name).all()

def get_category(category_id: int) -> Category:
    return _get_or_404(Category, category_id, "Categoria")

def create_category(data: Dict[str, Any]) -> Category:
    name = (data.get("name") or "").strip()
    _ensure(name, "Nome da categoria obrigatório", "name")
    cat = Category(
        name=name,
        description=data.get("description") or None,
        color=data.get("color") or None,
        active=data.get("active", True),
    )
    db.session.add(cat)
    db.session.flush()
    return cat

def update_category(category_id: int, data: Dict[str, Any]) -> Category:
    cat = get_category(category_id)
    for k, v in data.items():
        if k not in CATEGORY_FIELDS:
            continue
        if k == "name":
            v = (v or "").strip()
            _ensure(v, "Nome da categoria obrigatório", "name")
        setattr(cat, k, v)
    return cat

def _products_in_orders(product_ids: List[int]) -> List[int]:
    if not product_ids:
        return []
    rows = (
        db.session.query(OrderItem.product_id)
        .filter(OrderItem.product_id.in_(product_ids))
        .distinct()
        .all()
    )
    return sorted(r[0] for r in rows)

def _uncategorized() -> Category:
    cat = Category.query.filter_by(name=UNCATEGORIZED_NAME).first()
    if cat is None:
        cat = Category(
            name=UNCATEGORIZED_NAME,
            description="Produtos de categorias removidas",
            color=UNCATEGORIZED_COLOR,
            active=True,
        )
        db.session.add(cat)
        db.session.flush()
    return cat

def delete_category(category_id: int, force: bool = False, delete_products: bool = False) -> Dict[str, Any]:
    """
    Remove a categoria. Com produtos vinculados exige:
    - force: move os produtos para "Sem categoria";
    - delete_products: apaga os produtos (se nenhum estiver em pedidos).
    """
    cat = get_category(category_id)
    products = cat.products.all()
    result: Dict[str, Any] = {"id": cat.id, "movedProducts": 0, "deletedProducts": 0}

    if products and not (force or delete_products):
        raise ValidationError(
            "Categoria possui produtos vinculados; use force=true ou deleteProducts=true",
            details=[{"field": "categoryId", "message": f"{len(products)} produto(s) vinculado(s)"}],
            code="CATEGORY_HAS_PRODUCTS",
        )

    if products and delete_products:
        in_use = _products_in_orders([p.id for p in products])
        if in_use:
            raise ValidationError(
                "Produtos da categoria estão em pedidos",
                details=[{"field": "productId", "message": str(pid)} for pid in in_use],
                code="PRODUCT_IN_USE",
            )
        for p in products:
            db.session.delete(p)
        result["deletedProducts"] = len(products)
    elif products:
        _ensure(cat.name != UNCATEGORIZED_NAME, "Não é possível mover produtos de 'Sem categoria' para ela mesma", "categoryId")
        target = _uncategorized()
        for p in products:
            p.category_id = target.id
        result["movedProducts"] = len(products)
        result["targetCategoryId"] = target.id

    db.session.flush()
    db.session.delete(cat)
    return result


# =============================================================================
# Produtos
# =============================================================================

PRODUCT_FIELDS = ("name", "description", "price", "category_id", "is_available")

def list_products(category_id: Optional[int] = None, available: Optional[bool] = None) -> List[Product]:
    q = Product.query
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if available is not None:
        q = q.filter(Product.is_available.is_(available))
    return q.order_by(Product.name).all()

def get_product(product_id: int) -> Product:
    return _get_or_404(Product, product_id, "Produto")

def create_product(data: Dict[str, Any]) -> Product:
    name = (data.get("name") or "").strip()
    _ensure(name, "Nome do produto obrigatório", "name")
    _ensure(data.get("price") is not None, "Preço obrigatório", "price")
    _ensure(data.get("category_id") is not None, "Categoria obrigatória", "categoryId")
    price = _as_money(data["price"])
    _ensure(price >= 0, "Preço não pode ser negativo", "price")
    get_category(data["category_id"])

    p = Product(
        name=name,
        description=data.get("description") or None,
        price=price,
        category_id=data["category_id"],
        is_available=data.get("is_available", True),
    )
    db.session.add(p)
    db.session.flush()
    return p

def update_product(product_id: int, data: Dict[str, Any]) -> Product:
    p = get_product(product_id)
    for k, v in data.items():
        if k not in PRODUCT_FIELDS:
            continue
        if k == "name":
            v = (v or "").strip()
            _ensure(v, "Nome do produto obrigatório", "name")
        elif k == "price":
            _ensure(v is not None, "Preço obrigatório", "price")
            v = _as_money(v)
            _ensure(v >= 0, "Preço não pode ser negativo", "price")
        elif k == "category_id":
            _ensure(v is not None, "Categoria obrigatória", "categoryId")
            get_category(v)
        setattr(p, k, v)
    return p

def delete_product(product_id: int) -> None:
    p = get_product(product_id)
    if _products_in_orders([p.id]):
        raise ValidationError(
            "Produto está em pedidos e não pode ser removido",
            details=[{"field": "productId", "message": str(p.id)}],
            code="PRODUCT_IN_USE",
        )
    db.session.delete(p)


# =============================================================================
# Usuários
# =============================================================================

USER_FIELDS = ("name", "email", "password", "role", "active")

def _check_role(role: str):
    _ensure(role in ROLES, f"Papel inválido. Use: {', '.join(ROLES)}", "role")

def _check_email_free(email: str, exclude_id: Optional[int] = None):
    q = User.query.filter(User.email == email.strip().lower())
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if db.session.query(q.exists()).scalar():
        raise ConflictError("Email já cadastrado", DUPLICATE_EMAIL, "email")

def _apply_password(user: User, raw: str):
    try:
        user.set_password(raw)
    except ValueError as e:
        raise ValidationError.for_field("password", "Senha deve ter ao menos 6 caracteres") from e

def list_users() -> List[User]:
    return User.query.order_by(User.name).all()

def get_user(user_id: int) -> User:
    return _get_or_404(User, user_id, "Usuário")

def create_user(data: Dict[str, Any]) -> User:
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    _ensure(name, "Nome obrigatório", "name")
    _ensure(email, "Email obrigatório", "email")
    role = data.get("role") or "ATTENDANT"
    _check_role(role)
    _check_email_free(email)

    u = User(name=name, email=email, role=role, active=data.get("active", True))
    _apply_password(u, data.get("password") or "")
    db.session.add(u)
    db.session.flush()
    return u

def register_user(data: Dict[str, Any]) -> User:
    """Autocadastro: sempre ATTENDANT, o papel enviado é ignorado."""
    payload = dict(data)
    payload["role"] = "ATTENDANT"
    payload["active"] = True
    return create_user(payload)

def authenticate(email: str, password: str) -> User:
    user = User.query.filter(User.email == (email or "").strip().lower()).first()
    if not user or not user.check_password(password) or not user.active:
        raise AuthorizationError("Usuário ou senha incorretos", authenticated=False)
    return user

def update_user(user_id: int, data: Dict[str, Any], actor: User) -> User:
    u = get_user(user_id)
    require_owner_or_admin(actor, u.id)
    if ("role" in data or "active" in data) and not actor.is_admin:
        raise AuthorizationError("Apenas administradores alteram papel ou status")

    for k, v in data.items():
        if k not in USER_FIELDS:
            continue
        if k == "name":
            v = (v or "").strip()
            _ensure(v, "Nome obrigatório", "name")
        elif k == "email":
            v = (v or "").strip().lower()
            _ensure(v, "Email obrigatório", "email")
            _check_email_free(v, exclude_id=u.id)
        elif k == "role":
            _check_role(v)
        elif k == "password":
            if v:
                _apply_password(u, v)
            continue
        setattr(u, k, v)
    return u

def delete_user(user_id: int, actor: User) -> None:
    u = get_user(user_id)
    _ensure(u.id != actor.id, "Não é possível remover o próprio usuário", "id")
    if db.session.query(Order.query.filter(Order.user_id == u.id).exists()).scalar():
        raise ValidationError(
            "Usuário possui pedidos; desative-o em vez de remover",
            code="USER_HAS_ORDERS",
        )
    Comment.query.filter(Comment.user_id == u.id).delete(synchronize_session=False)
    db.session.delete(u)


# =============================================================================
# Comentários
# =============================================================================

def list_comments(order_id: Optional[int] = None) -> List[Comment]:
    q = Comment.query
    if order_id is not None:
        q = q.filter(Comment.order_id == order_id)
    return q.order_by(Comment.created_at.desc(), Comment.id.desc()).all()

def get_comment(comment_id: int) -> Comment:
    return _get_or_404(Comment, comment_id, "Comentário")

def create_comment(order_id: Optional[int], content: Optional[str], user: User) -> Comment:
    _ensure(order_id is not None, "Pedido obrigatório", "orderId")
    content = (content or "").strip()
    _ensure(content, "Conteúdo obrigatório", "content")
    _get_or_404(Order, order_id, "Pedido")
    c = Comment(order_id=order_id, content=content, user_id=user.id)
    db.session.add(c)
    db.session.flush()
    return c

def update_comment(comment_id: int, content: Optional[str], actor: User) -> Comment:
    c = get_comment(comment_id)
    require_owner_or_admin(actor, c.user_id)
    content = (content or "").strip()
    _ensure(content, "Conteúdo obrigatório", "content")
    c.content = content
    return c

def delete_comment(comment_id: int, actor: User) -> None:
    c = get_comment(comment_id)
    require_owner_or_admin(actor, c.user_id)
    db.session.delete(c)


# =============================================================================
# Configurações da loja
# =============================================================================

SETTINGS_REQUIRED = ("store_name", "address", "phone", "email")

def get_settings() -> StoreSettings:
    """Registro único; criado com os padrões na primeira leitura."""
    s = StoreSettings.query.order_by(StoreSettings.id).first()
    if s is None:
        s = StoreSettings(**STORE_DEFAULTS)
        db.session.add(s)
        db.session.flush()
    return s

def update_settings(data: Dict[str, Any]) -> StoreSettings:
    missing = [k for k in SETTINGS_REQUIRED if not (data.get(k) or "").strip()]
    if missing:
        raise ValidationError(
            "Campos obrigatórios ausentes",
            details=[{"field": k, "message": "Campo obrigatório"} for k in missing],
        )
    s = get_settings()
    for k, v in data.items():
        if k not in STORE_DEFAULTS:
            continue
        if k == "tax_rate":
            if v is None:
                continue
            v = _as_money(v)
            _ensure(v >= 0, "Taxa não pode ser negativa", "taxRate")
        setattr(s, k, v)
    return s

def reset_settings() -> StoreSettings:
    StoreSettings.query.delete(synchronize_session=False)
    s = StoreSettings(**STORE_DEFAULTS)
    db.session.add(s)
    db.session.flush()
    return s
