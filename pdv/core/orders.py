# pdv/core/orders.py
"""
Pedidos: montagem (validação de produtos, preço congelado, totais),
numeração sequencial e máquina de status.

Uso típico no controller:

    order = create_order(current_user, [OrderLine(product_id=1, quantity=2)], "PIX")

create_order abre e fecha a própria transação (lock de escrita desde o
BEGIN, com retry); as demais funções rodam dentro de um
`with transaction():` do chamador.
"""
from __future__ import annotations

import random
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from pdv.extensions import db
from pdv.logging_config import get_logger
from pdv.core.errors import ValidationError, NotFoundError, ConflictError, AuthorizationError
from pdv.core.models import (
    _as_money, ORDER_STATUSES, PAYMENT_METHODS,
    Order, OrderItem, OrderSequence, Product, User,
)
from pdv.core.services import is_lock_error, write_transaction

logger = get_logger(__name__)

ORDER_SEQUENCE = "orders"
STAFF_ROLES = ("ADMIN", "MANAGER")
STATUS_ROLES = ("ADMIN", "MANAGER", "KITCHEN")


@dataclass
class OrderLine:
    product_id: int
    quantity: int
    note: Optional[str] = None


# =============================================================================
# Montagem do pedido
# =============================================================================

def price_lines(lines: Sequence[OrderLine]) -> Tuple[List[OrderItem], Decimal]:
    """
    Valida as linhas contra o catálogo e devolve (itens, total).

    Todos os produtos ausentes ou indisponíveis são reportados de uma vez.
    O preço de cada item é o preço atual do produto (snapshot).
    """
    if not lines:
        raise ValidationError.for_field("items", "O pedido precisa de ao menos um item")

    problems: List[Dict[str, Any]] = []
    for idx, line in enumerate(lines):
        if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity <= 0:
            problems.append({"field": f"items[{idx}].quantity", "message": "Quantidade deve ser inteiro positivo"})
    if problems:
        raise ValidationError("Itens inválidos", details=problems)

    wanted: List[int] = []
    for line in lines:
        if line.product_id not in wanted:
            wanted.append(line.product_id)
    products = {p.id: p for p in Product.query.filter(Product.id.in_(wanted)).all()}

    for pid in wanted:
        p = products.get(pid)
        if p is None:
            problems.append({"field": "productId", "productId": pid, "message": "Produto não encontrado"})
        elif not p.is_available:
            problems.append({"field": "productId", "productId": pid, "message": "Produto indisponível"})
    if problems:
        raise ValidationError("Dados de produto inválidos", details=problems, code="INVALID_PRODUCT")

    items: List[OrderItem] = []
    total = Decimal("0.00")
    for line in lines:
        product = products[line.product_id]
        price = _as_money(product.price)
        subtotal = price * line.quantity
        items.append(OrderItem(
            product_id=product.id,
            quantity=line.quantity,
            price=price,
            subtotal=subtotal,
            note=(line.note or "").strip() or None,
        ))
        total += subtotal
    return items, _as_money(total)


def _check_payment_method(value: Optional[str]):
    if value not in PAYMENT_METHODS:
        raise ValidationError.for_field(
            "paymentMethod", f"Forma de pagamento inválida. Use: {', '.join(PAYMENT_METHODS)}"
        )

def check_status(value: Optional[str]):
    if value not in ORDER_STATUSES:
        raise ValidationError.for_field("status", f"Status inválido. Use: {', '.join(ORDER_STATUSES)}")


# =============================================================================
# Numeração
# =============================================================================

def _fallback_order_number() -> int:
    return int(time.time()) % 1_000_000

def next_order_number() -> int:
    """
    Incrementa o contador dentro da transação corrente (SAVEPOINT).

    O UPDATE vem primeiro para pegar o lock de escrita antes de ler o
    maior número já gravado; o contador nunca fica atrás dele.
    Se o contador falhar, usa número derivado do relógio (caminho degradado).
    """
    try:
        with db.session.begin_nested():
            res = db.session.execute(
                update(OrderSequence)
                .where(OrderSequence.name == ORDER_SEQUENCE)
                .values(value=OrderSequence.value + 1)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                db.session.add(OrderSequence(name=ORDER_SEQUENCE, value=0))
                db.session.flush()

            highest = db.session.execute(select(func.max(Order.order_number))).scalar() or 0
            value = db.session.execute(
                select(OrderSequence.value).where(OrderSequence.name == ORDER_SEQUENCE)
            ).scalar_one()
            if value <= highest:
                value = highest + 1
                db.session.execute(
                    update(OrderSequence)
                    .where(OrderSequence.name == ORDER_SEQUENCE)
                    .values(value=value)
                    .execution_options(synchronize_session=False)
                )
            return value
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        if is_lock_error(e):
            raise
        fallback = _fallback_order_number()
        logger.warning(
            "Contador de pedidos falhou; usando número derivado do relógio",
            extra={"orderNumber": fallback, "cause": str(e)},
        )
        return fallback


# =============================================================================
# Criação
# =============================================================================

def _build_order(user: User, lines: Sequence[OrderLine], payment_method: str, customer_name: Optional[str]) -> Order:
    items, total = price_lines(lines)
    order = Order(
        order_number=next_order_number(),
        status="PENDING",
        total=total,
        user_id=user.id,
        customer_name=(customer_name or "").strip() or None,
        payment_method=payment_method,
    )
    order.items = items
    db.session.add(order)
    db.session.flush()
    return order

def _retry_pause(attempt: int) -> None:
    # pausa aleatória em [0, step * tentativa]
    step = float(current_app.config.get("ORDER_RETRY_BACKOFF", 0.05))
    time.sleep(random.uniform(0, step * attempt))

def create_order(
    user: User,
    lines: Sequence[OrderLine],
    payment_method: str,
    customer_name: Optional[str] = None,
) -> Order:
    """
    Cria o pedido e seus itens numa única transação de escrita.

    Conflito de número (ou banco ocupado) refaz a unidade inteira após uma
    pausa aleatória, com limite de tentativas; esgotado o limite, sobe
    ConflictError.
    """
    _check_payment_method(payment_method)
    attempts = max(1, int(current_app.config.get("ORDER_CREATE_RETRIES", 3)))

    for attempt in range(1, attempts + 1):
        try:
            with write_transaction():
                order = _build_order(user, lines, payment_method, customer_name)
            break
        except ConflictError as e:
            if not e.retryable:
                raise
            if attempt == attempts:
                logger.error(
                    "Criação de pedido esgotou as tentativas",
                    extra={"attempts": attempts, "code": e.code},
                )
                raise ConflictError(
                    "Não foi possível gerar um número de pedido único; tente novamente",
                    e.code, e.field,
                ) from e
            logger.warning(
                "Conflito ao criar pedido; tentando de novo",
                extra={"attempt": attempt, "code": e.code},
            )
            _retry_pause(attempt)

    logger.info(
        "Pedido criado",
        extra={"orderId": order.id, "orderNumber": order.order_number, "total": str(order.total)},
    )
    return get_order(order.id)


# =============================================================================
# Consulta
# =============================================================================

def get_order(order_id: int) -> Order:
    order = (
        Order.query
        .options(
            joinedload(Order.user),
            selectinload(Order.items).joinedload(OrderItem.product),
            selectinload(Order.comments),
        )
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise NotFoundError("Pedido não encontrado")
    return order

def get_order_for(actor: User, order_id: int, roles: Sequence[str] = STAFF_ROLES) -> Order:
    order = get_order(order_id)
    if order.user_id != actor.id and actor.role not in roles:
        raise AuthorizationError("Sem acesso a este pedido")
    return order

def list_orders(
    actor: User,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Order], int]:
    """Staff vê todos os pedidos; os demais apenas os próprios."""
    if status is not None:
        check_status(status)
    if page < 1:
        raise ValidationError.for_field("page", "Página deve ser >= 1")
    if not 1 <= limit <= 100:
        raise ValidationError.for_field("limit", "Limite deve estar entre 1 e 100")

    q = Order.query
    if actor.role not in STAFF_ROLES:
        q = q.filter(Order.user_id == actor.id)
    elif user_id is not None:
        q = q.filter(Order.user_id == user_id)
    if status:
        q = q.filter(Order.status == status)

    total = q.count()
    rows = (
        q.options(
            joinedload(Order.user),
            selectinload(Order.items).joinedload(OrderItem.product),
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


# =============================================================================
# Alterações
# =============================================================================

def update_order_status(order_id: int, status: Optional[str]) -> Order:
    """
    Sobrescreve o status sem checar a sequência
    PENDING -> PREPARING -> READY -> DELIVERED (ou CANCELLED).
    Qualquer status do enum é aceito, inclusive repetir o atual; isso
    permite corrigir um status marcado por engano.
    """
    check_status(status)
    order = get_order(order_id)
    previous = order.status
    order.status = status
    logger.info(
        "Status do pedido alterado",
        extra={"orderId": order.id, "from": previous, "to": status},
    )
    return order

def update_order(
    order_id: int,
    fields: Dict[str, Any],
    lines: Optional[Sequence[OrderLine]] = None,
) -> Order:
    """
    Atualiza dados do pedido. Com `lines`, os itens são substituídos e
    os preços recalculados pelo catálogo atual.
    """
    order = get_order(order_id)
    if "payment_method" in fields:
        _check_payment_method(fields["payment_method"])
        order.payment_method = fields["payment_method"]
    if "status" in fields:
        check_status(fields["status"])
        order.status = fields["status"]
    if "customer_name" in fields:
        order.customer_name = (fields["customer_name"] or "").strip() or None

    if lines is not None:
        items, total = price_lines(lines)
        order.items.clear()
        db.session.flush()
        order.items.extend(items)
        order.total = total
    db.session.flush()
    return order

def delete_order(order_id: int) -> None:
    order = get_order(order_id)
    db.session.delete(order)
