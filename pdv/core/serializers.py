# pdv/core/serializers.py
"""
Conversão de modelos para dicionários da API (chaves em camelCase).

Decimal e datetime seguem como objetos até o provider JSON do Flask,
que é o único ponto onde dinheiro vira float.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from flask.json.provider import DefaultJSONProvider

from pdv.core.models import Category, Product, User, Order, OrderItem, Comment, StoreSettings


class PdvJSONProvider(DefaultJSONProvider):
    sort_keys = False

    @staticmethod
    def default(o):
        if isinstance(o, Decimal):
            return float(o)
        if isinstance(o, datetime):
            # datetimes do banco são UTC ingênuos
            return o.isoformat(timespec="milliseconds") + "Z"
        if isinstance(o, date):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def _timestamps(obj) -> Dict[str, Any]:
    return {"createdAt": obj.created_at, "updatedAt": obj.updated_at}


def category_to_dict(c: Category, products_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "color": c.color,
        "active": c.active,
        **_timestamps(c),
    }
    if products_count is not None:
        data["productsCount"] = products_count
    return data


def product_to_dict(p: Product, with_category: bool = True) -> Dict[str, Any]:
    data = {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "price": p.price,
        "categoryId": p.category_id,
        "isAvailable": p.is_available,
        **_timestamps(p),
    }
    if with_category and p.category is not None:
        data["category"] = {"id": p.category.id, "name": p.category.name, "color": p.category.color}
    return data


def user_summary(u: Optional[User]) -> Optional[Dict[str, Any]]:
    if u is None:
        return None
    return {"id": u.id, "name": u.name, "email": u.email, "role": u.role}


def user_to_dict(u: User) -> Dict[str, Any]:
    return {**user_summary(u), "active": u.active, **_timestamps(u)}


def order_item_to_dict(i: OrderItem) -> Dict[str, Any]:
    return {
        "id": i.id,
        "productId": i.product_id,
        "quantity": i.quantity,
        "price": i.price,
        "subtotal": i.subtotal,
        "note": i.note,
        "product": product_to_dict(i.product, with_category=False) if i.product else None,
    }


def comment_to_dict(c: Comment) -> Dict[str, Any]:
    return {
        "id": c.id,
        "orderId": c.order_id,
        "content": c.content,
        "createdBy": c.user_id,
        "user": user_summary(c.user),
        **_timestamps(c),
    }


def order_to_dict(o: Order, with_comments: bool = False) -> Dict[str, Any]:
    data = {
        "id": o.id,
        "orderNumber": o.order_number,
        "status": o.status,
        "total": o.total,
        "userId": o.user_id,
        "customerName": o.customer_name,
        "paymentMethod": o.payment_method,
        "user": user_summary(o.user),
        "items": [order_item_to_dict(i) for i in o.items],
        **_timestamps(o),
    }
    if with_comments:
        data["comments"] = [comment_to_dict(c) for c in o.comments]
    return data


def settings_to_dict(s: StoreSettings) -> Dict[str, Any]:
    return {
        "id": s.id,
        "storeName": s.store_name,
        "address": s.address,
        "phone": s.phone,
        "email": s.email,
        "receiptHeader": s.receipt_header,
        "receiptFooter": s.receipt_footer,
        "taxRate": s.tax_rate,
        "currency": s.currency,
        "timeZone": s.time_zone,
        "dateFormat": s.date_format,
        "enableAutoBackup": s.enable_auto_backup,
        "backupFrequency": s.backup_frequency,
        **_timestamps(s),
    }
