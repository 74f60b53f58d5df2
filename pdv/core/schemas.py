# pdv/core/schemas.py
"""
Schemas pydantic para payloads aninhados (pedidos com lista de itens).
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from pdv.core.orders import OrderLine

PaymentMethod = Literal["CASH", "CREDIT_CARD", "DEBIT_CARD", "PIX"]
OrderStatus = Literal["PENDING", "PREPARING", "READY", "DELIVERED", "CANCELLED"]


class _Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class OrderItemIn(_Camel):
    product_id: int = Field(..., alias="productId", strict=True, gt=0)
    quantity: int = Field(..., strict=True, gt=0)
    note: Optional[str] = Field(None, max_length=255)

    def to_line(self) -> OrderLine:
        return OrderLine(product_id=self.product_id, quantity=self.quantity, note=self.note)


class OrderCreate(_Camel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    customer_name: Optional[str] = Field(None, alias="customerName", max_length=160)

    @field_validator("customer_name")
    @classmethod
    def _blank_to_none(cls, v):
        return v or None

    def lines(self) -> List[OrderLine]:
        return [i.to_line() for i in self.items]


class OrderUpdate(_Camel):
    items: Optional[List[OrderItemIn]] = Field(None, min_length=1)
    payment_method: Optional[PaymentMethod] = Field(None, alias="paymentMethod")
    status: Optional[OrderStatus] = None
    customer_name: Optional[str] = Field(None, alias="customerName", max_length=160)

    def changes(self) -> Dict[str, Any]:
        """Campos escalares enviados (exceto items)."""
        return {k: getattr(self, k) for k in self.model_fields_set if k != "items"}

    def lines(self) -> Optional[List[OrderLine]]:
        if "items" not in self.model_fields_set or self.items is None:
            return None
        return [i.to_line() for i in self.items]


class StatisticsReportRequest(_Camel):
    start_date: str = Field(..., alias="startDate", min_length=1)
    end_date: str = Field(..., alias="endDate", min_length=1)
    include_cancelled: bool = Field(False, alias="includeCancelled")
    limit: int = Field(10, ge=1, le=100)


def pydantic_details(e: PydanticValidationError) -> List[Dict[str, str]]:
    """Erros do pydantic no formato [{field, message}] da API."""
    details = []
    for err in e.errors(include_url=False, include_context=False, include_input=False):
        loc = ".".join(str(p) for p in err.get("loc", ()))
        details.append({"field": loc or "body", "message": err.get("msg", "inválido")})
    return details
