# pdv/core/statistics.py
"""
Relatórios de vendas: série diária, produtos mais vendidos, formas de
pagamento e tendências contra o período anterior.

Valores monetários ficam em Decimal do começo ao fim; a conversão para
float acontece só na serialização JSON. Os dias são dias corridos em UTC.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import selectinload

from pdv.core.errors import ValidationError
from pdv.core.models import _as_money, utcnow, PAYMENT_METHODS, Order, OrderItem

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
END_OF_DAY = time(23, 59, 59, 999000)
MAX_RANGE_DAYS = 366

PAYMENT_LABELS = {
    "CASH": "Dinheiro",
    "CREDIT_CARD": "Crédito",
    "DEBIT_CARD": "Débito",
    "PIX": "PIX",
}


# =============================================================================
# Intervalos de datas
# =============================================================================

@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    @classmethod
    def from_dates(cls, first: date, last: date) -> "DateRange":
        return cls(datetime.combine(first, time.min), datetime.combine(last, END_OF_DAY))

    @classmethod
    def for_days(cls, last: date, days: int) -> "DateRange":
        """`days` dias corridos terminando em `last` (inclusive)."""
        return cls.from_dates(last - timedelta(days=days - 1), last)

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        return self.end.date()

    @property
    def days(self) -> int:
        return (self.last_day - self.first_day).days + 1

    def each_day(self) -> List[date]:
        return [self.first_day + timedelta(days=i) for i in range(self.days)]

    def previous(self) -> "DateRange":
        """Período imediatamente anterior, de mesmo tamanho."""
        last = self.first_day - timedelta(days=1)
        return DateRange.for_days(last, self.days)


def _parse_day(raw: str, field: str) -> date:
    text = (raw or "").strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError.for_field(field, "Data inválida (use AAAA-MM-DD)") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def parse_date_range(
    start_raw: Optional[str],
    end_raw: Optional[str],
    lookback_days: int = 30,
    today: Optional[date] = None,
) -> DateRange:
    """
    Monta o intervalo [início 00:00:00.000, fim 23:59:59.999].

    Sem fim, usa hoje; sem início, recua `lookback_days` dias a partir do fim
    (30 dias para trás cobrem 31 dias corridos, contando o próprio fim).
    Fim antes do início é erro (não inverte nem corta o intervalo).
    """
    today = today or utcnow().date()
    last = _parse_day(end_raw, "endDate") if end_raw else today
    first = _parse_day(start_raw, "startDate") if start_raw else last - timedelta(days=lookback_days)

    if last < first:
        raise ValidationError.for_field("endDate", "Data final anterior à data inicial")
    if (last - first).days + 1 > MAX_RANGE_DAYS:
        raise ValidationError.for_field("startDate", f"Intervalo máximo de {MAX_RANGE_DAYS} dias")
    return DateRange.from_dates(first, last)


def range_for_period(
    period: Optional[str],
    start_raw: Optional[str] = None,
    end_raw: Optional[str] = None,
    today: Optional[date] = None,
) -> DateRange:
    today = today or utcnow().date()
    period = period or "today"
    if period == "today":
        return DateRange.for_days(today, 1)
    if period == "week":
        return DateRange.for_days(today, 7)
    if period == "month":
        return DateRange.for_days(today, 30)
    if period == "custom":
        if not start_raw:
            raise ValidationError.for_field("startDate", "Informe a data inicial")
        if not end_raw:
            raise ValidationError.for_field("endDate", "Informe a data final")
        return parse_date_range(start_raw, end_raw, today=today)
    raise ValidationError.for_field("period", "Período inválido. Use: today, week, month, custom")


# =============================================================================
# Consulta base
# =============================================================================

def orders_in_range(rng: DateRange, exclude_cancelled: bool = True, with_items: bool = False) -> List[Order]:
    q = Order.query.filter(Order.created_at >= rng.start, Order.created_at <= rng.end)
    if exclude_cancelled:
        q = q.filter(Order.status != "CANCELLED")
    if with_items:
        q = q.options(selectinload(Order.items).selectinload(OrderItem.product))
    return q.order_by(Order.created_at).all()


# =============================================================================
# Agregações
# =============================================================================

def summarize(orders: Iterable[Order]) -> Dict[str, Any]:
    total = ZERO
    count = 0
    for o in orders:
        total += _as_money(o.total)
        count += 1
    average = _as_money(total / count) if count else ZERO
    return {"sales": _as_money(total), "orderCount": count, "averageOrderValue": average}


def build_daily_series(rng: DateRange, orders: Iterable[Order]) -> List[Dict[str, Any]]:
    """Série densa: todo dia do intervalo aparece, mesmo sem pedidos."""
    by_day: Dict[date, Dict[str, Any]] = {}
    for day in rng.each_day():
        by_day[day] = {
            "date": day.isoformat(),
            "orderCount": 0,
            "totalSales": ZERO,
            "paymentMethods": {m: 0 for m in PAYMENT_METHODS},
        }
    for o in orders:
        bucket = by_day.get(o.created_at.date())
        if bucket is None:
            continue
        bucket["orderCount"] += 1
        bucket["totalSales"] += _as_money(o.total)
        bucket["paymentMethods"][o.payment_method] += 1
    return [by_day[d] for d in rng.each_day()]


def rank_products(orders: Iterable[Order], limit: int = 10) -> List[Dict[str, Any]]:
    stats: Dict[int, Dict[str, Any]] = {}
    for o in orders:
        for item in o.items:
            row = stats.get(item.product_id)
            if row is None:
                row = stats[item.product_id] = {
                    "productId": item.product_id,
                    "productName": item.product.name if item.product else "Produto não encontrado",
                    "quantitySold": 0,
                    "totalSales": ZERO,
                }
            row["quantitySold"] += item.quantity
            row["totalSales"] += _as_money(item.subtotal)
    ranked = sorted(stats.values(), key=lambda r: (-r["quantitySold"], -r["totalSales"], r["productId"]))
    return ranked[:limit]


def build_payment_breakdown(orders: Iterable[Order]) -> List[Dict[str, Any]]:
    """Todas as formas de pagamento, com participação percentual no total."""
    rows = {m: {"method": m, "label": PAYMENT_LABELS[m], "count": 0, "amount": ZERO} for m in PAYMENT_METHODS}
    for o in orders:
        row = rows[o.payment_method]
        row["count"] += 1
        row["amount"] += _as_money(o.total)

    grand_total = sum((r["amount"] for r in rows.values()), ZERO)
    for r in rows.values():
        if grand_total > 0:
            r["percentage"] = (r["amount"] / grand_total * HUNDRED).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        else:
            r["percentage"] = ZERO
    order = {m: i for i, m in enumerate(PAYMENT_METHODS)}
    return sorted(rows.values(), key=lambda r: (-r["amount"], order[r["method"]]))


# =============================================================================
# Tendências
# =============================================================================

def calculate_trend(current, previous) -> Decimal:
    """
    Variação percentual (atual - anterior) / anterior * 100.
    Anterior zero: 100 se atual > 0, senão 0.
    """
    current = Decimal(str(current))
    previous = Decimal(str(previous))
    if previous == 0:
        return Decimal("100.00") if current > 0 else ZERO
    change = (current - previous) / abs(previous) * HUNDRED
    return change.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def trend_direction(value: Decimal) -> str:
    if value > 0:
        return "up"
    if value < 0:
        return "down"
    return "neutral"


def format_trend(value: Decimal) -> str:
    return f"{abs(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP)}%"


# =============================================================================
# Relatórios (API pública)
# =============================================================================

def daily_sales(rng: DateRange, exclude_cancelled: bool = True) -> List[Dict[str, Any]]:
    return build_daily_series(rng, orders_in_range(rng, exclude_cancelled))


def top_products(rng: DateRange, limit: int = 10, exclude_cancelled: bool = True) -> List[Dict[str, Any]]:
    if limit < 1:
        raise ValidationError.for_field("limit", "Limite deve ser positivo")
    return rank_products(orders_in_range(rng, exclude_cancelled, with_items=True), limit)


def payment_breakdown(rng: DateRange, exclude_cancelled: bool = True) -> List[Dict[str, Any]]:
    return build_payment_breakdown(orders_in_range(rng, exclude_cancelled))


def sales_report(
    rng: DateRange,
    exclude_cancelled: bool = True,
    with_trends: bool = False,
    top_limit: int = 10,
) -> Dict[str, Any]:
    orders = orders_in_range(rng, exclude_cancelled, with_items=True)
    summary = summarize(orders)
    report: Dict[str, Any] = {
        "period": {
            "startDate": rng.start,
            "endDate": rng.end,
            "days": rng.days,
        },
        "summary": summary,
        "dailySales": build_daily_series(rng, orders),
        "topProducts": rank_products(orders, top_limit),
        "paymentMethods": build_payment_breakdown(orders),
    }
    if with_trends:
        prev = rng.previous()
        prev_summary = summarize(orders_in_range(prev, exclude_cancelled))
        report["previousPeriod"] = {
            "startDate": prev.start,
            "endDate": prev.end,
            "summary": prev_summary,
        }
        report["trends"] = {
            "salesChange": calculate_trend(summary["sales"], prev_summary["sales"]),
            "ordersChange": calculate_trend(summary["orderCount"], prev_summary["orderCount"]),
            "averageOrderChange": calculate_trend(
                summary["averageOrderValue"], prev_summary["averageOrderValue"]
            ),
        }
    return report


def _trend_block(current: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, Any]:
    change = calculate_trend(current["sales"], previous["sales"])
    return {"direction": trend_direction(change), "percentage": format_trend(change), "change": change}


def dashboard(days: int = 30, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Painel: vendas de hoje / 7 dias / 30 dias, tendências contra os períodos
    anteriores, 5 produtos mais vendidos no mês, 5 pedidos recentes (desde
    ontem) e série diária de `days` dias.
    """
    if not 1 <= days <= MAX_RANGE_DAYS:
        raise ValidationError.for_field("days", f"Dias deve estar entre 1 e {MAX_RANGE_DAYS}")
    now = now or utcnow()
    today = now.date()

    today_rng = DateRange.for_days(today, 1)
    week_rng = DateRange.for_days(today, 7)
    month_rng = DateRange.for_days(today, 30)
    series_rng = DateRange.for_days(today, days)

    today_summary = summarize(orders_in_range(today_rng))
    week_summary = summarize(orders_in_range(week_rng))
    month_orders = orders_in_range(month_rng, with_items=True)
    month_summary = summarize(month_orders)
    prev_week = summarize(orders_in_range(week_rng.previous()))
    prev_month = summarize(orders_in_range(month_rng.previous()))

    since = datetime.combine(today - timedelta(days=1), time.min)
    recent = (
        Order.query
        .options(selectinload(Order.items))
        .filter(Order.created_at >= since)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(5)
        .all()
    )

    return {
        "sales": {
            "today": today_summary["sales"],
            "todayCount": today_summary["orderCount"],
            "week": week_summary["sales"],
            "weekCount": week_summary["orderCount"],
            "month": month_summary["sales"],
            "monthCount": month_summary["orderCount"],
        },
        "trends": {
            "week": _trend_block(week_summary, prev_week),
            "month": _trend_block(month_summary, prev_month),
        },
        "topProducts": rank_products(month_orders, 5),
        "recentOrders": [
            {
                "id": o.id,
                "orderNumber": o.order_number,
                "time": o.created_at.strftime("%H:%M"),
                "value": _as_money(o.total),
                "items": len(o.items),
                "payment": PAYMENT_LABELS.get(o.payment_method, o.payment_method),
                "status": o.status,
            }
            for o in recent
        ],
        "dailySales": build_daily_series(series_rng, orders_in_range(series_rng)),
    }
