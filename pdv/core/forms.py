# pdv/core/forms.py
"""
Formulários WTForms para os payloads JSON "planos" da API.

O FlaskForm lê request.get_json() como formdata; os nomes de campo em
camelCase do JSON são mapeados com `name=`.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from flask import request
from flask_wtf import FlaskForm
from wtforms import BooleanField, PasswordField, SelectField, StringField
from wtforms.fields.core import Field
from wtforms.validators import DataRequired, Email, Length, Optional as Opt

from pdv.core.errors import ValidationError
from pdv.core.models import ROLES


# =============================================================================
# Utilidades
# =============================================================================

def _q2(v: Decimal) -> Decimal:
    return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def parse_decimal(text: Any) -> Decimal:
    """
    Converte número ou string em Decimal (2 casas), aceitando vírgula.
    Floats passam por str() para não herdar lixo binário.
    """
    if isinstance(text, bool):
        raise ValueError("Valor numérico inválido")
    s = str(text).strip()
    if s == "":
        raise ValueError("Valor numérico inválido")
    s = s.replace(".", "").replace(",", ".") if s.count(",") == 1 and s.count(".") > 0 else s.replace(",", ".")
    try:
        d = Decimal(s)
    except InvalidOperation:
        raise ValueError("Valor numérico inválido")
    if not d.is_finite():
        raise ValueError("Valor numérico inválido")
    return _q2(d)

def parse_bool_arg(value: Optional[str], field: str) -> Optional[bool]:
    """Query string: 'true'/'1' e 'false'/'0'; ausente vira None."""
    if value is None or value == "":
        return None
    v = value.strip().lower()
    if v in ("true", "1", "yes", "sim"):
        return True
    if v in ("false", "0", "no", "nao", "não"):
        return False
    raise ValidationError.for_field(field, "Valor booleano inválido")

def parse_int_arg(value: Optional[str], field: str, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError.for_field(field, "Número inteiro inválido") from e


# =============================================================================
# Campos customizados
# =============================================================================

class TextField(StringField):
    """String que aceita qualquer escalar do JSON (números viram texto)."""

    def process_formdata(self, valuelist):
        if valuelist:
            v = valuelist[0]
            self.data = None if v is None else str(v).strip()


class MoneyField(Field):
    """
    Valor monetário que vira Decimal com 2 casas; ausente ou null fica None.
    """
    def __init__(self, label=None, validators=None, **kwargs):
        super().__init__(label, validators, **kwargs)
        self.data = None

    def _value(self):
        return str(self.data) if isinstance(self.data, Decimal) else ""

    def process_formdata(self, valuelist):
        if not valuelist or valuelist[0] is None:
            self.data = None
            return
        self.data = parse_decimal(valuelist[0])


class IdField(Field):
    """Inteiro estrito: rejeita null, booleanos e frações."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        v = valuelist[0]
        if v is None or isinstance(v, bool):
            self.data = None
            raise ValueError("Identificador inválido")
        try:
            d = Decimal(str(v).strip())
        except InvalidOperation:
            self.data = None
            raise ValueError("Identificador inválido")
        if d != d.to_integral_value():
            self.data = None
            raise ValueError("Identificador inválido")
        self.data = int(d)


# =============================================================================
# Base
# =============================================================================

class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def present_data(self) -> Dict[str, Any]:
        """Apenas os campos enviados no JSON, para updates parciais."""
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return {}
        return {attr: field.data for attr, field in self._fields.items() if field.name in payload}

    def error_details(self) -> List[Dict[str, str]]:
        return [
            {"field": field.name, "message": str(msg)}
            for field in self
            for msg in field.errors
        ]

    def validate_or_raise(self) -> "ApiForm":
        if not isinstance(request.get_json(silent=True), dict):
            raise ValidationError("Corpo JSON (objeto) obrigatório")
        if not self.validate():
            raise ValidationError("Dados inválidos", details=self.error_details())
        return self


# =============================================================================
# Catálogo
# =============================================================================

class CategoryForm(ApiForm):
    name = TextField("Nome", validators=[Opt(), Length(max=120)])
    description = TextField("Descrição", validators=[Opt()])
    color = TextField("Cor", validators=[Opt(), Length(max=20)])
    active = BooleanField("Ativa", default=True)


class ProductForm(ApiForm):
    name = TextField("Nome", validators=[Opt(), Length(max=160)])
    description = TextField("Descrição", validators=[Opt()])
    price = MoneyField("Preço")
    category_id = IdField("Categoria", name="categoryId")
    is_available = BooleanField("Disponível", name="isAvailable", default=True)


# =============================================================================
# Usuários e autenticação
# =============================================================================

ROLE_CHOICES = [(r, r) for r in ROLES]

class LoginForm(ApiForm):
    email = TextField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Senha", validators=[DataRequired()])


class RegisterForm(ApiForm):
    name = TextField("Nome", validators=[DataRequired(), Length(max=120)])
    email = TextField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Senha", validators=[DataRequired(), Length(min=6)])


class UserForm(ApiForm):
    name = TextField("Nome", validators=[Opt(), Length(max=120)])
    email = TextField("Email", validators=[Opt(), Email()])
    password = PasswordField("Senha", validators=[Opt(), Length(min=6)])
    role = SelectField("Papel", choices=ROLE_CHOICES, validate_choice=True, validators=[Opt()])
    active = BooleanField("Ativo", default=True)


# =============================================================================
# Comentários e configurações
# =============================================================================

class CommentForm(ApiForm):
    order_id = IdField("Pedido", name="orderId")
    content = TextField("Conteúdo", validators=[Opt(), Length(max=2000)])


class StoreSettingsForm(ApiForm):
    store_name = TextField("Nome da loja", name="storeName", validators=[Opt(), Length(max=120)])
    address = TextField("Endereço", validators=[Opt(), Length(max=255)])
    phone = TextField("Telefone", validators=[Opt(), Length(max=40)])
    email = TextField("Email", validators=[Opt(), Email()])
    receipt_header = TextField("Cabeçalho do cupom", name="receiptHeader", validators=[Opt()])
    receipt_footer = TextField("Rodapé do cupom", name="receiptFooter", validators=[Opt()])
    tax_rate = MoneyField("Taxa", name="taxRate")
    currency = TextField("Moeda", validators=[Opt(), Length(max=8)])
    time_zone = TextField("Fuso horário", name="timeZone", validators=[Opt(), Length(max=40)])
    date_format = TextField("Formato de data", name="dateFormat", validators=[Opt(), Length(max=20)])
    enable_auto_backup = BooleanField("Backup automático", name="enableAutoBackup")
    backup_frequency = SelectField(
        "Frequência do backup", name="backupFrequency",
        choices=[("daily", "daily"), ("weekly", "weekly"), ("monthly", "monthly")],
        validators=[Opt()],
    )
