# pdv/auth/tokens.py
"""
Tokens JWT (Bearer) para autenticação stateless da API.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from flask import current_app

from pdv.extensions import db
from pdv.logging_config import get_logger

JWT_ALGORITHM = "HS256"

logger = get_logger(__name__)


class TokenError(Exception):
    pass


def issue_token(user, expires_hours: Optional[int] = None) -> str:
    hours = expires_hours or current_app.config.get("JWT_EXPIRES_HOURS", 24)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Token expirado") from e
    except jwt.InvalidTokenError as e:
        raise TokenError("Token inválido") from e


def bearer_token(request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def user_from_request(request):
    """Resolve o usuário do header Authorization; None vira anônimo no Flask-Login."""
    from pdv.core.models import User

    token = bearer_token(request)
    if not token:
        return None
    try:
        claims = decode_token(token)
        user_id = int(claims["sub"])
    except (TokenError, KeyError, ValueError) as e:
        logger.info("Token rejeitado: %s", e)
        return None

    user = db.session.get(User, user_id)
    if user is None or not user.active:
        return None
    return user
