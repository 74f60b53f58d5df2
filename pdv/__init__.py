# pdv/__init__.py
from __future__ import annotations

import os
from typing import Optional

from flask import Flask, jsonify

from .extensions import init_extensions
from .logging_config import configure_logging


def create_app(config_name: Optional[str] = None, **overrides):
    from config import CONFIGS

    app = Flask(__name__)

    # Config por ambiente (PDV_ENV) + ajustes pontuais (ex.: testes)
    config_name = config_name or os.getenv("PDV_ENV", "development")
    config_cls = CONFIGS[config_name]
    config_cls.validate()
    app.config.from_object(config_cls)
    app.config.update(overrides)

    configure_logging("pdv", app.config.get("LOG_LEVEL", "INFO"))

    from .core.serializers import PdvJSONProvider
    app.json = PdvJSONProvider(app)
    app.url_map.strict_slashes = False

    init_extensions(app)

    # Blueprints
    from .auth.routes import bp as auth_bp
    from .views.categories import bp as categories_bp
    from .views.comments import bp as comments_bp
    from .views.orders import bp as orders_bp
    from .views.products import bp as products_bp
    from .views.settings import bp as settings_bp
    from .views.statistics import bp as statistics_bp
    from .views.users import bp as users_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(categories_bp, url_prefix="/api/categories")
    app.register_blueprint(comments_bp, url_prefix="/api/comments")
    app.register_blueprint(orders_bp, url_prefix="/api/orders")
    app.register_blueprint(products_bp, url_prefix="/api/products")
    app.register_blueprint(settings_bp, url_prefix="/api/settings")
    app.register_blueprint(statistics_bp, url_prefix="/api/statistics")
    app.register_blueprint(users_bp, url_prefix="/api/users")

    from .error_handlers import register_error_handlers
    register_error_handlers(app)

    from .cli import register_commands
    register_commands(app)

    from .core.database import check_health, initialize_database

    @app.get("/health")
    def health():
        report = check_health()
        return jsonify(report.to_dict()), (200 if report.ok else 503)

    # Primeira execução: tabelas, admin e configurações padrão
    initialize_database(app)

    return app
