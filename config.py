# config.py
import os

_DEFAULT_SECRET = "dev"
_DEFAULT_JWT_SECRET = "dev-jwt"


class Config:
    ENV_NAME = "development"
    SECRET_KEY = os.getenv("SECRET_KEY", _DEFAULT_SECRET)
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///pdv.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Escritores concorrentes esperam o lock do SQLite em vez de falhar na hora
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 15}}

    JWT_SECRET = os.getenv("JWT_SECRET", _DEFAULT_JWT_SECRET)
    JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", "24"))

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Formulários da API recebem JSON; sem CSRF
    WTF_CSRF_ENABLED = False

    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@pdv.com")
    ADMIN_PASS = os.getenv("ADMIN_PASS", "admin123")
    ADMIN_NAME = os.getenv("ADMIN_NAME", "Administrador")

    ORDER_CREATE_RETRIES = int(os.getenv("ORDER_CREATE_RETRIES", "3"))
    # Pausa máxima (s) entre tentativas, multiplicada pelo número da tentativa
    ORDER_RETRY_BACKOFF = float(os.getenv("ORDER_RETRY_BACKOFF", "0.05"))

    @classmethod
    def validate(cls):
        return None


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    ENV_NAME = "testing"
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET = "test-jwt-secret"
    LOG_LEVEL = "WARNING"
    ADMIN_EMAIL = "admin@pdv.com"
    ADMIN_PASS = "admin123"


class ProductionConfig(Config):
    ENV_NAME = "production"

    @classmethod
    def validate(cls):
        problems = []
        if cls.SECRET_KEY == _DEFAULT_SECRET:
            problems.append("SECRET_KEY")
        if cls.JWT_SECRET == _DEFAULT_JWT_SECRET:
            problems.append("JWT_SECRET")
        if problems:
            raise RuntimeError(
                "Configuração de produção usa valores padrão: " + ", ".join(problems)
            )


CONFIGS = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
