from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PAYMENT_METHODS = [
    {"id": "efectivo", "odoo_names": ["Efectivo"], "display_name": "Efectivo", "is_cash": True},
    {"id": "tarjeta_tbk", "odoo_names": ["Tarjeta", "Transbank SOS"], "display_name": "Tarjeta + Transbank SOS"},
    {"id": "klap", "odoo_names": ["Klap"], "display_name": "Klap"},
    {"id": "transferencia", "odoo_names": ["Transferencia"], "display_name": "Transferencia"},
    {"id": "planilla", "odoo_names": ["Planilla"], "display_name": "Planilla"},
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "CUADRATURAS"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    DATABASE_URL: str = "sqlite+pysqlite:///./cuadraturas.db"
    POS_API_BASE_URL: str = "http://localhost:8069"
    POS_API_BEARER_TOKEN: str = ""
    POS_API_CONNECT_TIMEOUT_SECONDS: float = 5.0
    POS_API_READ_TIMEOUT_SECONDS: float = 30.0
    POS_API_MAX_CONNECTIONS: int = 10
    POS_API_VERIFY_SSL: bool = True
    DRAFT_LOOKUP_ATTEMPTS: int = 3
    DRAFT_LOOKUP_DELAY_SECONDS: float = 0.5
    SUBMIT_REDIRECT_PATH: str = "/cuadraturas"
    SUBMIT_REDIRECT_DELAY_MS: int = 2500
    PAYMENT_METHODS: list[dict] = DEFAULT_PAYMENT_METHODS

settings = Settings()
