# app/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.domain.entities.risk import Thresholds


class Settings(BaseSettings):
    # Metadatos
    PROJECT_NAME: str = "FraudShieldBD Order Guard"
    PROJECT_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    APP_HOST: str = "http://localhost:8000"

    # Shopify
    SHOPIFY_API_KEY: str = ""
    SHOPIFY_API_SECRET: str = ""
    SHOPIFY_API_VERSION: str = "2024-01"
    SHOPIFY_TIMEOUT: float = 15.0
    # Tienda sembrada al arrancar (la instalación OAuth vive fuera de este servicio)
    SHOPIFY_SHOP_DOMAIN: str | None = None
    SHOPIFY_ACCESS_TOKEN: str | None = None

    # FraudShieldBD
    FRAUDSHIELD_API_URL: str = "https://fraudshield.bd/api/customer/check"
    FRAUDSHIELD_API_KEY: str = ""
    FRAUDSHIELD_TIMEOUT: float = 20.0

    # Cache de resultados (segundos)
    RISK_CACHE_TTL: int = 300
    RISK_CACHE_SWEEP_INTERVAL: int = 60

    # Cortes de riesgo: ratio < HIGH -> high risk, ratio < MEDIUM -> medium risk
    RISK_THRESHOLD_HIGH: float = 50
    RISK_THRESHOLD_MEDIUM: float = 70

    # Comportamiento
    AUTO_CHECK_ENABLED: bool = True
    CHECK_COD_ONLY: bool = True
    AUTO_TAG_ORDERS: bool = True
    ADD_ORDER_NOTES: bool = True

    # Redis (token store + rate limiter). Vacío -> memoria
    REDIS_URL: str = ""

    # Rate limiting del API admin (requests/minuto por IP)
    RATE_LIMIT: str = "30/minute"

    # TLS (si usas HTTPS directo)
    SSL_KEYFILE: str | None = "ssl/key.pem"
    SSL_CERTFILE: str | None = "ssl/cert.pem"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(low=self.RISK_THRESHOLD_HIGH, high=self.RISK_THRESHOLD_MEDIUM)


settings = Settings()
