from functools import lru_cache
from typing import Literal, Optional
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["development", "production"]

def _env_file_for(app_env: EnvName) -> str:
    return ".env.development" if app_env == "development" else ".env.production"

class Settings(BaseSettings):

    # Core
    APP_ENV: EnvName = "development"
    APP_NAME: str = "ProductComposite"
    DEBUG: bool = False
    GIT_SHA: str = "unknown"
    SERVER_PORT: int = 8080

    # Downstream services (logical hostnames when host is unset)
    PRODUCT_SERVICE_HOST: Optional[str] = None
    PRODUCT_SERVICE_PORT: int = 80
    RECOMMENDATION_SERVICE_HOST: Optional[str] = None
    RECOMMENDATION_SERVICE_PORT: int = 80
    REVIEW_SERVICE_HOST: Optional[str] = None
    REVIEW_SERVICE_PORT: int = 80
    HTTP_CLIENT_TIMEOUT: float = 10.0          # seconds; per-attempt limit is the time limiter below

    # Resilience (product lookup only)
    RESILIENCE_PRODUCT_RETRY_MAX_ATTEMPTS: int = 3
    RESILIENCE_PRODUCT_RETRY_WAIT_DURATION: float = 0.5          # seconds
    RESILIENCE_PRODUCT_TIMELIMITER_TIMEOUT_DURATION: float = 2.0  # seconds
    RESILIENCE_PRODUCT_CIRCUITBREAKER_SLIDING_WINDOW_SIZE: int = 20
    RESILIENCE_PRODUCT_CIRCUITBREAKER_MINIMUM_NUMBER_OF_CALLS: int = 10
    RESILIENCE_PRODUCT_CIRCUITBREAKER_FAILURE_RATE_THRESHOLD: float = 50.0  # percent
    RESILIENCE_PRODUCT_CIRCUITBREAKER_WAIT_DURATION_IN_OPEN_STATE: float = 10.0  # seconds
    RESILIENCE_PRODUCT_CIRCUITBREAKER_PERMITTED_CALLS_IN_HALF_OPEN_STATE: int = 3

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_TOPIC_PRODUCTS: str = "products"
    KAFKA_TOPIC_RECOMMENDATIONS: str = "recommendations"
    KAFKA_TOPIC_REVIEWS: str = "reviews"
    KAFKA_SEND_TIMEOUT: float = 10.0           # seconds to wait for the broker to accept a send
    PUBLISH_EVENT_POOL_SIZE: int = 10          # worker threads for blocking sends
    PUBLISH_EVENT_QUEUE_SIZE: int = 100        # max pending sends
    KAFKA_CONSUMER_GROUP: Optional[str] = None  # defaults to the service kind
    CONSUMER_MAX_ATTEMPTS: int = 3
    CONSUMER_BACKOFF: float = 1.0              # seconds between redeliveries

    # Mongo (domain services)
    MONGO_URI: str = "mongodb://mongodb:27017"
    MONGO_DB: str = "product_db"
    MONGO_TLS: bool = False

    # Auth
    AUTH_ENABLED: bool = True
    JWT_KEY: str = "change-me"                 # HMAC secret or PEM public key
    JWT_ALGORITHMS: str = "HS256"              # CSV
    JWT_ISSUER: Optional[str] = None
    JWT_AUDIENCE: Optional[str] = None

    # pydantic-settings config will be set dynamically in the factory below
    model_config = SettingsConfigDict(env_file=None, case_sensitive=True)

    @property
    def product_service_url(self) -> str:
        return _base_url("product", self.PRODUCT_SERVICE_HOST, self.PRODUCT_SERVICE_PORT)

    @property
    def recommendation_service_url(self) -> str:
        return _base_url("recommendation", self.RECOMMENDATION_SERVICE_HOST, self.RECOMMENDATION_SERVICE_PORT)

    @property
    def review_service_url(self) -> str:
        return _base_url("review", self.REVIEW_SERVICE_HOST, self.REVIEW_SERVICE_PORT)

    @property
    def jwt_algorithms(self) -> list[str]:
        return [a.strip() for a in self.JWT_ALGORITHMS.split(",") if a.strip()]


def _base_url(logical_name: str, host: Optional[str], port: int) -> str:
    if not host:
        return f"http://{logical_name}"
    return f"http://{host}:{port}"


@lru_cache
def get_settings() -> Settings:
    """
    Factory that chooses the right .env file based on APP_ENV.
    Cache makes it cheap to inject via FastAPI dependencies.
    """
    app_env: EnvName = os.getenv("APP_ENV", "development")  # earliest switch
    env_file = _env_file_for(app_env)
    return Settings(
                _env_file=env_file,  # load .env.development or .env.production
                _env_file_encoding="utf-8"
    )
