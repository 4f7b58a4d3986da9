from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/reputation.db"
    secret_key: str = "dev-secret-key-change-in-production"

    # Celery configuration
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # Recalculation dispatcher: "local" (asyncio tasks) or "celery"
    dispatcher_backend: str = "local"
    dispatcher_max_concurrency: int = 4

    # Nightly batch recalculation of every professional's trust score
    trust_recalc_interval_hours: int = 24

    # Jobs
    enforce_job_transitions: bool = False
    default_currency: str = "ARS"

    # Review moderation
    auto_approve_min_comment_length: int = 20
    review_flag_threshold: int = 5

    # Trust score component weights (must sum to 1.0)
    trust_weight_review: float = 0.30
    trust_weight_completion: float = 0.25
    trust_weight_reliability: float = 0.20
    trust_weight_communication: float = 0.15
    trust_weight_verification: float = 0.10

    class Config:
        env_file = ".env"

    @property
    def trust_weights(self) -> dict:
        return {
            "review": self.trust_weight_review,
            "completion": self.trust_weight_completion,
            "reliability": self.trust_weight_reliability,
            "communication": self.trust_weight_communication,
            "verification": self.trust_weight_verification,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
