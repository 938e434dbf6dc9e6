from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # Logging
    log_level: str = "INFO"

    # Engine fan-out
    max_workers: int = Field(default=8, ge=1)
    snapshot_cache_ttl_seconds: float = Field(default=300.0, gt=0)

    # Screening
    magic_formula_default_limit: int = 30
    squeeze_min_score: int = Field(default=40, ge=0, le=100)

    # Diagnosis weights (재무 / 수급 / 기술적)
    weight_financial: float = 0.30
    weight_supply: float = 0.35
    weight_technical: float = 0.35

    model_config = {"env_prefix": "QUANTDESK_", "env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
