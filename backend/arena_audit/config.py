"""Arena audit configuration — settings, health weights, alert policy."""

from dataclasses import dataclass
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

RescoreFailurePolicy = Literal["fallback_original", "inconclusive"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///data/arena_audit.db"

    # Sampling
    audit_categories: str = "fullstack-dev,cloud-devops,data-analytics,ai-ml"
    audit_per_category: int = 5
    audit_overfetch_factor: int = 10  # pool = per_category * factor
    audit_random_seed: int | None = None  # None = fresh entropy per run

    # Processing
    audit_worker_concurrency: int = 4
    rescore_timeout_seconds: float = 30.0
    rescore_failure_policy: RescoreFailurePolicy = "fallback_original"

    # Health score weights
    health_critical_penalty: float = 20.0
    health_major_penalty: float = 10.0
    health_high_deviation_baseline: float = 10.0
    health_high_deviation_rate: float = 2.0
    health_moderate_deviation_baseline: float = 5.0
    health_moderate_deviation_rate: float = 1.0
    health_within5_bonus_high: float = 5.0  # >= 80% of results within 5 points
    health_within5_bonus_low: float = 2.0   # >= 60% of results within 5 points
    health_within10_bonus: float = 3.0      # >= 90% of results within 10 points

    # Alert policy
    alert_health_threshold: int = 60
    alert_major_deviation_threshold: float = 10.0

    # Notifications (empty webhook / SMTP user = channel disabled)
    slack_webhook_url: str = ""
    frontend_url: str = "https://cabe.ai"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    audit_recipients: str = ""  # Comma-separated email addresses
    notification_timeout_seconds: float = 10.0

    # Scoring oracle
    anthropic_api_key: str = ""
    scoring_model: str = "claude-haiku-4-5-20251001"
    scoring_max_tokens: int = 50
    scoring_temperature: float = 0.1  # Low temperature for consistent scoring
    oracle_failure_threshold: int = 5
    oracle_reset_timeout_seconds: float = 60.0

    # Scheduling
    audit_schedule_enabled: bool = True
    audit_interval_hours: float = 24.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("audit_worker_concurrency")
    @classmethod
    def _bound_concurrency(cls, v: int) -> int:
        return max(1, min(8, v))

    @field_validator("audit_per_category", "audit_overfetch_factor")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    def category_list(self) -> list[str]:
        """Parse comma-separated audit categories."""
        return [c.strip() for c in self.audit_categories.split(",") if c.strip()]


settings = Settings()


@dataclass(frozen=True)
class HealthWeights:
    """Per-unit penalties and bonuses used by the health score."""

    critical_penalty: float = 20.0
    major_penalty: float = 10.0
    high_deviation_baseline: float = 10.0
    high_deviation_rate: float = 2.0
    moderate_deviation_baseline: float = 5.0
    moderate_deviation_rate: float = 1.0
    within5_bonus_high: float = 5.0
    within5_bonus_low: float = 2.0
    within10_bonus: float = 3.0

    @classmethod
    def from_settings(cls, s: Settings | None = None) -> "HealthWeights":
        s = s or settings
        return cls(
            critical_penalty=s.health_critical_penalty,
            major_penalty=s.health_major_penalty,
            high_deviation_baseline=s.health_high_deviation_baseline,
            high_deviation_rate=s.health_high_deviation_rate,
            moderate_deviation_baseline=s.health_moderate_deviation_baseline,
            moderate_deviation_rate=s.health_moderate_deviation_rate,
            within5_bonus_high=s.health_within5_bonus_high,
            within5_bonus_low=s.health_within5_bonus_low,
            within10_bonus=s.health_within10_bonus,
        )


@dataclass(frozen=True)
class AlertPolicy:
    """Thresholds for the alert decision."""

    health_threshold: int = 60
    major_deviation_threshold: float = 10.0

    @classmethod
    def from_settings(cls, s: Settings | None = None) -> "AlertPolicy":
        s = s or settings
        return cls(
            health_threshold=s.alert_health_threshold,
            major_deviation_threshold=s.alert_major_deviation_threshold,
        )
