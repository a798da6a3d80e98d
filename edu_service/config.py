"""
Central configuration for the education service.
All values are read from environment variables (with sensible defaults
for docker-compose usage).
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Raw classifier label (lower-cased) → canonical behaviour category.
DEFAULT_LABEL_MAP: dict[str, str] = {
    "normal":          "Normal",
    "class 1":         "Normal",
    "correct posture": "Normal",
    "looking left":    "Looking Away",
    "looking right":   "Looking Away",
    "looking away":    "Looking Away",
    "looking back":    "Looking Away",
    "head down":       "Head Down",
    "using phone":     "Using Phone",
    "phone":           "Using Phone",
    "talking":         "Talking",
    "no person":       "Absent",
    "absent":          "Absent",
    "focus lost":      "Focus Lost",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────────
    db_host:     str = "postgres"
    db_port:     int = 5432
    db_name:     str = "edudb"
    db_user:     str = "eduuser"
    db_password: str = "edupass"
    database_url: str = ""              # computed below if empty

    # ── RabbitMQ ─────────────────────────────────────────────────
    rabbitmq_enabled:  bool = True
    rabbitmq_host:     str = "rabbitmq"
    rabbitmq_port:     int = 5672
    rabbitmq_user:     str = "eduuser"
    rabbitmq_password: str = "edupass"
    rabbitmq_vhost:    str = "/"
    rabbitmq_url:      str = ""         # set directly (e.g. amqp://...) OR computed below

    exchange_name:       str = "proctoring.exchange"
    focus_queue:         str = "focus.events"
    results_routing_key: str = "proctoring.results"

    # ── Gemini ────────────────────────────────────────────────────
    gemini_api_key: str = ""
    gemini_model:   str = "gemini-1.5-flash"

    # ── Proctoring ────────────────────────────────────────────────
    frame_danger_threshold: int = 100     # per-frame sampling
    focus_danger_threshold: int = 3       # per-event window focus loss

    monitor_tick_seconds:            float = 0.05   # ~ one rendered frame
    simulated_tick_seconds:          float = 1.0
    simulated_violation_probability: float = 0.10

    camera_index: int = 0
    frame_size:   int = 200                 # square capture, pixels
    pose_model_path: str = "models/pose_classifier.pkl"

    label_map: dict[str, str] = DEFAULT_LABEL_MAP

    # ── Exam sessions ─────────────────────────────────────────────
    session_ttl_seconds: int = 4 * 3600   # longest exam plus slack
    timer_tick_seconds:  float = 1.0

    # ── HTTP server ───────────────────────────────────────────────
    port:      int = 8001
    log_level: str = "INFO"

    # ── Post-init: compute derived URLs ──────────────────────────
    @model_validator(mode="after")
    def _fill_derived_urls(self) -> "Settings":
        if not self.database_url:
            self.database_url = (
                f"postgresql+psycopg2://{self.db_user}:{self.db_password}"
                f"@{self.db_host}:{self.db_port}/{self.db_name}"
            )
        if not self.rabbitmq_url:
            self.rabbitmq_url = (
                f"amqp://{self.rabbitmq_user}:{self.rabbitmq_password}"
                f"@{self.rabbitmq_host}:{self.rabbitmq_port}{self.rabbitmq_vhost}"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
