"""FormRelay configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class FormRelaySettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///formrelay.db"
    echo_sql: bool = False
    app_title: str = "FormRelay"
    log_level: str = "INFO"

    # Owner API protection
    admin_api_key: str = ""
    security_fail_closed: bool = False
    trust_forwarded_for: bool = False

    # Shared counter store (empty = in-process store, single instance only)
    redis_url: str = ""
    rate_limit_key_prefix: str = "formrelay:rl:"

    # reCAPTCHA
    recaptcha_secret_key: str = ""
    recaptcha_verify_url: str = "https://www.google.com/recaptcha/api/siteverify"
    recaptcha_timeout_seconds: float = 10.0

    # Spam defaults used when a form leaves a value unset
    default_rate_limit_per_ip: int = 10
    default_rate_limit_per_form: int = 50
    default_rate_limit_window_minutes: int = 60
    default_ip_form_limit: int = 5
    default_honeypot_field: str = "website"

    # Per-IP request budgets for the owner API and the public form lookup (0 = off)
    api_rate_limit: int = 1000
    api_rate_limit_window_minutes: float = 15
    public_api_rate_limit: int = 100
    public_api_rate_limit_window_minutes: float = 15

    # Multiple-submission policy
    duplicate_window_minutes: int = 60
    duplicate_check_per_form: bool = False

    # Email (console / smtp / sendgrid)
    email_provider: str = "console"
    email_from: str = "noreply@formrelay.local"
    email_from_name: str | None = "FormRelay"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = False
    smtp_start_tls: bool = True
    sendgrid_api_key: str | None = None
    email_timeout_seconds: float = 30.0

    # Webhooks
    webhook_timeout_seconds: float = 30.0
    webhook_user_agent: str = "FormRelay-Webhook/1.0"

    # Job queue
    job_worker_enabled: bool = True
    job_parallel_kinds: bool = True
    job_poll_interval_seconds: float = 1.0
    job_max_attempts: int = 3
    job_backoff_base_seconds: int = 2
    job_timeout_seconds: float = 60.0
    job_claim_timeout_seconds: int = 300
    job_shutdown_timeout_seconds: float = 30.0
    job_keep_dead_letters: bool = True

    model_config = {"env_prefix": "FR_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def templates_dir(self) -> Path:
        return self.base_dir / "templates"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.email_from)

    @property
    def sendgrid_configured(self) -> bool:
        return bool(self.sendgrid_api_key and self.email_from)


settings = FormRelaySettings()
