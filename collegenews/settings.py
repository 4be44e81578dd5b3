import os
from typing import Optional
from pydantic import BaseModel


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    # Fonte
    source_url: str = "https://geca.ac.in/"
    news_selector: str = "ul.scrollNews li a"
    fetch_timeout: float = 15.0
    fallback_proxy: Optional[str] = None
    refresh_interval_seconds: int = 10

    # Armazenamento (JSON por coleção)
    data_dir: str = os.path.join(os.path.dirname(__file__), "storage", "data")

    # E-mail
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_from: Optional[str] = None
    notify_workers: int = 8

    # Links públicos e tokens
    public_base_url: str = "http://localhost:8000"
    token_secret: str = "change-me"
    verify_token_minutes: int = 15
    unsubscribe_token_days: int = 30

    # Anti-abuso
    recaptcha_secret: Optional[str] = None
    check_mx: bool = True

    local_timezone: str = "Asia/Kolkata"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, load_env: bool = True, dotenv_override: bool = True) -> "Settings":
        """Lê a configuração do ambiente (e do .env, se existir)."""
        if load_env:
            from dotenv import load_dotenv
            load_dotenv(override=dotenv_override)

        defaults = cls()
        return cls(
            source_url=os.getenv("SOURCE_URL", defaults.source_url),
            news_selector=os.getenv("NEWS_SELECTOR", defaults.news_selector),
            fetch_timeout=float(os.getenv("FETCH_TIMEOUT", defaults.fetch_timeout)),
            fallback_proxy=os.getenv("FALLBACK_PROXY") or None,
            refresh_interval_seconds=int(os.getenv("REFRESH_INTERVAL_SECONDS", defaults.refresh_interval_seconds)),
            data_dir=os.getenv("DATA_DIR", defaults.data_dir),
            smtp_host=os.getenv("SMTP_HOST", defaults.smtp_host),
            smtp_port=int(os.getenv("SMTP_PORT", defaults.smtp_port)),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            smtp_use_tls=_env_bool("SMTP_USE_TLS", defaults.smtp_use_tls),
            mail_from=os.getenv("MAIL_FROM") or os.getenv("SMTP_USER") or None,
            notify_workers=int(os.getenv("NOTIFY_WORKERS", defaults.notify_workers)),
            public_base_url=os.getenv("PUBLIC_BASE_URL", defaults.public_base_url).rstrip("/"),
            token_secret=os.getenv("TOKEN_SECRET", defaults.token_secret),
            verify_token_minutes=int(os.getenv("VERIFY_TOKEN_MINUTES", defaults.verify_token_minutes)),
            unsubscribe_token_days=int(os.getenv("UNSUBSCRIBE_TOKEN_DAYS", defaults.unsubscribe_token_days)),
            recaptcha_secret=os.getenv("RECAPTCHA_SECRET") or None,
            check_mx=_env_bool("CHECK_MX", defaults.check_mx),
            local_timezone=os.getenv("LOCAL_TIMEZONE", defaults.local_timezone),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )
