"""Credential Recovery Service — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database (mock legacy backend) ────────────────────
    database_url: str = "sqlite+aiosqlite:///./recovery_service.db"

    # ── Legacy backend ────────────────────────────────────
    legacy_api_base_url: str = "http://localhost:8000/external/v1"
    identity_lookup_path: str = "/localiza_associado_app_cartao.php"
    delivery_path: str = "/envia_codigo_recuperacao.php"
    code_registry_path: str = "/gerencia_codigo_recuperacao.php"
    legacy_api_token: str = ""
    register_codes: bool = False

    # ── Delivery transports ───────────────────────────────
    email_transport: str = "legacy"  # legacy | smtp
    whatsapp_transport: str = "legacy"  # legacy | cloud
    default_country_code: str = "55"

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "no-reply@example.com"

    whatsapp_api_token: str = ""
    whatsapp_phone_number_id: str = ""
    whatsapp_api_base_url: str = "https://graph.facebook.com/v21.0"

    # ── Recovery policy ───────────────────────────────────
    code_ttl_seconds: int = 600
    resend_cooldown_seconds: int = 60
    in_flight_window_seconds: int = 30

    identity_timeout_seconds: float = 10.0
    delivery_timeout_seconds: float = 15.0
    wait_timeout_seconds: float = 30.0

    # ── Shared state (empty → in-memory, single instance) ─
    redis_url: str = ""

    # ── Admin ─────────────────────────────────────────────
    operator_token: str = ""
    allow_code_reveal: bool = False
    sweep_interval_seconds: int = 300

    # ── App ───────────────────────────────────────────────
    mock_backend_enabled: bool = False  # local demos and tests only
    app_name: str = "Credential Recovery"
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
