from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    telegram_bot_token: str = ""
    telegram_webhook_secret: Optional[str] = None
    telegram_api_url: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 10.0

    voiceflow_api_key: str = ""
    voiceflow_version_id: str = "production"
    voiceflow_runtime_url: str = "https://general-runtime.voiceflow.com"
    voiceflow_webhook_secret: Optional[str] = None

    admin_chat_id: Optional[str] = None

    upstream_timeout_seconds: float = 20.0
    dedup_ttl_seconds: float = 300.0
    callback_token_ttl_seconds: float = 600.0
    state_high_water_mark: int = 5000
    # Telegram rejects callback_data above 64 bytes; keep headroom.
    callback_data_safe_bytes: int = 60

    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
