from __future__ import annotations

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    llm_provider: str = "openai"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    gradium_api_key: str | None = None
    gradium_tts_url: str = "wss://us.api.gradium.ai/api/speech/tts"
    gradium_voice_id: str = "YTpq7expH9539ERJ"
    tts_sample_rate: int = 48000
    safe_browsing_api_key: str | None = None
    headless: bool = True
    user_data_dir: str | None = None
    max_catalog_actions: int = 40
    highlight_timeout_s: float = 10.0
    log_level: str = "INFO"
    api_host: str = "127.0.0.1"
    api_port: int = 3000

def get_settings() -> Settings:
    return Settings()


settings = get_settings()
