# aurix/config.py
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # App
    APP_HOST: str = Field("0.0.0.0", description="Host to bind the app")
    APP_PORT: int = Field(8000, description="Port to run the app")
    ENV: str = Field("dev", description="Environment (dev|prod)")
    PUBLIC_BASE_URL: str = Field("http://localhost:8000", description="Public URL the voice platform calls back on")

    # Storage
    DB_URL: str = Field("sqlite:///./data/aurix.db", description="Database URL")
    REDIS_URL: Optional[str] = Field(None, description="Redis URL for session lifecycle state (optional)")
    SEED_DEMO_DATA: bool = Field(True, description="Insert demo customers/orders on startup when tables are empty")

    # Providers
    LLM_MODE: str = Field("stub", description="llm mode: openai | stub")
    LLM_API_KEY: Optional[str] = Field(None, description="API key for the LLM provider")
    LLM_MODEL: str = Field("gpt-4o-mini", description="Chat model used for extraction/formatting")
    TWILIO_ACCOUNT_SID: Optional[str] = Field(None, description="Twilio account SID (SMS is simulated when unset)")
    TWILIO_AUTH_TOKEN: Optional[str] = Field(None, description="Twilio auth token")
    TWILIO_PHONE_NUMBER: Optional[str] = Field(None, description="Twilio sender number")
    ELEVENLABS_AGENT_ID: Optional[str] = Field(None, description="Conversational agent to stream calls to")
    SMS_BRAND: str = Field("AURIX Demo", description="Prefix for outgoing SMS bodies")
    WEBHOOK_SECRET: str = Field("changeme", description="Secret to validate incoming webhooks")

    # Demo / workflow behaviour
    DEMO_SESSION_ID: str = Field("DEMO_SESSION_ID", description="Reusable session id for demo runs")
    CALLBACK_WINDOW_HOURS: float = Field(2.0, description="Clinician callback window")
    WORKFLOW_STEP_DELAY: float = Field(0.0, description="Seconds to pause between timeline steps (live demo pacing)")
    SIMULATION_PACE: float = Field(1.0, description="Multiplier for simulated call delays (0 = instant)")
    PROMPT_QUIET_SECONDS: float = Field(3.0, description="Quiet period after agent speech before the SMS prompt")
    PROMPT_HARD_TIMEOUT_SECONDS: float = Field(10.0, description="Fallback: prompt fires after this even if speech continues")

    # Logging / misc
    LOG_LEVEL: str = Field("info", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Singleton settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Return a singleton Settings instance (loads from .env automatically).
    Use `get_settings()` instead of importing Settings() directly so other modules
    share the same instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()  # loads from environment / .env
    return _settings
