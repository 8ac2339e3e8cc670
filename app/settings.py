from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PUBLIC_APP_NAME: str = "control-plane"

    # Store
    DATABASE_URL: str = "sqlite:///./control_plane.db"

    # Supabase (bearer-token verification only)
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None

    # RunPod
    RUNPOD_API_URL: str = "https://api.runpod.io/graphql"
    RUNPOD_API_KEY: str | None = None
    RUNPOD_POD_ID: str | None = None

    # Local inference endpoint (llama.cpp / OpenAI-compatible)
    LLAMA_BASE_URL: str = "http://localhost:8000"
    INFERENCE_MODEL: str = "local-model"

    # Queue + presence
    MAX_QUEUE_SIZE: int = 5
    PRESENCE_ACTIVE_SECONDS: int = 120
    IDLE_SHUTDOWN_SECONDS: int = 900
    HISTORY_LIMIT: int = 20
    ERROR_TEXT_LIMIT: int = 500

    # Background loops
    WORKER_TICK_SECONDS: float = 0.7
    IDLE_CHECK_SECONDS: float = 60.0
    SCHEDULER_ENABLED: bool = True

    # Logging
    LOG_LEVEL: str = "info"
    LOG_FORMAT: str = "console"  # console or json

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

settings = Settings()
