from pydantic_settings import BaseSettings
import urllib.parse
from typing import List, Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Goal Tracker"
    API_V1_STR: str = "/api/v1"

    DATABASE_URL: str = "sqlite+aiosqlite:///./goal_tracker.db"

    # Text generation (Groq, OpenAI-compatible chat completions)
    GROQ_API_KEY: Optional[str] = None
    AI_API_URL: str = "https://api.groq.com/openai/v1/chat/completions"
    AI_MODEL: str = "llama-3.3-70b-versatile"
    AI_FALLBACK_MODELS: List[str] = ["mixtral-8x7b-32768", "llama-3.1-8b-instant"]
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_SUMMARY_MIN_ENTRIES: int = 3
    AI_HISTORY_CONTEXT_GOALS: int = 3

    # memory:// only holds for a single instance; point at redis:// when running several
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    AI_RATE_LIMIT: int = 10
    AI_RATE_WINDOW_SECONDS: int = 60

    SYNC_MAX_GOAL_IDS: int = 200
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    @property
    def async_database_url(self) -> str:
        if "sqlite" in self.DATABASE_URL:
            return self.DATABASE_URL

        url = self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
        parsed = urllib.parse.urlparse(url)
        query_params = urllib.parse.parse_qs(parsed.query)
        for param in ("sslmode", "channel_binding"):
            query_params.pop(param, None)
        new_query = urllib.parse.urlencode(query_params, doseq=True)
        return urllib.parse.urlunparse(parsed._replace(query=new_query))

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
