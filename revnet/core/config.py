from typing import List

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./revnet.db"
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    debug: bool = False
    cors_origins: List[str] = ["http://localhost:4200", "https://revnet.vercel.app"]
    recent_messages_limit: int = 50
    message_edit_window_hours: int = 24
    log_dir: str = "logs"

    class Config:
        env_file = ".env"


settings = Settings()
