from pydantic_settings import BaseSettings
from pydantic import SecretStr
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    app_name: str = "Quiz Session Engine"
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_anon_key: SecretStr = os.getenv("SUPABASE_ANON_KEY", "")
    supabase_service_role_key: SecretStr = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Storage backends: 'supabase' or 'memory'
    session_store: str = os.getenv("SESSION_STORE", "supabase")
    quiz_catalog: str = os.getenv("QUIZ_CATALOG", "supabase")

    # Session engine
    session_header: str = os.getenv("SESSION_HEADER", "X-Session-Token")
    session_lock_timeout_seconds: float = float(os.getenv("SESSION_LOCK_TIMEOUT_SECONDS", 2.0))
    session_write_retries: int = int(os.getenv("SESSION_WRITE_RETRIES", 3))
    timezone: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

settings = Settings()
