import os
import tempfile
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _default_database_file() -> str:
    # Priority:
    # 1) LIBRARY_DB_FILE (explicit override)
    # 2) LIBRARY_DATA_FILE (older name still found in some .env files)
    # 3) Per-process temp file
    return (
        os.getenv("LIBRARY_DB_FILE")
        or os.getenv("LIBRARY_DATA_FILE")
        or os.path.join(tempfile.gettempdir(), f"catalog_{os.getpid()}.db")
    )


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "3000"))

    # Database settings
    database_file: str = _default_database_file()
    database_timeout: float = float(os.getenv("DATABASE_TIMEOUT", "5"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Personal Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
