"""
Application settings
"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # One sub-directory per collection lives under this root
    data_root: Path = Path(os.getenv("MESSBOOK_DATA_ROOT", "./mess-data"))

    # Operation log database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./messbook.db")
    database_echo: bool = os.getenv("DATABASE_ECHO", "False").lower() == "true"

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
