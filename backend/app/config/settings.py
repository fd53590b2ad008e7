from pathlib import Path
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve repo root no matter where uvicorn is launched from
REPO_ROOT = Path(__file__).resolve().parents[3]

def _default_data_dir() -> Path:
    return (REPO_ROOT / "data").resolve()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Storage
    DATA_DIR: Path = Field(default_factory=_default_data_dir)
    REPORTS_FILE: Path = Field(default_factory=lambda: _default_data_dir() / "reports.json")

    # API
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # Client side (map + composer)
    API_BASE_URL: str = "http://localhost:8000"
    HTTP_TIMEOUT: float = 10.0
    DEBOUNCE_SECONDS: float = 0.5
    CACHE_PRECISION: int = 4          # ~11m
    CACHE_CAPACITY: int = 64
    GEOLOCATION_TIMEOUT: float = 5.0

    # Map defaults (San Francisco)
    DEFAULT_LAT: float = 37.7749
    DEFAULT_LON: float = -122.4194
    DEFAULT_ZOOM: int = 12
    TILE_URL_LIGHT: str = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
    TILE_URL_DARK: str = "https://{s}.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}{r}.png"
    TILE_ATTRIBUTION: str = (
        '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'
    )

    def ensure_dirs(self) -> None:
        # Resolve in case env provided relative strings
        self.DATA_DIR = self.DATA_DIR.resolve()
        self.REPORTS_FILE = self.REPORTS_FILE.resolve()
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.REPORTS_FILE.parent.mkdir(parents=True, exist_ok=True)

settings = Settings()
settings.ensure_dirs()
