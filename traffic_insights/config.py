import sys
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    """

    # Project metadata
    PROJECT_NAME: str = "Traffic Insights API"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Frontend origins allowed by CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Persistence
    DATABASE_URL: str = Field(
        "sqlite:///./traffic_insights.db",
        description="SQLAlchemy connection string for readings and insights"
    )

    # Signal timing predictor
    PREDICTOR_MODE: str = Field(
        "local",
        pattern="^(local|subprocess)$",
        description="'local' runs the in-process model, 'subprocess' shells out to PREDICTOR_COMMAND"
    )
    PREDICTOR_COMMAND: List[str] = Field(
        default_factory=lambda: [sys.executable, "-m", "traffic_insights.predict"],
        description="Command to run; the vehicle count is appended as the last argument"
    )
    PREDICTOR_OUTPUT: str = Field(
        "number",
        pattern="^(number|json)$",
        description="Whether the external predictor prints a number or a JSON plan"
    )
    PREDICTOR_TIMEOUT_SECONDS: float = Field(
        5.0, gt=0, description="Hard limit for a single prediction"
    )
    PREDICTOR_MAX_CONCURRENCY: int = Field(
        8, ge=1, description="Maximum simultaneously running predictor processes"
    )

    # Read endpoints
    LIVE_TRAFFIC_LIMIT: int = Field(
        default=10, ge=1, description="Default number of readings for /live-traffic"
    )
    HIGH_ACCIDENT_THRESHOLD: int = Field(
        default=5, description="Accident reports above this mark a high accident zone"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Export a singleton for easy import
settings = Settings()
