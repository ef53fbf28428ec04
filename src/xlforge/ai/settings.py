from functools import cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Anthropic Messages API
    ANTHROPIC_API_KEY: str | None = None
    XLFORGE_API_URL: str = "https://api.anthropic.com/v1/messages"
    XLFORGE_MODEL: str = "claude-sonnet-4-20250514"
    XLFORGE_MAX_TOKENS: int = 1000
    XLFORGE_TIMEOUT: float = 60.0

    # Number of grid rows included in the prompt preview
    XLFORGE_PREVIEW_ROWS: int = Field(default=25, ge=1)

    # Backups kept next to the workbook on save
    XLFORGE_KEEP_BACKUPS: int = Field(default=5, ge=0)

    # How far set_cell may grow a sheet (Excel's own sheet size)
    XLFORGE_MAX_ROWS: int = Field(default=1_048_576, ge=1)
    XLFORGE_MAX_COLS: int = Field(default=16_384, ge=1)


@cache
def get_settings() -> Settings:
    return Settings()
