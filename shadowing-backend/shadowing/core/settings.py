from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    database_url: str = Field(default="sqlite:///./shadowing.db", alias="DATABASE_URL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_structured: bool = Field(default=False, alias="LOG_STRUCTURED")

    # External extraction tool
    ytdlp_binary: str = Field(default="yt-dlp", alias="YTDLP_BINARY")
    ytdlp_timeout_seconds: int = Field(default=60, alias="YTDLP_TIMEOUT_SECONDS")

    subtitle_dir: str = Field(default="data/subtitles", alias="SUBTITLE_DIR")
    download_dir: str = Field(default="data/downloads", alias="DOWNLOAD_DIR")
    cookies_dir: str = Field(default="data/cookies", alias="COOKIES_DIR")

    # Worker pools / admission control
    max_concurrent_downloads: int = Field(default=3, alias="MAX_CONCURRENT_DOWNLOADS")
    parse_workers: int = Field(default=2, alias="PARSE_WORKERS")
    download_workers: int = Field(default=8, alias="DOWNLOAD_WORKERS")

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
