from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = "sqlite:///./pathlab_reports.db"
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    api_base_url: str = "http://localhost:8000"
    allowed_origins: str = "http://localhost:8501"

    # Report artwork: filesystem paths or http(s) URLs. Empty disables the image.
    letterhead_image: str = ""
    cover_image: str = ""
    stamp_image: str = ""
    stamp2_image: str = ""
    bill_background_image: str = ""
    diet_image: str = ""
    exercise_image: str = ""
    image_jpeg_quality: int = 50
    image_fetch_timeout_seconds: float = 15.0

    report_timezone: str = "Asia/Kolkata"
    default_printed_by: str = "Lab System"
    combined_chunk_size: int = 5
    comparison_default_selection: dict[str, int] = {"cbc": 4, "lft": 3}

    openai_api_key: str | None = None
    suggestions_model: str = "gpt-4o-mini"
    suggestions_enable_llm: bool = True


settings = Settings()
