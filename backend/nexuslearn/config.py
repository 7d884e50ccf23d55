import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    agent_model: str = Field("gpt-5-mini", alias="NEXUSLEARN_AGENT_MODEL")
    agent_reasoning: Literal["minimal", "low", "medium", "high"] = Field("low", alias="NEXUSLEARN_AGENT_REASONING")
    database_url: Optional[str] = Field(None, alias="NEXUSLEARN_DATABASE_URL")
    database_pool_size: int = Field(10, alias="NEXUSLEARN_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="NEXUSLEARN_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="NEXUSLEARN_DATABASE_ECHO")
    persistence_mode: Literal["database", "firestore"] = Field("database", alias="NEXUSLEARN_PERSISTENCE_MODE")
    firebase_credentials: Optional[str] = Field(None, alias="FIREBASE_CREDENTIALS")
    firestore_progress_collection: str = Field("userProgress", alias="NEXUSLEARN_FIRESTORE_PROGRESS_COLLECTION")
    firestore_profile_collection: str = Field("users", alias="NEXUSLEARN_FIRESTORE_PROFILE_COLLECTION")
    max_upload_bytes: int = Field(50 * 1024 * 1024, alias="NEXUSLEARN_MAX_UPLOAD_BYTES")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def ai_configured(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()  # type: ignore[arg-type]
        if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        return settings
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
