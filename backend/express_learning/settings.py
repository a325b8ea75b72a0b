from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field

class Settings(BaseSettings):
	# Provider can be "openai" (chat completions) or "gemini" (Generative Language API)
	ai_provider: str = Field(default="openai", validation_alias="AI_PROVIDER")

	# OpenAI configuration (also used for illustrations regardless of provider)
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	openai_model: str = Field(default="gpt-4o", validation_alias="OPENAI_MODEL")
	openai_base_url: str = Field(default="https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL")
	openai_image_model: str = Field(default="gpt-image-1", validation_alias="OPENAI_IMAGE_MODEL")

	# Gemini configuration
	gemini_api_key: str | None = Field(default=None, validation_alias=AliasChoices("GOOGLE_AI_API_KEY", "GEMINI_API_KEY"))
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta", validation_alias="GEMINI_BASE_URL")

	# Outline and detail calls with an attached PDF can take a while
	llm_timeout_seconds: float = Field(default=120.0, validation_alias="LLM_TIMEOUT_SECONDS")

	# Generation limits
	max_document_bytes: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_DOCUMENT_BYTES")
	min_explanation_chars: int = Field(default=20, validation_alias="MIN_EXPLANATION_CHARS")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=7 * 24 * 60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	session_retention_days: int = Field(default=30, validation_alias="SESSION_RETENTION_DAYS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
