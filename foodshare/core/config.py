from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    jwt_secret: str = "dev"
    jwt_alg: str = "HS256"
    access_ttl_min: int = 60 * 24
    verify_ttl_min: int = 60 * 24 * 3

    use_mongo: bool = False
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "foodshare"

    max_images: int = 7
    upload_dir: str = "uploads"
    public_base_url: str = "http://localhost:8000"

    turnstile_secret_key: str | None = None
    turnstile_verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"

    openrouter_api_key: str | None = None
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    openrouter_vision_model: str = "google/gemini-2.0-flash-exp:free"
    groq_api_key: str | None = None
    groq_url: str = "https://api.groq.com/openai/v1/chat/completions"
    groq_vision_model: str = "llama-3.2-11b-vision-preview"
    groq_text_model: str = "llama-3.3-70b-versatile"
    ai_timeout_s: float = 20.0
    app_url: str = "https://foodshare.local"
    app_title: str = "FoodShare"

    require_verified_email: bool = False
    inventory_default_shelf_days: int = 30
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
