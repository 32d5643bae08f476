"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Supabase
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    CONVERSATIONS_TABLE: str = "conversations"

    # Identity providers
    IDENTITY_PROVIDER: str = "entra"
    AZURE_TENANT_ID: str = ""
    AZURE_CLIENT_ID: str = ""
    AZURE_CLIENT_SECRET: str = ""
    REDIRECT_URI: str = "http://localhost:3000/"
    CLERK_SECRET_KEY: str = ""
    CLERK_SIGN_IN_URL: str = ""
    CLERK_JWT_TEMPLATE: str = "supabase"

    # Session exchange
    SESSION_EXCHANGE_STRATEGY: str = "id_token"
    SUPABASE_ID_TOKEN_PROVIDER: str = "azure"
    HOST_DETECT_TIMEOUT_SECONDS: float = 2.0
    TOKEN_REFRESH_SKEW_SECONDS: int = 300

    # Relay
    RELAY_PROVIDER: str = "gemini"
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash-latest"
    GROQ_API_KEY: str = ""
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    RELAY_URL: str = "http://localhost:8000/api/v1/relay"
    RELAY_REQUIRE_AUTH: bool = True
    AUTH_JWKS_URL: str = ""

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    LOG_LEVEL: str = "INFO"

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def authority(self) -> str:
        return f"https://login.microsoftonline.com/{self.AZURE_TENANT_ID}"

    @property
    def jwks_url(self) -> str:
        return self.AUTH_JWKS_URL or f"{self.authority}/discovery/v2.0/keys"

    @property
    def token_audience(self) -> str:
        return f"api://{self.AZURE_CLIENT_ID}"

    @property
    def token_issuer(self) -> str:
        return f"https://sts.windows.net/{self.AZURE_TENANT_ID}/"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
