from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional
from pathlib import Path

class Settings(BaseSettings):
    app_name: str = Field(default="Back Office API", alias="APP_NAME")
    env: str = Field(default="dev", alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    # Identity provider session tokens (verified, never issued in production)
    identity_secret_key: str = Field(default="devsecret", alias="IDENTITY_SECRET_KEY")
    identity_algorithm: str = Field(default="HS256", alias="IDENTITY_ALGORITHM")
    identity_audience: Optional[str] = Field(default=None, alias="IDENTITY_AUDIENCE")
    identity_issuer: Optional[str] = Field(default=None, alias="IDENTITY_ISSUER")
    # Raw env values (strings), parsed to lists via properties to avoid JSON decoding errors
    cors_origins_raw: Optional[str] = Field(default=None, alias="CORS_ORIGINS", description="Comma or space separated list of allowed CORS origins")
    # Lifecycle policy
    invitation_ttl_days: int = Field(default=7, alias="INVITATION_TTL_DAYS")
    recovery_window_days: int = Field(default=30, alias="RECOVERY_WINDOW_DAYS")
    default_max_trainees: int = Field(default=10, alias="DEFAULT_MAX_TRAINEES")
    # Outbound email
    app_url: str = Field(default="http://localhost:3000", alias="APP_URL")
    send_emails: bool = Field(default=False, alias="SEND_EMAILS")
    smtp_server: Optional[str] = Field(default=None, alias="SMTP_SERVER")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(default=None, alias="SMTP_PASSWORD")
    from_email: str = Field(default="no-reply@example.com", alias="FROM_EMAIL")
    from_name: str = Field(default="Back Office", alias="FROM_NAME")
    # Seed site admin (dev/demo convenience)
    seed_admin_email: Optional[str] = Field(default=None, alias="SEED_ADMIN_EMAIL")
    seed_admin_external_id: Optional[str] = Field(default=None, alias="SEED_ADMIN_EXTERNAL_ID")

    class Config:
        # Load env from backend/.env regardless of CWD
        env_file = str(Path(__file__).resolve().parents[2] / ".env")
        case_sensitive = False

    def _parse_list(self, v: Optional[str]) -> List[str]:
        if v is None:
            return []
        s = v.strip()
        if not s:
            return []
        if s.startswith("[") and s.endswith("]"):
            try:
                import json
                loaded = json.loads(s)
                if isinstance(loaded, list):
                    return [str(e).strip() for e in loaded if str(e).strip()]
            except ValueError:
                pass
        return [e.strip() for e in s.replace(" ", ",").split(",") if e.strip()]

    @property
    def cors_origins(self) -> List[str]:
        items = self._parse_list(self.cors_origins_raw)
        # Fallback dev defaults if none provided
        if not items:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        return items

settings = Settings()  # type: ignore
