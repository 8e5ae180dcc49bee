from pydantic import PrivateAttr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Driver Recruitment API"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./driver_recruitment.db"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Wizard behaviour
    autosave_delay_seconds: float = 1.5
    confirmation_redirect_seconds: int = 3
    password_min_score: int = 5
    phone_prefix: str = "07"

    # Document storage (local adapter)
    document_root: str = "./storage/documents"
    document_base_url: str = "http://localhost:3005/files"
    staging_root: str = "./storage/staging"

    # Outbound integrations; empty disables them
    chat_webhook_url: str = ""
    push_gateway_url: str = ""
    http_timeout_seconds: float = 10.0

    # Comma-separated emails promoted to staff on sign-in
    staff_emails: str = ""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    _is_sqlite: bool = PrivateAttr(default=False)
    _is_postgresql: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: object) -> None:
        _scheme = self.database_url.split(":")[0].lower()
        object.__setattr__(self, "_is_sqlite", "sqlite" in _scheme)
        object.__setattr__(self, "_is_postgresql", "postgresql" in _scheme)

    @property
    def is_sqlite(self) -> bool:
        return self._is_sqlite

    @property
    def is_postgresql(self) -> bool:
        return self._is_postgresql

    @property
    def staff_email_set(self) -> set[str]:
        return {e.strip().lower() for e in self.staff_emails.split(",") if e.strip()}


settings = Settings()
