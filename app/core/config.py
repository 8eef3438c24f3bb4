from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str | None = None
    database_pool_size: int = 5
    database_max_overflow: int = 5
    database_pool_timeout_seconds: int = 30
    database_pool_recycle_seconds: int = 1800

    admin_login: str | None = None
    admin_password: str | None = None

    # Audit scans read legacy tables in pages of this many rows.
    audit_page_size: int = 1000
    audit_top_referrers_limit: int = 20
    audit_sample_urls_limit: int = 10

    env: str = "dev"
    log_level: str = "info"

    @property
    def admin_credentials_ready(self) -> bool:
        return bool(self.admin_login) and bool(self.admin_password)


settings = Settings()
