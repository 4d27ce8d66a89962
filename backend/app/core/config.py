from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    ENV: str = "prod"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    JWT_SECRET: str

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800

    ALLOWED_HOSTS: str = "localhost,127.0.0.1"
    SECURITY_HEADERS_ENABLED: bool = True

    # Account deletion lifecycle
    ACCOUNT_DELETION_GRACE_DAYS: int = 3
    ACCOUNT_DELETION_CONFIRMATION_PHRASE: str = "Potwierdzam"
    ACCOUNT_DELETION_REASON: str = "manual"
    PUBLIC_DASHBOARD_URL: str | None = None

    # Accounts without a login for this long are scheduled for deletion
    INACTIVITY_THRESHOLD_DAYS: int = 360
    INACTIVITY_DELETION_GRACE_DAYS: int = 30

    # Scheduler: executor endpoint invoked when the grace period elapses
    USER_DELETION_EXECUTOR_URL: str | None = None
    USER_DELETION_DLQ_URL: str | None = None
    USER_DELETION_JOB_MAX_ATTEMPTS: int = 3

    # Email
    SENDER_EMAIL: str | None = None
    EMAIL_PROVIDER: str = "none"  # none|smtp
    EMAIL_TIMEZONE: str = "UTC"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True

    SIDE_EFFECT_TIMEOUT_SECONDS: int = 10

settings = Settings()
