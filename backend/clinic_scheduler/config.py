from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = ""
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_name: str = "clinic_scheduler"
    db_ssl: bool = False

    inference_api_base: str = "https://bedrock-runtime.us-east-1.amazonaws.com"
    inference_bearer_token: str = Field(
        default="",
        validation_alias=AliasChoices("inference_bearer_token", "aws_bearer_token_bedrock"),
    )
    inference_model_id: str = "us.amazon.nova-micro-v1:0"
    inference_timeout_seconds: float = 30.0
    inference_max_tokens: int = 1000
    inference_temperature: float = 0.7
    inference_top_p: float = 0.9

    port: int = 8000
    log_level: str = "INFO"
    public_base_url: str = ""

    slot_duration_minutes: int = 30
    availability_days: int = 7
    availability_limit: int = 100
    selection_slot_limit: int = 8
    alternatives_limit: int = 5
    menu_doctor_limit: int = 4

    guest_patient_name: str = "Chat Guest"
    guest_patient_email: str = "guest@chat.local"
    seed_demo_data: bool = True

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_use_tls: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        url = (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )
        if self.db_ssl:
            url += "?sslmode=require"
        return url

    def require_inference_credentials(self) -> None:
        if not self.inference_bearer_token:
            raise RuntimeError(
                "INFERENCE_BEARER_TOKEN (or AWS_BEARER_TOKEN_BEDROCK) is required"
            )


settings = Settings()
