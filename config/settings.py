"""
Centralized configuration for the dealership squad backend.

All settings are loaded from environment variables via .env file.
"""

import json
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    # Dealership
    dealership_name: str = Field(default="Your Dealership", env="DEALERSHIP_NAME")
    dealership_phone: str = Field(default="+18016809129", env="DEALERSHIP_PHONE")
    base_url: str = Field(
        default="https://vapi-dealership-demo-production.up.railway.app", env="BASE_URL"
    )

    # Database
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=3000, env="API_PORT")
    api_title: str = Field(default="Dealership Squad API", env="API_TITLE")
    api_version: str = Field(default="1.0.0", env="API_VERSION")
    api_key: Optional[str] = Field(default=None, env="API_KEY")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")
    rate_limit_per_minute: int = Field(default=300, env="RATE_LIMIT_PER_MINUTE")

    # Lead qualification
    qualification_budget_threshold: float = Field(default=20000, env="QUALIFICATION_BUDGET_THRESHOLD")

    # Communications
    summary_email_delay_minutes: int = Field(default=20, env="SUMMARY_EMAIL_DELAY_MINUTES")
    education_series: str = Field(default="buyer_tips", env="EDUCATION_SERIES")
    cancel_drip_on_complete: bool = Field(default=False, env="CANCEL_DRIP_ON_COMPLETE")
    sweep_enabled: bool = Field(default=True, env="SWEEP_ENABLED")
    sweep_interval_seconds: int = Field(default=60, env="SWEEP_INTERVAL_SECONDS")
    sweep_max_attempts: int = Field(default=5, env="SWEEP_MAX_ATTEMPTS")
    shared_link_ttl_days: int = Field(default=30, env="SHARED_LINK_TTL_DAYS")

    # Email
    email_service: str = Field(default="disabled", env="EMAIL_SERVICE")  # sendgrid | ses | disabled
    email_fallback_ses: bool = Field(default=False, env="EMAIL_FALLBACK_SES")
    email_from: str = Field(default="noreply@dealership.com", env="EMAIL_FROM")
    sendgrid_api_key: Optional[str] = Field(default=None, env="SENDGRID_API_KEY")
    aws_region: str = Field(default="us-east-1", env="AWS_REGION")

    # SMS
    twilio_account_sid: Optional[str] = Field(default=None, env="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[str] = Field(default=None, env="TWILIO_AUTH_TOKEN")
    twilio_from_number: Optional[str] = Field(default=None, env="TWILIO_FROM_NUMBER")

    # Spreadsheet
    google_sheets_webhook: Optional[str] = Field(default=None, env="GOOGLE_SHEETS_WEBHOOK")

    # Sales team
    salesperson_roster: str = Field(default="", env="SALESPERSON_ROSTER")  # JSON list
    assignment_policy: str = Field(default="expertise", env="ASSIGNMENT_POLICY")  # round_robin | least_loaded | expertise
    sales_inbox_email: Optional[str] = Field(default=None, env="SALES_INBOX_EMAIL")  # contact requests without an assigned salesperson

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    debug: bool = Field(default=False, env="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def roster_list(self) -> List[Dict[str, Any]]:
        if not self.salesperson_roster:
            return []
        try:
            return json.loads(self.salesperson_roster)
        except json.JSONDecodeError:
            logger.warning("SALESPERSON_ROSTER is not valid JSON, using default roster")
            return []

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
