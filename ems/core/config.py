import os
import logging
from pydantic import BaseModel, Field
from typing import Dict
from dotenv import load_dotenv

load_dotenv()

class PayrollSettings(BaseModel):
    # Fixed 30-day month convention for per-day salary, regardless of calendar length
    per_day_divisor: int = int(os.getenv("PAYROLL_PER_DAY_DIVISOR", "30"))
    pf_rate: float = float(os.getenv("PAYROLL_PF_RATE", "0.12"))
    professional_tax: float = float(os.getenv("PAYROLL_PROFESSIONAL_TAX", "200"))
    professional_tax_threshold: float = float(os.getenv("PAYROLL_PROFESSIONAL_TAX_THRESHOLD", "15000"))

class LeaveSettings(BaseModel):
    default_allocations: Dict[str, float] = Field(
        default_factory=lambda: {
            "sick": 12.0,
            "casual": 12.0,
            "earned": 15.0,
            "maternity": 180.0,
            "paternity": 15.0,
        }
    )

class Config(BaseModel):
    app_name: str = "EMS Backend"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    company_name: str = os.getenv("COMPANY_NAME", "Company")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./ems.db")

    # Identity provider (token verification only)
    secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD")
    token_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    version: str = "1.0.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    request_id_header: str = "X-Request-ID"

    # Rate limiting
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    payroll: PayrollSettings = PayrollSettings()
    leave: LeaveSettings = LeaveSettings()

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "dev-only" in settings.secret_key:
        raise RuntimeError(
            "FATAL: SECRET_KEY must be set for non-development environments. "
            "Set it as an environment variable."
        )
else:
    if "dev-only" in settings.secret_key:
        _logger.warning("Using insecure default SECRET_KEY, only acceptable in development.")
