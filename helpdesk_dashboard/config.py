"""
Helpdesk Dashboard - Configuration Management
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Optional


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings"""

    # FastAPI
    fastapi_env: str = "development"
    fastapi_host: str = "0.0.0.0"
    fastapi_port: int = 8000
    cors_origins: str = "*"  # Comma-separated allowed origins

    # Freshservice
    freshservice_domain: str = "patterntickets.freshservice.com"
    freshservice_api_key: str = ""
    freshservice_timeout: float = 30.0

    # Rate budget (PRO plan: 400 calls/min overall, 120 calls/min for tickets)
    rate_limit_window_seconds: float = 60.0
    rate_limit_overall: int = 400
    rate_limit_tickets: int = 120
    rate_limit_max_wait_seconds: float = 5.0

    # Retry
    retry_max_attempts: int = 3
    retry_base_delay_ms: int = 5000

    # Cache TTLs (seconds)
    cache_default_ttl: int = 5 * 60
    cache_tickets_ttl: int = 3 * 60
    cache_all_tickets_ttl: int = 10 * 60
    cache_reference_ttl: int = 30 * 60

    # Pagination
    tickets_per_page: int = 100
    ticket_page_budget: int = 30
    ticket_page_ceiling: int = 40
    large_dataset_threshold: int = 4000
    early_stop_min_records: int = 2000
    early_stop_recent_days: int = 90
    early_stop_recent_min: int = 1000
    inter_page_delay_ms: int = 250
    reference_per_page: int = 100

    # Business policy
    preferred_workspace_ids: str = "2,1"
    scored_department_id: Optional[int] = None
    scored_department_name: str = "IT"
    scored_group_ids: str = ""  # Comma-separated group IDs whose members are also scored
    excluded_keywords: str = (
        "onboarding,on-boarding,offboarding,off-boarding,new hire,new starter,"
        "new employee,leaver,termination,terminated employee,separation,"
        "account creation,create account,deactivate account,disable account,"
        "account deactivation,access removal"
    )
    conversation_sample_size: int = 15
    report_timezone: str = "UTC"
    fcr_threshold_hours: float = 4.0
    category_limit: int = 8

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False
    )

    @property
    def FRESHSERVICE_BASE_URL(self) -> str:
        """Construct Freshservice API base URL, ignoring any protocol prefix in the domain"""
        domain = self.freshservice_domain
        for prefix in ("https://", "http://"):
            if domain.startswith(prefix):
                domain = domain[len(prefix):]
        return f"https://{domain.rstrip('/')}/api/v2"

    @property
    def cors_origin_list(self) -> List[str]:
        return _split_csv(self.cors_origins) or ["*"]

    @property
    def preferred_workspaces(self) -> List[int]:
        return [int(item) for item in _split_csv(self.preferred_workspace_ids)]

    @property
    def scored_groups(self) -> List[int]:
        return [int(item) for item in _split_csv(self.scored_group_ids)]

    @property
    def exclusion_vocabulary(self) -> List[str]:
        return [item.lower() for item in _split_csv(self.excluded_keywords)]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
