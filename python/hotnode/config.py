"""Node settings loaded from environment variables.

Environment Configuration:
    HOTNODE_ENV: Deployment environment (local | test | staging | prod)
    HOTNODE_NAME: Human-readable node name (used in notifications)
    DATABASE_URL: Pin registry connection string (required)
    NODE_TYPE: infrastructure (direct authorization DB) | community (remote validation)

Storage daemon / supernode:
    IPFS_API_URL: Local Kubo RPC base URL
    SUPERNODE_API: Replication target RPC base URL (required)
    SUPERNODE_BASE_TIMEOUT_S / SUPERNODE_TIMEOUT_STEP_S / SUPERNODE_MAX_TIMEOUT_S:
        Dynamic pin timeout parameters (see hotnode.storage.target)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (required for worker and beat)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Note: Worker schedules are cron expressions ("m h dom mon dow").
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class NodeType(str, Enum):
    """How the node validates pending pins."""

    INFRASTRUCTURE = "infrastructure"
    COMMUNITY = "community"


class Settings(BaseSettings):
    """Node configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - DATABASE_URL and SUPERNODE_API are always required
    - AUTHZ_DATABASE_URL is required for infrastructure nodes
    - VALIDATION_SERVER_URL is required for community nodes
    - MIGRATION_DELETE_AFTER_DAYS must not precede MIGRATION_START_AFTER_DAYS
    """

    hotnode_env: Environment = Field(default=Environment.LOCAL, alias="HOTNODE_ENV")
    hotnode_name: str = Field(default="HotNode-01", alias="HOTNODE_NAME")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    node_type: NodeType = Field(default=NodeType.INFRASTRUCTURE, alias="NODE_TYPE")

    # Logging
    log_json: bool = Field(default=True, alias="LOG_JSON")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Local storage daemon (Kubo RPC)
    ipfs_api_url: str = Field(default="http://127.0.0.1:5001", alias="IPFS_API_URL")
    ipfs_timeout_s: float = Field(default=30.0, alias="IPFS_TIMEOUT_S")

    # Replication target (supernode)
    supernode_api: str | None = Field(default=None, alias="SUPERNODE_API")
    supernode_verify_timeout_s: float = Field(default=30.0, alias="SUPERNODE_VERIFY_TIMEOUT_S")
    supernode_base_timeout_s: float = Field(default=30.0, alias="SUPERNODE_BASE_TIMEOUT_S")
    supernode_timeout_step_s: float = Field(default=30.0, alias="SUPERNODE_TIMEOUT_STEP_S")
    supernode_max_timeout_s: float = Field(default=600.0, alias="SUPERNODE_MAX_TIMEOUT_S")

    # Validation sources
    authz_database_url: str | None = Field(default=None, alias="AUTHZ_DATABASE_URL")
    authz_table: str = Field(default="embed_videos", alias="AUTHZ_TABLE")
    authz_identifier_column: str = Field(default="manifest_cid", alias="AUTHZ_IDENTIFIER_COLUMN")
    authz_legacy_table: str | None = Field(default="videos", alias="AUTHZ_LEGACY_TABLE")
    authz_legacy_url_column: str = Field(default="video_v2", alias="AUTHZ_LEGACY_URL_COLUMN")
    validation_server_url: str | None = Field(default=None, alias="VALIDATION_SERVER_URL")
    validation_timeout_s: float = Field(default=30.0, alias="VALIDATION_TIMEOUT_S")
    validation_batch_size: int = Field(default=500, alias="VALIDATION_BATCH_SIZE", ge=1)

    # Migration
    migration_start_after_days: int = Field(default=4, alias="MIGRATION_START_AFTER_DAYS", ge=0)
    migration_delete_after_days: int = Field(default=7, alias="MIGRATION_DELETE_AFTER_DAYS", ge=0)
    migration_batch_size: int = Field(default=10, alias="MIGRATION_BATCH_SIZE", ge=1)
    migration_throttle_delay_ms: int = Field(default=2000, alias="MIGRATION_THROTTLE_DELAY_MS")
    migration_propagation_delay_ms: int = Field(
        default=2000, alias="MIGRATION_PROPAGATION_DELAY_MS"
    )
    migration_max_retries: int = Field(default=10, alias="MIGRATION_MAX_RETRIES", ge=1)

    # Cleanup
    cleanup_invalid_retention_days: int = Field(
        default=2, alias="CLEANUP_INVALID_RETENTION_DAYS", ge=0
    )
    cleanup_gc_timeout_minutes: int = Field(default=60, alias="CLEANUP_GC_TIMEOUT_MINUTES")
    cleanup_overdue_days: int = Field(default=7, alias="CLEANUP_OVERDUE_DAYS")

    # Retention of aggregates and audit events
    stats_retention_days: int = Field(default=90, alias="STATS_RETENTION_DAYS")
    events_retention_days: int = Field(default=90, alias="EVENTS_RETENTION_DAYS")

    # Schedules (cron: minute hour day-of-month month day-of-week)
    discovery_schedule: str = Field(default="5 * * * *", alias="DISCOVERY_SCHEDULE")
    validation_schedule: str = Field(default="*/30 * * * *", alias="VALIDATION_SCHEDULE")
    migration_schedule: str = Field(default="0 */12 * * *", alias="MIGRATION_SCHEDULE")
    cleanup_gc_schedule: str = Field(default="0 2 * * *", alias="CLEANUP_GC_SCHEDULE")
    stats_prune_schedule: str = Field(default="30 3 * * *", alias="STATS_PRUNE_SCHEDULE")
    node_health_schedule: str = Field(default="0 * * * *", alias="NODE_HEALTH_SCHEDULE")

    # Notifications / health
    discord_webhook_url: str | None = Field(default=None, alias="DISCORD_WEBHOOK_URL")
    health_disk_warning_percent: int = Field(default=80, alias="HEALTH_DISK_WARNING_PERCENT")
    node_enabled: bool = Field(default=True, alias="HOTNODE_ENABLED")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure the settings each node type depends on are present."""
        if not self.supernode_api:
            raise ValueError("SUPERNODE_API is required")

        if self.node_type == NodeType.INFRASTRUCTURE and not self.authz_database_url:
            raise ValueError("AUTHZ_DATABASE_URL is required for NODE_TYPE=infrastructure")

        if self.node_type == NodeType.COMMUNITY and not self.validation_server_url:
            raise ValueError("VALIDATION_SERVER_URL is required for NODE_TYPE=community")

        if self.migration_delete_after_days < self.migration_start_after_days:
            raise ValueError(
                "MIGRATION_DELETE_AFTER_DAYS must be >= MIGRATION_START_AFTER_DAYS "
                f"({self.migration_delete_after_days} < {self.migration_start_after_days})"
            )

        return self

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url

    @property
    def notifications_enabled(self) -> bool:
        """Whether a webhook is configured for alerts."""
        return bool(self.discord_webhook_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached node settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
