"""
backend/matchsync/config.py

Purpose:
    Central settings loading for the sync service and the live-event listener.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # SMC sports-data provider
    SMC_BASE_URL: str = "https://smc-api.telenor.no"
    SMC_SECRET: str = ""
    SMC_TIMEOUT_SECONDS: float = 10.0
    SMC_MAX_RETRIES: int = 1
    SMC_RETRY_BASE_DELAY: float = 1.0

    # Target team (the club this deployment syncs for)
    TEAM_INTERNAL_ID: str = ""
    TEAM_EXTERNAL_ID: str = ""
    TEAM_NAME: str = ""
    TEAM_NAME_ALIASES: str = ""  # Comma separated, used by the audit preview
    MATCH_TIMEZONE: str = "Europe/Stockholm"

    # Frontspace CMS (GraphQL)
    FRONTSPACE_ENDPOINT: str = "http://localhost:3000/api/graphql"
    FRONTSPACE_STORE_ID: str = ""
    FRONTSPACE_API_KEY: str = ""
    CMS_MATCH_POST_TYPE_ID: str = ""
    CMS_MATCH_POST_TYPE_SLUG: str = "matcher"
    CMS_SYNC_LIST_LIMIT: int = 500
    CMS_AUDIT_LIST_LIMIT: int = 1000

    # Discovery snapshot
    DISCOVERY_STORE_BACKEND: str = "file"  # "file" or "mongo"
    DISCOVERY_CACHE_FILE: str = str(Path(__file__).resolve().parent.parent / "data" / "league-cache.json")
    DISCOVERY_READ_TTL_SECONDS: float = 30.0
    DISCOVERY_STALE_DAYS: int = 7  # 0 disables the age check

    # MongoDB (only used by the mongo discovery store)
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "matchsync"

    # Shared secrets
    CRON_SECRET: str = ""
    REVALIDATE_SECRET: str = ""

    # Scheduled sync
    SYNC_SCHEDULE_ENABLED: bool = False
    SYNC_INTERVAL_MINUTES: int = 15

    # Live-event listener (Azure Service Bus topics)
    SERVICE_BUS_CONNECTION_STRING: str = ""
    SERVICE_BUS_TOPICS: str = "p-sb-smc-sef-allsvenskan,p-sb-smc-sef-superettan"
    SERVICE_BUS_SUBSCRIPTION: str = ""
    LISTENER_WEBHOOK_URL: str = ""
    LISTENER_WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    LISTENER_SHUTDOWN_TIMEOUT_SECONDS: float = 15.0
    LISTENER_MAX_WAIT_SECONDS: float = 5.0

    # Cache invalidation targets
    FRONTEND_REVALIDATE_URL: str = ""  # Optional rendering frontend hook
    LIVE_DATA_CACHE_TTL_SECONDS: int = 30

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    def topic_list(self) -> list[str]:
        return [topic.strip() for topic in self.SERVICE_BUS_TOPICS.split(",") if topic.strip()]

    def team_name_aliases(self) -> list[str]:
        names = [self.TEAM_NAME, *self.TEAM_NAME_ALIASES.split(",")]
        return [name.strip() for name in names if name and name.strip()]


settings = Settings()
