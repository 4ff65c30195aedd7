"""Application settings loaded from environment."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly typed settings for the pipeline."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    pghost: Optional[str] = Field(default=None, alias="PGHOST")
    pgport: int = Field(default=5432, alias="PGPORT")
    pguser: Optional[str] = Field(default=None, alias="PGUSER")
    pgpassword: Optional[str] = Field(default=None, alias="PGPASSWORD")
    pgdatabase: Optional[str] = Field(default=None, alias="PGDATABASE")

    # HTTP
    http_user_agent: str = Field(
        default="event-staging-pipeline/0.1 (contact: dev@example.com)",
        alias="HTTP_USER_AGENT",
    )
    http_timeout_seconds: float = Field(default=120, alias="HTTP_TIMEOUT_SECONDS")
    http_max_retries: int = Field(default=3, alias="HTTP_MAX_RETRIES")

    # Wikidata
    wikidata_sparql_url: str = Field(
        default="https://query.wikidata.org/sparql",
        alias="WIKIDATA_SPARQL_URL",
    )
    wikidata_page_size: int = Field(default=250, alias="WIKIDATA_PAGE_SIZE")
    wikidata_page_delay_seconds: float = Field(default=0.25, alias="WIKIDATA_PAGE_DELAY_SECONDS")
    wikidata_qid_batch_size: int = Field(default=50, alias="WIKIDATA_QID_BATCH_SIZE")
    wikidata_qid_batch_delay_seconds: float = Field(
        default=0.15, alias="WIKIDATA_QID_BATCH_DELAY_SECONDS"
    )

    # Wikipedia
    wikipedia_api_url: str = Field(
        default="https://en.wikipedia.org/w/api.php",
        alias="WIKIPEDIA_API_URL",
    )
    wikipedia_list_page: str = Field(
        default="List_of_revolutions_and_rebellions",
        alias="WIKIPEDIA_LIST_PAGE",
    )
    wikipedia_title_batch_size: int = Field(default=50, alias="WIKIPEDIA_TITLE_BATCH_SIZE")
    wikipedia_request_delay_seconds: float = Field(
        default=0.1, alias="WIKIPEDIA_REQUEST_DELAY_SECONDS"
    )

    # Ingestion
    ingestion_min_start_year: int = Field(default=1900, alias="INGESTION_MIN_START_YEAR")
    staging_batch_size: int = Field(default=500, alias="STAGING_BATCH_SIZE")
    canonical_event_type: str = Field(default="Revolution/Uprising", alias="CANONICAL_EVENT_TYPE")

    # Background jobs
    job_queue_capacity: int = Field(default=100, alias="JOB_QUEUE_CAPACITY")
    job_queue_poll_seconds: float = Field(default=0.5, alias="JOB_QUEUE_POLL_SECONDS")
    worker_interval_minutes: int = Field(default=0, alias="WORKER_INTERVAL_MINUTES")

    # Runtime
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    def get_database_url(self) -> str:
        """Return a usable database URL or raise."""
        if self.database_url:
            return self.database_url

        if all([self.pghost, self.pguser, self.pgpassword, self.pgdatabase]):
            return (
                "postgresql://"
                f"{self.pguser}:{self.pgpassword}@{self.pghost}:{self.pgport}/"
                f"{self.pgdatabase}"
            )

        raise ValueError("DATABASE_URL or PG* env vars must be set")
