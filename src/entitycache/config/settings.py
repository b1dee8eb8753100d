"""Configuration settings using Pydantic Settings.

Provides typed defaults for EntityManager instances with environment
variable support.

Usage:
    from entitycache.config import EntityCacheSettings

    # Load from environment variables (ENTITYCACHE_*)
    settings = EntityCacheSettings()

    # Or override with explicit values
    settings = EntityCacheSettings(merge_strategy=MergeStrategy.OVERWRITE_CHANGES)
    manager = EntityManager(metadata_store, executor, settings=settings)
"""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from entitycache.core.metadata import LocalQueryComparisonOptions
from entitycache.core.query.options import FetchStrategy, MergeStrategy, QueryOptions
from entitycache.remote.models import RetryPolicy


class EntityCacheSettings(BaseSettings):
    """Defaults for entity managers.

    Attributes:
        is_case_sensitive: Case-sensitive string comparison in local evaluation.
        uses_sql92_compliant_string_comparison: Ignore trailing blanks in string equality.
        fetch_strategy: Default fetch strategy of new managers.
        merge_strategy: Default merge strategy of new managers.
        remote_max_attempts: Attempts per remote call (1 = no retry).
        remote_backoff: Backoff between remote attempts (none, linear, exponential).
        remote_base_delay: Base delay in seconds for backoff calculation.

    Environment Variables:
        ENTITYCACHE_IS_CASE_SENSITIVE
        ENTITYCACHE_USES_SQL92_COMPLIANT_STRING_COMPARISON
        ENTITYCACHE_FETCH_STRATEGY (from_server, from_local_cache)
        ENTITYCACHE_MERGE_STRATEGY (preserve_changes, overwrite_changes, skip_merge)
        ENTITYCACHE_REMOTE_MAX_ATTEMPTS
        ENTITYCACHE_REMOTE_BACKOFF
        ENTITYCACHE_REMOTE_BASE_DELAY
    """

    model_config = SettingsConfigDict(
        env_prefix="ENTITYCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    is_case_sensitive: bool = False
    uses_sql92_compliant_string_comparison: bool = True
    fetch_strategy: FetchStrategy = FetchStrategy.FROM_SERVER
    merge_strategy: MergeStrategy = MergeStrategy.PRESERVE_CHANGES
    remote_max_attempts: int = 1
    remote_backoff: Literal["none", "linear", "exponential"] = "none"
    remote_base_delay: float = 0.1

    def query_options(self) -> QueryOptions:
        return QueryOptions(fetch_strategy=self.fetch_strategy, merge_strategy=self.merge_strategy)

    def comparison_options(self) -> LocalQueryComparisonOptions:
        return LocalQueryComparisonOptions(
            is_case_sensitive=self.is_case_sensitive,
            uses_sql92_compliant_string_comparison=self.uses_sql92_compliant_string_comparison,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.remote_max_attempts,
            backoff=self.remote_backoff,
            base_delay=self.remote_base_delay,
        )
