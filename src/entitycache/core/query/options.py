"""Query options: fetch and merge strategies.

Usage:
    options = QueryOptions.default()
    options = options.using(FetchStrategy.FROM_LOCAL_CACHE)
    options = options.using({"mergeStrategy": MergeStrategy.OVERWRITE_CHANGES})
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from entitycache.errors import InvalidConfigurationError


class MergeStrategy(Enum):
    """How incoming remote data is reconciled with entities already cached."""

    PRESERVE_CHANGES = "preserve_changes"
    """Entities with pending local changes keep their values and state. Default."""

    OVERWRITE_CHANGES = "overwrite_changes"
    """Incoming values replace local ones; pending changes are lost, state becomes Unchanged."""

    SKIP_MERGE = "skip_merge"
    """Entities already cached are left untouched whatever their state."""

    PROCEED_ON_CONFLICT = "skip_merge"  # alias of SKIP_MERGE


class FetchStrategy(Enum):
    """Where a query is evaluated."""

    FROM_SERVER = "from_server"
    FROM_LOCAL_CACHE = "from_local_cache"


class QueryOptions(BaseModel):
    """Immutable per-manager or per-query execution options.

    Attributes:
        fetch_strategy: Remote fetch (default) or local cache evaluation.
        merge_strategy: Conflict policy for entities with pending changes.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    fetch_strategy: FetchStrategy = FetchStrategy.FROM_SERVER
    merge_strategy: MergeStrategy = MergeStrategy.PRESERVE_CHANGES

    @classmethod
    def default(cls) -> QueryOptions:
        return cls()

    def using(self, *configs: Any) -> QueryOptions:
        """Return a copy with the given strategies or config applied.

        Args:
            *configs: MergeStrategy, FetchStrategy, QueryOptions or a dict of
                option names (snake_case or camelCase) to values.

        Returns:
            New QueryOptions instance.

        Raises:
            InvalidConfigurationError: For unknown option names, invalid values
                or arguments that are not a config at all.
        """
        values = self.model_dump()
        for config in configs:
            if isinstance(config, MergeStrategy):
                values["merge_strategy"] = config
            elif isinstance(config, FetchStrategy):
                values["fetch_strategy"] = config
            elif isinstance(config, QueryOptions):
                values.update(config.model_dump())
            elif isinstance(config, dict):
                values.update(self._normalize_config(config))
            else:
                raise InvalidConfigurationError(
                    f"Not a query options config: {config!r}", details={"config": config}
                )
        try:
            return QueryOptions.model_validate(values)
        except ValidationError as e:
            raise InvalidConfigurationError(
                f"Invalid query options: {e.errors()[0]['msg']}", details={"errors": e.errors()}
            ) from e

    @classmethod
    def _normalize_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        by_alias = {to_camel(name): name for name in cls.model_fields}
        normalized: dict[str, Any] = {}
        for key, value in config.items():
            name = key if key in cls.model_fields else by_alias.get(key)
            if name is None:
                raise InvalidConfigurationError(
                    f"Unknown query option '{key}'", details={"option": key}
                )
            normalized[name] = value
        return normalized
