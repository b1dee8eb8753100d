"""Query operations: validation, expansion trees and the shared execution pipeline.

The pipeline (filter, count, sort, page, project) is the single code path
behind both local cache evaluation and the in-memory data service, so the two
always partition data the same way.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from entitycache.core.metadata import EntityType, MetadataStore, NavigationProperty
from entitycache.core.query.evaluation import (
    ValueGetter,
    bind_path,
    compile_ordering,
    compile_predicate,
    compile_projection,
)
from entitycache.errors import UnknownPropertyError

if TYPE_CHECKING:
    from entitycache.core.metadata import LocalQueryComparisonOptions
    from entitycache.core.query.models import EntityQuery


@dataclass
class ExpandNode:
    """One navigation in an expansion tree, with the navigations expanded below it."""

    navigation: NavigationProperty
    entity_type: EntityType
    children: dict[str, ExpandNode] = field(default_factory=dict)


def build_expand_tree(
    paths: Iterable[str], entity_type: EntityType, metadata_store: MetadataStore
) -> dict[str, ExpandNode]:
    """Merge expansion paths into a tree keyed by navigation name.

    "orderDetails.product" and "orderDetails.order" share one orderDetails node.

    Raises:
        UnknownPropertyError: If a segment is unknown or is not a navigation.
    """
    tree: dict[str, ExpandNode] = {}
    for path in paths:
        chain = metadata_store.resolve_property_path(entity_type, path)
        level = tree
        for prop in chain:
            if not isinstance(prop, NavigationProperty):
                raise UnknownPropertyError(entity_type.name, path)
            node = level.get(prop.name)
            if node is None:
                target = metadata_store.get_entity_type(prop.entity_type_name)
                node = level[prop.name] = ExpandNode(prop, target)
            level = node.children
    return tree


def _no_value(node: Any, prop: Any) -> Any:
    return None


def validate_query(query: EntityQuery, metadata_store: MetadataStore) -> EntityType:
    """Check every path the query references against metadata.

    Runs before any remote call so that misspelled resources or properties
    fail the query up front.

    Returns:
        Entity type of the query results.

    Raises:
        UnknownResourceError: If the resource is not mapped.
        UnknownPropertyError: If any predicate/order/select/expand path is unknown.
        InvalidPredicateError: If the predicate is malformed.
    """
    entity_type = query.get_entity_type(metadata_store)
    compile_predicate(query.predicate, entity_type, metadata_store, _no_value)
    for item in query.ordering:
        bind_path(item.path, entity_type, metadata_store)
    compile_projection(query.projection, entity_type, metadata_store, _no_value)
    build_expand_tree(query.expansions, entity_type, metadata_store)
    return entity_type


@dataclass(slots=True)
class PipelineResult:
    """Output of run_query: ordered page of nodes (or projected records) plus count."""

    items: list[Any]
    inline_count: int | None = None


def run_query(
    query: EntityQuery,
    nodes: Iterable[Any],
    entity_type: EntityType,
    metadata_store: MetadataStore,
    getter: ValueGetter,
    options: LocalQueryComparisonOptions | None = None,
) -> PipelineResult:
    """Filter, count, sort, page and project ``nodes`` per ``query``.

    Args:
        query: Query descriptor.
        nodes: Candidates of ``entity_type`` (entities or raw rows).
        entity_type: Type of the candidates.
        metadata_store: Store used to resolve paths.
        getter: Reads one property off one node.
        options: String collation (defaults to the store's).

    Returns:
        PipelineResult; ``inline_count`` is the match count before paging and
        is only set when the query asks for it.
    """
    matches = compile_predicate(query.predicate, entity_type, metadata_store, getter, options)
    items = [node for node in nodes if matches(node)]
    inline_count = len(items) if query.inline_count_enabled else None

    if query.ordering:
        items.sort(key=compile_ordering(query.ordering, entity_type, metadata_store, getter, options))

    items = page(items, query.skip_count, query.take_count)

    if query.projection:
        project = compile_projection(query.projection, entity_type, metadata_store, getter)
        items = [project(node) for node in items]
    return PipelineResult(items, inline_count)


def page(items: Sequence[Any], skip: int | None, take: int | None) -> list[Any]:
    start = skip or 0
    stop = None if take is None else start + take
    return list(items[start:stop])
