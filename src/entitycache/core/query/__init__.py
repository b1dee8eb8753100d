"""Query functionality: predicate tree, query builder, options and local evaluation."""

from entitycache.core.query.evaluation import (
    ValueGetter,
    bind_path,
    compare_values,
    compile_ordering,
    compile_predicate,
    compile_projection,
)
from entitycache.core.query.models import EntityQuery, OrderByItem
from entitycache.core.query.operations import (
    ExpandNode,
    PipelineResult,
    build_expand_tree,
    run_query,
    validate_query,
)
from entitycache.core.query.options import FetchStrategy, MergeStrategy, QueryOptions
from entitycache.core.query.predicate import (
    AndOrPredicate,
    BinaryPredicate,
    ConstantPredicate,
    FilterOperator,
    FunctionExpr,
    NotPredicate,
    Predicate,
    PropertyExpr,
    ValueExpr,
    literal,
)
from entitycache.core.query.shorthand import parse_shorthand

__all__ = [
    # Predicates
    "Predicate",
    "BinaryPredicate",
    "AndOrPredicate",
    "NotPredicate",
    "ConstantPredicate",
    "FilterOperator",
    "PropertyExpr",
    "FunctionExpr",
    "ValueExpr",
    "literal",
    "parse_shorthand",
    # Query
    "EntityQuery",
    "OrderByItem",
    "QueryOptions",
    "FetchStrategy",
    "MergeStrategy",
    # Evaluation
    "ValueGetter",
    "bind_path",
    "compare_values",
    "compile_predicate",
    "compile_ordering",
    "compile_projection",
    # Operations
    "ExpandNode",
    "PipelineResult",
    "build_expand_tree",
    "validate_query",
    "run_query",
]
