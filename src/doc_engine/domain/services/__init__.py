"""Domain services for query logic.

Services implement the engine's algorithms: filter evaluation, ordered
index maintenance, plan selection, result shaping, expressions and the
aggregation pipeline. They operate on immutable snapshots and never own
mutable collection state.
"""

from doc_engine.domain.services.aggregation import AggregationPipeline, compile_stage
from doc_engine.domain.services.expressions import compile_expression
from doc_engine.domain.services.filter_evaluator import (
    CompiledFilter,
    Equals,
    NotEquals,
    Range,
    RangeOp,
    compile_filter,
    evaluate,
)
from doc_engine.domain.services.index_manager import (
    OrderedIndexManager,
    derive_bounds,
    normalize_index_fields,
)
from doc_engine.domain.services.ordered_index import IndexBounds, OrderedIndex
from doc_engine.domain.services.query_planner import (
    ExecutionPlan,
    ExplainStats,
    FullScan,
    IndexScan,
    PlanKind,
    QueryPlanner,
)
from doc_engine.domain.services.result_shaper import (
    compile_projection,
    compile_sort,
    shape,
)

__all__ = [
    "AggregationPipeline",
    "CompiledFilter",
    "Equals",
    "ExecutionPlan",
    "ExplainStats",
    "FullScan",
    "IndexBounds",
    "IndexScan",
    "NotEquals",
    "OrderedIndex",
    "OrderedIndexManager",
    "PlanKind",
    "QueryPlanner",
    "Range",
    "RangeOp",
    "compile_expression",
    "compile_filter",
    "compile_projection",
    "compile_sort",
    "compile_stage",
    "derive_bounds",
    "evaluate",
    "normalize_index_fields",
    "shape",
]
