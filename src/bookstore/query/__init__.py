"""Query and aggregation specifications and their MongoDB builders."""

from bookstore.query.builder import NativeQuery, build_filter, build_query
from bookstore.query.pipeline import (
    Accumulator,
    Compute,
    Divide,
    Expression,
    FieldRef,
    Floor,
    Group,
    Limit,
    Literal,
    Multiply,
    NativePipeline,
    PipelineStage,
    Round,
    Sort,
    average,
    build_pipeline,
    count,
    decade_of,
    total,
)
from bookstore.query.specs import (
    Comparison,
    Direction,
    Eq,
    Filter,
    Gt,
    Gte,
    In,
    Lt,
    Lte,
    Ne,
    Page,
    Projection,
    SortSpec,
)

__all__ = [
    "Accumulator",
    "Comparison",
    "Compute",
    "Direction",
    "Divide",
    "Eq",
    "Expression",
    "FieldRef",
    "Filter",
    "Floor",
    "Group",
    "Gt",
    "Gte",
    "In",
    "Limit",
    "Literal",
    "Lt",
    "Lte",
    "Multiply",
    "NativePipeline",
    "NativeQuery",
    "Ne",
    "Page",
    "PipelineStage",
    "Projection",
    "Round",
    "Sort",
    "SortSpec",
    "average",
    "build_filter",
    "build_pipeline",
    "build_query",
    "count",
    "decade_of",
    "total",
]
