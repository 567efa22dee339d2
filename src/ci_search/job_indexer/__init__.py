"""Job indexer: date-sharded job state and job metrics index publication."""

from .completion import JobCompletion, JobMetadata, JobStateRecord, CompletionRecord, classify_completion
from .errors import (
    DecodeError,
    EmptyTuple,
    IndexConflictError,
    IndexerError,
    MalformedTuple,
    MissingRequiredMetric,
)
from .handler import IndexOutcome, JobIndexer, ObjectChangeEvent
from .metrics import ConsolidatedMetrics, QueryResult, consolidate_metrics, decode_metrics_document
from .values import TupleValue, decode_labels, decode_tuple_value
from .writer import IndexWriter, PublishObservation

__all__ = [
    "CompletionRecord",
    "ConsolidatedMetrics",
    "DecodeError",
    "EmptyTuple",
    "IndexConflictError",
    "IndexOutcome",
    "IndexWriter",
    "IndexerError",
    "JobCompletion",
    "JobIndexer",
    "JobMetadata",
    "JobStateRecord",
    "MalformedTuple",
    "MissingRequiredMetric",
    "ObjectChangeEvent",
    "PublishObservation",
    "QueryResult",
    "TupleValue",
    "classify_completion",
    "consolidate_metrics",
    "decode_labels",
    "decode_metrics_document",
    "decode_tuple_value",
]
