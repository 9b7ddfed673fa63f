"""Generate access policy entries from a GitHub organization's live state."""

from .errors import BackfillError
from .pipeline import PipelineOptions, fetch_records, run_pipeline

__all__ = [
    "BackfillError",
    "PipelineOptions",
    "fetch_records",
    "run_pipeline",
]
