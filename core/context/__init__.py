"""Context engine contracts and the reference blob context."""

from .blob import BlobContext, blob_name
from .engine import ContextEngine, IndexingOutcome, ProgressCallback, SearchEngine

__all__ = [
    "BlobContext",
    "ContextEngine",
    "IndexingOutcome",
    "ProgressCallback",
    "SearchEngine",
    "blob_name",
]
