"""docanalyze: cached, parallel AI analysis of documents."""

from docanalyze.core import DocAnalyzer, analyze_documents, load_tasks
from docanalyze.types import CompletionResponse, DocumentTask, ProcessingResult

__version__ = "0.1.0"

__all__ = [
    "CompletionResponse",
    "DocAnalyzer",
    "DocumentTask",
    "ProcessingResult",
    "analyze_documents",
    "load_tasks",
]
