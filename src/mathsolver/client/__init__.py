"""Client for the function endpoints and the solve stream decoder."""

from .functions import ClientConfig, FunctionsClient, FunctionsError
from .session import Analysis, AnalysisError, AnalysisSession, AnalysisState
from .sse_parser import ParseResult, parse_stream

__all__ = [
    "Analysis",
    "AnalysisError",
    "AnalysisSession",
    "AnalysisState",
    "ClientConfig",
    "FunctionsClient",
    "FunctionsError",
    "ParseResult",
    "parse_stream",
]
