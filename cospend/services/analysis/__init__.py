"""Receipt analysis services package."""

from cospend.services.analysis.gemini_service import (
    AnalysisError,
    AnalysisParseError,
    AnalysisServiceError,
    GeminiReceiptAnalyzer,
    InvalidImageError,
    decode_data_uri,
    encode_data_uri,
)

__all__ = [
    "AnalysisError",
    "AnalysisParseError",
    "AnalysisServiceError",
    "GeminiReceiptAnalyzer",
    "InvalidImageError",
    "decode_data_uri",
    "encode_data_uri",
]
