"""
Data Models Layer.

This package contains the Pydantic configuration model and the dataclasses
that flow through the retrieval and delivery pipeline.
"""

from .config import RelayConfig
from .download import (
    DeliveryItem,
    EngineDownload,
    QualityInfo,
    RelayStats,
    RetrievalResult,
    RetrievalStrategy,
)

__all__ = [
    "DeliveryItem",
    "EngineDownload",
    "QualityInfo",
    "RelayConfig",
    "RelayStats",
    "RetrievalResult",
    "RetrievalStrategy",
]
