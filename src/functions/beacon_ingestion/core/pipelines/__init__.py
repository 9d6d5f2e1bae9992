"""Ingestion, recheck and stats pipelines."""

from .ingestion import BatchIngestionDriver, IngestionSummary
from .recheck import RecheckSummary, ValidatorRecheckDriver
from .run import IngestionRun, run_ingestion, run_recheck
from .stats import GraffitiStatsAggregator

__all__ = [
    "BatchIngestionDriver",
    "IngestionSummary",
    "RecheckSummary",
    "ValidatorRecheckDriver",
    "IngestionRun",
    "run_ingestion",
    "run_recheck",
    "GraffitiStatsAggregator",
]
