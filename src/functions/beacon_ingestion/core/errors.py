"""Error types raised by the beacon ingestion pipelines."""

from __future__ import annotations


class BeaconIngestionError(Exception):
    """Base class for ingestion failures."""


class HeadSlotError(BeaconIngestionError):
    """The beacon node did not return a usable head slot. Fatal for a run."""


class PersistenceError(BeaconIngestionError):
    """Writing a single record failed. Contained at the worker boundary."""

    def __init__(self, table: str, key: object, cause: BaseException):
        super().__init__(f"Failed to persist {table}[{key}]: {cause}")
        self.table = table
        self.key = key
        self.cause = cause


class StartupError(BeaconIngestionError):
    """A dependency needed before any work starts is unavailable."""
