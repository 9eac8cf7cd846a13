"""
Services Module
Occurrence log, adherence analysis and persistence for the CareCadence application

The CareEngine facade lives in services.care_engine and is imported from
there directly.
"""

from services.occurrence_log import Occurrence, OccurrenceLog, AmountLogged, DoseEvent
from services.adherence_service import AdherenceAnalyzer, AdherenceReport, RefillProjection, percent
from services.persistence import (
    BlobStore,
    InMemoryBlobStore,
    SqlBlobStore,
    StateStore,
    PersistenceError,
)


__all__ = [
    # Occurrence log
    "Occurrence",
    "OccurrenceLog",
    "AmountLogged",
    "DoseEvent",
    # Adherence
    "AdherenceAnalyzer",
    "AdherenceReport",
    "RefillProjection",
    "percent",
    # Persistence
    "BlobStore",
    "InMemoryBlobStore",
    "SqlBlobStore",
    "StateStore",
    "PersistenceError",
]
