"""Data models for orbitcast."""

from orbitcast.models._base import OrbitcastBaseModel
from orbitcast.models.observation import RawObservation
from orbitcast.models.publish import FailureKind, PublishResult
from orbitcast.models.record import PositionRecord, Visibility, subject_id_from_label

__all__ = [
    "FailureKind",
    "OrbitcastBaseModel",
    "PositionRecord",
    "PublishResult",
    "RawObservation",
    "Visibility",
    "subject_id_from_label",
]
