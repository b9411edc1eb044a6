# SQLAlchemy Models

from gaenstore.models.exposed import (
    EXPOSED_ID_SEQUENCE,
    GaenExposed,
    IdSequence,
    Visited,
)

__all__ = [
    "EXPOSED_ID_SEQUENCE",
    "GaenExposed",
    "IdSequence",
    "Visited",
]
