# Business Logic Services

from gaenstore.services.gaen_data_service import (
    GAENDataService,
    get_gaen_data_service,
    reset_gaen_data_service,
)

__all__ = [
    "GAENDataService",
    "get_gaen_data_service",
    "reset_gaen_data_service",
]
