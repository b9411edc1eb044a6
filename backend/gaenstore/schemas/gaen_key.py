"""
GAEN Key Store Key Schemas
Pydantic schemas for Temporary Exposure Keys and country share configuration
"""

import enum
from typing import Iterable, Optional

from pydantic import BaseModel, Field

#: Default TEKRollingPeriod (144 x 10 minutes = 24h)
DEFAULT_ROLLING_PERIOD = 144


class ReportType(str, enum.Enum):
    """How the key was reported"""

    UNKNOWN = "UNKNOWN"  # Never returned by the client API
    CONFIRMED_TEST = "CONFIRMED_TEST"
    CONFIRMED_CLINICAL_DIAGNOSIS = "CONFIRMED_CLINICAL_DIAGNOSIS"
    SELF_REPORT = "SELF_REPORT"
    RECURSIVE = "RECURSIVE"  # Reserved for future use
    REVOKED = "REVOKED"  # Used to revoke a key, never returned by client API

    @property
    def is_client_visible(self) -> bool:
        return self not in (ReportType.UNKNOWN, ReportType.REVOKED)


class GaenKey(BaseModel):
    """Temporary Exposure Key of an infected person"""

    key_data: str = Field(
        ..., description="The 16-byte Temporary Exposure Key in base64",
        examples=["XDM3NVwzNTZPvVwzMzNcMzA1"],
    )
    rolling_start_number: int = Field(
        ..., description="ENIntervalNumber: 10-minute intervals since the Unix epoch",
        examples=[2659680],
    )
    rolling_period: int = Field(
        DEFAULT_ROLLING_PERIOD,
        description="Number of 10-minute intervals the key is valid",
    )
    transmission_risk_level: int = Field(
        0, description="Deprecated GAEN field, never stored and always 0 on output"
    )
    fake: int = Field(0, description="1 marks a fake key; filtered before ingestion")
    origin: Optional[str] = Field(
        None, description="Country code of the authority that accepted the key"
    )
    report_type: Optional[ReportType] = None
    days_since_onset_of_symptoms: Optional[int] = None

    class Config:
        from_attributes = True


class CountryShareConfiguration(BaseModel):
    """Whether the uploader consented to share keys with a country"""

    country_code: str = Field(..., description="ISO 3166-1 alpha-2 country code")
    share_key_with_country: int = Field(1, description="1 to share, 0 to withhold")


def shared_countries(configs: Iterable[CountryShareConfiguration]) -> set[str]:
    """Country codes the uploader agreed to share with"""
    return {c.country_code for c in configs if c.share_key_with_country == 1}
