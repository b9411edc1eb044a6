"""
Shared fixtures: a fresh SQLite key store per test
"""

import base64
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from gaenstore.core.database import create_db_engine, create_session_factory, init_db
from gaenstore.core.time_quantizer import ensure_utc, to_interval_number
from gaenstore.models import GaenExposed, Visited
from gaenstore.schemas.gaen_key import GaenKey
from gaenstore.services.gaen_data_service import GAENDataService
from gaenstore.storage import get_storage_adapter

BUCKET = timedelta(hours=2)
TIME_SKEW = timedelta(hours=2)
ORIGIN = "CH"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def key_payload(n: int) -> str:
    """Deterministic base64 TEK payload (16 bytes -> 24 chars)"""
    return base64.b64encode(n.to_bytes(16, "big")).decode("ascii")


def make_key(n: int, rolling_start: datetime = None, rolling_period: int = 144, **fields) -> GaenKey:
    if rolling_start is None:
        rolling_start = utc(2020, 7, 1)
    return GaenKey(
        key_data=key_payload(n),
        rolling_start_number=to_interval_number(rolling_start),
        rolling_period=rolling_period,
        **fields,
    )


def key_expiring_at(n: int, expiry: datetime, time_skew: timedelta = TIME_SKEW, **fields) -> GaenKey:
    """Key whose rolling period plus time_skew ends exactly at expiry"""
    end_number = to_interval_number(expiry - time_skew)
    return GaenKey(
        key_data=key_payload(n),
        rolling_start_number=end_number - 144,
        rolling_period=144,
        **fields,
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'gaen_keys.db'}", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def make_service(engine, session_factory):
    def _make(time_skew: timedelta = TIME_SKEW, bucket: timedelta = BUCKET, **kwargs) -> GAENDataService:
        return GAENDataService(
            session_factory=session_factory,
            storage=get_storage_adapter(engine.dialect.name),
            release_bucket_duration=bucket,
            time_skew=time_skew,
            origin_country=ORIGIN,
            **kwargs,
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def stored(session_factory):
    """Read back persisted state"""

    class Stored:
        def keys(self) -> list[GaenExposed]:
            with session_factory() as session:
                rows = session.execute(select(GaenExposed).order_by(GaenExposed.id)).scalars().all()
            for row in rows:
                row.received_at = ensure_utc(row.received_at)
            return rows

        def key_count(self) -> int:
            with session_factory() as session:
                return session.execute(select(func.count()).select_from(GaenExposed)).scalar_one()

        def grants(self) -> set[tuple[str, str]]:
            with session_factory() as session:
                stmt = select(GaenExposed.key_data, Visited.country).join(
                    Visited, Visited.key_id == GaenExposed.id
                )
                return {(row.key_data, row.country) for row in session.execute(stmt)}

        def grant_count(self) -> int:
            with session_factory() as session:
                return session.execute(select(func.count()).select_from(Visited)).scalar_one()

    return Stored()
