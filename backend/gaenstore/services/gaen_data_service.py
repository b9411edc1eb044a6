"""
GAEN Data Service
Ingestion, publication and retention of exposed Temporary Exposure Keys

Release rules:
- received_at is the end of the upload's release bucket minus 1ms, shared by
  the whole upload, so the true upload instant never reaches the database.
- A key is published only once expired (rolling period + time skew) and
  only in the single window [since, bucket_start(now)) in which it first
  qualifies.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import sessionmaker

from gaenstore.core.config import settings
from gaenstore.core.exceptions import (
    ErrorContext,
    IdAllocationConflictError,
    StorageUnavailableError,
)
from gaenstore.core.structured_logging import get_logger, setup_structured_logging
from gaenstore.core.time_quantizer import (
    bucket_start,
    ensure_utc,
    is_day_start,
    next_bucket_end,
    to_interval_number,
    utc_now,
)
from gaenstore.models import GaenExposed, Visited
from gaenstore.schemas.gaen_key import (
    CountryShareConfiguration,
    GaenKey,
    ReportType,
    shared_countries,
)
from gaenstore.storage import StoragePort

logger = get_logger("GAENDataService")


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver/connection failures as StorageUnavailableError"""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as e:
        logger.error("storage_unavailable", operation=operation, error=type(e).__name__)
        raise StorageUnavailableError(
            f"Storage unavailable during {operation}: {e}",
            context=ErrorContext(operation=operation),
        ) from e


class GAENDataService:
    """
    Key store over the t_gaen_exposed / t_visited tables.

    Args:
        session_factory: sessionmaker bound to the key store database
        storage: Dialect adapter for that database
        release_bucket_duration: Width of the received-at bucket
        time_skew: Grace period a key stays valid after its rolling period
        origin_country: Country code of this backend's health authority
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        storage: StoragePort,
        release_bucket_duration: timedelta,
        time_skew: timedelta,
        origin_country: str,
        retention_period: Optional[timedelta] = None,
    ):
        if release_bucket_duration <= timedelta(0):
            raise ValueError("release_bucket_duration must be positive")
        self._session_factory = session_factory
        self._storage = storage
        self.release_bucket_duration = release_bucket_duration
        self.time_skew = time_skew
        self.origin_country = origin_country
        if retention_period is None:
            retention_period = settings.RETENTION_PERIOD
        self.retention_period = retention_period

    # =========================================================================
    # Ingestion
    # =========================================================================

    def ingest(
        self,
        keys: Iterable[GaenKey],
        visibility_countries: Iterable[str],
        now: datetime,
        delayed_received_at: Optional[datetime] = None,
    ) -> None:
        """
        Store a batch of keys and grant their visibility to the given countries.

        Keys already stored (same key_data) are not written again but still
        receive the grants. The whole call is one transaction.

        Args:
            keys: Validated keys of one upload
            visibility_countries: Countries the uploader consented to share with
            now: Time of the upload
            delayed_received_at: Explicit received_at for delayed same-day keys

        Raises:
            IdAllocationConflictError: Reserved ids already taken (nothing stored)
            StorageUnavailableError: Database failure (nothing stored)
            IntegrityError: Any other constraint violation (nothing stored)
        """
        keys = list(keys)
        if not keys:
            logger.debug("ingest_skipped_empty_batch")
            return

        if delayed_received_at is not None:
            received_at = ensure_utc(delayed_received_at)
        else:
            received_at = next_bucket_end(now, self.release_bucket_duration)
        countries = sorted(set(visibility_countries))

        with _storage_errors("ingest"):
            with self._session_factory() as session, session.begin():
                first_id = self._storage.reserve_ids(session, len(keys))
                taken = self._storage.taken_ids(session, first_id, len(keys))
                if taken:
                    logger.critical(
                        "id_allocation_conflict",
                        first_id=first_id,
                        count=len(keys),
                        taken=len(taken),
                    )
                    raise IdAllocationConflictError(
                        first_id=first_id,
                        count=len(keys),
                        context=ErrorContext(operation="ingest", metadata={"taken_ids": taken}),
                    )

                rows = [
                    self._key_row(key, first_id + offset, received_at)
                    for offset, key in enumerate(keys)
                ]
                self._storage.insert_keys_ignore_duplicates(session, rows)

                stored_ids = self._storage.lookup_ids(session, (k.key_data for k in keys))
                visits = [
                    {"key_id": key_id, "country": country}
                    for key_id in sorted(stored_ids.values())
                    for country in countries
                ]
                self._storage.insert_visits_ignore_duplicates(session, visits)

        logger.info(
            "keys_ingested",
            batch_size=len(keys),
            stored_keys=len(stored_ids),
            countries=len(countries),
            delayed=delayed_received_at is not None,
        )

    def upsert_exposees(
        self,
        keys: Iterable[GaenKey],
        visited_countries: Optional[Iterable[CountryShareConfiguration]] = None,
        now: Optional[datetime] = None,
        delayed_received_at: Optional[datetime] = None,
    ) -> None:
        """
        Upload entry point taking the uploader's country share configuration.

        Without a configuration the keys are only visible in the origin country.
        """
        if visited_countries is None:
            countries = {self.origin_country}
        else:
            countries = shared_countries(visited_countries)
        self.ingest(keys, countries, now or utc_now(), delayed_received_at)

    def _key_row(self, key: GaenKey, exposed_id: int, received_at: datetime) -> dict:
        return {
            "id": exposed_id,
            "key_data": key.key_data,
            "rolling_start_number": key.rolling_start_number,
            "rolling_period": key.rolling_period,
            "origin": key.origin or self.origin_country,
            "report_type": key.report_type.value if key.report_type else None,
            "days_since_onset_of_symptoms": key.days_since_onset_of_symptoms,
            "received_at": received_at,
        }

    # =========================================================================
    # Publication
    # =========================================================================

    def published_since(
        self,
        since: datetime,
        for_countries: Iterable[str],
        now: datetime,
    ) -> list[GaenKey]:
        """
        Keys that became releasable in [since, bucket_start(now)).

        - expiry <= received_at: the key was already expired on upload and is
          released in the window containing received_at
        - expiry > received_at: the key waits and is released in the window
          containing its expiry

        Args:
            since: Inclusive lower bound of the window
            for_countries: Return keys visible in at least one of these countries
            now: Time of the request

        Returns:
            Distinct keys, highest exposed id first
        """
        countries = set(for_countries)
        if not countries:
            return []

        since = ensure_utc(since)
        max_bucket = bucket_start(now, self.release_bucket_duration)
        expiry = self._storage.expiry_expression(self.time_skew)
        received_at = GaenExposed.received_at

        granted = select(Visited.key_id).where(Visited.country.in_(countries))
        stmt = (
            select(GaenExposed)
            .where(
                GaenExposed.id.in_(granted),
                or_(
                    and_(
                        expiry <= received_at,
                        received_at >= since,
                        received_at < max_bucket,
                    ),
                    and_(
                        expiry > received_at,
                        expiry >= since,
                        expiry < max_bucket,
                    ),
                ),
            )
            .order_by(GaenExposed.id.desc())
        )

        with _storage_errors("published_since"):
            with self._session_factory() as session:
                exposed = session.execute(stmt).scalars().all()

        logger.debug("keys_published", count=len(exposed), countries=len(countries))
        return [self._to_gaen_key(row) for row in exposed]

    def exposed_for_key_date(
        self,
        key_date: datetime,
        published_after: Optional[datetime],
        published_until: datetime,
        now: datetime,
    ) -> list[GaenKey]:
        """
        Keys of the origin country that were active on key_date, for the
        per-day batch download.

        Args:
            key_date: UTC midnight of the day the keys were used
            published_after: Inclusive lower bound on received_at (None for all)
            published_until: Exclusive upper bound on received_at
            now: Time of the request

        Raises:
            ValueError: If key_date is not midnight UTC
        """
        key_date = ensure_utc(key_date)
        if not is_day_start(key_date):
            raise ValueError(f"key_date must be midnight UTC, got {key_date.isoformat()}")

        start_number = to_interval_number(key_date)
        end_number = to_interval_number(key_date + timedelta(days=1))
        # rolling_start_number + rolling_period + time_skew must lie before the
        # current bucket start, so a key valid until 24:00 with a 2h skew is
        # released with the 04:00 bucket at the earliest.
        max_allowed_start_number = to_interval_number(
            bucket_start(now, self.release_bucket_duration) - self.time_skew
        )

        conditions = [
            GaenExposed.rolling_start_number >= start_number,
            GaenExposed.rolling_start_number < end_number,
            GaenExposed.received_at < ensure_utc(published_until),
            GaenExposed.rolling_start_number + GaenExposed.rolling_period
            < max_allowed_start_number,
            GaenExposed.id.in_(
                select(Visited.key_id).where(Visited.country == self.origin_country)
            ),
        ]
        if published_after is not None:
            conditions.append(GaenExposed.received_at >= ensure_utc(published_after))

        stmt = select(GaenExposed).where(*conditions).order_by(GaenExposed.id.desc())

        with _storage_errors("exposed_for_key_date"):
            with self._session_factory() as session:
                exposed = session.execute(stmt).scalars().all()

        return [self._to_gaen_key(row) for row in exposed]

    @staticmethod
    def _to_gaen_key(row: GaenExposed) -> GaenKey:
        return GaenKey(
            key_data=row.key_data,
            rolling_start_number=row.rolling_start_number,
            rolling_period=row.rolling_period,
            transmission_risk_level=0,
            origin=row.origin,
            report_type=ReportType(row.report_type) if row.report_type else None,
            days_since_onset_of_symptoms=row.days_since_onset_of_symptoms,
        )

    # =========================================================================
    # Retention
    # =========================================================================

    def earliest_queryable_since(self, now: Optional[datetime] = None) -> datetime:
        """Sweep horizon: `since` values before it may miss purged keys"""
        return ensure_utc(now or utc_now()) - self.retention_period

    def purge_older_than(
        self,
        retention_period: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delete keys received before now - retention_period, with their grants.

        Returns:
            Number of deleted keys
        """
        if retention_period is None:
            retention_period = self.retention_period
        horizon = ensure_utc(now or utc_now()) - retention_period
        logger.info("retention_sweep_started", horizon=horizon.isoformat())

        with _storage_errors("purge_older_than"):
            with self._session_factory() as session, session.begin():
                deleted = self._storage.delete_received_before(session, horizon)

        logger.info("retention_sweep_completed", deleted_keys=deleted)
        return deleted


# Singleton instance
_service: Optional[GAENDataService] = None


def get_gaen_data_service() -> GAENDataService:
    """Service wired to the process-wide engine and settings"""
    global _service
    if _service is None:
        from gaenstore.core.database import get_engine, get_session_factory
        from gaenstore.storage import get_storage_adapter

        setup_structured_logging(settings.LOG_LEVEL, settings.LOG_JSON)
        _service = GAENDataService(
            session_factory=get_session_factory(),
            storage=get_storage_adapter(get_engine().dialect.name),
            release_bucket_duration=settings.RELEASE_BUCKET_DURATION,
            time_skew=settings.TIME_SKEW,
            origin_country=settings.ORIGIN_COUNTRY,
            retention_period=settings.RETENTION_PERIOD,
        )
    return _service


def reset_gaen_data_service() -> None:
    """Drop the singleton (tests)"""
    global _service
    _service = None
