"""
GAEN Key Store Exposed Key Models
SQLAlchemy models for exposed keys, their visibility grants and the id counter
"""

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from gaenstore.core.database import Base

#: Name of the counter row that hands out exposed ids
EXPOSED_ID_SEQUENCE = "gaen_exposed"

# BIGINT ids on PostgreSQL; SQLite only treats INTEGER as a rowid alias
_ExposedId = BigInteger().with_variant(Integer, "sqlite")


class GaenExposed(Base):
    """
    Exposed Temporary Exposure Key (t_gaen_exposed)

    id is assigned from t_gaen_id_sequence before the insert, never by the
    database. received_at is always a bucketed instant.
    """

    __tablename__ = "t_gaen_exposed"

    id = Column(_ExposedId, primary_key=True, autoincrement=False)
    key_data = Column(String(24), nullable=False, unique=True, comment="Base64 of the 16 byte TEK")
    rolling_start_number = Column(Integer, nullable=False)
    rolling_period = Column(Integer, nullable=False)
    origin = Column(String(10), nullable=False)
    report_type = Column(String(50), nullable=True)
    days_since_onset_of_symptoms = Column(Integer, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<GaenExposed(id={self.id}, rolling_start_number={self.rolling_start_number})>"


class Visited(Base):
    """Visibility grant: the key may be published to clients of `country` (t_visited)"""

    __tablename__ = "t_visited"
    __table_args__ = (
        UniqueConstraint("key_id", "country", name="uq_visited_key_country"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    key_id = Column(
        _ExposedId,
        ForeignKey("t_gaen_exposed.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    country = Column(String(10), nullable=False)

    def __repr__(self):
        return f"<Visited(key_id={self.key_id}, country='{self.country}')>"


class IdSequence(Base):
    """Named counter; next_id is the first id of the next reserved block"""

    __tablename__ = "t_gaen_id_sequence"

    name = Column(String(50), primary_key=True)
    next_id = Column(_ExposedId, nullable=False, default=1)

    def __repr__(self):
        return f"<IdSequence(name='{self.name}', next_id={self.next_id})>"
