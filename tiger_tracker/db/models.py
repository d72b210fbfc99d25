from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Identity,
    Index,
    Integer,
    String,
    TIMESTAMP,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Every observation records one unit: the table stores price snapshots, not trades.
OBSERVED_QUANTITY = 1


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)


class Asset(Base):
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String, unique=True, nullable=False)
    # Doubles as the CoinGecko coin id
    name = Column(String)


class Observation(Base):
    # Historical table name, the dashboard queries read from "transactions"
    __tablename__ = "transactions"

    # TimescaleDB requires the partitioning column in every unique index, hence (id, ts)
    id = Column(BigInteger, Identity(), primary_key=True)
    ts = Column(TIMESTAMP(timezone=True), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    amount = Column(Integer, nullable=False, default=OBSERVED_QUANTITY)
    price_usd = Column(Float, nullable=False)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_transactions_amount_unsigned"),
        CheckConstraint("price_usd >= 0", name="ck_transactions_price_non_negative"),
        Index("ix_transactions_asset_ts", "asset_id", "ts"),
    )


class IngestionCheckpoint(Base):
    __tablename__ = "ingestion_checkpoints"

    id = Column(Integer, primary_key=True, index=True)
    source_name = Column(String, unique=True, index=True, nullable=False)
    last_ingested_timestamp = Column(DateTime(timezone=True), nullable=True)
    last_status = Column(String, nullable=False) # success, failure
    records_processed = Column(Integer, default=0)
    run_duration_ms = Column(Integer, default=0)
    error_log = Column(String, nullable=True)
