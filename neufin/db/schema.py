"""
NEUFIN — Database Schema
SQLAlchemy models for holdings, watchlists, sentiment, alpha signatures,
price history and the transaction ledger.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class HoldingRecord(Base):
    """Portfolio holding owned by a user."""
    __tablename__ = "portfolio_holdings"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)
    company_name = Column(String(200))
    shares = Column(Float, nullable=False)
    avg_cost = Column(Float, nullable=False)
    current_price = Column(Float)
    asset_type = Column(String(20), nullable=False, default="stock")
    sector = Column(String(100))
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)


class WatchlistRecord(Base):
    __tablename__ = "watchlist"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)
    company_name = Column(String(200), nullable=False)
    asset_type = Column(String(20), nullable=False, default="stock")
    sector = Column(String(100))
    added_at = Column(DateTime, default=_now)


class SentimentDataRecord(Base):
    """Append-only sentiment log."""
    __tablename__ = "sentiment_data"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), nullable=False, unique=True)
    symbol = Column(String(20), nullable=False)
    sentiment = Column(String(10), nullable=False)
    score = Column(Float, nullable=False)
    confidence = Column(Float, nullable=False)
    source_text = Column(Text, nullable=False)
    source = Column(String(100))
    timestamp = Column(DateTime, default=_now)

    __table_args__ = (
        Index("idx_sentiment_symbol_time", "symbol", "timestamp"),
    )


class AlphaSignatureRecord(Base):
    """Append-only alpha signature history."""
    __tablename__ = "alpha_signatures"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), nullable=False, unique=True)
    symbol = Column(String(20), nullable=False)
    alpha_score = Column(Float, nullable=False)
    sentiment_score = Column(Float, nullable=False)
    volatility_score = Column(Float, nullable=False)
    momentum_score = Column(Float, nullable=False)
    signal = Column(String(20), nullable=False)
    timestamp = Column(DateTime, default=_now)

    __table_args__ = (
        Index("idx_alpha_symbol_time", "symbol", "timestamp"),
        Index("idx_alpha_score", "alpha_score"),
    )


class PriceRecord(Base):
    """Append-only price history."""
    __tablename__ = "stock_prices"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), nullable=False, unique=True)
    symbol = Column(String(20), nullable=False)
    price = Column(Float, nullable=False)
    change = Column(Float)
    change_percent = Column(Float)
    volume = Column(Integer)
    timestamp = Column(DateTime, default=_now)

    __table_args__ = (
        Index("idx_prices_symbol_time", "symbol", "timestamp"),
    )


class TransactionRecord(Base):
    """Append-only trade ledger."""
    __tablename__ = "transactions"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), nullable=False, unique=True)
    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)
    type = Column(String(4), nullable=False)  # buy, sell
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    timestamp = Column(DateTime, nullable=False)


async def init_db(db_url: str, echo: bool = False) -> async_sessionmaker:
    """Initialize database and create all tables."""
    engine = create_async_engine(db_url, echo=echo)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

