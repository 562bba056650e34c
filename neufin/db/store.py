"""
NEUFIN — Portfolio Store
Record-store interface consumed by the scoring pipeline, with an in-memory
implementation and an async SQLAlchemy implementation.

Append-only collections return newest first; rows sharing a timestamp are
ordered by insertion, later insert first.
The SQL store writes every timestamp as UTC and reads it back as UTC.
"""
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Optional, Tuple, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from neufin.data.models import (
    AlphaSignature, AssetType, Holding, PriceHistoryPoint, SentimentRecord,
    Signal, Transaction, TransactionType, WatchlistItem,
)
from neufin.db.schema import (
    AlphaSignatureRecord, HoldingRecord, PriceRecord, SentimentDataRecord,
    TransactionRecord, WatchlistRecord, init_db,
)
from neufin.utils.helpers import ensure_utc
from neufin.utils.logger import get_logger

logger = get_logger("store")

T = TypeVar("T")


class PortfolioStore(ABC):
    """Persistence collaborator for holdings, watchlists and append-only logs."""

    # Holdings
    @abstractmethod
    async def get_holdings(self, user_id: str) -> List[Holding]: ...

    @abstractmethod
    async def add_holding(self, holding: Holding) -> Holding: ...

    @abstractmethod
    async def remove_holding(self, holding_id: str) -> None: ...

    @abstractmethod
    async def update_holding_price(self, holding_id: str, current_price: float) -> None: ...

    # Watchlist
    @abstractmethod
    async def get_watchlist(self, user_id: str) -> List[WatchlistItem]: ...

    @abstractmethod
    async def add_to_watchlist(self, item: WatchlistItem) -> WatchlistItem: ...

    @abstractmethod
    async def remove_from_watchlist(self, item_id: str) -> None: ...

    # Price history
    @abstractmethod
    async def get_price_history(self, symbol: str, limit: int = 100) -> List[PriceHistoryPoint]: ...

    @abstractmethod
    async def append_price_point(self, point: PriceHistoryPoint) -> PriceHistoryPoint: ...

    # Sentiment
    @abstractmethod
    async def get_sentiment_history(self, symbol: str, limit: Optional[int] = None) -> List[SentimentRecord]: ...

    @abstractmethod
    async def append_sentiment(self, record: SentimentRecord) -> SentimentRecord: ...

    async def get_latest_sentiment(self, symbol: str) -> Optional[SentimentRecord]:
        records = await self.get_sentiment_history(symbol, limit=1)
        return records[0] if records else None

    # Alpha signatures
    @abstractmethod
    async def append_alpha_signature(self, signature: AlphaSignature) -> AlphaSignature: ...

    @abstractmethod
    async def get_alpha_history(self, symbol: str, limit: int = 30) -> List[AlphaSignature]: ...

    @abstractmethod
    async def get_top_alpha_signatures(self, limit: int = 10) -> List[AlphaSignature]: ...

    async def get_latest_alpha_signature(self, symbol: str) -> Optional[AlphaSignature]:
        history = await self.get_alpha_history(symbol, limit=1)
        return history[0] if history else None

    # Transaction ledger
    @abstractmethod
    async def get_transactions(self, user_id: str) -> List[Transaction]: ...

    @abstractmethod
    async def append_transaction(self, transaction: Transaction) -> Transaction: ...

    async def close(self) -> None:
        """Release resources."""


def _newest_first(rows: List[Tuple[int, T]], key) -> List[T]:
    """rows are (insertion_index, item); sort by (timestamp, index) descending."""
    ordered = sorted(rows, key=lambda pair: (key(pair[1]), pair[0]), reverse=True)
    return [item for _, item in ordered]


class InMemoryPortfolioStore(PortfolioStore):
    """Process-local store. Used for tests and when no database is configured."""

    def __init__(self):
        self._holdings: Dict[str, Holding] = {}
        self._watchlist: Dict[str, WatchlistItem] = {}
        self._prices: Dict[str, List[Tuple[int, PriceHistoryPoint]]] = defaultdict(list)
        self._sentiment: Dict[str, List[Tuple[int, SentimentRecord]]] = defaultdict(list)
        self._alpha: Dict[str, List[Tuple[int, AlphaSignature]]] = defaultdict(list)
        self._transactions: Dict[str, List[Tuple[int, Transaction]]] = defaultdict(list)
        self._seq = 0

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    async def get_holdings(self, user_id: str) -> List[Holding]:
        return [h for h in self._holdings.values() if h.user_id == user_id]

    async def add_holding(self, holding: Holding) -> Holding:
        self._holdings[holding.id] = holding
        return holding

    async def remove_holding(self, holding_id: str) -> None:
        self._holdings.pop(holding_id, None)

    async def update_holding_price(self, holding_id: str, current_price: float) -> None:
        holding = self._holdings.get(holding_id)
        if holding is not None:
            self._holdings[holding_id] = holding.model_copy(update={"current_price": current_price})

    async def get_watchlist(self, user_id: str) -> List[WatchlistItem]:
        return [w for w in self._watchlist.values() if w.user_id == user_id]

    async def add_to_watchlist(self, item: WatchlistItem) -> WatchlistItem:
        self._watchlist[item.id] = item
        return item

    async def remove_from_watchlist(self, item_id: str) -> None:
        self._watchlist.pop(item_id, None)

    async def get_price_history(self, symbol: str, limit: int = 100) -> List[PriceHistoryPoint]:
        return _newest_first(self._prices[symbol], lambda p: p.timestamp)[:limit]

    async def append_price_point(self, point: PriceHistoryPoint) -> PriceHistoryPoint:
        self._prices[point.symbol].append((self._next_seq(), point))
        return point

    async def get_sentiment_history(self, symbol: str, limit: Optional[int] = None) -> List[SentimentRecord]:
        records = _newest_first(self._sentiment[symbol], lambda r: r.timestamp)
        return records if limit is None else records[:limit]

    async def append_sentiment(self, record: SentimentRecord) -> SentimentRecord:
        self._sentiment[record.symbol].append((self._next_seq(), record))
        return record

    async def append_alpha_signature(self, signature: AlphaSignature) -> AlphaSignature:
        self._alpha[signature.symbol].append((self._next_seq(), signature))
        return signature

    async def get_alpha_history(self, symbol: str, limit: int = 30) -> List[AlphaSignature]:
        return _newest_first(self._alpha[symbol], lambda s: s.timestamp)[:limit]

    async def get_top_alpha_signatures(self, limit: int = 10) -> List[AlphaSignature]:
        rows = [row for rows in self._alpha.values() for row in rows]
        return _newest_first(rows, lambda s: s.alpha_score)[:limit]

    async def get_transactions(self, user_id: str) -> List[Transaction]:
        rows = self._transactions[user_id]
        return [t for _, t in sorted(rows, key=lambda pair: (pair[1].timestamp, pair[0]))]

    async def append_transaction(self, transaction: Transaction) -> Transaction:
        self._transactions[transaction.user_id].append((self._next_seq(), transaction))
        return transaction


class SQLPortfolioStore(PortfolioStore):
    """Async SQLAlchemy store (aiosqlite by default)."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @classmethod
    async def connect(cls, db_url: str, echo: bool = False) -> "SQLPortfolioStore":
        session_factory = await init_db(db_url, echo=echo)
        logger.info("sql_store_connected", url=db_url.split("@")[-1])
        return cls(session_factory)

    async def close(self) -> None:
        engine = self._session_factory.kw.get("bind")
        if engine is not None:
            await engine.dispose()

    # Row conversion

    @staticmethod
    def _to_holding(row: HoldingRecord) -> Holding:
        return Holding(
            id=row.id, user_id=row.user_id, symbol=row.symbol, shares=row.shares,
            avg_cost=row.avg_cost, asset_type=AssetType(row.asset_type), sector=row.sector,
            company_name=row.company_name, current_price=row.current_price,
            created_at=ensure_utc(row.created_at),
        )

    @staticmethod
    def _to_watchlist(row: WatchlistRecord) -> WatchlistItem:
        return WatchlistItem(
            id=row.id, user_id=row.user_id, symbol=row.symbol, company_name=row.company_name,
            asset_type=AssetType(row.asset_type), sector=row.sector, added_at=ensure_utc(row.added_at),
        )

    @staticmethod
    def _to_price(row: PriceRecord) -> PriceHistoryPoint:
        return PriceHistoryPoint(
            id=row.id, symbol=row.symbol, price=row.price, change=row.change,
            change_percent=row.change_percent, volume=row.volume, timestamp=ensure_utc(row.timestamp),
        )

    @staticmethod
    def _to_sentiment(row: SentimentDataRecord) -> SentimentRecord:
        return SentimentRecord(
            id=row.id, symbol=row.symbol, sentiment=row.sentiment, score=row.score,
            confidence=row.confidence, source_text=row.source_text, source=row.source,
            timestamp=ensure_utc(row.timestamp),
        )

    @staticmethod
    def _to_alpha(row: AlphaSignatureRecord) -> AlphaSignature:
        return AlphaSignature(
            id=row.id, symbol=row.symbol, alpha_score=row.alpha_score,
            sentiment_score=row.sentiment_score, volatility_score=row.volatility_score,
            momentum_score=row.momentum_score, signal=Signal(row.signal),
            timestamp=ensure_utc(row.timestamp),
        )

    @staticmethod
    def _to_transaction(row: TransactionRecord) -> Transaction:
        return Transaction(
            id=row.id, user_id=row.user_id, symbol=row.symbol, type=TransactionType(row.type),
            quantity=row.quantity, price=row.price, timestamp=ensure_utc(row.timestamp),
        )

    async def _add(self, record) -> None:
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()

    async def _all(self, stmt) -> list:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # Holdings

    async def get_holdings(self, user_id: str) -> List[Holding]:
        rows = await self._all(select(HoldingRecord).where(HoldingRecord.user_id == user_id))
        return [self._to_holding(r) for r in rows]

    async def add_holding(self, holding: Holding) -> Holding:
        await self._add(HoldingRecord(
            id=holding.id, user_id=holding.user_id, symbol=holding.symbol,
            company_name=holding.company_name, shares=holding.shares, avg_cost=holding.avg_cost,
            current_price=holding.current_price, asset_type=holding.asset_type.value,
            sector=holding.sector, created_at=ensure_utc(holding.created_at),
        ))
        return holding

    async def remove_holding(self, holding_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(HoldingRecord).where(HoldingRecord.id == holding_id))
            await session.commit()

    async def update_holding_price(self, holding_id: str, current_price: float) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(HoldingRecord).where(HoldingRecord.id == holding_id).values(current_price=current_price)
            )
            await session.commit()

    # Watchlist

    async def get_watchlist(self, user_id: str) -> List[WatchlistItem]:
        rows = await self._all(select(WatchlistRecord).where(WatchlistRecord.user_id == user_id))
        return [self._to_watchlist(r) for r in rows]

    async def add_to_watchlist(self, item: WatchlistItem) -> WatchlistItem:
        await self._add(WatchlistRecord(
            id=item.id, user_id=item.user_id, symbol=item.symbol, company_name=item.company_name,
            asset_type=item.asset_type.value, sector=item.sector, added_at=ensure_utc(item.added_at),
        ))
        return item

    async def remove_from_watchlist(self, item_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(WatchlistRecord).where(WatchlistRecord.id == item_id))
            await session.commit()

    # Price history

    async def get_price_history(self, symbol: str, limit: int = 100) -> List[PriceHistoryPoint]:
        stmt = (
            select(PriceRecord)
            .where(PriceRecord.symbol == symbol)
            .order_by(PriceRecord.timestamp.desc(), PriceRecord.seq.desc())
            .limit(limit)
        )
        return [self._to_price(r) for r in await self._all(stmt)]

    async def append_price_point(self, point: PriceHistoryPoint) -> PriceHistoryPoint:
        await self._add(PriceRecord(
            id=point.id, symbol=point.symbol, price=point.price, change=point.change,
            change_percent=point.change_percent, volume=point.volume, timestamp=ensure_utc(point.timestamp),
        ))
        return point

    # Sentiment

    async def get_sentiment_history(self, symbol: str, limit: Optional[int] = None) -> List[SentimentRecord]:
        stmt = (
            select(SentimentDataRecord)
            .where(SentimentDataRecord.symbol == symbol)
            .order_by(SentimentDataRecord.timestamp.desc(), SentimentDataRecord.seq.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [self._to_sentiment(r) for r in await self._all(stmt)]

    async def append_sentiment(self, record: SentimentRecord) -> SentimentRecord:
        await self._add(SentimentDataRecord(
            id=record.id, symbol=record.symbol, sentiment=record.sentiment.value, score=record.score,
            confidence=record.confidence, source_text=record.source_text, source=record.source,
            timestamp=ensure_utc(record.timestamp),
        ))
        return record

    # Alpha signatures

    async def append_alpha_signature(self, signature: AlphaSignature) -> AlphaSignature:
        await self._add(AlphaSignatureRecord(
            id=signature.id, symbol=signature.symbol, alpha_score=signature.alpha_score,
            sentiment_score=signature.sentiment_score, volatility_score=signature.volatility_score,
            momentum_score=signature.momentum_score, signal=signature.signal.value,
            timestamp=ensure_utc(signature.timestamp),
        ))
        return signature

    async def get_alpha_history(self, symbol: str, limit: int = 30) -> List[AlphaSignature]:
        stmt = (
            select(AlphaSignatureRecord)
            .where(AlphaSignatureRecord.symbol == symbol)
            .order_by(AlphaSignatureRecord.timestamp.desc(), AlphaSignatureRecord.seq.desc())
            .limit(limit)
        )
        return [self._to_alpha(r) for r in await self._all(stmt)]

    async def get_top_alpha_signatures(self, limit: int = 10) -> List[AlphaSignature]:
        stmt = (
            select(AlphaSignatureRecord)
            .order_by(AlphaSignatureRecord.alpha_score.desc(), AlphaSignatureRecord.seq.desc())
            .limit(limit)
        )
        return [self._to_alpha(r) for r in await self._all(stmt)]

    # Transaction ledger

    async def get_transactions(self, user_id: str) -> List[Transaction]:
        stmt = (
            select(TransactionRecord)
            .where(TransactionRecord.user_id == user_id)
            .order_by(TransactionRecord.timestamp.asc(), TransactionRecord.seq.asc())
        )
        return [self._to_transaction(r) for r in await self._all(stmt)]

    async def append_transaction(self, transaction: Transaction) -> Transaction:
        await self._add(TransactionRecord(
            id=transaction.id, user_id=transaction.user_id, symbol=transaction.symbol,
            type=transaction.type.value, quantity=transaction.quantity, price=transaction.price,
            timestamp=ensure_utc(transaction.timestamp),
        ))
        return transaction
