"""
NEUFIN — FastAPI Application
Thin service surface over the quote resolver, sentiment scorer, alpha
signature engine, bias detector, chat analyzer and portfolio store.
"""
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from neufin.api.container import Services, build_services
from neufin.config.settings import get_api_status, get_settings
from neufin.data.errors import SymbolValidationError
from neufin.engines.chat_analyzer import MAX_MESSAGE_LENGTH
from neufin.data.models import Holding, Transaction, TransactionType, WatchlistItem
from neufin.data.symbols import canonical_symbol, classify_asset_type, normalize_symbol
from neufin.utils.helpers import utc_timestamp
from neufin.utils.logger import get_logger, setup_logging

logger = get_logger("api")

app_state: Dict[str, Any] = {
    "instance_id": str(uuid.uuid4())[:8],
    "started_at": None,
}


# ─── Request models ─────────────────────────────────────────────

class QuotesRequest(BaseModel):
    symbols: List[str]


class SentimentRequest(BaseModel):
    text: str = Field(min_length=1)
    symbol: Optional[str] = None
    source: Optional[str] = None
    record: bool = False


class AlphaUpdateRequest(BaseModel):
    symbols: Optional[List[str]] = None
    refresh_prices: bool = False


class HoldingRequest(BaseModel):
    symbol: str
    shares: float = Field(gt=0)
    avg_cost: float = Field(gt=0)
    sector: Optional[str] = None
    company_name: Optional[str] = None


class WatchlistRequest(BaseModel):
    symbol: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class TransactionRequest(BaseModel):
    symbol: str
    type: TransactionType
    quantity: float = Field(gt=0)
    price: float = Field(gt=0)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the app. Pre-built services are used as-is (tests); otherwise built from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        settings = get_settings()
        app_state["started_at"] = utc_timestamp()
        logger.info("neufin_starting", version=settings.version, instance=app_state["instance_id"])

        svc = services or await build_services(settings)
        app.state.services = svc
        await svc.start()
        logger.info("neufin_ready", status=get_api_status())

        yield

        logger.info("neufin_shutting_down")
        await svc.stop()

    app = FastAPI(
        title="NEUFIN",
        description="Market data aggregation, sentiment and alpha signature scoring",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(SymbolValidationError)
    async def symbol_validation_handler(request: Request, exc: SymbolValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    _register_routes(app)
    return app


def _services(request: Request) -> Services:
    return request.app.state.services


def _register_routes(app: FastAPI) -> None:

    # ─── System ─────────────────────────────────────────────────

    @app.get("/healthz", tags=["System"])
    async def health_check():
        return {
            "status": "healthy",
            "instance": app_state["instance_id"],
            "uptime_since": app_state["started_at"],
            "timestamp": utc_timestamp(),
        }

    @app.get("/api/v1/status", tags=["System"])
    async def status(request: Request):
        svc = _services(request)
        return {
            "apis": get_api_status(),
            "providers": [
                {"name": p.name, "configured": p.configured} for p in svc.resolver.providers
            ],
            "quote_cache": svc.resolver.cache.stats,
            "timestamp": utc_timestamp(),
        }

    # ─── Market data ────────────────────────────────────────────

    @app.get("/api/v1/quote/{symbol}", tags=["Market"])
    async def get_quote(symbol: str, request: Request):
        quote = await _services(request).resolver.resolve_quote(symbol)
        return quote.model_dump(mode="json")

    @app.post("/api/v1/quotes", tags=["Market"])
    async def get_quotes(body: QuotesRequest, request: Request):
        for symbol in body.symbols:
            normalize_symbol(symbol)
        quotes = await _services(request).resolver.resolve_many(body.symbols)
        return {"quotes": [q.model_dump(mode="json") for q in quotes], "timestamp": utc_timestamp()}

    @app.get("/api/v1/company/{symbol}", tags=["Market"])
    async def get_company(symbol: str, request: Request):
        info = await _services(request).resolver.get_company_info(symbol)
        return {"symbol": normalize_symbol(symbol), **info.model_dump()}

    @app.get("/api/v1/news", tags=["Market"])
    async def get_news(
        request: Request,
        symbols: Optional[str] = Query(default=None, description="Comma separated"),
        limit: int = Query(default=10, ge=1, le=50),
    ):
        targets = [s for s in symbols.split(",") if s] if symbols else None
        news = await _services(request).resolver.get_news(targets, limit)
        return {"news": [n.model_dump(mode="json") for n in news]}

    # ─── Sentiment ──────────────────────────────────────────────

    @app.post("/api/v1/sentiment", tags=["Sentiment"])
    async def score_sentiment(body: SentimentRequest, request: Request):
        scorer = _services(request).scorer
        if body.record:
            if not body.symbol:
                raise HTTPException(status_code=422, detail="symbol is required to record sentiment")
            record = await scorer.analyze_and_record(normalize_symbol(body.symbol), body.text, body.source)
            return record.model_dump(mode="json")
        result = await scorer.score_sentiment(body.text, body.symbol)
        return result.model_dump(mode="json")

    @app.get("/api/v1/sentiment/{symbol}", tags=["Sentiment"])
    async def sentiment_history(symbol: str, request: Request, limit: int = Query(default=20, ge=1, le=500)):
        key = canonical_symbol(symbol)
        records = await _services(request).store.get_sentiment_history(key, limit=limit)
        return {"symbol": key, "records": [r.model_dump(mode="json") for r in records]}

    # ─── Alpha signatures ───────────────────────────────────────

    @app.get("/api/v1/alpha", tags=["Alpha"])
    async def top_alpha(request: Request, limit: int = Query(default=10, ge=1, le=100)):
        signatures = await _services(request).alpha.get_top(limit)
        return {"signatures": [s.model_dump(mode="json") for s in signatures]}

    @app.post("/api/v1/alpha/update", tags=["Alpha"])
    async def update_alpha(body: AlphaUpdateRequest, request: Request):
        svc = _services(request)
        symbols = body.symbols or svc.tracked_symbols
        for symbol in symbols:
            normalize_symbol(symbol)
        signatures = await svc.alpha.update_all(symbols, refresh_prices=body.refresh_prices)
        return {"signatures": [s.model_dump(mode="json") for s in signatures], "updated": len(signatures)}

    @app.get("/api/v1/alpha/{symbol}", tags=["Alpha"])
    async def alpha_signature(symbol: str, request: Request):
        signature = await _services(request).alpha.get_or_compute(symbol)
        return signature.model_dump(mode="json")

    @app.post("/api/v1/alpha/{symbol}", tags=["Alpha"])
    async def compute_alpha(symbol: str, request: Request):
        normalize_symbol(symbol)
        signature = await _services(request).alpha.compute_alpha_signature(symbol)
        return signature.model_dump(mode="json")

    @app.get("/api/v1/alpha/{symbol}/history", tags=["Alpha"])
    async def alpha_history(symbol: str, request: Request, limit: int = Query(default=30, ge=1, le=500)):
        history = await _services(request).alpha.get_history(symbol, limit)
        return {"symbol": canonical_symbol(symbol), "history": [s.model_dump(mode="json") for s in history]}

    # ─── Users: portfolio, watchlist, ledger ────────────────────

    @app.get("/api/v1/users/{user_id}/holdings", tags=["Portfolio"])
    async def list_holdings(user_id: str, request: Request):
        holdings = await _services(request).store.get_holdings(user_id)
        return {"holdings": [h.model_dump(mode="json") for h in holdings]}

    @app.post("/api/v1/users/{user_id}/holdings", tags=["Portfolio"], status_code=201)
    async def add_holding(user_id: str, body: HoldingRequest, request: Request):
        svc = _services(request)
        symbol = normalize_symbol(body.symbol)
        sector, company = body.sector, body.company_name
        if sector is None or company is None:
            info = await svc.resolver.get_company_info(symbol)
            sector = sector or info.sector
            company = company or info.name
        holding = Holding(
            user_id=user_id,
            symbol=symbol,
            shares=body.shares,
            avg_cost=body.avg_cost,
            asset_type=classify_asset_type(symbol),
            sector=sector,
            company_name=company,
        )
        await svc.store.add_holding(holding)
        logger.info("holding_added", user_id=user_id, symbol=symbol)
        return holding.model_dump(mode="json")

    @app.delete("/api/v1/holdings/{holding_id}", tags=["Portfolio"], status_code=204)
    async def remove_holding(holding_id: str, request: Request):
        await _services(request).store.remove_holding(holding_id)

    @app.get("/api/v1/users/{user_id}/portfolio", tags=["Portfolio"])
    async def portfolio_value(user_id: str, request: Request):
        valuation = await _services(request).analytics.value_portfolio(user_id)
        return valuation.to_dict()

    @app.get("/api/v1/users/{user_id}/market-trend", tags=["Portfolio"])
    async def market_trend(user_id: str, request: Request, refresh: bool = False):
        return await _services(request).analytics.market_trend(user_id, refresh=refresh)

    @app.get("/api/v1/users/{user_id}/watchlist", tags=["Watchlist"])
    async def list_watchlist(user_id: str, request: Request):
        items = await _services(request).store.get_watchlist(user_id)
        return {"watchlist": [w.model_dump(mode="json") for w in items]}

    @app.post("/api/v1/users/{user_id}/watchlist", tags=["Watchlist"], status_code=201)
    async def add_watchlist(user_id: str, body: WatchlistRequest, request: Request):
        svc = _services(request)
        symbol = normalize_symbol(body.symbol)
        info = await svc.resolver.get_company_info(symbol)
        item = WatchlistItem(
            user_id=user_id,
            symbol=symbol,
            company_name=info.name,
            asset_type=classify_asset_type(symbol),
            sector=info.sector,
        )
        await svc.store.add_to_watchlist(item)
        return item.model_dump(mode="json")

    @app.delete("/api/v1/watchlist/{item_id}", tags=["Watchlist"], status_code=204)
    async def remove_watchlist(item_id: str, request: Request):
        await _services(request).store.remove_from_watchlist(item_id)

    @app.get("/api/v1/users/{user_id}/transactions", tags=["Ledger"])
    async def list_transactions(user_id: str, request: Request):
        transactions = await _services(request).store.get_transactions(user_id)
        return {"transactions": [t.model_dump(mode="json") for t in transactions]}

    @app.post("/api/v1/users/{user_id}/transactions", tags=["Ledger"], status_code=201)
    async def add_transaction(user_id: str, body: TransactionRequest, request: Request):
        transaction = Transaction(
            user_id=user_id,
            symbol=normalize_symbol(body.symbol),
            type=body.type,
            quantity=body.quantity,
            price=body.price,
        )
        await _services(request).store.append_transaction(transaction)
        return transaction.model_dump(mode="json")

    # ─── Behavioral analysis ────────────────────────────────────

    @app.get("/api/v1/users/{user_id}/bias", tags=["Behavior"])
    async def bias_analysis(user_id: str, request: Request, refresh: bool = False):
        report = await _services(request).bias.analyze_biases(user_id, refresh=refresh)
        return report.model_dump(mode="json")

    # ─── Chat ───────────────────────────────────────────────────

    @app.post("/api/v1/users/{user_id}/chat", tags=["Chat"])
    async def chat(user_id: str, body: ChatRequest, request: Request):
        try:
            analysis = await _services(request).chat.analyze_chat_message(user_id, body.message)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return analysis.to_dict()


app = create_app()
