"""
NEUFIN — Integration Tests for the HTTP API
Runs the full app (lifespan included) over an in-memory store with no live
providers and no LLM, so every response comes from the fallback tiers.
"""
import pytest
from fastapi.testclient import TestClient

from neufin.api.app import create_app
from neufin.api.container import wire_services
from neufin.config.settings import AlphaSettings, AppSettings, BiasSettings, DataSourceSettings
from neufin.data.resolver import QuoteResolver
from neufin.db.store import InMemoryPortfolioStore


@pytest.fixture
def client():
    settings = AppSettings(
        background_refresh=False,
        tracked_symbols=["AAPL", "MSFT", "BTC-USD"],
        data=DataSourceSettings(batch_delay_seconds=0.0),
        alpha=AlphaSettings(batch_delay_seconds=0.0),
        bias=BiasSettings(),
    )
    store = InMemoryPortfolioStore()
    resolver = QuoteResolver(providers=[], store=store, settings=settings.data)
    services = wire_services(store, resolver=resolver, llm=None, settings=settings)
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


class TestSystem:
    def test_health(self, client):
        body = client.get("/healthz").json()
        assert body["status"] == "healthy"
        assert body["uptime_since"] is not None

    def test_status(self, client):
        body = client.get("/api/v1/status").json()
        assert body["providers"] == []
        assert "quote_cache" in body


class TestMarketRoutes:
    def test_quote(self, client):
        response = client.get("/api/v1/quote/aapl")
        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "AAPL"
        assert body["source"] == "synthetic"
        assert body["price"] > 0

    def test_invalid_symbol_is_422(self, client):
        assert client.get("/api/v1/quote/AAPL!").status_code == 422

    def test_batch_quotes(self, client):
        body = client.post("/api/v1/quotes", json={"symbols": ["AAPL", "BTCUSD", "EURUSD"]}).json()
        assert [q["symbol"] for q in body["quotes"]] == ["AAPL", "BTC-USD", "EURUSD=X"]

    def test_batch_rejects_invalid_symbol(self, client):
        response = client.post("/api/v1/quotes", json={"symbols": ["AAPL", "no spaces"]})
        assert response.status_code == 422

    def test_company(self, client):
        body = client.get("/api/v1/company/TSLA").json()
        assert body == {"symbol": "TSLA", "name": "Tesla Inc.", "sector": "Automotive"}

    def test_news(self, client):
        body = client.get("/api/v1/news", params={"symbols": "AAPL,MSFT", "limit": 4}).json()
        assert len(body["news"]) == 4


class TestSentimentRoutes:
    def test_score_without_recording(self, client):
        body = client.post("/api/v1/sentiment", json={"text": "Record profit and strong growth"}).json()
        assert body["sentiment"] == "positive"
        assert 0 <= body["score"] <= 10
        assert client.get("/api/v1/sentiment/AAPL").json()["records"] == []

    def test_record_requires_symbol(self, client):
        response = client.post("/api/v1/sentiment", json={"text": "Sharp decline", "record": True})
        assert response.status_code == 422

    def test_record_then_read_history(self, client):
        client.post("/api/v1/sentiment", json={"text": "Sharp decline", "symbol": "aapl", "record": True})
        records = client.get("/api/v1/sentiment/AAPL").json()["records"]
        assert len(records) == 1
        assert records[0]["sentiment"] == "negative"


class TestAlphaRoutes:
    def test_get_computes_once(self, client):
        first = client.get("/api/v1/alpha/MSFT").json()
        second = client.get("/api/v1/alpha/MSFT").json()
        assert first["id"] == second["id"]
        assert first["signal"] == "hold"

    def test_post_appends(self, client):
        client.post("/api/v1/alpha/NVDA")
        client.post("/api/v1/alpha/NVDA")
        history = client.get("/api/v1/alpha/NVDA/history").json()["history"]
        assert len(history) == 2

    def test_update_tracked_symbols_and_top(self, client):
        body = client.post("/api/v1/alpha/update", json={}).json()
        assert body["updated"] == 3
        top = client.get("/api/v1/alpha", params={"limit": 2}).json()["signatures"]
        assert len(top) == 2

    def test_sentiment_moves_alpha(self, client):
        client.post("/api/v1/sentiment", json={"text": "beat strong growth profit", "symbol": "TSLA", "record": True})
        signature = client.post("/api/v1/alpha/TSLA").json()
        # 10 * 0.4 + 5 * 0.3 + 5 * 0.3
        assert signature["sentiment_score"] == 10
        assert signature["alpha_score"] == 7.0
        assert signature["signal"] == "buy"


class TestPortfolioRoutes:
    def test_holding_lifecycle(self, client):
        response = client.post("/api/v1/users/u1/holdings", json={"symbol": "aapl", "shares": 10, "avg_cost": 150})
        assert response.status_code == 201
        holding = response.json()
        assert holding["company_name"] == "Apple Inc."
        assert holding["asset_type"] == "stock"

        portfolio = client.get("/api/v1/users/u1/portfolio").json()
        assert portfolio["holdings"][0]["symbol"] == "AAPL"
        assert portfolio["total_value"] > 0

        assert client.delete(f"/api/v1/holdings/{holding['id']}").status_code == 204
        assert client.get("/api/v1/users/u1/holdings").json()["holdings"] == []

    def test_rejects_non_positive_shares(self, client):
        response = client.post("/api/v1/users/u1/holdings", json={"symbol": "AAPL", "shares": 0, "avg_cost": 150})
        assert response.status_code == 422

    def test_watchlist(self, client):
        item = client.post("/api/v1/users/u1/watchlist", json={"symbol": "BTC-USD"}).json()
        assert item["asset_type"] == "crypto"
        assert len(client.get("/api/v1/users/u1/watchlist").json()["watchlist"]) == 1
        client.delete(f"/api/v1/watchlist/{item['id']}")
        assert client.get("/api/v1/users/u1/watchlist").json()["watchlist"] == []

    def test_market_trend(self, client):
        client.post("/api/v1/users/u1/holdings", json={"symbol": "MSFT", "shares": 2, "avg_cost": 300})
        body = client.get("/api/v1/users/u1/market-trend").json()
        assert body["source"] == "rules"
        assert body["overall_sentiment"] == "neutral"


class TestBehaviorRoutes:
    def test_bias_from_holdings_only(self, client):
        client.post("/api/v1/users/u2/holdings", json={"symbol": "AAPL", "shares": 10, "avg_cost": 150})
        body = client.get("/api/v1/users/u2/bias").json()
        assert body["user_id"] == "u2"
        assert body["transactions_synthesized"] is True
        assert body["narrative_source"] == "rules"
        assert 0 <= body["overall_bias_score"] <= 10

    def test_ledger_round_trip(self, client):
        client.post("/api/v1/users/u3/transactions", json={"symbol": "AAPL", "type": "buy", "quantity": 5, "price": 100})
        client.post("/api/v1/users/u3/transactions", json={"symbol": "AAPL", "type": "sell", "quantity": 5, "price": 110})
        ledger = client.get("/api/v1/users/u3/transactions").json()["transactions"]
        assert [t["type"] for t in ledger] == ["buy", "sell"]

        report = client.get("/api/v1/users/u3/bias", params={"refresh": True}).json()
        assert report["transactions_synthesized"] is False

    def test_rejects_unknown_transaction_type(self, client):
        response = client.post(
            "/api/v1/users/u3/transactions", json={"symbol": "AAPL", "type": "short", "quantity": 1, "price": 1}
        )
        assert response.status_code == 422


class TestChatRoutes:
    def test_chat_answers_from_holdings(self, client):
        client.post("/api/v1/users/u4/holdings", json={"symbol": "AAPL", "shares": 10, "avg_cost": 150})
        body = client.post("/api/v1/users/u4/chat", json={"message": "How risky is my portfolio?"}).json()
        assert body["source"] == "rules"
        assert body["topic"] == "risk"
        assert "across 1 holdings" in body["response"]
        assert body["analysis"]["portfolio_insights"].endswith("$1500.00")
        assert len(body["analysis"]["recommendations"]) == 2

    @pytest.mark.parametrize("message", ["", "   "])
    def test_chat_requires_a_message(self, client, message):
        assert client.post("/api/v1/users/u4/chat", json={"message": message}).status_code == 422


class TestSymbolKeys:
    def test_sentiment_shared_across_spellings(self, client):
        client.post("/api/v1/sentiment", json={"text": "strong growth", "symbol": "btcusd", "record": True})
        body = client.get("/api/v1/sentiment/BTC-USD").json()
        assert body["symbol"] == "BTC-USD"
        assert len(body["records"]) == 1
        assert client.get("/api/v1/sentiment/BTCUSD").json()["records"] == body["records"]
