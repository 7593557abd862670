"""HTTP-level tests: the routes wire every upstream call through the optimizer."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from config import settings
from errors import UpstreamError
from services import eodhd, openai_client


@pytest.fixture(autouse=True)
def eodhd_key(monkeypatch):
    monkeypatch.setattr(settings, "eodhd_api_key", "demo-key")


@pytest.fixture
def fake_calendar(monkeypatch):
    fake = AsyncMock(return_value=[{"event": "CPI", "importance": "high"}])
    monkeypatch.setattr(eodhd, "get_calendar", fake)
    return fake


@pytest.fixture
def fake_completion(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    fake = MagicMock(return_value="  Hawkish surprise; USD likely firmer.  ")
    monkeypatch.setattr(openai_client, "complete", fake)
    return fake


class TestCalendarRoute:
    def test_caches_identical_requests(self, client, fake_calendar):
        for _ in range(10):
            resp = client.get("/api/eodhd/calendar", params={"from": "2024-01-01", "to": "2024-01-08"})
            assert resp.status_code == 200

        assert resp.json() == {"ok": True, "items": [{"event": "CPI", "importance": "high"}]}
        fake_calendar.assert_awaited_once()

    def test_parameter_order_shares_cache(self, client, fake_calendar):
        client.get("/api/eodhd/calendar?from=2024-01-01&to=2024-01-08&country=US")
        client.get("/api/eodhd/calendar?country=US&to=2024-01-08&from=2024-01-01")
        fake_calendar.assert_awaited_once()

    def test_rate_limited_after_six_misses(self, client, fake_calendar):
        for day in range(1, 7):
            resp = client.get("/api/eodhd/calendar", params={"from": f"2024-01-0{day}", "to": "2024-01-31"})
            assert resp.status_code == 200

        resp = client.get("/api/eodhd/calendar", params={"from": "2024-02-01", "to": "2024-02-28"})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"
        assert resp.json()["retryAfter"] == 60
        assert fake_calendar.await_count == 6

    def test_missing_range(self, client, fake_calendar):
        resp = client.get("/api/eodhd/calendar", params={"from": "2024-01-01"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_RANGE"
        fake_calendar.assert_not_awaited()


class TestEodhdRoutes:
    def test_price_requires_symbols(self, client):
        resp = client.get("/api/eodhd/price", params={"symbols": " , "})
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_SYMBOLS"

    def test_price_passes_symbol_list(self, client, monkeypatch):
        fake = AsyncMock(return_value=[{"symbol": "EURUSD.FOREX", "price": 1.09}])
        monkeypatch.setattr(eodhd, "get_prices", fake)

        resp = client.get("/api/eodhd/price", params={"symbols": "EURUSD.FOREX, GBPUSD.FOREX"})
        assert resp.status_code == 200
        fake.assert_awaited_once_with(["EURUSD.FOREX", "GBPUSD.FOREX"])

    def test_news_requires_symbol_or_tag(self, client):
        resp = client.get("/api/eodhd/news")
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_S_OR_T"

    def test_search_requires_query(self, client):
        resp = client.get("/api/eodhd/search")
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_Q"

    def test_upstream_error_is_502(self, client, monkeypatch):
        monkeypatch.setattr(eodhd, "get_news", AsyncMock(side_effect=UpstreamError("EODHD", 500, "boom")))

        resp = client.get("/api/eodhd/news", params={"s": "AAPL.US"})
        assert resp.status_code == 502
        assert resp.json()["code"] == "UPSTREAM_ERROR"
        assert resp.json()["detail"] == "boom"

    def test_missing_key_is_503(self, client, optimizer, monkeypatch):
        monkeypatch.setattr(settings, "eodhd_api_key", None)

        resp = client.get("/api/eodhd/search", params={"q": "gold"})
        assert resp.status_code == 503
        assert resp.json()["code"] == "NOT_CONFIGURED"
        assert optimizer.rate_limit_count("testclient", "search") == 0

    def test_price_symbols_normalized_once(self, client, monkeypatch):
        fake = AsyncMock(return_value=[{"symbol": "EURUSD.FOREX", "price": 1.09}])
        monkeypatch.setattr(eodhd, "get_prices", fake)

        client.get("/api/eodhd/price", params={"symbols": "eurusd.forex,gbpusd.forex"})
        client.get("/api/eodhd/price", params={"symbols": "EURUSD.FOREX,GBPUSD.FOREX"})

        fake.assert_awaited_once_with(["EURUSD.FOREX", "GBPUSD.FOREX"])


class TestAIRoutes:
    def test_analysis_is_cached(self, client, fake_completion):
        body = {"text": "US CPI 3.4% vs 3.2% expected", "language": "en", "type": "event"}
        first = client.post("/api/ai-analysis", json=body)
        second = client.post("/api/ai-analysis", json=body)

        assert first.status_code == 200
        assert first.json()["analysis"] == "Hawkish surprise; USD likely firmer."
        assert second.json() == first.json()
        fake_completion.assert_called_once()
        prompt = fake_completion.call_args.kwargs["messages"][1]["content"]
        assert prompt.startswith("Economic Event: ")

    def test_analysis_requires_text(self, client, fake_completion):
        resp = client.post("/api/ai-analysis", json={"text": "  "})
        assert resp.status_code == 400

    def test_analysis_rate_limit_localized(self, client, fake_completion):
        for i in range(20):
            assert client.post("/api/ai-analysis", json={"text": f"event {i}", "language": "ar"}).status_code == 200

        resp = client.post("/api/ai-analysis", json={"text": "one more", "language": "ar"})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"
        body = resp.json()
        assert body["retryAfter"] == 60
        assert body["error"] == "تجاوز الحد المسموح من الطلبات. يرجى المحاولة لاحقاً."

    def test_analysis_without_key(self, client, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", None)

        resp = client.post("/api/ai-analysis", json={"text": "NFP beat"})
        assert resp.status_code == 503
        assert resp.json()["error"] == "OpenAI API key not configured"
        assert resp.json()["analysis"] == "AI analysis currently unavailable"

    def test_translate(self, client, fake_completion):
        fake_completion.return_value = "مرحبا"
        resp = client.post("/api/translate", json={"text": "Hello", "targetLanguage": "ar"})

        assert resp.status_code == 200
        assert resp.json()["translatedText"] == "مرحبا"
        assert resp.json()["originalText"] == "Hello"
        assert resp.json()["targetLanguage"] == "ar"

    def test_translate_falls_back_to_original(self, client, fake_completion):
        fake_completion.side_effect = UpstreamError("OpenAI", 500)
        resp = client.post("/api/translate", json={"text": "Hello", "targetLanguage": "en"})

        assert resp.status_code == 502
        assert resp.json()["translatedText"] == "Hello"

    @pytest.mark.parametrize(
        "body",
        [
            {"text": "x", "type": "event&type=news"},
            {"text": "x", "language": "en&type=event"},
            {"text": "x", "language": "fr"},
        ],
    )
    def test_analysis_rejects_unknown_type_or_language(self, client, fake_completion, body):
        resp = client.post("/api/ai-analysis", json=body)
        assert resp.status_code == 422
        fake_completion.assert_not_called()

    def test_translate_rejects_unknown_language(self, client, fake_completion):
        resp = client.post("/api/translate", json={"text": "Hello", "targetLanguage": "ar&x=1"})
        assert resp.status_code == 422

    def test_separator_in_text_does_not_share_cache(self, client, fake_completion):
        fake_completion.side_effect = ["first reply", "second reply"]
        first = client.post("/api/ai-analysis", json={"text": "x&type=event", "type": "news"})
        second = client.post("/api/ai-analysis", json={"text": "x", "type": "event"})

        assert first.json()["analysis"] == "first reply"
        assert second.json()["analysis"] == "second reply"
        assert fake_completion.call_count == 2


class TestChatRoute:
    @pytest.fixture
    def fake_quotes(self, monkeypatch):
        fake = AsyncMock(return_value=[{"symbol": "XAUUSD.FOREX", "price": 2050.1, "change": 4.2, "changePct": 0.5, "ts": 0}])
        monkeypatch.setattr(eodhd, "get_prices", fake)
        return fake

    def test_reply_grounded_in_live_quotes(self, client, fake_completion, fake_quotes):
        fake_completion.return_value = "Gold trades at 2,050.10."
        resp = client.post("/api/chat", json={"message": "What is the gold price?", "language": "en"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["response"] == "Gold trades at 2,050.10."
        assert body["marketData"][0]["symbol"] == "XAUUSD.FOREX"
        system_prompt = fake_completion.call_args.kwargs["messages"][0]["content"]
        assert "XAUUSD.FOREX: 2,050.1000 (+0.50%)" in system_prompt
        assert "reply in English" in system_prompt

    def test_repeated_message_is_cached(self, client, fake_completion, fake_quotes, optimizer):
        for _ in range(3):
            assert client.post("/api/chat", json={"message": "سعر الذهب", "language": "ar"}).status_code == 200

        fake_completion.assert_called_once()
        fake_quotes.assert_awaited_once()
        assert optimizer.rate_limit_count("testclient", "chat") == 1

    def test_works_without_market_data(self, client, fake_completion, monkeypatch):
        monkeypatch.setattr(settings, "eodhd_api_key", None)
        resp = client.post("/api/chat", json={"message": "hello", "language": "en"})

        assert resp.status_code == 200
        assert resp.json()["marketData"] == []
        assert "No live quotes available." in fake_completion.call_args.kwargs["messages"][0]["content"]

    def test_requires_message(self, client, fake_completion):
        resp = client.post("/api/chat", json={"message": " ", "language": "ar"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "الرسالة مطلوبة"

    def test_rate_limited(self, client, fake_completion, fake_quotes):
        for i in range(10):
            assert client.post("/api/chat", json={"message": f"q{i}", "language": "en"}).status_code == 200

        resp = client.post("/api/chat", json={"message": "one more", "language": "en"})
        assert resp.status_code == 429
        assert resp.json()["retryAfter"] == 60
        assert resp.json()["response"] == "Sorry, I'm experiencing technical difficulties. Please try again."


class TestPriceAlertRoute:
    def test_returns_single_quote(self, client, monkeypatch):
        fake = AsyncMock(return_value=[{"symbol": "EURUSD.FOREX", "price": 1.0856, "change": 0.001, "changePct": 0.09, "ts": 1704067200}])
        monkeypatch.setattr(eodhd, "get_prices", fake)

        resp = client.get("/api/price-alert", params={"symbol": "eurusd.forex"})

        assert resp.status_code == 200
        assert resp.json() == {
            "symbol": "EURUSD.FOREX",
            "price": 1.0856,
            "change": 0.001,
            "changePct": 0.09,
            "timestamp": 1704067200,
            "source": "eodhd",
        }
        fake.assert_awaited_once_with(["EURUSD.FOREX"])

    def test_shares_cache_with_price_route(self, client, monkeypatch):
        fake = AsyncMock(return_value=[{"symbol": "AAPL.US", "price": 185.25, "change": 0.0, "changePct": 0.0, "ts": 0}])
        monkeypatch.setattr(eodhd, "get_prices", fake)

        client.get("/api/eodhd/price", params={"symbols": "AAPL.US"})
        resp = client.get("/api/price-alert", params={"symbol": "AAPL.US"})

        assert resp.json()["price"] == 185.25
        fake.assert_awaited_once()

    def test_requires_symbol(self, client):
        resp = client.get("/api/price-alert")
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_SYMBOL"

    def test_unknown_symbol_is_404(self, client, monkeypatch):
        monkeypatch.setattr(eodhd, "get_prices", AsyncMock(return_value=[{"symbol": "NOPE", "price": None}]))

        resp = client.get("/api/price-alert", params={"symbol": "NOPE"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "PRICE_NOT_FOUND"

    def test_missing_key_is_503(self, client, optimizer, monkeypatch):
        monkeypatch.setattr(settings, "eodhd_api_key", None)

        resp = client.get("/api/price-alert", params={"symbol": "AAPL.US"})
        assert resp.status_code == 503
        assert optimizer.rate_limit_count("testclient", "prices") == 0


class TestHealthRoutes:
    def test_status_reports_optimizer(self, client, optimizer):
        optimizer.set_cache("news:s=AAPL.US", [], "news")
        resp = client.get("/api/status")

        assert resp.status_code == 200
        assert resp.json()["optimizer"] == {"cache_size": 1, "rate_limit_entries": 0}

    def test_ready(self, client):
        assert client.get("/ready").json()["status"] == "ok"
