from __future__ import annotations

import unittest
from unittest.mock import AsyncMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from analyst.config import Settings
from analyst.errors import TransportError, TurnBudgetExceeded
from analyst.routers import analysis as analysis_router
from analyst.routers import system as system_router
from analyst.schemas import AnalysisResult
from analyst.services.prompts import TRUNCATION_NOTICE


def _build_test_client() -> TestClient:
    app = FastAPI()
    app.include_router(system_router.router)
    app.include_router(analysis_router.router)
    app.state.settings = Settings(anthropic_api_key="k", fmp_api_key="f")
    return TestClient(app)


def _result(text: str, truncated: bool = False) -> AnalysisResult:
    return AnalysisResult(ticker="AAPL", text=text, truncated=truncated, turns=2, model="test-model")


class AnalysisApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = _build_test_client()
        patcher = patch.object(analysis_router, "log_analysis_activity", new=AsyncMock(return_value={}))
        self.activity = patcher.start()
        self.addCleanup(patcher.stop)

    def test_successful_analysis(self) -> None:
        analyze = AsyncMock(return_value=_result("report"))
        with patch.object(analysis_router, "analyze_stock", new=analyze):
            response = self.client.post(
                "/analysis",
                json={"ticker": "aapl", "budget": 2500, "portfolio": [{"ticker": "MSFT", "quantity": 3, "avg_price": 380}]},
            )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["ticker"], "AAPL")
        self.assertEqual(payload["response"], "report")
        self.assertFalse(payload["truncated"])
        _, kwargs = analyze.call_args
        self.assertEqual(kwargs["budget"], 2500)
        self.assertEqual(kwargs["portfolio"][0]["ticker"], "MSFT")
        self.assertEqual(self.activity.call_args.args[1], "success")

    def test_truncated_analysis_keeps_partial_text_with_notice(self) -> None:
        with patch.object(analysis_router, "analyze_stock", new=AsyncMock(return_value=_result("partial", True))):
            response = self.client.post("/analysis", json={"ticker": "AAPL"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["truncated"])
        self.assertEqual(response.json()["response"], "partial" + TRUNCATION_NOTICE)

    def test_transport_error_returns_generic_502(self) -> None:
        failing = AsyncMock(side_effect=TransportError(500, "internal secret detail"))
        with patch.object(analysis_router, "analyze_stock", new=failing):
            response = self.client.post("/analysis", json={"ticker": "AAPL"})
        self.assertEqual(response.status_code, 502)
        self.assertNotIn("secret", response.text)
        self.assertIn("Analysis failed", response.text)

    def test_turn_budget_returns_same_generic_502(self) -> None:
        with patch.object(analysis_router, "analyze_stock", new=AsyncMock(side_effect=TurnBudgetExceeded(3))):
            response = self.client.post("/analysis", json={"ticker": "AAPL"})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"], "Analysis failed. Please try again later.")

    def test_invalid_ticker_is_rejected(self) -> None:
        analyze = AsyncMock()
        with patch.object(analysis_router, "analyze_stock", new=analyze):
            response = self.client.post("/analysis", json={"ticker": "12 34"})
        self.assertEqual(response.status_code, 422)
        analyze.assert_not_called()

    def test_integrations_lists_tools(self) -> None:
        response = self.client.get("/integrations")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["tools"]), 3)
        self.assertTrue(response.json()["anthropic"])


if __name__ == "__main__":
    unittest.main()
