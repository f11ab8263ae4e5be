from __future__ import annotations

import asyncio
import logging

from analyst.services import activity_log


def test_activity_log_is_noop_without_supabase(monkeypatch):
    monkeypatch.setattr("analyst.services.activity_log.get_supabase", lambda: None)
    payload = asyncio.run(activity_log.log_analysis_activity("AAPL", "success", {"turns": 2}))
    assert payload["ticker"] == "AAPL"
    assert payload["details"] == {"turns": 2}


def test_activity_log_failure_is_logged_not_raised(monkeypatch, caplog):
    inserted: list[dict] = []

    class _FakeQuery:
        def __init__(self, payload):
            self.payload = payload

        def execute(self):
            inserted.append(self.payload)
            raise RuntimeError("table missing")

    class _FakeTable:
        def insert(self, payload):
            return _FakeQuery(payload)

    class _FakeClient:
        def table(self, _name: str):
            return _FakeTable()

    monkeypatch.setattr("analyst.services.activity_log.get_supabase", lambda: _FakeClient())
    with caplog.at_level(logging.WARNING):
        asyncio.run(activity_log.log_analysis_activity("MSFT", "error", {"kind": "transport"}))
    assert inserted and inserted[0]["status"] == "error"
    assert "Failed to record analysis activity" in caplog.text
