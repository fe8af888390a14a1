"""
Onboarding orchestrator tests. requests.post is replaced by a recorder, so
no server is needed.

Run with: pytest tests/test_onboarding_client.py -v
"""

import threading
from datetime import date
from unittest.mock import NonCallableMock

import pytest
import requests

import onboarding_client
from fallbacks import recommend_fallback, summarize_fallback
from onboarding_client import (
    QUICK_PICKS_NOTICE,
    TIMEOUT_NOTICE,
    GenerationStatus,
    OnboardingSession,
    ResultCache,
    ResultSource,
    payload_cache_key,
)
from schemas import AnswerPayload
from store import InMemoryCommitmentStore

PROFILE = {
    "profile_name": "Quiet Strategist",
    "strengths": ["Plans ahead"],
    "risk_zones": ["Overthinks starts"],
    "best_practices": ["Start small"],
}
RECS = {
    "commitments": [
        {
            "title": "Lunch walk",
            "short_description": "Walk ten minutes after lunch",
            "cadence": "daily",
            "proof_mode": "photo_optional",
            "reason": "Afternoons are your low point",
        },
        {
            "title": "Sunday plan",
            "short_description": "Plan the week on Sunday evening",
            "cadence": "weekly",
            "proof_mode": "tick_only",
            "reason": "You said weeks get away from you",
        },
    ]
}


def _response(body, status=200, source="server"):
    resp = NonCallableMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.text = str(body)
    resp.headers = {"X-Generation-Source": source}
    return resp


class FakeApi:
    """Records POSTs and answers per path."""

    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    def __call__(self, url, json=None, timeout=None):
        path = url.split("http://test", 1)[1]
        self.calls.append((path, json, timeout))
        answer = self.answers[path]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer()
        return answer


@pytest.fixture
def session():
    s = OnboardingSession(user_id="user-1", api_base="http://test", timeout_ms=1500)
    s.update_batch(focusDomains=["fitness"], changeStyle="steady", roles=["parent"])
    yield s
    s.close()


def _install(monkeypatch, answers) -> FakeApi:
    api = FakeApi(answers)
    monkeypatch.setattr(onboarding_client.requests, "post", api)
    return api


class TestAnswers:
    def test_update_by_legacy_name(self):
        s = OnboardingSession()
        s.update("focusDomains", ["career"])
        s.update("accountability_level", "strict")

        assert s.payload.focus_domains == ["career"]
        assert s.payload.accountability_level == "strict"

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            OnboardingSession().update("shoe_size", "42")

    def test_ready_for_prefetch(self):
        s = OnboardingSession()
        assert not s.ready_for_prefetch()
        s.update("focus_domains", ["sleep"])
        assert not s.ready_for_prefetch()
        s.update("change_style", "micro")
        assert s.ready_for_prefetch()

    def test_snapshot_is_a_copy(self, session):
        snap = session.snapshot()
        snap.focus_domains.append("career")
        assert session.payload.focus_domains == ["fitness"]


class TestPrefetch:
    def test_server_results_replace_quick_picks(self, session, monkeypatch):
        api = _install(
            monkeypatch,
            {
                "/onboarding/summary": _response(PROFILE),
                "/onboarding/recommendations": _response(RECS),
            },
        )

        status = session.prefetch()

        assert status == GenerationStatus.SUCCEEDED
        assert session.summary.profile_name == "Quiet Strategist"
        assert session.summary_source == ResultSource.SERVER
        assert [r.title for r in session.recommendations] == ["Lunch walk", "Sunday plan"]
        assert session.recommendations_source == ResultSource.SERVER
        assert session.selected == [True, True]
        assert session.notice is None
        assert session.duration_ms is not None

        # summary strictly before recommendations, and recs carry the summary
        assert [c[0] for c in api.calls] == ["/onboarding/summary", "/onboarding/recommendations"]
        assert api.calls[1][1]["summary"] == PROFILE
        assert api.calls[1][1]["payload"]["focus_domains"] == ["fitness"]
        assert api.calls[0][2] == 1.5

    def test_second_prefetch_hits_cache(self, session, monkeypatch):
        api = _install(
            monkeypatch,
            {
                "/onboarding/summary": _response(PROFILE),
                "/onboarding/recommendations": _response(RECS),
            },
        )

        session.prefetch()
        session.prefetch()

        assert len(api.calls) == 2
        assert session.status == GenerationStatus.SUCCEEDED
        assert session.summary.profile_name == "Quiet Strategist"

    def test_server_side_fallback_is_not_cached(self, session, monkeypatch):
        fallback_summary = summarize_fallback(session.payload).model_dump()
        api = _install(
            monkeypatch,
            {
                "/onboarding/summary": _response(fallback_summary, source="fallback"),
                "/onboarding/recommendations": _response(RECS, source="fallback"),
            },
        )

        assert session.prefetch() == GenerationStatus.SUCCEEDED
        assert session.summary_source == ResultSource.FALLBACK
        assert session.notice == QUICK_PICKS_NOTICE

        session.prefetch()
        assert len(api.calls) == 4

    def test_timeout_keeps_quick_picks(self, session, monkeypatch):
        api = _install(
            monkeypatch,
            {"/onboarding/summary": requests.Timeout("read timed out")},
        )

        status = session.prefetch()

        assert status == GenerationStatus.TIMED_OUT
        assert session.timed_out
        assert session.notice == TIMEOUT_NOTICE
        assert session.error == "Request timed out"
        assert session.summary == summarize_fallback(session.payload)
        assert session.recommendations == recommend_fallback(session.payload)
        assert session.recommendations[0].title == "Movement Break"
        # the attempt stops at the failed summary call
        assert [c[0] for c in api.calls] == ["/onboarding/summary"]

    def test_server_error_is_failed_not_timed_out(self, session, monkeypatch):
        _install(
            monkeypatch,
            {"/onboarding/summary": _response({"error": "boom"}, status=500)},
        )

        status = session.prefetch()

        assert status == GenerationStatus.FAILED
        assert not session.timed_out
        assert session.notice == QUICK_PICKS_NOTICE
        assert session.summary_source == ResultSource.FALLBACK

    def test_connection_error_is_failed(self, session, monkeypatch):
        _install(
            monkeypatch,
            {"/onboarding/summary": requests.ConnectionError("refused")},
        )
        assert session.prefetch() == GenerationStatus.FAILED

    def test_recommendations_timeout_after_summary(self, session, monkeypatch):
        _install(
            monkeypatch,
            {
                "/onboarding/summary": _response(PROFILE),
                "/onboarding/recommendations": requests.Timeout("slow"),
            },
        )

        assert session.prefetch() == GenerationStatus.TIMED_OUT
        assert session.summary_source == ResultSource.SERVER
        assert session.recommendations_source == ResultSource.FALLBACK

    def test_retry_is_a_fresh_attempt(self, session, monkeypatch):
        _install(monkeypatch, {"/onboarding/summary": requests.Timeout("slow")})
        session.prefetch()
        assert session.notice == TIMEOUT_NOTICE

        api = _install(
            monkeypatch,
            {
                "/onboarding/summary": _response(PROFILE),
                "/onboarding/recommendations": _response(RECS),
            },
        )
        status = session.retry()

        assert status == GenerationStatus.SUCCEEDED
        assert session.retries == 1
        assert len(api.calls) == 2

    def test_stale_attempt_is_discarded(self, session, monkeypatch):
        def summary_then_reset():
            # a newer attempt starts while this one is in flight
            session.reset()
            return _response(PROFILE)

        api = _install(
            monkeypatch,
            {
                "/onboarding/summary": summary_then_reset,
                "/onboarding/recommendations": _response(RECS),
            },
        )

        session.prefetch()

        assert session.status == GenerationStatus.IDLE
        assert session.summary is None
        assert [c[0] for c in api.calls] == ["/onboarding/summary"]

    def test_background_prefetch(self, session, monkeypatch):
        _install(
            monkeypatch,
            {
                "/onboarding/summary": _response(PROFILE),
                "/onboarding/recommendations": _response(RECS),
            },
        )

        future = session.prefetch_in_background()

        assert future.result(timeout=5) == GenerationStatus.SUCCEEDED
        assert session.summary_source == ResultSource.SERVER

    def test_background_prefetch_waits_for_answers(self, monkeypatch):
        api = _install(monkeypatch, {})
        s = OnboardingSession(api_base="http://test")
        s.update("focus_domains", ["sleep"])

        assert s.prefetch_in_background() is None
        assert api.calls == []
        assert s.status == GenerationStatus.IDLE
        s.close()

    def test_recommendations_need_a_summary(self, session, monkeypatch):
        api = _install(monkeypatch, {})

        with pytest.raises(ValueError):
            session.fetch_recommendations(session.payload, None)
        assert api.calls == []


class TestCache:
    def test_key_ignores_list_order_but_not_user(self):
        a = AnswerPayload(focus_domains=["fitness", "career"], roles=["parent"])
        b = AnswerPayload(focus_domains=["career", "fitness"], roles=["parent"])

        assert payload_cache_key(a, "u1") == payload_cache_key(b, "u1")
        assert payload_cache_key(a, "u1") != payload_cache_key(a, "u2")
        assert payload_cache_key(a) != payload_cache_key(AnswerPayload(focus_domains=["career"]))

    def test_entries_expire(self):
        now = [1000.0]
        cache = ResultCache(ttl_s=60, clock=lambda: now[0])
        summary = summarize_fallback(AnswerPayload())
        cache.put("k", summary, [])

        assert cache.get("k") == (summary, [])
        now[0] += 61
        assert cache.get("k") is None


class TestCompletion:
    def test_selected_recommendations_become_commitments(self, session):
        store = InMemoryCommitmentStore()
        session.summary = summarize_fallback(session.payload)
        session._set_recommendations(recommend_fallback(session.payload), ResultSource.FALLBACK)
        session.toggle_selection(1)

        created = session.complete("user-1", store, today=date(2026, 1, 1))

        titles = [c.title for c in created]
        assert titles == ["Movement Break", "Evening Reflection", "Weekly Review"]
        assert created[0].category == "fitness"
        assert created[0].proof_mode == "tick_only"
        assert created[2].cadence == "weekly"
        assert created[0].end_date == date(2026, 4, 1)
        assert store.list_commitments("user-1") == created

        # session starts over
        assert session.payload == AnswerPayload()
        assert session.status == GenerationStatus.IDLE
        assert session.recommendations == []

    def test_complete_reads_answers_under_the_session_lock(self, session):
        store = InMemoryCommitmentStore()
        session._set_recommendations(recommend_fallback(session.payload), ResultSource.FALLBACK)
        done = threading.Event()
        result = {}

        def finish():
            result["created"] = session.complete("user-1", store, today=date(2026, 1, 1))
            done.set()

        with session._lock:
            worker = threading.Thread(target=finish)
            worker.start()
            assert not done.wait(0.2)
            assert store.list_commitments("user-1") == []
            # answers changed while complete() is blocked are the ones it sees
            session.update("focus_domains", ["career"])

        worker.join(timeout=5)
        assert done.is_set()
        assert {c.category for c in result["created"]} == {"career"}

    def test_toggle_out_of_range(self, session):
        with pytest.raises(IndexError):
            session.toggle_selection(0)
