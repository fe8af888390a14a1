"""
Onboarding orchestrator (client side).

Owns the single AnswerPayload for a session, shows deterministic "quick
picks" immediately, then asks the API for generated versions:

    idle -> running -> succeeded | failed | timed_out

Profile summary is always fetched before recommendations, since the
recommendation request carries the summary. Every prefetch/retry is a new
attempt; results from an older attempt are dropped.
"""

import hashlib
import json
import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests
from dotenv import load_dotenv

from fallbacks import recommend_fallback, summarize_fallback
from schemas import (
    AnswerPayload,
    CommitmentRecommendation,
    ProfileSummary,
    RecommendationsResponse,
)
from store import COMMITMENT_LENGTH_DAYS, Commitment, CommitmentStore, NewCommitment

load_dotenv()

logger = logging.getLogger("streakproof_client")

# --------------------- API Client --------------------- #

API_BASE = os.getenv("STREAKPROOF_API_BASE", "http://localhost:8000")
AI_TIMEOUT_MS = 10000
CACHE_TTL_S = 60 * 60

SOURCE_HEADER = "X-Generation-Source"

QUICK_PICKS_NOTICE = "Still using quick picks"
TIMEOUT_NOTICE = "Taking longer than expected"


class OnboardingApiError(RuntimeError):
    pass


class OnboardingTimeout(OnboardingApiError):
    pass


def call_api(path: str, payload: dict, api_base: str = API_BASE, timeout_ms: int = AI_TIMEOUT_MS) -> Tuple[dict, str]:
    """
    POST JSON to the onboarding API.

    Returns (body, source) where source is the X-Generation-Source header.
    Raises OnboardingTimeout on timeout and OnboardingApiError on any other
    transport problem or 4xx/5xx.
    """
    url = f"{api_base}{path}"
    try:
        resp = requests.post(url, json=payload, timeout=timeout_ms / 1000.0)
    except requests.Timeout as e:
        raise OnboardingTimeout(f"API {path} timed out after {timeout_ms}ms") from e
    except requests.RequestException as e:
        raise OnboardingApiError(f"API {path} request failed: {e}") from e

    if resp.status_code >= 400:
        try:
            data = resp.json()
        except ValueError:
            data = resp.text
        raise OnboardingApiError(f"API {path} failed: {resp.status_code} – {data}")

    try:
        body = resp.json()
    except ValueError as e:
        raise OnboardingApiError(f"API {path} returned invalid JSON") from e

    return body, resp.headers.get(SOURCE_HEADER, "server")


# --------------------- Cache --------------------- #


def payload_cache_key(payload: AnswerPayload, user_id: Optional[str] = None) -> str:
    """Stable key for a payload snapshot; list order does not matter."""
    data = payload.model_dump()
    normalized = {k: sorted(v) if isinstance(v, list) else v for k, v in data.items()}
    normalized["user_id"] = user_id or "anonymous"
    raw = json.dumps(normalized, sort_keys=True, ensure_ascii=False)
    return "onboarding_ai_" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


class ResultCache:
    """Generated results per payload key, with a TTL. Owned by whoever injects it."""

    def __init__(self, ttl_s: float = CACHE_TTL_S, clock=time.monotonic):
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: Dict[str, Tuple[float, ProfileSummary, List[CommitmentRecommendation]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Tuple[ProfileSummary, List[CommitmentRecommendation]]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, summary, recs = entry
            if self._clock() - stored_at >= self._ttl_s:
                del self._entries[key]
                return None
            return summary, list(recs)

    def put(self, key: str, summary: ProfileSummary, recs: List[CommitmentRecommendation]) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), summary, list(recs))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# --------------------- Session --------------------- #


class GenerationStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ResultSource(str, Enum):
    NONE = "none"
    FALLBACK = "fallback"
    SERVER = "server"


class OnboardingSession:
    """
    One user's walk through the onboarding screens.

    Screens write answers with update()/update_batch(). Once enough answers
    exist, prefetch() (or prefetch_in_background()) fills summary and
    recommendations. The fallback result is in place before any network
    call, so the user can always move forward.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        api_base: str = API_BASE,
        timeout_ms: int = AI_TIMEOUT_MS,
        cache: Optional[ResultCache] = None,
    ):
        self.user_id = user_id
        self.api_base = api_base
        self.timeout_ms = timeout_ms
        self.cache = cache if cache is not None else ResultCache()

        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._attempt = 0
        self.payload = AnswerPayload()
        self._clear_results()

    def _clear_results(self) -> None:
        self.summary: Optional[ProfileSummary] = None
        self.summary_source = ResultSource.NONE
        self.recommendations: List[CommitmentRecommendation] = []
        self.recommendations_source = ResultSource.NONE
        self.selected: List[bool] = []
        self.status = GenerationStatus.IDLE
        self.error: Optional[str] = None
        self.duration_ms: Optional[int] = None
        self.retries = 0

    # ---- answers ----

    def update(self, field: str, value: Any) -> None:
        """Set one answer, by canonical or legacy field name."""
        name = AnswerPayload.canonical_field(field)
        with self._lock:
            data = self.payload.model_dump()
            data[name] = value
            self.payload = AnswerPayload.model_validate(data)

    def update_batch(self, **fields: Any) -> None:
        with self._lock:
            data = self.payload.model_dump()
            for field, value in fields.items():
                data[AnswerPayload.canonical_field(field)] = value
            self.payload = AnswerPayload.model_validate(data)

    def snapshot(self) -> AnswerPayload:
        with self._lock:
            return self.payload.model_copy(deep=True)

    def reset(self) -> None:
        """Onboarding restart or logout: answers and results are discarded."""
        with self._lock:
            self._attempt += 1
            self.payload = AnswerPayload()
            self._clear_results()

    def ready_for_prefetch(self) -> bool:
        """Focus domains and change style are both answered."""
        with self._lock:
            p = self.payload
            return bool(p.focus_domains) and bool(p.change_style.strip())

    # ---- state helpers ----

    @property
    def timed_out(self) -> bool:
        return self.status == GenerationStatus.TIMED_OUT

    @property
    def notice(self) -> Optional[str]:
        if self.status == GenerationStatus.TIMED_OUT:
            return TIMEOUT_NOTICE
        if self.summary_source == ResultSource.FALLBACK and self.retries == 0 and self.status != GenerationStatus.RUNNING:
            return QUICK_PICKS_NOTICE
        return None

    def _is_current(self, attempt: int) -> bool:
        return attempt == self._attempt

    def _set_recommendations(self, recs: List[CommitmentRecommendation], source: ResultSource) -> None:
        self.recommendations = list(recs)
        self.recommendations_source = source
        # everything starts pre-selected
        self.selected = [True] * len(self.recommendations)

    # ---- network ----

    def fetch_summary(self, payload: AnswerPayload) -> Tuple[ProfileSummary, ResultSource]:
        body, source = call_api(
            "/onboarding/summary",
            payload.model_dump(),
            api_base=self.api_base,
            timeout_ms=self.timeout_ms,
        )
        return ProfileSummary.model_validate(body), ResultSource(source)

    def fetch_recommendations(
        self,
        payload: AnswerPayload,
        summary: Optional[ProfileSummary],
    ) -> Tuple[List[CommitmentRecommendation], ResultSource]:
        if summary is None:
            raise ValueError("recommendations need a profile summary (server or fallback) first")

        body, source = call_api(
            "/onboarding/recommendations",
            {"payload": payload.model_dump(), "summary": summary.model_dump()},
            api_base=self.api_base,
            timeout_ms=self.timeout_ms,
        )
        return RecommendationsResponse.model_validate(body).commitments, ResultSource(source)

    # ---- lifecycle ----

    def prefetch(self, use_cache: bool = True) -> GenerationStatus:
        """
        Start a new generation attempt for the current payload and run it
        to completion. Safe to call repeatedly; the newest attempt wins.
        """
        with self._lock:
            self._attempt += 1
            attempt = self._attempt
            payload = self.payload.model_copy(deep=True)
            cache_key = payload_cache_key(payload, self.user_id)

            cached = self.cache.get(cache_key) if use_cache else None
            if cached is not None:
                logger.debug(f"[onboarding] using cached AI result for user {self.user_id}")
                summary, recs = cached
                self.summary, self.summary_source = summary, ResultSource.SERVER
                self._set_recommendations(recs, ResultSource.SERVER)
                self.status = GenerationStatus.SUCCEEDED
                self.error = None
                return self.status

            # quick picks first, so the next screen never waits
            self.summary, self.summary_source = summarize_fallback(payload), ResultSource.FALLBACK
            self._set_recommendations(recommend_fallback(payload), ResultSource.FALLBACK)
            self.status = GenerationStatus.RUNNING
            self.error = None
            self.duration_ms = None

        started_at = time.perf_counter()
        try:
            summary, summary_source = self.fetch_summary(payload)
            with self._lock:
                if not self._is_current(attempt):
                    return self.status
                self.summary, self.summary_source = summary, summary_source

            recs, recs_source = self.fetch_recommendations(payload, summary)
            with self._lock:
                if not self._is_current(attempt):
                    return self.status
                self._set_recommendations(recs, recs_source)
                self.status = GenerationStatus.SUCCEEDED
                if summary_source == ResultSource.SERVER and recs_source == ResultSource.SERVER:
                    self.cache.put(cache_key, summary, recs)
        except OnboardingTimeout as e:
            with self._lock:
                if self._is_current(attempt):
                    self.status = GenerationStatus.TIMED_OUT
                    self.error = "Request timed out"
            logger.warning(f"[onboarding] AI timed out: {e}")
        except (OnboardingApiError, ValueError) as e:
            with self._lock:
                if self._is_current(attempt):
                    self.status = GenerationStatus.FAILED
                    self.error = str(e) or "Failed to generate profile"
            logger.warning(f"[onboarding] AI failed: {e}")
        finally:
            duration_ms = int((time.perf_counter() - started_at) * 1000)
            with self._lock:
                if self._is_current(attempt):
                    self.duration_ms = duration_ms
            logger.debug(
                f"[onboarding] attempt {attempt} finished in {duration_ms}ms, "
                f"source={self.summary_source.value}"
            )

        return self.status

    def retry(self) -> GenerationStatus:
        """Manual "retry now": a fresh attempt that skips the cache."""
        with self._lock:
            self.retries += 1
        return self.prefetch(use_cache=False)

    def _pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="onboarding")
            return self._executor

    def prefetch_in_background(self) -> "Optional[Future[GenerationStatus]]":
        """
        Screen-driven prefetch: starts only once ready_for_prefetch() holds,
        otherwise returns None and nothing is sent.
        """
        with self._lock:
            if not self.ready_for_prefetch():
                logger.debug("[onboarding] not enough answers yet, prefetch skipped")
                return None
        return self._pool().submit(self.prefetch)

    def retry_in_background(self) -> "Future[GenerationStatus]":
        return self._pool().submit(self.retry)

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    # ---- selection + completion ----

    def toggle_selection(self, index: int) -> None:
        with self._lock:
            if not 0 <= index < len(self.selected):
                raise IndexError(f"no recommendation at position {index}")
            self.selected[index] = not self.selected[index]

    def selected_recommendations(self) -> List[CommitmentRecommendation]:
        with self._lock:
            return [r for r, keep in zip(self.recommendations, self.selected) if keep]

    def complete(self, user_id: str, store: CommitmentStore, today: Optional[date] = None) -> List[Commitment]:
        """
        Persist the selected recommendations as commitments and reset the
        session. Nothing is written before this point.
        """
        start = today or date.today()
        with self._lock:
            category = self.payload.primary_focus or None
            chosen = [r for r, keep in zip(self.recommendations, self.selected) if keep]

        created = []
        for rec in chosen:
            created.append(
                store.create_commitment(
                    user_id,
                    NewCommitment(
                        title=rec.title,
                        description=rec.short_description,
                        category=category,
                        cadence=rec.cadence,
                        proof_mode=rec.proof_mode,
                        start_date=start,
                        end_date=start + timedelta(days=COMMITMENT_LENGTH_DAYS),
                    ),
                )
            )
        logger.info(f"[onboarding] completed for {user_id}: {len(created)} commitment(s)")
        self.reset()
        return created
