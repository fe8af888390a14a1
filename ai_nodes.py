# ai_nodes.py
import json
import logging
from typing import Any, Dict, List, Optional

from langchain_core.runnables import RunnableConfig

from config import Settings
from contract import validate_profile_summary, validate_recommendations
from fallbacks import recommend_fallback, summarize_fallback
from llm_client import generate_json
from prompts import (
    PROFILE_PROMPT,
    PROFILE_SYSTEM_PROMPT,
    RECOMMENDATIONS_PROMPT,
    RECOMMENDATIONS_SYSTEM_PROMPT,
)
from schemas import (
    AnswerPayload,
    CommitmentRecommendation,
    GenerationOutcome,
    GenerationSource,
    OnboardingGraphState,
    ProfileSummary,
    Sourced,
)

logger = logging.getLogger("streakproof_ai")

MAX_RECOMMENDATIONS = 5

PROFILE_MAX_TOKENS = 450
RECS_MAX_TOKENS = 600


def build_profile_prompt(payload: AnswerPayload) -> str:
    return PROFILE_PROMPT.format(
        payload_json=json.dumps(payload.model_dump(), indent=2, ensure_ascii=False),
    )


def build_recommendations_prompt(payload: AnswerPayload, summary: ProfileSummary) -> str:
    return RECOMMENDATIONS_PROMPT.format(
        payload_json=json.dumps(payload.model_dump(), indent=2, ensure_ascii=False),
        summary_json=json.dumps(summary.model_dump(), indent=2, ensure_ascii=False),
        max_commitments=MAX_RECOMMENDATIONS,
    )


def _log_fallback(kind: str, outcome: GenerationOutcome, reason: str) -> None:
    logger.warning(
        f"[onboarding] {kind} fallback ms={outcome.duration_ms} reason={reason}"
        + (f" error={outcome.error}" if outcome.error else "")
    )


# ---------- Profile Summarizer ----------

async def summarize_profile(payload: AnswerPayload, settings: Settings) -> Sourced[ProfileSummary]:
    """
    Generated behaviour profile, or the deterministic one.

    Falls back when:
    - no API key is configured,
    - the call times out, errors, or returns nothing,
    - the JSON fails the profile contract,
    - any of the three lists is empty.
    """
    outcome = await generate_json(
        build_profile_prompt(payload),
        system_prompt=PROFILE_SYSTEM_PROMPT,
        model=settings.openai_model_profile,
        settings=settings,
        max_tokens=PROFILE_MAX_TOKENS,
    )

    if not outcome.ok:
        _log_fallback("summary", outcome, outcome.failure.value)
        return Sourced[ProfileSummary](
            source=GenerationSource.FALLBACK,
            value=summarize_fallback(payload),
        )

    summary = validate_profile_summary(outcome.content)
    if summary is None:
        _log_fallback("summary", outcome, "contract_violation")
        return Sourced[ProfileSummary](
            source=GenerationSource.FALLBACK,
            value=summarize_fallback(payload),
        )

    if not summary.is_complete():
        _log_fallback("summary", outcome, "empty_section")
        return Sourced[ProfileSummary](
            source=GenerationSource.FALLBACK,
            value=summarize_fallback(payload),
        )

    logger.info(
        f"[onboarding] summary ms={outcome.duration_ms} "
        f"timeout_ms={settings.openai_timeout_ms} model={outcome.model}"
    )
    return Sourced[ProfileSummary](source=GenerationSource.SERVER, value=summary)


# ---------- Recommendation Generator ----------

async def recommend_commitments(
    payload: AnswerPayload,
    summary: Optional[ProfileSummary],
    settings: Settings,
) -> Sourced[List[CommitmentRecommendation]]:
    """
    Generated starter commitments (at most MAX_RECOMMENDATIONS), or the
    deterministic list.

    The prompt depends on the summary. Callers are expected to pass one;
    when they don't, the fallback summary for the same payload is used.
    """
    if summary is None:
        logger.warning("[onboarding] recs requested without a summary, using fallback summary")
        summary = summarize_fallback(payload)

    outcome = await generate_json(
        build_recommendations_prompt(payload, summary),
        system_prompt=RECOMMENDATIONS_SYSTEM_PROMPT,
        model=settings.openai_model_recs,
        settings=settings,
        max_tokens=RECS_MAX_TOKENS,
    )

    if not outcome.ok:
        _log_fallback("recs", outcome, outcome.failure.value)
        return Sourced[List[CommitmentRecommendation]](
            source=GenerationSource.FALLBACK,
            value=recommend_fallback(payload),
        )

    commitments = validate_recommendations(outcome.content)
    if commitments is None:
        _log_fallback("recs", outcome, "contract_violation")
        return Sourced[List[CommitmentRecommendation]](
            source=GenerationSource.FALLBACK,
            value=recommend_fallback(payload),
        )

    if not commitments:
        _log_fallback("recs", outcome, "empty_list")
        return Sourced[List[CommitmentRecommendation]](
            source=GenerationSource.FALLBACK,
            value=recommend_fallback(payload),
        )

    logger.info(
        f"[onboarding] recs ms={outcome.duration_ms} count={len(commitments)} "
        f"timeout_ms={settings.openai_timeout_ms} model={outcome.model}"
    )
    return Sourced[List[CommitmentRecommendation]](
        source=GenerationSource.SERVER,
        value=commitments[:MAX_RECOMMENDATIONS],
    )


# ---------- Graph nodes ----------
#
# LangGraph nodes take the current state and return a partial dict of the
# fields they set. Settings travel in the run config.

def _settings_from(config: Optional[Dict[str, Any]]) -> Settings:
    configurable = (config or {}).get("configurable", {})
    settings = configurable.get("settings")
    if not isinstance(settings, Settings):
        raise RuntimeError("graph run config must carry configurable.settings")
    return settings


async def summary_node(state: OnboardingGraphState, config: RunnableConfig) -> Dict[str, Any]:
    result = await summarize_profile(state.payload, _settings_from(config))
    return {"summary": result.value, "summary_source": result.source}


async def recommendations_node(state: OnboardingGraphState, config: RunnableConfig) -> Dict[str, Any]:
    result = await recommend_commitments(state.payload, state.summary, _settings_from(config))
    return {"commitments": result.value, "recommendations_source": result.source}
