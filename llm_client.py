"""
External generation client.

One chat-completion call per attempt, raced against a timeout. Every failure
comes back as a GenerationOutcome with a `failure` tag; nothing is raised to
the caller and nothing is retried here.
"""

import asyncio
import logging
import time
from typing import Any, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config import Settings
from schemas import GenerationFailure, GenerationOutcome

logger = logging.getLogger("streakproof_ai")


def _chat_model(
    settings: Settings,
    model: str,
    max_tokens: int,
    temperature: float = 0.4,
) -> Any:
    """
    JSON-mode chat model. The timeout race lives in generate_json, so the
    client itself never retries.
    """
    llm = ChatOpenAI(
        model=model,
        api_key=settings.openai_api_key,
        temperature=temperature,
        max_tokens=max_tokens,
        max_retries=0,
        timeout=settings.openai_timeout_s,
    )
    return llm.bind(response_format={"type": "json_object"})


def _elapsed_ms(started_at: float) -> int:
    return int((time.perf_counter() - started_at) * 1000)


async def _attempt(llm: Any, messages: list, delay_s: float) -> Optional[str]:
    if delay_s > 0:
        await asyncio.sleep(delay_s)
    resp = await llm.ainvoke(messages)
    content = getattr(resp, "content", resp)
    if isinstance(content, str):
        return content
    return None


async def generate_json(
    prompt: str,
    *,
    system_prompt: str,
    model: str,
    settings: Settings,
    max_tokens: int = 600,
    temperature: float = 0.4,
) -> GenerationOutcome:
    started_at = time.perf_counter()

    if not settings.openai_configured:
        return GenerationOutcome(
            failure=GenerationFailure.NOT_CONFIGURED,
            duration_ms=_elapsed_ms(started_at),
            model=model,
        )

    messages = [SystemMessage(content=system_prompt), HumanMessage(content=prompt)]
    delay_s = settings.simulate_ai_delay_ms / 1000.0
    timeout_s = settings.openai_timeout_s

    try:
        llm = _chat_model(settings, model, max_tokens, temperature)
        content = await asyncio.wait_for(
            _attempt(llm, messages, delay_s),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError:
        return GenerationOutcome(
            failure=GenerationFailure.TIMED_OUT,
            duration_ms=_elapsed_ms(started_at),
            model=model,
            error=f"no response within {settings.openai_timeout_ms}ms",
        )
    except Exception as e:
        logger.warning(f"[generation] {model} call failed: {type(e).__name__}: {e}")
        return GenerationOutcome(
            failure=GenerationFailure.CALL_ERROR,
            duration_ms=_elapsed_ms(started_at),
            model=model,
            error=f"{type(e).__name__}: {e}",
        )

    if not content or not content.strip():
        return GenerationOutcome(
            failure=GenerationFailure.EMPTY_RESPONSE,
            duration_ms=_elapsed_ms(started_at),
            model=model,
        )

    return GenerationOutcome(
        content=content,
        duration_ms=_elapsed_ms(started_at),
        model=model,
    )
