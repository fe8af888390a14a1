"""
Contract checks for generated onboarding payloads.

A payload is either accepted whole or rejected whole. Nothing here raises:
rejection is signalled by returning None so callers can fall back.
"""

import json
import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import TypeAdapter, ValidationError

from schemas import CommitmentRecommendation, ProfileSummary

logger = logging.getLogger("streakproof_ai")

_RECOMMENDATION_LIST = TypeAdapter(List[CommitmentRecommendation])

RawPayload = Union[str, bytes, Mapping[str, Any]]


def _decode(raw: RawPayload) -> Optional[Mapping[str, Any]]:
    if isinstance(raw, Mapping):
        return raw
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.info(f"[contract] invalid JSON from generator: {e}")
        return None
    if not isinstance(data, dict):
        logger.info(f"[contract] expected a JSON object, got {type(data).__name__}")
        return None
    return data


def validate_profile_summary(raw: RawPayload) -> Optional[ProfileSummary]:
    """
    Accept a generated profile only if profile_name is a non-empty string and
    strengths / risk_zones / best_practices are all lists of strings.

    Empty lists pass here; callers decide whether an empty section is usable.
    """
    data = _decode(raw)
    if data is None:
        return None
    try:
        return ProfileSummary.model_validate(data)
    except ValidationError as e:
        logger.info(f"[contract] profile rejected: {e.error_count()} error(s)")
        return None


def validate_recommendations(raw: RawPayload) -> Optional[List[CommitmentRecommendation]]:
    """
    Accept generated recommendations only if `commitments` is a list and
    every item matches CommitmentRecommendation (cadence and proof_mode in
    their enums, non-empty title and reason).
    """
    data = _decode(raw)
    if data is None:
        return None
    if "commitments" not in data:
        logger.info("[contract] recommendations rejected: missing 'commitments'")
        return None
    try:
        return _RECOMMENDATION_LIST.validate_python(data["commitments"], strict=True)
    except ValidationError as e:
        logger.info(f"[contract] recommendations rejected: {e.error_count()} error(s)")
        return None
