"""
Deterministic onboarding results.

Used whenever the generator is unavailable, slow, or returns something that
fails the contract. Pure functions of the AnswerPayload: same input, same
output, no I/O. The client uses the same functions to show "quick picks"
before the server answers.
"""

from typing import List

from schemas import AnswerPayload, CommitmentRecommendation, ProfileSummary

# How many fallback recommendations a "micro" change-style user gets.
# Applied as a plain slice after any domain-specific item is prepended.
MICRO_RECOMMENDATION_LIMIT = 2

MOVEMENT_DOMAINS = ("fitness", "health")

PROFILE_NAMES = {
    "intensive": "Focused Achiever",
    "micro": "Steady Builder",
}
DEFAULT_PROFILE_NAME = "Balanced Practitioner"


def summarize_fallback(payload: AnswerPayload) -> ProfileSummary:
    focus_area = payload.primary_focus.strip() or "personal growth"
    style = payload.change_style.strip().lower()

    return ProfileSummary(
        profile_name=PROFILE_NAMES.get(style, DEFAULT_PROFILE_NAME),
        strengths=[
            "You have self-awareness about your patterns",
            "You are motivated to make positive changes",
            f"You have clear focus on {focus_area}",
        ],
        risk_zones=[
            "Taking on too much at once can lead to burnout",
            "Inconsistent environments may disrupt routines",
            "High expectations without flexibility can cause setbacks",
        ],
        best_practices=[
            "Start with one small commitment and build from there",
            "Track your progress daily to stay accountable",
            "Adjust your approach when something is not working",
        ],
    )


def _base_recommendations() -> List[CommitmentRecommendation]:
    return [
        CommitmentRecommendation(
            title="Morning Check-in",
            short_description="Start your day with intention by reviewing your goals",
            cadence="daily",
            proof_mode="tick_only",
            reason="Building awareness of daily priorities helps maintain focus",
        ),
        CommitmentRecommendation(
            title="Evening Reflection",
            short_description="Take 5 minutes to note what went well today",
            cadence="daily",
            proof_mode="tick_only",
            reason="Reflecting on progress reinforces positive habits",
        ),
        CommitmentRecommendation(
            title="Weekly Review",
            short_description="Review your week and plan the next one",
            cadence="weekly",
            proof_mode="tick_only",
            reason="Regular reviews help you stay on track with larger goals",
        ),
    ]


def recommend_fallback(
    payload: AnswerPayload,
    micro_limit: int = MICRO_RECOMMENDATION_LIMIT,
) -> List[CommitmentRecommendation]:
    """
    Fixed starter commitments, in display order.

    - Movement Break goes first when the main focus is fitness/health.
    - "micro" change style keeps only the first `micro_limit` items.
    """
    commitments = _base_recommendations()

    if payload.primary_focus.strip().lower() in MOVEMENT_DOMAINS:
        commitments.insert(
            0,
            CommitmentRecommendation(
                title="Movement Break",
                short_description="Get up and move for at least 10 minutes",
                cadence="daily",
                proof_mode="tick_only",
                reason="Regular movement improves energy and focus throughout the day",
            ),
        )

    if payload.change_style.strip().lower() == "micro":
        return commitments[: max(micro_limit, 1)]

    return commitments
