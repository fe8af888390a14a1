from typing import Any, Dict, Union

from langgraph.graph import StateGraph, END

from ai_nodes import summary_node, recommendations_node
from config import Settings
from schemas import AnswerPayload, OnboardingGraphState, OnboardingPlan


def build_onboarding_graph():
    """
    Onboarding generation flow:

    1) summary          – behaviour profile (generated or fallback).
    2) recommendations  – starter commitments, prompted with the summary.

    The edge guarantees recommendations never start before a summary exists.
    """
    graph = StateGraph(OnboardingGraphState)

    graph.add_node("summary", summary_node)
    graph.add_node("recommendations", recommendations_node)

    graph.set_entry_point("summary")

    graph.add_edge("summary", "recommendations")
    graph.add_edge("recommendations", END)

    return graph.compile()


async def run_onboarding_plan(payload: AnswerPayload, settings: Settings, graph=None) -> OnboardingPlan:
    graph = graph or build_onboarding_graph()
    result: Union[Dict[str, Any], OnboardingGraphState] = await graph.ainvoke(
        OnboardingGraphState(payload=payload),
        config={"configurable": {"settings": settings}},
    )
    state = (
        result
        if isinstance(result, OnboardingGraphState)
        else OnboardingGraphState.model_validate(result)
    )
    return OnboardingPlan(
        summary=state.summary,
        commitments=state.commitments,
        summary_source=state.summary_source,
        recommendations_source=state.recommendations_source,
    )
