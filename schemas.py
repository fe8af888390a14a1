"""
Pydantic contracts for the onboarding pipeline.

- AnswerPayload is what the onboarding screens collect. Old clients send
  camelCase / legacy names; they are mapped onto the canonical snake_case
  fields here, once, at the boundary.
- ProfileSummary and CommitmentRecommendation are strict: they double as the
  contract that generated output must satisfy before it reaches the user.
"""

from enum import Enum
from typing import Any, Dict, Generic, List, Literal, Mapping, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr, field_validator


Cadence = Literal["daily", "weekly"]
ProofMode = Literal["none", "tick_only", "photo_optional", "photo_required"]

CADENCES = ("daily", "weekly")
PROOF_MODES = ("none", "tick_only", "photo_optional", "photo_required")

T = TypeVar("T")


# --------------------------------------------------------------------
# Answer payload
# --------------------------------------------------------------------

_LIST_FIELDS = (
    "roles",
    "pressures",
    "focus_domains",
    "struggle_patterns",
    "reward_style",
    "tone_preferences",
)
_TEXT_FIELDS = ("change_style", "current_state", "accountability_level")


class AnswerPayload(BaseModel):
    """
    Accumulated onboarding answers for one session.

    No field is ever None: lists default to [] and strings to "".
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    roles: List[str] = Field(default_factory=list)
    pressures: List[str] = Field(default_factory=list)
    focus_domains: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("focus_domains", "focusDomains"),
    )
    struggle_patterns: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("struggle_patterns", "strugglePatterns"),
    )
    reward_style: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("reward_style", "rewardStyle"),
    )
    change_style: str = Field(
        default="",
        validation_alias=AliasChoices("change_style", "changeStyle"),
    )
    current_state: str = Field(
        default="",
        validation_alias=AliasChoices("current_state", "currentState"),
    )
    tone_preferences: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tone_preferences", "tonePreferences"),
    )
    accountability_level: str = Field(
        default="",
        validation_alias=AliasChoices(
            "accountability_level", "accountabilityLevel", "preferred_cadence"
        ),
    )

    @field_validator(*_LIST_FIELDS, mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> List[str]:
        if value is None or isinstance(value, Mapping):
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, (list, tuple, set)):
            return [str(v) for v in value if v is not None]
        return [str(value)]

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None or isinstance(value, Mapping):
            return ""
        if isinstance(value, (list, tuple)):
            # single-choice screens occasionally post a one-element list
            return str(value[0]) if value else ""
        return str(value)

    @classmethod
    def canonical_field(cls, name: str) -> str:
        """Map a canonical or legacy field name to the canonical one."""
        if name in cls.model_fields:
            return name
        for field_name, info in cls.model_fields.items():
            alias = info.validation_alias
            if isinstance(alias, AliasChoices) and name in alias.choices:
                return field_name
        raise KeyError(f"Unknown onboarding field: {name}")

    @property
    def primary_focus(self) -> str:
        return self.focus_domains[0] if self.focus_domains else ""


# --------------------------------------------------------------------
# Generated outputs (strict: these are the generation contract)
# --------------------------------------------------------------------


class ProfileSummary(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    profile_name: StrictStr = Field(..., min_length=1)
    strengths: List[StrictStr]
    risk_zones: List[StrictStr]
    best_practices: List[StrictStr]

    @field_validator("profile_name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("profile_name must not be blank")
        return value

    def is_complete(self) -> bool:
        """Every section has at least one bullet (empty sections render as broken UI)."""
        return bool(self.strengths and self.risk_zones and self.best_practices)


class CommitmentRecommendation(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    title: StrictStr = Field(..., min_length=1)
    short_description: StrictStr
    cadence: Cadence
    proof_mode: ProofMode
    reason: StrictStr = Field(..., min_length=1)

    @field_validator("title", "reason")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


# --------------------------------------------------------------------
# Request / response bodies
# --------------------------------------------------------------------


class RecommendationsRequest(BaseModel):
    """
    Body of POST /onboarding/recommendations.

    The client sends the summary it already holds; the server does not
    recompute it. The summary is kept raw here and checked against the
    ProfileSummary contract by the endpoint; a missing or unusable one is
    defaulted server-side.
    """
    payload: AnswerPayload = Field(default_factory=AnswerPayload)
    summary: Optional[Dict[str, Any]] = None

    @field_validator("payload", mode="before")
    @classmethod
    def _payload_object(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else {}

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_object(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else None


class RecommendationsResponse(BaseModel):
    commitments: List[CommitmentRecommendation]


# --------------------------------------------------------------------
# Generation outcome + sourced results
# --------------------------------------------------------------------


class GenerationFailure(str, Enum):
    NOT_CONFIGURED = "not_configured"
    TIMED_OUT = "timed_out"
    EMPTY_RESPONSE = "empty_response"
    CALL_ERROR = "call_error"


class GenerationSource(str, Enum):
    FALLBACK = "fallback"
    SERVER = "server"


class GenerationOutcome(BaseModel):
    """Raw result of one generation attempt: text believed to be JSON, or a failure."""
    content: Optional[str] = None
    failure: Optional[GenerationFailure] = None
    duration_ms: int = 0
    model: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.content is not None


class Sourced(BaseModel, Generic[T]):
    """A value plus where it came from (deterministic fallback or the generator)."""
    source: GenerationSource
    value: T


class OnboardingPlan(BaseModel):
    summary: ProfileSummary
    commitments: List[CommitmentRecommendation]
    summary_source: GenerationSource
    recommendations_source: GenerationSource


class OnboardingGraphState(BaseModel):
    """State carried through the summary -> recommendations graph."""
    payload: AnswerPayload = Field(default_factory=AnswerPayload)
    summary: Optional[ProfileSummary] = None
    summary_source: Optional[GenerationSource] = None
    commitments: List[CommitmentRecommendation] = Field(default_factory=list)
    recommendations_source: Optional[GenerationSource] = None
