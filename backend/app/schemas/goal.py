from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator
from typing import Annotated, List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal
from app.models.goal import GoalStatus

def _decimal_to_str(value: Decimal) -> str:
    return format(value.normalize(), "f")

# Decimals travel as strings so clients never round them through floats
DecimalString = Annotated[Decimal, PlainSerializer(_decimal_to_str, return_type=str, when_used="json")]
PositiveDecimal = Annotated[Decimal, Field(gt=0, max_digits=14, decimal_places=4)]

NAME_MAX = 50
REFLECTION_NOTES_MAX = 1000
AI_SUMMARY_MAX = 5000
PROGRESS_NOTES_MAX = 150
ABANDONMENT_REASON_MAX = 1000


def _future_deadline(value: date) -> date:
    if value <= date.today():
        raise ValueError("deadline must be in the future")
    return value


class CommandModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


# --- Commands ---

class CreateGoalRequest(CommandModel):
    name: str = Field(min_length=1, max_length=NAME_MAX)
    target_value: PositiveDecimal
    deadline: date
    parent_goal_id: Optional[str] = None

    check_deadline = field_validator("deadline")(_future_deadline)

class UpdateGoalRequest(CommandModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX)
    target_value: Optional[PositiveDecimal] = None
    deadline: Optional[date] = None
    reflection_notes: Optional[str] = Field(default=None, max_length=REFLECTION_NOTES_MAX)
    ai_summary: Optional[str] = Field(default=None, max_length=AI_SUMMARY_MAX)

    @field_validator("deadline")
    @classmethod
    def check_deadline(cls, value: Optional[date]) -> Optional[date]:
        return _future_deadline(value) if value is not None else value

    @model_validator(mode="after")
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        for field in ("name", "target_value", "deadline"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)

class AbandonGoalRequest(CommandModel):
    reason: str = Field(min_length=1, max_length=ABANDONMENT_REASON_MAX)

class RetryGoalRequest(CommandModel):
    target_value: PositiveDecimal
    deadline: date
    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX)

    check_deadline = field_validator("deadline")(_future_deadline)

class ContinueGoalRequest(CommandModel):
    target_value: PositiveDecimal
    deadline: date
    name: str = Field(min_length=1, max_length=NAME_MAX)

    check_deadline = field_validator("deadline")(_future_deadline)

class SyncStatusesRequest(CommandModel):
    goal_ids: Optional[List[str]] = Field(default=None, max_length=200)

class GenerateAiSummaryRequest(CommandModel):
    force: bool = False

class UpdateAiSummaryRequest(CommandModel):
    ai_summary: str = Field(max_length=AI_SUMMARY_MAX)

class CreateProgressRequest(CommandModel):
    value: PositiveDecimal
    notes: Optional[str] = Field(default=None, max_length=PROGRESS_NOTES_MAX)

class UpdateProgressRequest(CommandModel):
    value: Optional[PositiveDecimal] = None
    notes: Optional[str] = Field(default=None, max_length=PROGRESS_NOTES_MAX)

    @model_validator(mode="after")
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        if "value" in self.model_fields_set and self.value is None:
            raise ValueError("value cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


# --- Responses ---

class GoalComputed(BaseModel):
    current_value: DecimalString
    progress_ratio: DecimalString
    progress_percent: int
    is_locked: bool
    days_remaining: int
    entries_count: Optional[int] = None

class GoalItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_goal_id: Optional[str]
    name: str
    target_value: DecimalString
    deadline: date
    status: GoalStatus
    reflection_notes: Optional[str]
    ai_summary: Optional[str]
    ai_generation_attempts: int
    abandonment_reason: Optional[str]
    created_at: datetime
    updated_at: datetime
    computed: Optional[GoalComputed] = None

class GoalPage(BaseModel):
    items: List[GoalItem]
    page: int
    page_size: int
    total: int

class ProgressItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    goal_id: str
    value: DecimalString
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

class ProgressPage(BaseModel):
    items: List[ProgressItem]
    page: int
    page_size: int
    total: int

class ProgressGoalState(BaseModel):
    id: str
    status: GoalStatus

class ProgressComputed(BaseModel):
    current_value: DecimalString
    progress_percent: int

class ProgressCreated(BaseModel):
    progress: ProgressItem
    goal: ProgressGoalState
    computed: ProgressComputed

class AbandonedGoal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: GoalStatus
    abandonment_reason: Optional[str]

class CompletedGoal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: GoalStatus
    ai_summary: Optional[str]
    ai_generation_attempts: int

class NewIteration(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_goal_id: Optional[str]
    status: GoalStatus
    name: str
    target_value: DecimalString
    deadline: date

class StatusTransition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_status: GoalStatus = Field(alias="from")
    to: GoalStatus

class SyncStatusesResponse(BaseModel):
    updated: List[StatusTransition]

class HistoryComputed(BaseModel):
    current_value: DecimalString

class HistoryItem(BaseModel):
    id: str
    parent_goal_id: Optional[str]
    name: str
    status: GoalStatus
    target_value: DecimalString
    deadline: date
    created_at: datetime
    updated_at: datetime
    ai_summary: Optional[str]
    computed: HistoryComputed

class HistoryResponse(BaseModel):
    items: List[HistoryItem]

class AiSummaryOut(BaseModel):
    id: str
    ai_summary: str

SortOrder = Literal["asc", "desc"]
GoalSort = Literal["created_at", "deadline"]
