from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# string | string[] | number | row-keyed map of column values (matrix)
AnswerValue = Union[str, List[str], int, float, Dict[str, Any]]
AnswerSet = Dict[str, AnswerValue]

QuestionType = Literal[
    "single_choice",
    "multiple_choice",
    "matrix_single",
    "matrix_multiple",
    "rating_scale",
    "open_text",
    "ranking",
    "number_input",
]

CHOICE_TYPES = ("single_choice", "multiple_choice")
MATRIX_TYPES = ("matrix_single", "matrix_multiple")

ConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
    "greater_equal",
    "less_equal",
    "is_answered",
    "is_not_answered",
]

NumericOperator = Literal[
    "equals",
    "not_equals",
    "greater_than",
    "less_than",
    "greater_equal",
    "less_equal",
]

COMPUTED_PREFIX = "_cv."


class CamelModel(BaseModel):
    """Base for persisted shapes: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Choices, matrix, validation
# ---------------------------------------------------------------------------


class Choice(CamelModel):
    id: str
    text: str
    value: str
    is_exclusive: Optional[bool] = None


class MatrixRow(CamelModel):
    id: str
    text: str


class MatrixColumn(CamelModel):
    id: str
    text: str
    value: str
    is_exclusive: Optional[bool] = None


class ValidationRule(CamelModel):
    required: Optional[bool] = None
    min_select: Optional[int] = None
    max_select: Optional[int] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    pattern: Optional[str] = None
    pattern_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Conditions and branching
# ---------------------------------------------------------------------------


class Condition(CamelModel):
    id: str = ""
    question_id: str
    # plain str: definitions may carry operators this engine does not know yet
    operator: str
    value: Union[str, List[str], int, float, None] = None


class ConditionGroup(CamelModel):
    id: str = ""
    connector: Literal["and", "or"] = "and"
    conditions: List[Condition] = Field(default_factory=list)
    groups: List["ConditionGroup"] = Field(default_factory=list)


class GoToPageAction(CamelModel):
    type: Literal["go_to_page"] = "go_to_page"
    page_id: str


class SkipToEndAction(CamelModel):
    type: Literal["skip_to_end"] = "skip_to_end"


class DisqualifyAction(CamelModel):
    type: Literal["disqualify"] = "disqualify"


class AdvanceAction(CamelModel):
    """Implicit "move to the next page in document order". Never persisted."""

    type: Literal["advance"] = "advance"


BranchingAction = Annotated[
    Union[GoToPageAction, SkipToEndAction, DisqualifyAction],
    Field(discriminator="type"),
]
NavigationAction = Union[GoToPageAction, SkipToEndAction, DisqualifyAction, AdvanceAction]


class BranchingRule(CamelModel):
    id: str = ""
    condition_group: ConditionGroup = Field(default_factory=ConditionGroup)
    action: BranchingAction
    priority: int = 0


class DisplayCondition(CamelModel):
    condition_group: ConditionGroup = Field(default_factory=ConditionGroup)
    behavior: Literal["show", "hide"] = "show"


class CarryForward(CamelModel):
    question_id: str
    mode: Literal["selected", "not_selected"] = "selected"


# ---------------------------------------------------------------------------
# Questions, pages
# ---------------------------------------------------------------------------


class Question(CamelModel):
    id: str
    type: QuestionType
    text: str = ""
    description: Optional[str] = None
    required: bool = False
    choices: Optional[List[Choice]] = None
    matrix_rows: Optional[List[MatrixRow]] = None
    matrix_columns: Optional[List[MatrixColumn]] = None
    rating_min: Optional[int] = None
    rating_max: Optional[int] = None
    rating_min_label: Optional[str] = None
    rating_max_label: Optional[str] = None
    validation: Optional[ValidationRule] = None
    display_condition: Optional[DisplayCondition] = None
    randomize_choices: Optional[bool] = None
    carry_forward: Optional[CarryForward] = None


class SurveyPage(CamelModel):
    id: str
    title: str = ""
    description: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)
    branching_rules: List[BranchingRule] = Field(default_factory=list)


class SurveyStructure(CamelModel):
    pages: List[SurveyPage] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Quotas
# ---------------------------------------------------------------------------


class QuotaCondition(CamelModel):
    question_id: str
    # stored definitions predating numeric quotas have no conditionType
    condition_type: Literal["choice", "numeric"] = "choice"
    selected_values: Optional[List[str]] = None
    operator: Optional[str] = None
    value: Optional[float] = None


class Quota(CamelModel):
    id: str
    name: str = ""
    conditions: List[QuotaCondition] = Field(default_factory=list)
    limit: int
    action: Literal["close", "disqualify"] = "close"
    enabled: bool = True


# ---------------------------------------------------------------------------
# Computed variables
# ---------------------------------------------------------------------------


class ComputedVariableInput(CamelModel):
    question_id: str
    param_name: str


class ComputedVariableOutput(CamelModel):
    response_key: str
    variable_id: str
    label: str = ""


class ComputedVariableTrigger(CamelModel):
    type: Literal["on_page_leave"] = "on_page_leave"
    page_id: str


class ComputedVariable(CamelModel):
    id: str
    name: str = ""
    endpoint: str
    trigger: ComputedVariableTrigger
    input_mapping: List[ComputedVariableInput] = Field(default_factory=list)
    output_mapping: List[ComputedVariableOutput] = Field(default_factory=list)
    fallback_values: Optional[Dict[str, str]] = None
    timeout: Optional[int] = None  # ms
    enabled: bool = True


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookConfig(CamelModel):
    id: str = ""
    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    secret: str = ""
    enabled: bool = True
    retry_count: int = 0
    retry_interval: int = 0  # ms


class Respondent(CamelModel):
    uid: Optional[str] = None
    params: Dict[str, str] = Field(default_factory=dict)


class ResponseMetadata(CamelModel):
    completed_at: Optional[str] = None
    duration: float = 0
    page_history: List[str] = Field(default_factory=list)


class WebhookPayload(CamelModel):
    event: Literal["response.completed", "response.disqualified"] = "response.completed"
    survey_id: str
    respondent: Respondent = Field(default_factory=Respondent)
    data: AnswerSet = Field(default_factory=dict)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


# ---------------------------------------------------------------------------
# Survey root
# ---------------------------------------------------------------------------


class RedirectSettings(CamelModel):
    completion_url: Optional[str] = None
    disqualify_url: Optional[str] = None
    quota_full_url: Optional[str] = None
    pass_params: bool = False


class RespondentSettings(CamelModel):
    required_params: List[str] = Field(default_factory=list)
    identifier_param: Optional[str] = None
    prevent_duplicate: bool = False


class SurveySettings(CamelModel):
    show_progress_bar: bool = False
    allow_back: bool = True
    randomize_pages: bool = False
    completion_message: Optional[str] = None
    disqualify_message: Optional[str] = None
    redirect: RedirectSettings = Field(default_factory=RedirectSettings)
    respondent: RespondentSettings = Field(default_factory=RespondentSettings)


class Survey(CamelModel):
    id: str
    title: str = ""
    description: str = ""
    status: Literal["draft", "published", "closed"] = "draft"
    settings: SurveySettings = Field(default_factory=SurveySettings)
    structure: SurveyStructure = Field(default_factory=SurveyStructure)
    quotas: List[Quota] = Field(default_factory=list)
    computed_variables: List[ComputedVariable] = Field(default_factory=list)
    webhooks: List[WebhookConfig] = Field(default_factory=list)

    @property
    def pages(self) -> List[SurveyPage]:
        return self.structure.pages

    def all_questions(self) -> List[Question]:
        return [q for page in self.structure.pages for q in page.questions]

    def get_page(self, page_id: str) -> Optional[SurveyPage]:
        for page in self.structure.pages:
            if page.id == page_id:
                return page
        return None


ConditionGroup.model_rebuild()
