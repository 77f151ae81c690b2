"""Page-level navigation: question visibility and the branching state machine.

States are page indexes plus the terminal pseudo-states ``completed`` and
``disqualified``. ``determine_next_page`` picks an action from a page's rules;
``resolve_transition`` turns that action into the next state. Neither keeps
state between calls, so navigation can be recomputed after the respondent
goes back a page.
"""

from __future__ import annotations

from typing import Any, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from .conditions import evaluate_condition_group
from .schema import (
    AdvanceAction,
    DisplayCondition,
    GoToPageAction,
    NavigationAction,
    Question,
    SkipToEndAction,
    SurveyPage,
)


class NavigationState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["in_progress", "completed", "disqualified"]
    page_index: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != "in_progress"


INITIAL_STATE = NavigationState(status="in_progress", page_index=0)
COMPLETED = NavigationState(status="completed")
DISQUALIFIED = NavigationState(status="disqualified")


def should_show_question(display_condition: DisplayCondition, answers: Mapping[str, Any]) -> bool:
    result = evaluate_condition_group(display_condition.condition_group, answers)
    return result if display_condition.behavior == "show" else not result


def get_visible_questions(questions: Sequence[Question], answers: Mapping[str, Any]) -> List[Question]:
    return [
        q
        for q in questions
        if q.display_condition is None or should_show_question(q.display_condition, answers)
    ]


def _page_index(pages: Sequence[SurveyPage], page_id: str) -> int:
    return next((i for i, p in enumerate(pages) if p.id == page_id), -1)


def determine_next_page(
    current_page: SurveyPage,
    pages: Sequence[SurveyPage],
    answers: Mapping[str, Any],
) -> NavigationAction:
    """Action of the first matching rule (ascending priority), else the default.

    The default is ``advance`` while a later page exists and ``skip_to_end`` on
    the last page.
    """
    # sorted() is stable: equal priorities keep authoring order
    for rule in sorted(current_page.branching_rules, key=lambda r: r.priority):
        if evaluate_condition_group(rule.condition_group, answers):
            return rule.action

    if _page_index(pages, current_page.id) < len(pages) - 1:
        return AdvanceAction()
    return SkipToEndAction()


def resolve_transition(
    action: NavigationAction,
    current_index: int,
    pages: Sequence[SurveyPage],
) -> NavigationState:
    if action.type == "disqualify":
        return DISQUALIFIED
    if action.type == "skip_to_end":
        return COMPLETED
    if isinstance(action, GoToPageAction):
        target = _page_index(pages, action.page_id)
        if target != -1:
            return NavigationState(status="in_progress", page_index=target)
        # target page was deleted after the rule was authored
    next_index = current_index + 1
    if next_index < len(pages):
        return NavigationState(status="in_progress", page_index=next_index)
    return COMPLETED


def next_state(
    current_index: int,
    pages: Sequence[SurveyPage],
    answers: Mapping[str, Any],
) -> NavigationState:
    """``determine_next_page`` followed by ``resolve_transition``."""
    if not 0 <= current_index < len(pages):
        return COMPLETED
    action = determine_next_page(pages[current_index], pages, answers)
    return resolve_transition(action, current_index, pages)
