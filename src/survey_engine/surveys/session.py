from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from .branching import INITIAL_STATE, NavigationState, determine_next_page, get_visible_questions, resolve_transition
from .carry_forward import resolve_carry_forward
from .schema import NavigationAction, Question, Survey, SurveyPage
from .validation import ValidationError, validate_page


@dataclass
class StepResult:
    state: NavigationState
    errors: List[ValidationError] = field(default_factory=list)
    action: Any = None  # NavigationAction when the page validated


@dataclass
class SurveySession:
    """One respondent's walk through a survey, without any rendering.

    Keeps the answer set, the current navigation state and the visited-page
    history; every decision is delegated to the stateless engine functions.
    """

    survey: Survey
    answers: Dict[str, Any] = field(default_factory=dict)
    state: NavigationState = field(default_factory=lambda: INITIAL_STATE)
    history: List[int] = field(default_factory=lambda: [0])

    @property
    def pages(self) -> List[SurveyPage]:
        return self.survey.pages

    @property
    def current_page(self) -> SurveyPage:
        if self.state.page_index is None:
            raise RuntimeError(f"Session is {self.state.status}; no current page")
        return self.pages[self.state.page_index]

    @property
    def page_history(self) -> List[str]:
        return [self.pages[i].id for i in self.history]

    def visible_questions(self) -> List[Question]:
        all_questions = self.survey.all_questions()
        visible = get_visible_questions(self.current_page.questions, self.answers)
        return [resolve_carry_forward(q, all_questions, self.answers) for q in visible]

    def answer(self, question_id: str, value: Any) -> None:
        self.answers[question_id] = value

    def apply_computed(self, variables: Mapping[str, str]) -> None:
        self.answers.update(variables)

    def next(self) -> StepResult:
        """Validate the current page, then follow the branching rules."""
        if self.state.is_terminal:
            return StepResult(state=self.state)
        errors = validate_page(self.visible_questions(), self.answers)
        if errors:
            return StepResult(state=self.state, errors=errors)
        index = self.state.page_index or 0
        action: NavigationAction = determine_next_page(self.current_page, self.pages, self.answers)
        self.state = resolve_transition(action, index, self.pages)
        if self.state.page_index is not None:
            self.history.append(self.state.page_index)
        return StepResult(state=self.state, action=action)

    def back(self) -> bool:
        if not self.survey.settings.allow_back or self.state.is_terminal:
            return False
        if len(self.history) <= 1:
            return False
        self.history.pop()
        self.state = NavigationState(status="in_progress", page_index=self.history[-1])
        return True
