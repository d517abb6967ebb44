from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import logging
import uuid

from aides_eligibility.conversation.events import (
    CONCLUDED,
    CYCLE_DETECTED,
    QUESTION_ASKED,
    UNRESOLVED_SUCCESSOR,
    InterviewEvent,
    InterviewEvents,
)
from aides_eligibility.conversation.widgets import validate_widgets
from aides_eligibility.core.errors import InvalidAnswerError, SessionConcludedError
from aides_eligibility.core.graph import UNKNOWN, DecisionGraph, build_graph
from aides_eligibility.core.normalizer import (
    KIND_YESNO,
    Aide,
    Conclusion,
    NormalizedData,
    Question,
    Rule,
    RowsInput,
    normalize,
)

logger = logging.getLogger(__name__)

STATE_ASKING = "asking"
STATE_CONCLUDED = "concluded"

YES_TOKENS = frozenset({"yes", "y", "oui", "true", "1", "opt_oui"})
NO_TOKENS = frozenset({"no", "n", "non", "false", "0", "opt_non"})


@dataclass(frozen=True)
class Dataset:
    """Immutable snapshot of one fetch of the rule table. Safe to share across sessions."""
    data: NormalizedData
    graph: DecisionGraph
    _aides_by_id: Dict[str, Aide] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self._aides_by_id:
            object.__setattr__(self, "_aides_by_id", {a.id: a for a in self.data.aides})

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self.graph.questions

    @property
    def aides(self) -> Tuple[Aide, ...]:
        return self.data.aides

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return self.data.rules

    def aide(self, aide_id: str) -> Optional[Aide]:
        return self._aides_by_id.get(aide_id)


@dataclass(frozen=True)
class PathStep:
    question_id: str
    answer: str
    branch_key: str
    successor_id: str


@dataclass(frozen=True)
class InterviewStep:
    """
    Outcome of one answer() call.

    Either next_question is set (still asking), or the interview has
    concluded and aides holds the matched benefits.
    """
    next_question: Optional[Question] = None
    aides: Tuple[Aide, ...] = ()
    conclusion: Optional[Conclusion] = None
    cycle_detected: bool = False
    unresolved_successor: str = ""

    @property
    def concluded(self) -> bool:
        return self.next_question is None

    @property
    def aide_ids(self) -> List[str]:
        return [a.id for a in self.aides]


def _yesno_token(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if not isinstance(value, str):
        return None
    token = value.strip().lower()
    if token in YES_TOKENS:
        return "yes"
    if token in NO_TOKENS:
        return "no"
    return None


class InterviewSession:
    """
    Cursor over a Dataset: Asking(current node) until Concluded(matched aides).

    The session owns its own state; the dataset is only read. One answer()
    call advances exactly one step and there is no backtracking.
    """

    def __init__(
        self,
        dataset: Dataset,
        events: Optional[InterviewEvents] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.dataset = dataset
        self.events = events
        self.session_id = session_id or uuid.uuid4().hex

        self.state = STATE_ASKING
        self.current_node_id: str = ""
        self.path: List[PathStep] = []
        self.conclusion: Optional[Conclusion] = None
        self.cycle_detected = False
        self.unresolved_successor = ""

        self._matched: Dict[str, Aide] = {}
        self._steps = 0
        self._step_budget = len(dataset.graph)

        entry = dataset.graph.entry_question
        if entry is None:
            logger.warning("Dataset has no questions; session %s concludes immediately.", self.session_id)
            self._conclude()
        else:
            self.current_node_id = entry.id
            self._publish(QUESTION_ASKED, question_id=entry.id)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def concluded(self) -> bool:
        return self.state == STATE_CONCLUDED

    @property
    def current_question(self) -> Optional[Question]:
        if self.concluded:
            return None
        return self.dataset.graph.question(self.current_node_id)

    @property
    def matched_aides(self) -> Tuple[Aide, ...]:
        return tuple(self._matched.values())

    def result(self) -> InterviewStep:
        return InterviewStep(
            next_question=self.current_question,
            aides=self.matched_aides if self.concluded else (),
            conclusion=self.conclusion,
            cycle_detected=self.cycle_detected,
            unresolved_successor=self.unresolved_successor,
        )

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    def answer(self, value: Any) -> InterviewStep:
        if self.concluded:
            raise SessionConcludedError(f"Session {self.session_id} has already concluded.")

        question = self.current_question
        if question is None:
            # current_node_id always names a question while asking
            raise SessionConcludedError(f"Session {self.session_id} has no current question.")

        branch_key, successor_id = self._branch_for(question, value)

        self._steps += 1
        self.path.append(
            PathStep(
                question_id=question.id,
                answer=str(value),
                branch_key=branch_key,
                successor_id=successor_id,
            )
        )

        if self._steps > self._step_budget:
            logger.warning(
                "Session %s exceeded %d steps at question %r; the rule table likely contains a cycle.",
                self.session_id, self._step_budget, question.id,
            )
            self.cycle_detected = True
            self._matched.clear()
            self._publish(CYCLE_DETECTED, question_id=question.id, steps=self._steps)
            self._conclude()
            return self.result()

        self._accumulate(question, branch_key, successor_id)

        node = self.dataset.graph.resolve(successor_id)
        if isinstance(node, Question):
            self.current_node_id = node.id
            self._publish(QUESTION_ASKED, question_id=node.id)
            return self.result()

        if isinstance(node, Conclusion):
            self.conclusion = node
        elif successor_id and node is UNKNOWN:
            logger.warning(
                "Session %s: successor %r of question %r does not resolve; concluding.",
                self.session_id, successor_id, question.id,
            )
            self.unresolved_successor = successor_id
            self._publish(UNRESOLVED_SUCCESSOR, question_id=question.id, successor_id=successor_id)

        self._conclude()
        return self.result()

    def _branch_for(self, question: Question, value: Any) -> Tuple[str, str]:
        """Validate an answer; return (branch_key, successor_id) without touching state."""
        if question.kind == KIND_YESNO:
            token = _yesno_token(value)
            if token is None and isinstance(value, str):
                # Option keys answer by position: A is yes, B is no.
                raw = value.strip()
                if raw and raw == question.yes_successor:
                    token = "yes"
                elif raw and raw == question.no_successor:
                    token = "no"
            if token is None:
                raise InvalidAnswerError(
                    f"{value!r} is not a yes/no answer for question {question.id!r}."
                )
            successor = question.yes_successor if token == "yes" else question.no_successor
            return token, successor

        if not question.options:
            # Free-form question (e.g. a number): any answer ends the interview.
            key = value.strip() if isinstance(value, str) else ("" if value is None else str(value))
            return key, ""

        if not isinstance(value, str) or value.strip() not in question.option_keys:
            raise InvalidAnswerError(
                f"{value!r} is not one of the options {list(question.option_keys)} "
                f"of question {question.id!r}."
            )
        key = value.strip()
        return key, key

    def _accumulate(self, question: Question, branch_key: str, successor_id: str) -> None:
        # Rules are OR'ed: any matching rule qualifies its aide.
        for rule in self.dataset.graph.rules_for(question.id):
            if not self._rule_matches(question, rule, branch_key, successor_id):
                continue
            if rule.aide_id in self._matched:
                continue
            aide = self.dataset.aide(rule.aide_id)
            if aide is None:
                aide = Aide(id=rule.aide_id, name=rule.aide_id, description="")
            self._matched[aide.id] = aide

    @staticmethod
    def _rule_matches(question: Question, rule: Rule, branch_key: str, successor_id: str) -> bool:
        condition = rule.condition
        if not condition:
            return True
        if successor_id and condition == successor_id:
            return True
        if question.kind == KIND_YESNO:
            return condition == branch_key or _yesno_token(condition) == branch_key
        return condition == branch_key

    def _conclude(self) -> None:
        self.state = STATE_CONCLUDED
        self.current_node_id = ""
        self._publish(
            CONCLUDED,
            aide_ids=[a.id for a in self.matched_aides],
            conclusion_id=self.conclusion.id if self.conclusion else "",
            cycle_detected=self.cycle_detected,
        )

    def _publish(self, kind: str, **payload: Any) -> None:
        if self.events is not None:
            self.events.publish(InterviewEvent(kind=kind, session_id=self.session_id, payload=payload))


# ---------------------------------------------------------------------------
# Engine API used by the UI layer
# ---------------------------------------------------------------------------

def load_dataset(rows: RowsInput) -> Dataset:
    """
    Normalize fetched rows and build the decision graph.

    Raises DataShapeError if the rows cannot form a dataset. Unresolved
    successors are tolerated (logged by the graph builder).
    """
    data = normalize(rows)
    graph = build_graph(data.questions, data.rules, data.conclusions)
    validate_widgets(graph.questions)
    logger.info(
        "Loaded dataset: %d questions, %d aides, entry=%r, unresolved successors=%d.",
        len(graph.questions),
        len(data.aides),
        graph.entry_question.id if graph.entry_question else None,
        len(graph.unresolved()),
    )
    return Dataset(data=data, graph=graph)


def start_session(dataset: Dataset, events: Optional[InterviewEvents] = None) -> InterviewSession:
    return InterviewSession(dataset, events=events)


def answer(session: InterviewSession, value: Any) -> InterviewStep:
    return session.answer(value)
