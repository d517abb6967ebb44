from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

import logging

from aides_eligibility.core.normalizer import (
    KIND_YESNO,
    Conclusion,
    Question,
    Rule,
)

logger = logging.getLogger(__name__)


class _Unknown:
    """Marker for a successor id that does not name any node."""

    _instance: Optional["_Unknown"] = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()

Node = Union[Question, Conclusion, _Unknown]


def branch_keys(question: Question) -> List[Tuple[str, str]]:
    """
    Return (branch_key, successor_id) pairs for a question, in display order.

    For 'yesno' the branch keys are the canonical tokens 'yes' and 'no'.
    For 'choice' each option key is both the branch key and the successor id.
    """
    if question.kind == KIND_YESNO:
        return [("yes", question.yes_successor), ("no", question.no_successor)]
    return [(o.key, o.key) for o in question.options]


@dataclass(frozen=True)
class DecisionGraph:
    questions: Tuple[Question, ...]
    rules: Tuple[Rule, ...]
    conclusions: Tuple[Conclusion, ...]
    _questions_by_id: Dict[str, Question] = field(repr=False, compare=False)
    _conclusions_by_id: Dict[str, Conclusion] = field(repr=False, compare=False)
    _rules_by_question: Dict[str, Tuple[Rule, ...]] = field(repr=False, compare=False)

    @property
    def entry_question(self) -> Optional[Question]:
        # questions are kept in ascending step order
        return self.questions[0] if self.questions else None

    def __len__(self) -> int:
        return len(self.questions)

    def question(self, question_id: str) -> Optional[Question]:
        return self._questions_by_id.get(question_id)

    def resolve(self, node_id: str) -> Node:
        """Resolve a node id to a Question, a Conclusion, or UNKNOWN."""
        if not node_id:
            return UNKNOWN
        q = self._questions_by_id.get(node_id)
        if q is not None:
            return q
        c = self._conclusions_by_id.get(node_id)
        if c is not None:
            return c
        return UNKNOWN

    def successors(self, question_id: str) -> Dict[str, Node]:
        q = self._questions_by_id.get(question_id)
        if q is None:
            return {}
        return {key: self.resolve(succ) for key, succ in branch_keys(q)}

    def rules_for(self, question_id: str) -> Tuple[Rule, ...]:
        return self._rules_by_question.get(question_id, ())

    def unresolved(self) -> List[Tuple[str, str]]:
        """(question_id, successor_id) pairs whose successor id is set but names no node."""
        out: List[Tuple[str, str]] = []
        for q in self.questions:
            for _, succ in branch_keys(q):
                if succ and self.resolve(succ) is UNKNOWN:
                    out.append((q.id, succ))
        return out


def build_graph(
    questions: Iterable[Question],
    rules: Iterable[Rule],
    conclusions: Iterable[Conclusion] = (),
) -> DecisionGraph:
    """
    Link questions to their successor nodes.

    Unresolved successor ids are kept and resolve to UNKNOWN (terminal);
    they are reported as warnings, never as build failures. Cycles are not
    detected here: the traversal engine enforces a step budget instead.
    """
    question_list = sorted(questions, key=lambda q: q.step_order)
    rule_list = list(rules)
    conclusion_list = list(conclusions)

    by_id = {q.id: q for q in question_list}

    conclusions_by_id: Dict[str, Conclusion] = {}
    for c in conclusion_list:
        if c.id in by_id:
            logger.warning("Conclusion id %r shadows a question id; the question wins.", c.id)
            continue
        conclusions_by_id.setdefault(c.id, c)

    rules_by_question: Dict[str, List[Rule]] = {}
    for r in rule_list:
        if not r.question_key:
            logger.warning("Rule %s for aide %r has no question key; it can never match.", r.id, r.aide_id)
            continue
        if r.question_key not in by_id:
            logger.warning("Rule %s references unknown question %r.", r.id, r.question_key)
        rules_by_question.setdefault(r.question_key, []).append(r)

    graph = DecisionGraph(
        questions=tuple(question_list),
        rules=tuple(rule_list),
        conclusions=tuple(conclusion_list),
        _questions_by_id=by_id,
        _conclusions_by_id=conclusions_by_id,
        _rules_by_question={k: tuple(v) for k, v in rules_by_question.items()},
    )

    for question_id, succ in graph.unresolved():
        logger.warning("Question %r points to unknown successor %r; treated as terminal.", question_id, succ)

    return graph
