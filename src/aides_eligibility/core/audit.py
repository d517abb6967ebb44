from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from aides_eligibility.core.engine import InterviewSession
from aides_eligibility.core.normalizer import Conclusion, Question


@dataclass
class AuditStep:
    """
    A single answered question along the interview path.
    """
    question_id: str
    question_text: str
    answer: str
    branch_key: str
    successor_id: str
    outcome: str  # 'question', 'conclusion', 'end', 'unresolved'


@dataclass
class InterviewAudit:
    """
    Canonical facts about one interview.

    These are the facts a recommendation screen is allowed to show: the
    questions actually asked, the answers given, and the aides that matched.
    They can be shown to the user for review or attached to a support request.
    """
    session_id: str
    finished: bool

    steps: List[AuditStep]
    matched_aide_ids: List[str]
    matched_aide_names: List[str]

    conclusion_id: Optional[str]
    conclusion_text: Optional[str]

    cycle_detected: bool
    unresolved_successor: Optional[str]


def _outcome_for(session: InterviewSession, successor_id: str) -> str:
    if not successor_id:
        return "end"
    node = session.dataset.graph.resolve(successor_id)
    if isinstance(node, Question):
        return "question"
    if isinstance(node, Conclusion):
        return "conclusion"
    return "unresolved"


def build_audit_snapshot(session: InterviewSession) -> InterviewAudit:
    """
    Build the audit facts for a session, finished or not.

    The snapshot is a copy: later answers on the session do not change it.
    """
    graph = session.dataset.graph

    steps: List[AuditStep] = []
    for p in session.path:
        q = graph.question(p.question_id)
        steps.append(
            AuditStep(
                question_id=p.question_id,
                question_text=q.text if q is not None else "",
                answer=p.answer,
                branch_key=p.branch_key,
                successor_id=p.successor_id,
                outcome=_outcome_for(session, p.successor_id),
            )
        )

    aides = session.matched_aides if session.concluded else ()

    return InterviewAudit(
        session_id=session.session_id,
        finished=session.concluded,
        steps=steps,
        matched_aide_ids=[a.id for a in aides],
        matched_aide_names=[a.name for a in aides],
        conclusion_id=session.conclusion.id if session.conclusion else None,
        conclusion_text=(session.conclusion.text or None) if session.conclusion else None,
        cycle_detected=session.cycle_detected,
        unresolved_successor=session.unresolved_successor or None,
    )
