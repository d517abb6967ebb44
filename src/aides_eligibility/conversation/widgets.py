from __future__ import annotations

from typing import Dict, Iterable

from aides_eligibility.core.errors import DataShapeError
from aides_eligibility.core.normalizer import KIND_CHOICE, KIND_YESNO, Question

# Closed table: question kind -> renderer identifier understood by the UI.
QUESTION_WIDGETS: Dict[str, str] = {
    KIND_YESNO: "yes_no_buttons",
    KIND_CHOICE: "option_list",
}


def validate_widgets(questions: Iterable[Question]) -> None:
    """Fail at load time if any question has a kind the UI cannot render."""
    unknown = sorted({q.kind for q in questions if q.kind not in QUESTION_WIDGETS})
    if unknown:
        raise DataShapeError(
            f"No answer widget registered for question kinds {unknown}. "
            f"Known kinds: {sorted(QUESTION_WIDGETS)}"
        )


def widget_for(question: Question) -> str:
    return QUESTION_WIDGETS[question.kind]
