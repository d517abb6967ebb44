from __future__ import annotations

import logging
from typing import Callable, List, Optional

from aides_eligibility.config import APP_NAME, APP_VERSION, LOG_LEVEL
from aides_eligibility.conversation.events import InterviewEvent, InterviewEvents
from aides_eligibility.conversation.widgets import widget_for
from aides_eligibility.core.audit import build_audit_snapshot
from aides_eligibility.core.data_loader import RowSource, row_source_from_config
from aides_eligibility.core.engine import InterviewStep, load_dataset, start_session
from aides_eligibility.core.errors import DataFetchError, DataShapeError, InvalidAnswerError
from aides_eligibility.core.normalizer import Question

logger = logging.getLogger(__name__)


def _prompt_lines(question: Question) -> List[str]:
    lines = [question.text or question.id]
    if question.hint:
        lines.append(f"  ({question.hint})")
    if widget_for(question) == "yes_no_buttons":
        lines.append("  [oui / non]")
    else:
        for o in question.options:
            lines.append(f"  {o.key}: {o.text}")
    return lines


def _print_result(step: InterviewStep, out: Callable[[str], None]) -> None:
    if step.cycle_detected:
        out("The questionnaire could not be completed (inconsistent rule table).")
        return
    if step.conclusion is not None and step.conclusion.text:
        out(step.conclusion.text)
    if not step.aides:
        out("No matching aide found.")
        return
    out("You may be eligible for:")
    for a in step.aides:
        out(f"  - {a.name}" + (f": {a.description}" if a.description else ""))


def run_console(
    source: Optional[RowSource] = None,
    read: Callable[[str], str] = input,
    out: Callable[[str], None] = print,
) -> int:
    """Run one interview in the terminal. Returns a process exit code."""
    source = source or row_source_from_config()

    try:
        dataset = load_dataset(source.fetch_rows())
    except DataFetchError as exc:
        out(f"Could not fetch the eligibility rules: {exc}")
        return 2
    except DataShapeError as exc:
        out(f"The eligibility rules are malformed: {exc}")
        return 3

    events = InterviewEvents()
    subscription = events.subscribe(_log_warning_events)

    session = start_session(dataset, events=events)
    step = session.result()
    try:
        while not step.concluded:
            question = step.next_question
            for line in _prompt_lines(question):
                out(line)
            try:
                step = session.answer(read("> "))
            except InvalidAnswerError as exc:
                out(str(exc))
    except (EOFError, KeyboardInterrupt):
        out("Interview abandoned.")
        return 1
    finally:
        subscription.unsubscribe()

    _print_result(step, out)
    audit = build_audit_snapshot(session)
    logger.info("Session %s finished after %d answers.", audit.session_id, len(audit.steps))
    return 0


def _log_warning_events(event: InterviewEvent) -> None:
    if event.is_warning:
        logger.warning("Interview %s signalled %s: %s", event.session_id, event.kind, event.payload)


def main() -> int:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print(f"{APP_NAME} {APP_VERSION}")
    return run_console()
