"""Traversal Engine: tests for the interview state machine.

Tests cover:
    - The Luxembourg scenario (yes/no then choice, aide accumulation)
    - Answer validation (tokens, option keys, unchanged state on error)
    - Termination: step budget and cycle detection
    - Unresolved successors and early conclusion
    - Rule semantics: OR across rules, empty conditions, deduplication
    - Session isolation over a shared dataset
"""

import pytest

from aides_eligibility.conversation.events import (
    CONCLUDED,
    CYCLE_DETECTED,
    QUESTION_ASKED,
    UNRESOLVED_SUCCESSOR,
    InterviewEvents,
)
from aides_eligibility.core.engine import (
    STATE_ASKING,
    STATE_CONCLUDED,
    answer,
    load_dataset,
    start_session,
)
from aides_eligibility.core.errors import DataShapeError, InvalidAnswerError, SessionConcludedError


def _yesno(make_row, key, step, yes="", no=""):
    return make_row(
        ID_Regle=f"R_{key}", Type_Noeud="question", Etape=step, Key_JSON_Question=key,
        Type_Reponse_Attendue="yesno", Key_JSON_Option_A=yes, Key_JSON_Option_B=no,
    )


def _choice(make_row, key, step, *options):
    row = make_row(
        ID_Regle=f"R_{key}", Type_Noeud="question", Etape=step, Key_JSON_Question=key,
        Type_Reponse_Attendue="choice",
    )
    for letter, opt in zip("ABCD", options):
        row[f"Key_JSON_Option_{letter}"] = opt
    return row


def _rule(make_row, rule_id, question, condition, aide):
    return make_row(
        ID_Regle=rule_id, Type_Noeud="conclusion", Etape=99, Key_JSON_Question=question,
        Key_JSON_Conclusion=condition, Aide_Concernee=aide,
    )


# -------------------------------------------------------------------------
# Scenario
# -------------------------------------------------------------------------

def test_session_starts_on_entry_question(luxembourg_rows):
    session = start_session(load_dataset(luxembourg_rows))
    assert session.state == STATE_ASKING
    assert session.current_question.id == "Q1"
    assert session.current_question.text == "Do you live in Luxembourg?"


def test_answering_no_concludes_with_no_aides(luxembourg_rows):
    session = start_session(load_dataset(luxembourg_rows))
    step = answer(session, "no")
    assert step.concluded
    assert step.aide_ids == []
    assert session.state == STATE_CONCLUDED
    assert not step.unresolved_successor


def test_answering_yes_then_a_concludes_with_x(luxembourg_rows):
    session = start_session(load_dataset(luxembourg_rows))

    step = answer(session, "yes")
    assert not step.concluded
    assert step.next_question.id == "Q2"

    step = answer(session, "A")
    assert step.concluded
    assert step.aide_ids == ["X"]
    assert step.conclusion.id == "A"
    assert step.conclusion.text == "You may apply for X."


def test_answering_yes_then_b_concludes_empty(luxembourg_rows):
    session = start_session(load_dataset(luxembourg_rows))
    answer(session, True)
    step = answer(session, "B")
    assert step.concluded
    assert step.aides == ()


# -------------------------------------------------------------------------
# Validation
# -------------------------------------------------------------------------

def test_unknown_option_raises_and_leaves_state_unchanged(luxembourg_rows):
    session = start_session(load_dataset(luxembourg_rows))
    answer(session, "yes")

    with pytest.raises(InvalidAnswerError):
        answer(session, "Z")

    assert session.current_node_id == "Q2"
    assert session.state == STATE_ASKING
    assert len(session.path) == 1
    # caller may retry
    assert answer(session, "A").aide_ids == ["X"]


@pytest.mark.parametrize("value", [True, "yes", "YES", " oui ", "opt_oui", "1", "Q2"])
def test_yes_tokens(luxembourg_rows, value):
    session = start_session(load_dataset(luxembourg_rows))
    assert answer(session, value).next_question.id == "Q2"


@pytest.mark.parametrize("value", [False, "no", "Non", "opt_non", "0"])
def test_no_tokens(luxembourg_rows, value):
    session = start_session(load_dataset(luxembourg_rows))
    assert answer(session, value).concluded


@pytest.mark.parametrize("value", ["maybe", "", None, 1, "A"])
def test_invalid_yesno_answers(luxembourg_rows, value):
    session = start_session(load_dataset(luxembourg_rows))
    with pytest.raises(InvalidAnswerError):
        answer(session, value)
    assert session.current_node_id == "Q1"


def test_choice_rejects_non_string_answers(luxembourg_rows):
    session = start_session(load_dataset(luxembourg_rows))
    answer(session, "yes")
    with pytest.raises(InvalidAnswerError):
        answer(session, True)


def test_yesno_option_key_follows_its_a_b_position(make_row):
    rows = [
        _yesno(make_row, "q1", 1, yes="", no="q2"),
        _yesno(make_row, "q2", 2),
    ]
    session = start_session(load_dataset(rows))
    step = answer(session, "q2")
    assert session.path[0].branch_key == "no"
    assert step.next_question.id == "q2"


@pytest.mark.parametrize("value", ["42", "", "yes", 42, None])
def test_question_without_options_concludes_on_any_answer(make_row, value):
    rows = [
        make_row(
            ID_Regle="R1", Type_Noeud="question", Etape=1, Key_JSON_Question="income",
            Type_Reponse_Attendue="Number",
        ),
        _rule(make_row, "R2", "income", "", "Base aide"),
    ]
    session = start_session(load_dataset(rows))
    step = answer(session, value)
    assert step.concluded
    assert not step.unresolved_successor
    assert step.aide_ids == ["Base aide"]


def test_dataset_aide_lookup(luxembourg_rows):
    dataset = load_dataset(luxembourg_rows)
    assert dataset.aide("X").name == "X"
    assert dataset.aide("missing") is None


def test_answer_after_conclusion_raises(luxembourg_rows):
    session = start_session(load_dataset(luxembourg_rows))
    answer(session, "no")
    with pytest.raises(SessionConcludedError):
        answer(session, "yes")
    # still an InvalidAnswerError for callers that only catch the base
    assert issubclass(SessionConcludedError, InvalidAnswerError)


def test_load_dataset_rejects_question_without_key(make_row):
    with pytest.raises(DataShapeError):
        load_dataset([make_row(ID_Regle="R1", Type_Noeud="question")])


# -------------------------------------------------------------------------
# Termination
# -------------------------------------------------------------------------

def test_linear_chain_concludes_within_question_count(make_row):
    n = 6
    rows = [_yesno(make_row, f"q{i}", i, yes=f"q{i + 1}" if i < n - 1 else "") for i in range(n)]
    session = start_session(load_dataset(rows))

    steps = 0
    step = session.result()
    while not step.concluded:
        step = answer(session, "yes")
        steps += 1
        assert steps <= n + 1
    assert steps == n
    assert not step.cycle_detected


def test_cycle_is_cut_by_step_budget(make_row):
    rows = [
        _yesno(make_row, "q1", 1, yes="q2"),
        _yesno(make_row, "q2", 2, yes="q1"),
        _rule(make_row, "R9", "q1", "", "Looping aide"),
    ]
    events = InterviewEvents()
    seen = []
    events.subscribe(seen.append)
    session = start_session(load_dataset(rows), events=events)

    step = answer(session, "yes")
    assert step.next_question.id == "q2"
    step = answer(session, "yes")
    assert step.next_question.id == "q1"
    step = answer(session, "yes")

    assert step.concluded
    assert step.cycle_detected
    assert step.aides == ()
    assert [e.kind for e in seen if e.is_warning] == [CYCLE_DETECTED]


def test_self_loop_terminates(make_row):
    rows = [_choice(make_row, "loop", 1, "loop")]
    session = start_session(load_dataset(rows))
    assert answer(session, "loop").next_question.id == "loop"
    assert answer(session, "loop").cycle_detected


def test_empty_dataset_concludes_immediately():
    session = start_session(load_dataset([]))
    assert session.concluded
    assert session.current_question is None
    assert session.result().aides == ()
    with pytest.raises(SessionConcludedError):
        answer(session, "yes")


# -------------------------------------------------------------------------
# Unresolved successors
# -------------------------------------------------------------------------

def test_unresolved_successor_concludes_with_aides_so_far(make_row):
    rows = [
        _yesno(make_row, "q1", 1, yes="q2"),
        _choice(make_row, "q2", 2, "ghost", "q3"),
        _yesno(make_row, "q3", 3),
        _rule(make_row, "R1", "q1", "yes", "Y"),
    ]
    events = InterviewEvents()
    seen = []
    events.subscribe(seen.append)
    session = start_session(load_dataset(rows), events=events)

    answer(session, "yes")
    step = answer(session, "ghost")

    assert step.concluded
    assert step.unresolved_successor == "ghost"
    assert step.aide_ids == ["Y"]
    assert step.conclusion is None
    assert UNRESOLVED_SUCCESSOR in [e.kind for e in seen]


# -------------------------------------------------------------------------
# Rule semantics
# -------------------------------------------------------------------------

def test_rules_for_same_aide_are_ored(make_row):
    """Assumption: several rules for one aide qualify it if ANY of them matches."""
    rows = [
        _choice(make_row, "q", 1, "a", "b", "c"),
        _rule(make_row, "R1", "q", "a", "X"),
        _rule(make_row, "R2", "q", "b", "X"),
    ]
    dataset = load_dataset(rows)
    for key, expected in [("a", ["X"]), ("b", ["X"]), ("c", [])]:
        session = start_session(dataset)
        assert answer(session, key).aide_ids == expected


def test_aides_accumulate_along_path_without_duplicates(make_row):
    rows = [
        _yesno(make_row, "q1", 1, yes="q2"),
        _yesno(make_row, "q2", 2, yes="end"),
        _rule(make_row, "R1", "q1", "", "Always"),
        _rule(make_row, "R2", "q1", "q2", "First"),
        _rule(make_row, "R3", "q2", "opt_oui", "Second"),
        _rule(make_row, "R4", "q2", "end", "First"),
        _rule(make_row, "R5", "q2", "no", "Never"),
    ]
    session = start_session(load_dataset(rows))
    answer(session, "yes")
    step = answer(session, "yes")

    assert step.aide_ids == ["Always", "First", "Second"]
    # 'end' resolves to the conclusion row created by R4
    assert step.conclusion is not None
    assert step.aides[0].description == ""


def test_sessions_share_dataset_but_not_state(luxembourg_rows):
    dataset = load_dataset(luxembourg_rows)
    first = start_session(dataset)
    second = start_session(dataset)

    answer(first, "yes")
    assert first.current_node_id == "Q2"
    assert second.current_node_id == "Q1"
    assert first.session_id != second.session_id
    assert dataset.questions[0].id == "Q1"


def test_events_trace_the_interview(luxembourg_rows):
    events = InterviewEvents()
    seen = []
    events.subscribe(seen.append)
    session = start_session(load_dataset(luxembourg_rows), events=events)
    answer(session, "yes")
    answer(session, "A")

    assert [e.kind for e in seen] == [QUESTION_ASKED, QUESTION_ASKED, CONCLUDED]
    assert seen[-1].payload["aide_ids"] == ["X"]
    assert all(e.session_id == session.session_id for e in seen)
