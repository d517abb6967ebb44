from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

import logging

import pandas as pd

from aides_eligibility.core.errors import DataShapeError

logger = logging.getLogger(__name__)

# Column names in the eligibility rule table
RULE_ID_COL = "ID_Regle"
NODE_TYPE_COL = "Type_Noeud"
QUESTION_KEY_COL = "Key_JSON_Question"
ANSWER_TYPE_COL = "Type_Reponse_Attendue"
STEP_COL = "Etape"
QUESTION_TEXT_COL = "Question_Posee_Utilisateur"
INFO_TEXT_COL = "Texte_Conclusion_Ou_Info"
AIDE_COL = "Aide_Concernee"
CONCLUSION_KEY_COL = "Key_JSON_Conclusion"

OPTION_LETTERS = ["A", "B", "C", "D"]
OPTION_KEY_COLS = [f"Key_JSON_Option_{letter}" for letter in OPTION_LETTERS]
OPTION_TEXT_COLS = [f"Texte_Option_{letter}" for letter in OPTION_LETTERS]

REQUIRED_COLS = [RULE_ID_COL, NODE_TYPE_COL]

NODE_QUESTION = "question"
NODE_CONCLUSION = "conclusion"

DEFAULT_ANSWER_TYPE = "single_select"

KIND_YESNO = "yesno"
KIND_CHOICE = "choice"

# Expected-answer types that behave as a yes/no question. Anything else is a choice.
YESNO_ANSWER_TYPES = frozenset({"yesno", "yes_no", "oui_non", "boolean", "bool"})

RowsInput = Union[pd.DataFrame, Sequence[Mapping[str, Any]]]


@dataclass(frozen=True)
class QuestionOption:
    key: str
    text: str


@dataclass(frozen=True)
class Question:
    """
    A question node of the decision graph.

    For 'yesno' questions the successors are option A (yes) and option B (no).
    For 'choice' questions each option key is itself the successor id.
    """
    id: str
    kind: str
    answer_type: str
    options: Tuple[QuestionOption, ...]
    yes_successor: str
    no_successor: str
    text: str
    hint: str
    step_order: int
    rule_id: str

    @property
    def option_keys(self) -> Tuple[str, ...]:
        return tuple(o.key for o in self.options)


@dataclass(frozen=True)
class Aide:
    id: str
    name: str
    description: str


@dataclass(frozen=True)
class Rule:
    id: str
    aide_id: str
    question_key: str
    condition: str


@dataclass(frozen=True)
class Conclusion:
    id: str
    question_key: str
    text: str
    aide_id: str


@dataclass(frozen=True)
class NormalizedData:
    questions: Tuple[Question, ...]
    aides: Tuple[Aide, ...]
    rules: Tuple[Rule, ...]
    conclusions: Tuple[Conclusion, ...] = ()


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def _normalize_text(x: Any) -> str:
    if x is None:
        return ""
    try:
        if pd.isna(x):
            return ""
    except (TypeError, ValueError):
        pass
    return str(x).replace("\u00A0", " ").strip()


def _cell(row: pd.Series, col: str) -> str:
    if col not in row.index:
        return ""
    return _normalize_text(row[col])


def _to_frame(rows: RowsInput) -> pd.DataFrame:
    if isinstance(rows, pd.DataFrame):
        df = rows.copy()
    else:
        df = pd.DataFrame.from_records([dict(r) for r in rows])

    if df.empty and not len(df.columns):
        return pd.DataFrame(columns=REQUIRED_COLS + [STEP_COL])

    missing = [c for c in REQUIRED_COLS if c not in df.columns]
    if missing:
        raise DataShapeError(
            f"Eligibility rows are missing required columns {missing}. "
            f"Present columns: {list(df.columns)}"
        )

    # Step order defaults to 0; stable sort keeps source order on ties.
    if STEP_COL in df.columns:
        df[STEP_COL] = pd.to_numeric(df[STEP_COL], errors="coerce").fillna(0).astype(int)
    else:
        df[STEP_COL] = 0

    return df.sort_values(STEP_COL, kind="mergesort").reset_index(drop=True)


# ---------------------------------------------------------------------------
# Entity builders
# ---------------------------------------------------------------------------

def _question_kind(answer_type: str) -> str:
    return KIND_YESNO if answer_type in YESNO_ANSWER_TYPES else KIND_CHOICE


def _build_options(row: pd.Series) -> Tuple[QuestionOption, ...]:
    options: List[QuestionOption] = []
    for key_col, text_col in zip(OPTION_KEY_COLS, OPTION_TEXT_COLS):
        key = _cell(row, key_col)
        if not key:
            continue
        options.append(QuestionOption(key=key, text=_cell(row, text_col) or key))
    return tuple(options)


def _build_question(row: pd.Series, position: int) -> Question:
    key = _cell(row, QUESTION_KEY_COL)
    rule_id = _cell(row, RULE_ID_COL)
    if not key:
        raise DataShapeError(
            f"Row {position} (ID_Regle={rule_id or '?'}) is a question without "
            f"a {QUESTION_KEY_COL}; it could never be reached."
        )

    answer_type = _cell(row, ANSWER_TYPE_COL).lower() or DEFAULT_ANSWER_TYPE
    kind = _question_kind(answer_type)

    if kind == KIND_YESNO:
        # Positional: A is the yes branch, B the no branch, even if one is blank.
        yes_successor = _cell(row, OPTION_KEY_COLS[0])
        no_successor = _cell(row, OPTION_KEY_COLS[1])
    else:
        yes_successor = no_successor = ""

    return Question(
        id=key,
        kind=kind,
        answer_type=answer_type,
        options=_build_options(row),
        yes_successor=yes_successor,
        no_successor=no_successor,
        text=_cell(row, QUESTION_TEXT_COL),
        hint=_cell(row, INFO_TEXT_COL),
        step_order=int(row[STEP_COL]),
        rule_id=rule_id,
    )


def _build_aides(df: pd.DataFrame) -> Tuple[Aide, ...]:
    """
    One Aide per distinct Aide_Concernee, in first-seen order.

    The description is the first non-empty info text among rows naming the aide,
    whatever their node type.
    """
    descriptions: Dict[str, str] = {}
    for _, row in df.iterrows():
        name = _cell(row, AIDE_COL)
        if not name:
            continue
        if not descriptions.get(name):
            descriptions[name] = _cell(row, INFO_TEXT_COL)
    return tuple(Aide(id=name, name=name, description=desc) for name, desc in descriptions.items())


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize(rows: RowsInput) -> NormalizedData:
    """
    Parse raw eligibility rows into Questions, Aides, Rules and Conclusions.

    Accepts either a sequence of row mappings (as returned by the data loader)
    or a DataFrame. Questions come back in ascending step order.

    Raises DataShapeError when:
      - the required columns (ID_Regle, Type_Noeud) are absent
      - a question row has no Key_JSON_Question
      - two question rows share the same key
    """
    df = _to_frame(rows)

    questions: List[Question] = []
    rules: List[Rule] = []
    conclusions: List[Conclusion] = []
    seen_ids: Dict[str, str] = {}

    for position, row in df.iterrows():
        node_type = _cell(row, NODE_TYPE_COL).lower()

        if node_type == NODE_QUESTION:
            question = _build_question(row, int(position))
            if question.id in seen_ids:
                raise DataShapeError(
                    f"Duplicate question id {question.id!r} "
                    f"(rows ID_Regle={seen_ids[question.id] or '?'} and {question.rule_id or '?'})."
                )
            seen_ids[question.id] = question.rule_id
            questions.append(question)

        elif node_type == NODE_CONCLUSION:
            rule_id = _cell(row, RULE_ID_COL)
            question_key = _cell(row, QUESTION_KEY_COL)
            condition = _cell(row, CONCLUSION_KEY_COL)
            aide = _cell(row, AIDE_COL)

            node_id = condition or rule_id
            if node_id:
                conclusions.append(
                    Conclusion(
                        id=node_id,
                        question_key=question_key,
                        text=_cell(row, INFO_TEXT_COL),
                        aide_id=aide,
                    )
                )
            if aide:
                rules.append(Rule(id=rule_id, aide_id=aide, question_key=question_key, condition=condition))

        else:
            logger.debug("Skipping row %s with node type %r.", position, node_type)

    data = NormalizedData(
        questions=tuple(questions),
        aides=_build_aides(df),
        rules=tuple(rules),
        conclusions=tuple(conclusions),
    )
    logger.info(
        "Normalized %d rows into %d questions, %d aides, %d rules, %d conclusions.",
        len(df), len(data.questions), len(data.aides), len(data.rules), len(data.conclusions),
    )
    return data
