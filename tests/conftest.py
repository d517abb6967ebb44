"""Root conftest: shared rule-table fixtures."""

import os

import pytest

# Tests never talk to a real Supabase project
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""


def _row(**fields):
    base = {"ID_Regle": "", "Type_Noeud": ""}
    base.update(fields)
    return base


@pytest.fixture
def make_row():
    """Factory for raw rule rows: make_row(ID_Regle="R1", Type_Noeud="question", ...)."""
    return _row


@pytest.fixture
def luxembourg_rows():
    """
    Q1 (yesno): yes -> Q2, no -> terminal.
    Q2 (choice): A -> conclusion linked to aide "X", B -> terminal conclusion.
    """
    return [
        _row(
            ID_Regle="R1", Type_Noeud="question", Etape=1,
            Key_JSON_Question="Q1", Type_Reponse_Attendue="YesNo",
            Question_Posee_Utilisateur="Do you live in Luxembourg?",
            Key_JSON_Option_A="Q2", Texte_Option_A="Yes",
        ),
        _row(
            ID_Regle="R2", Type_Noeud="question", Etape=2,
            Key_JSON_Question="Q2", Type_Reponse_Attendue="choice",
            Question_Posee_Utilisateur="Which situation applies?",
            Key_JSON_Option_A="A", Texte_Option_A="Employed",
            Key_JSON_Option_B="B", Texte_Option_B="Other",
        ),
        _row(
            ID_Regle="R3", Type_Noeud="conclusion", Etape=3,
            Key_JSON_Question="Q2", Key_JSON_Conclusion="A",
            Texte_Conclusion_Ou_Info="You may apply for X.", Aide_Concernee="X",
        ),
        _row(
            ID_Regle="R4", Type_Noeud="conclusion", Etape=3,
            Key_JSON_Question="Q2", Key_JSON_Conclusion="B",
            Texte_Conclusion_Ou_Info="No aide applies.",
        ),
    ]
