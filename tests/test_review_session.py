import pytest

from exam_backend.api.schemas import QuestionType, ReviewStatus
from exam_backend.client.review import REGENERATED_PREFIX, ReviewSession
from exam_backend.services.quiz_generator import generate_placeholder_quiz


@pytest.fixture
def quiz(config):
    return generate_placeholder_quiz(config.model_copy(update={"question_type": QuestionType.MIXED}), quiz_id="quiz_r")


@pytest.fixture
def session(quiz):
    return ReviewSession(quiz)


def _by_id(session):
    return {q.id: q for q in session.current_quiz.questions}


def test_set_quiz_selects_first_question(session):
    assert session.selected_question_id == "q_1"
    assert session.selected_question().id == "q_1"


def test_set_quiz_without_questions_selects_nothing(quiz):
    session = ReviewSession(quiz.model_copy(update={"questions": []}))
    assert session.selected_question_id is None
    assert session.selected_question() is None


def test_clear_quiz(session):
    session.clear_quiz()
    assert session.current_quiz is None
    assert session.selected_question_id is None
    assert session.export("json") is None
    assert session.export_json() is None


def test_accept_question_only_touches_that_question(session, quiz):
    session.accept_question("q_2")
    after = _by_id(session)
    assert after["q_2"].status == ReviewStatus.ACCEPTED
    assert after["q_2"].model_dump(exclude={"status"}) == quiz.questions[1].model_dump(exclude={"status"})
    for original in quiz.questions:
        if original.id != "q_2":
            assert after[original.id] == original
    # the loaded quiz object is never modified in place
    assert quiz.questions[1].status == ReviewStatus.PENDING


def test_reject_question(session):
    session.reject_question("q_3")
    assert _by_id(session)["q_3"].status == ReviewStatus.REJECTED


def test_update_question_merges_fields_and_keeps_order(session, quiz):
    session.update_question("q_1", {"prompt": "Edited", "explanation": "Because."})
    questions = session.current_quiz.questions
    assert [q.id for q in questions] == [q.id for q in quiz.questions]
    assert questions[0].prompt == "Edited"
    assert questions[0].explanation == "Because."
    assert questions[0].status == ReviewStatus.PENDING
    assert questions[0].choices == quiz.questions[0].choices


def test_update_question_accepts_wire_names(session):
    session.update_question("q_1", {"sourceAnchors": [{"page": 3, "text": "p3"}]})
    assert _by_id(session)["q_1"].source_anchors[0].page == 3


def test_update_question_cannot_change_id(session):
    session.update_question("q_1", {"id": "q_99", "prompt": "Still q_1"})
    assert _by_id(session)["q_1"].prompt == "Still q_1"
    assert "q_99" not in _by_id(session)


def test_update_unknown_question_is_a_no_op(session):
    before = session.current_quiz
    session.update_question("missing", {"prompt": "x"})
    session.accept_question("missing")
    assert session.current_quiz is before


def test_updates_without_quiz_are_no_ops():
    session = ReviewSession()
    session.update_question("q_1", {"prompt": "x"})
    session.accept_all()
    session.reject_all()
    session.regenerate_question("q_1")
    assert session.current_quiz is None


def test_accept_all_is_idempotent(session):
    session.accept_all()
    once = session.current_quiz
    session.accept_all()
    assert session.current_quiz == once
    assert all(q.status == ReviewStatus.ACCEPTED for q in session.current_quiz.questions)


def test_reject_all_only_changes_status(session, quiz):
    session.update_question("q_2", {"prompt": "Edited"})
    session.reject_all()
    questions = session.current_quiz.questions
    assert all(q.status == ReviewStatus.REJECTED for q in questions)
    assert questions[1].prompt == "Edited"
    assert [q.model_dump(exclude={"status", "prompt"}) for q in questions] == [
        q.model_dump(exclude={"status", "prompt"}) for q in quiz.questions
    ]


def test_regenerate_question_marks_status(session, quiz):
    session.regenerate_question("q_1")
    q = _by_id(session)["q_1"]
    assert q.status == ReviewStatus.REGENERATED
    assert q.prompt == REGENERATED_PREFIX + quiz.questions[0].prompt


def test_regenerate_question_with_replacement(session):
    session.regenerate_question("q_2", {"prompt": "New prompt", "answer": "False"})
    q = _by_id(session)["q_2"]
    assert (q.prompt, q.answer, q.status) == ("New prompt", "False", ReviewStatus.REGENERATED)


def test_selection_never_mutates_questions(session):
    before = session.current_quiz
    session.set_selected_question("q_3")
    assert session.selected_question().id == "q_3"
    session.set_selected_question("gone")
    assert session.selected_question().id == "q_1"
    assert session.current_quiz is before


def test_export_does_not_change_review_state(session):
    session.accept_question("q_1")
    before = session.current_quiz
    artifact = session.export("txt", include_answers=False)
    assert artifact.filename == "quiz_r.txt"
    assert session.current_quiz is before
    assert '"status": "accepted"' in session.export_json()
