from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic.alias_generators import to_camel

from exam_backend.api.schemas import Quiz, QuizQuestion, ReviewStatus
from exam_backend.services.exporter import ExportArtifact, ExportFormat, export_quiz, render_json

REGENERATED_PREFIX = "[Regenerated variant] "


def _normalize_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Map wire names (camelCase) to attribute names and drop the immutable id."""
    aliases = {to_camel(name): name for name in QuizQuestion.model_fields}
    changes = {aliases.get(key, key): value for key, value in patch.items()}
    changes.pop("id", None)
    return changes


class ReviewSession:
    """
    Review state for one quiz at a time.

    Every mutation builds a new Quiz (unchanged questions are shared, not copied)
    and swaps it in with a single assignment, so readers never observe a
    half-applied change. Question order is never altered.
    """

    def __init__(self, quiz: Optional[Quiz] = None) -> None:
        self._quiz: Optional[Quiz] = None
        self._selected_id: Optional[str] = None
        if quiz is not None:
            self.set_quiz(quiz)

    @property
    def current_quiz(self) -> Optional[Quiz]:
        return self._quiz

    @property
    def selected_question_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def questions(self) -> List[QuizQuestion]:
        return list(self._quiz.questions) if self._quiz else []

    # PUBLIC_INTERFACE
    def set_quiz(self, quiz: Optional[Quiz]) -> None:
        """Replace the current quiz and select its first question (if any)."""
        self._quiz = quiz
        self._selected_id = quiz.questions[0].id if quiz and quiz.questions else None

    # PUBLIC_INTERFACE
    def clear_quiz(self) -> None:
        self.set_quiz(None)

    # PUBLIC_INTERFACE
    def set_selected_question(self, question_id: Optional[str]) -> None:
        self._selected_id = question_id

    # PUBLIC_INTERFACE
    def selected_question(self) -> Optional[QuizQuestion]:
        """The selected question, falling back to the first one when the selection is stale."""
        if not self._quiz or not self._quiz.questions:
            return None
        return self.get_question(self._selected_id) or self._quiz.questions[0]

    def get_question(self, question_id: Optional[str]) -> Optional[QuizQuestion]:
        if not self._quiz or question_id is None:
            return None
        for question in self._quiz.questions:
            if question.id == question_id:
                return question
        return None

    # PUBLIC_INTERFACE
    def update_question(self, question_id: str, patch: Mapping[str, Any]) -> None:
        """
        Merge patch fields into the matching question.

        Silently does nothing when no quiz is loaded or no question has this id.
        The id itself cannot be changed; editing other fields leaves the review
        status alone unless the patch sets it.
        """
        if self._quiz is None or self.get_question(question_id) is None:
            return
        changes = _normalize_patch(patch)
        questions = [
            QuizQuestion.model_validate({**question.model_dump(), **changes}) if question.id == question_id else question
            for question in self._quiz.questions
        ]
        self._quiz = self._quiz.model_copy(update={"questions": questions})

    # PUBLIC_INTERFACE
    def accept_question(self, question_id: str) -> None:
        self.update_question(question_id, {"status": ReviewStatus.ACCEPTED})

    # PUBLIC_INTERFACE
    def reject_question(self, question_id: str) -> None:
        self.update_question(question_id, {"status": ReviewStatus.REJECTED})

    # PUBLIC_INTERFACE
    def regenerate_question(self, question_id: str, replacement: Optional[Mapping[str, Any]] = None) -> None:
        """
        Mark a question as regenerated.

        Without a replacement the prompt is prefixed with '[Regenerated variant] '
        (placeholder behaviour); with one, its fields are merged instead.
        """
        question = self.get_question(question_id)
        if question is None:
            return
        if replacement is not None:
            patch = dict(replacement)
        else:
            patch = {"prompt": REGENERATED_PREFIX + question.prompt}
        patch["status"] = ReviewStatus.REGENERATED
        self.update_question(question_id, patch)

    def _set_all_status(self, status: ReviewStatus) -> None:
        if self._quiz is None:
            return
        questions = [question.model_copy(update={"status": status}) for question in self._quiz.questions]
        self._quiz = self._quiz.model_copy(update={"questions": questions})

    # PUBLIC_INTERFACE
    def accept_all(self) -> None:
        self._set_all_status(ReviewStatus.ACCEPTED)

    # PUBLIC_INTERFACE
    def reject_all(self) -> None:
        self._set_all_status(ReviewStatus.REJECTED)

    # PUBLIC_INTERFACE
    def export(self, fmt: Union[str, ExportFormat] = ExportFormat.JSON, include_answers: bool = True) -> Optional[ExportArtifact]:
        """Export the current quiz; returns None when nothing is loaded."""
        if self._quiz is None:
            return None
        return export_quiz(self._quiz, fmt, include_answers=include_answers)

    # PUBLIC_INTERFACE
    def export_json(self) -> Optional[str]:
        if self._quiz is None:
            return None
        return render_json(self._quiz)
