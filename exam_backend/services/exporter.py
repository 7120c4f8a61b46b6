import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Union

from exam_backend.api.schemas import Quiz, QuizQuestion
from exam_backend.errors import ExportFormatError


class ExportFormat(str, Enum):
    JSON = "json"
    TXT = "txt"
    PDF = "pdf"


MEDIA_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.TXT: "text/plain; charset=utf-8",
    # Placeholder: the text rendering is served with a PDF media type.
    ExportFormat.PDF: "application/pdf",
}


@dataclass(frozen=True)
class ExportArtifact:
    """A downloadable export: file name, media type and encoded content."""

    filename: str
    media_type: str
    content: bytes


def _parse_format(fmt: Union[str, ExportFormat]) -> ExportFormat:
    try:
        return ExportFormat(fmt)
    except ValueError as exc:
        allowed = ", ".join(f.value for f in ExportFormat)
        raise ExportFormatError(f"Unsupported export format '{fmt}'. Use one of: {allowed}") from exc


def _format_answer(question: QuizQuestion) -> str:
    if question.answer is None:
        return "-"
    if isinstance(question.answer, list):
        return ", ".join(question.answer)
    return question.answer


# PUBLIC_INTERFACE
def quiz_to_dict(quiz: Quiz, include_answers: bool = True) -> Dict[str, Any]:
    """Wire representation of a quiz in declaration order, without unset (None) fields."""
    data = quiz.model_dump(mode="json", by_alias=True, exclude_none=True)
    if not include_answers:
        for question in data["questions"]:
            question.pop("answer", None)
    return data


# PUBLIC_INTERFACE
def render_json(quiz: Quiz, include_answers: bool = True) -> str:
    return json.dumps(quiz_to_dict(quiz, include_answers), indent=2, ensure_ascii=False)


# PUBLIC_INTERFACE
def render_text(quiz: Quiz, include_answers: bool = True) -> str:
    """
    Human readable rendering:

        <title>
        Subject: <subject>
        1. <prompt>
           A. <choice>
           Answer: <answer>
    """
    lines: List[str] = [quiz.title or "Quiz", f"Subject: {quiz.subject or '-'}"]
    for number, question in enumerate(quiz.questions, start=1):
        lines.append(f"{number}. {question.prompt}")
        for idx, choice in enumerate(question.choices or []):
            lines.append(f"   {chr(65 + idx)}. {choice}")
        if include_answers:
            lines.append(f"   Answer: {_format_answer(question)}")
        lines.append("")
    return "\n".join(lines)


# PUBLIC_INTERFACE
def export_quiz(quiz: Quiz, fmt: Union[str, ExportFormat], include_answers: bool = True) -> ExportArtifact:
    """
    Serialize a quiz for download. The quiz itself is left untouched.

    Args:
        quiz: The quiz to export.
        fmt: 'json', 'txt' or 'pdf'.
        include_answers: When False, answers are stripped from the output.

    Returns:
        ExportArtifact: Named '{quizId}.{ext}'.

    Raises:
        ExportFormatError: For an unknown format.
    """
    export_format = _parse_format(fmt)
    if export_format == ExportFormat.JSON:
        body = render_json(quiz, include_answers)
    else:
        body = render_text(quiz, include_answers)
    return ExportArtifact(
        filename=f"{quiz.quiz_id or 'quiz'}.{export_format.value}",
        media_type=MEDIA_TYPES[export_format],
        content=body.encode("utf-8"),
    )
