import hashlib
import os
import random
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from exam_backend.api.schemas import (
    GenerationConfig,
    QuestionKind,
    QuestionType,
    Quiz,
    QuizQuestion,
    SourceAnchor,
)

PLACEHOLDER_EXPLANATION = "Demo explanation."
MCQ_CHOICES = ("A", "B", "C", "D")
MCQ_ANSWER = "A"
DEFAULT_ANSWER = "True"


def _stable_hash(text: str) -> str:
    """Return a stable hex digest for the input text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _seed_from_hash(hex_digest: str) -> int:
    """Derive a deterministic integer seed from a hex digest."""
    # Take the first 16 hex chars for a 64-bit int
    return int(hex_digest[:16], 16)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _question_kind(question_type: QuestionType, index: int) -> QuestionKind:
    """Resolve the concrete type of the question at a 0-based index."""
    if question_type == QuestionType.MIXED:
        return QuestionKind.MCQ if index % 2 == 0 else QuestionKind.TF
    return QuestionKind(question_type.value)


# PUBLIC_INTERFACE
def generate_placeholder_quiz(config: GenerationConfig, quiz_id: Optional[str] = None) -> Quiz:
    """
    Produce a placeholder quiz for a validated configuration.

    Shape guarantees:
        - exactly config.question_count questions with ids q_1..q_n, in order;
        - 'mixed' alternates mcq (even index) and tf (odd index), starting with mcq;
        - mcq questions carry choices A-D and answer "A", every other type answers "True";
        - every prompt embeds the 1-based question number and the subject.

    No I/O is performed. A real generator plugs in behind the same Quiz output.

    Args:
        config: The normalized generation config.
        quiz_id: Optional explicit quiz identifier; a random one is used otherwise.

    Returns:
        Quiz: The generated quiz.
    """
    questions: List[QuizQuestion] = []
    for index in range(config.question_count):
        number = index + 1
        kind = _question_kind(config.question_type, index)
        is_mcq = kind == QuestionKind.MCQ
        questions.append(
            QuizQuestion(
                id=f"q_{number}",
                type=kind,
                prompt=f"Demo question {number} - about {config.subject}",
                choices=list(MCQ_CHOICES) if is_mcq else None,
                answer=MCQ_ANSWER if is_mcq else DEFAULT_ANSWER,
                explanation=PLACEHOLDER_EXPLANATION,
            )
        )

    return Quiz(
        quiz_id=quiz_id or f"quiz_{uuid.uuid4().hex[:6]}",
        title=config.title,
        subject=config.subject,
        generated_at=_utcnow(),
        questions=questions,
    )


# PUBLIC_INTERFACE
def generate_sample_quiz(filenames: Sequence[str]) -> Quiz:
    """
    Build the demo quiz used by the simulated upload flow: two questions per file.

    Determinism:
        The RNG behind the confidence values is seeded from a SHA-256 hash of the
        filenames, so identical uploads produce identical quizzes (apart from
        the generation timestamp).
    """
    src_hash = _stable_hash("\n".join(filenames))
    rng = random.Random(_seed_from_hash(src_hash))

    questions: List[QuizQuestion] = []
    for idx, name in enumerate(filenames):
        base = f"{os.path.splitext(name)[0]} - sample"

        questions.append(
            QuizQuestion(
                id=f"q_{idx}_1",
                type=QuestionKind.MCQ,
                prompt=f'Which statement about "{base}" is correct?',
                choices=["Option A", "Option B", "Option C", "Option D"],
                answer="Option A",
                explanation="This is a generated example explanation.",
                confidence=round(0.6 + rng.random() * 0.35, 3),
                tags=["example", f"topic-{idx % 3 + 1}"],
                source=f'Excerpt from {name}: "{base[:60]}"',
                source_anchors=[SourceAnchor(page=1, start=0, end=120, text=base[:120])],
            )
        )
        questions.append(
            QuizQuestion(
                id=f"q_{idx}_2",
                type=QuestionKind.TF,
                prompt=f'True or False: "{base}" is covered in the uploaded file.',
                answer="True",
                explanation="Demo true/false question.",
                confidence=round(0.5 + rng.random() * 0.4, 3),
                tags=["truefalse"],
                source=f'Excerpt from {name}: "{base[:80]}"',
                source_anchors=[SourceAnchor(page=1, start=120, end=200, text=base[120:200])],
            )
        )

    return Quiz(
        quiz_id=f"quiz_{src_hash[:6]}",
        title=f"Demo quiz ({', '.join(filenames)})",
        subject="Demo",
        generated_at=_utcnow(),
        questions=questions,
    )
