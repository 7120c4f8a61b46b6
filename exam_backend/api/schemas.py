from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exposing camelCase keys on the wire and snake_case attributes in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionType(str, Enum):
    """Question type requested in a generation config."""

    MIXED = "mixed"
    MCQ = "mcq"
    TF = "tf"
    FIB = "fib"
    THEORY = "theory"


class QuestionKind(str, Enum):
    """Concrete type of a generated question. Unlike QuestionType there is no 'mixed'."""

    MCQ = "mcq"
    TF = "tf"
    FIB = "fib"
    THEORY = "theory"


class Complexity(str, Enum):
    MIDDLE_SCHOOL = "MiddleSchool"
    HIGH_SCHOOL = "HighSchool"
    UNDERGRAD = "Undergrad"
    CORPORATE = "Corporate"


class SourceMode(str, Enum):
    PASTE = "paste"
    UPLOAD = "upload"


class JobStatus(str, Enum):
    """Workflow state of a generation job."""

    QUEUED = "queued"
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class ReviewStatus(str, Enum):
    """UI-only review state of a single question."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    REGENERATED = "regenerated"


class JobMode(str, Enum):
    """How a job was submitted: synchronous JSON demo or multipart upload."""

    DEMO = "demo"
    UPLOAD = "upload"


# PUBLIC_INTERFACE
class GenerationConfig(CamelModel):
    """User intent for a generation request."""

    title: str = Field(..., min_length=1, description="Title of the exam.")
    subject: str = Field(..., min_length=1, description="Subject the questions are about.")
    question_count: int = Field(..., ge=1, le=100, description="Number of questions (1-100).")
    question_type: QuestionType = Field(..., description="Requested question type.")
    complexity: Complexity = Field(..., description="Target audience level.")
    aoc: List[str] = Field(default_factory=list, description="Areas of concentration (topic tags), in order.")
    language: Optional[str] = Field(default=None, description="Optional locale tag.")
    source_mode: Optional[SourceMode] = Field(default=None, description="Whether source material is pasted or uploaded.")
    pasted_text: Optional[str] = Field(default=None, description="Raw pasted source text.")

    @field_validator("question_count", mode="before")
    @classmethod
    def _numeric_question_count(cls, value: Any) -> Any:
        # Whole floats such as 4.0 pass; text and booleans do not.
        if isinstance(value, (bool, str)):
            raise ValueError("Input should be a valid integer")
        return value


# PUBLIC_INTERFACE
class SourceAnchor(CamelModel):
    """Locates a question's excerpt within the original material."""

    page: Optional[int] = None
    start: Optional[int] = None
    end: Optional[int] = None
    text: Optional[str] = None


# PUBLIC_INTERFACE
class QuizQuestion(CamelModel):
    """A single generated question together with its review status."""

    id: str = Field(..., description="Identifier of the question, unique within the quiz.")
    type: QuestionKind = Field(..., description="Question type.")
    prompt: str = Field(..., description="Question prompt text.")
    choices: Optional[List[str]] = Field(default=None, description="Ordered options, only for mcq.")
    answer: Optional[Union[str, List[str]]] = Field(default=None, description="Answer text or list of texts.")
    explanation: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1, description="Model confidence (0..1).")
    tags: Optional[List[str]] = None
    source: Optional[str] = Field(default=None, description="Excerpt of the source material.")
    source_anchors: Optional[List[SourceAnchor]] = None
    status: ReviewStatus = Field(default=ReviewStatus.PENDING, description="Review status.")


# PUBLIC_INTERFACE
class Quiz(CamelModel):
    """A generated quiz: metadata plus ordered questions."""

    quiz_id: str = Field(..., description="Unique identifier for the quiz.")
    title: Optional[str] = None
    subject: Optional[str] = None
    generated_at: datetime = Field(..., description="Generation timestamp.")
    questions: List[QuizQuestion] = Field(default_factory=list)


# PUBLIC_INTERFACE
class JobRecord(CamelModel):
    """Persisted record of one generation job."""

    job_id: str
    status: JobStatus
    type: JobMode
    created_at: datetime
    payload: GenerationConfig
    files: List[str] = Field(default_factory=list, description="Absolute paths of persisted uploads.")
    result: Optional[Quiz] = None
    progress: int = Field(default=0, ge=0, le=100)
    message: Optional[str] = None


# PUBLIC_INTERFACE
class JobStatusOut(CamelModel):
    """Polling view of a job."""

    job_id: str
    status: JobStatus
    progress: int = Field(default=0, ge=0, le=100)
    message: Optional[str] = None


# PUBLIC_INTERFACE
class SubmitDoneOut(CamelModel):
    """Response to a JSON submission, generated synchronously."""

    job_id: str
    status: JobStatus = JobStatus.DONE
    quiz: Quiz


# PUBLIC_INTERFACE
class SubmitQueuedOut(CamelModel):
    """Response to a multipart submission whose files were stored and queued."""

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    message: str = "Files saved and job queued"


class ErrorOut(BaseModel):
    error: str
    details: Optional[Any] = None
