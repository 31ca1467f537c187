"""
Data model for exam scoring.

Scores are tagged by module: each module has a fixed tuple of dimension names,
and the oracle replies are validated against a per-kind schema so that the
dimension set is known before any value is read.
"""
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Module(str, Enum):
    LISTENING = "listening"
    READING = "reading"
    WRITING = "writing"
    SPEAKING = "speaking"


class Source(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"
    ANSWER_KEY = "answer_key"


class PromptKind(str, Enum):
    WRITING_TASK1 = "writing_task1"
    WRITING_TASK2 = "writing_task2"
    SPEAKING_RESPONSE = "speaking_response"

    @property
    def module(self) -> Module:
        if self is PromptKind.SPEAKING_RESPONSE:
            return Module.SPEAKING
        return Module.WRITING


class ExamStatus(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


WRITING_DIMENSIONS: Tuple[str, ...] = ("task_achievement", "coherence", "vocabulary", "grammar")
SPEAKING_DIMENSIONS: Tuple[str, ...] = ("fluency", "vocabulary", "grammar", "pronunciation")

DIMENSIONS: Dict[Module, Tuple[str, ...]] = {
    Module.LISTENING: (),
    Module.READING: (),
    Module.WRITING: WRITING_DIMENSIONS,
    Module.SPEAKING: SPEAKING_DIMENSIONS,
}

OBJECTIVE_MODULES = (Module.LISTENING, Module.READING)
EXAM_ORDER = (Module.LISTENING, Module.READING, Module.WRITING, Module.SPEAKING)


class AnswerDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: int
    user_answer: Optional[str] = None
    correct_answer: str
    is_correct: bool


class ObjectiveResult(BaseModel):
    """Grading of a listening/reading answer list against its key."""
    model_config = ConfigDict(frozen=True)

    correct: int
    total: int
    percentage: float
    band: float
    details: List[AnswerDetail] = Field(default_factory=list)


class ModuleScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    module: Module
    dimensions: Dict[str, float] = Field(default_factory=dict)
    overall: float = Field(ge=0, le=9)
    feedback: str = ""
    source: Source
    objective: Optional[ObjectiveResult] = None


class AnswerSet(BaseModel):
    """
    Answers submitted for one module.

    Listening/reading use ``answers`` and the parallel ``answer_key``;
    writing uses ``text`` and ``task_type``; speaking uses ``text`` and
    ``question``.
    """
    model_config = ConfigDict(frozen=True)

    module: Module
    answers: List[Optional[str]] = Field(default_factory=list)
    answer_key: List[str] = Field(default_factory=list)
    text: str = ""
    task_type: str = "task2"
    question: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        if self.module in OBJECTIVE_MODULES:
            return not self.answers
        return not self.text.strip()


class ExamResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    scores: Dict[Module, ModuleScore] = Field(default_factory=dict)
    overall_band: Optional[float] = None
    status: ExamStatus
    summary: str


# Oracle reply schemas

class _CriteriaReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    overall: Optional[float] = Field(default=None, ge=0, le=9)
    feedback: str = ""


class WritingReply(_CriteriaReply):
    task_achievement: float = Field(ge=0, le=9)
    coherence: float = Field(ge=0, le=9)
    vocabulary: float = Field(ge=0, le=9)
    grammar: float = Field(ge=0, le=9)


class SpeakingReply(_CriteriaReply):
    fluency: float = Field(ge=0, le=9)
    vocabulary: float = Field(ge=0, le=9)
    grammar: float = Field(ge=0, le=9)
    pronunciation: float = Field(ge=0, le=9)


REPLY_SCHEMAS = {
    PromptKind.WRITING_TASK1: WritingReply,
    PromptKind.WRITING_TASK2: WritingReply,
    PromptKind.SPEAKING_RESPONSE: SpeakingReply,
}
