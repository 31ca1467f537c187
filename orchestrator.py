import logging
from typing import Dict, Mapping, Optional

from ai_scorer import AIScoreClient, OracleFailure
from exceptions import IncompleteExamError
from models import (
    EXAM_ORDER,
    AnswerSet,
    ExamResult,
    ExamStatus,
    Module,
    ModuleScore,
    PromptKind,
)
from scoring import calculate_overall_band, estimate_band, objective_module_score, score_multiple_choice

logger = logging.getLogger(__name__)


def prompt_kind_for(answers: AnswerSet) -> PromptKind:
    if answers.module is Module.SPEAKING:
        return PromptKind.SPEAKING_RESPONSE
    if answers.task_type == 'task1':
        return PromptKind.WRITING_TASK1
    return PromptKind.WRITING_TASK2


class ScoringOrchestrator:
    """
    Scores exam modules and aggregates them into an overall band.

    Writing and speaking always try the AI client first and fall back to the
    local heuristic when it fails; listening and reading are graded against
    their answer key.
    """

    def __init__(self, client: AIScoreClient):
        self.client = client

    async def score_module(self, module: Module, answers: AnswerSet) -> ModuleScore:
        module = Module(module)
        if answers.module is not module:
            raise ValueError(f"answers are for {answers.module.value}, not {module.value}")

        if module in (Module.LISTENING, Module.READING):
            result = score_multiple_choice(answers.answers, answers.answer_key)
            return objective_module_score(module, result)

        outcome = await self.client.score(prompt_kind_for(answers), answers.text, answers.question)
        if isinstance(outcome, OracleFailure):
            logger.warning(f"Using fallback {module.value} score after {outcome.reason} failure: {outcome.message}")
            return estimate_band(module, answers.text)
        return outcome

    async def score_exam(self, answer_sets: Mapping[Module, Optional[AnswerSet]]) -> ExamResult:
        """Score every submitted module in turn and aggregate the bands"""
        scores: Dict[Module, ModuleScore] = {}
        for module in EXAM_ORDER:
            answers = answer_sets.get(module)
            if answers is None or answers.is_empty:
                continue
            scores[module] = await self.score_module(module, answers)

        try:
            overall_band = calculate_overall_band(score.overall for score in scores.values())
        except IncompleteExamError:
            logger.info("No module produced a positive band; exam is incomplete")
            return ExamResult(
                scores=scores,
                overall_band=None,
                status=ExamStatus.INCOMPLETE,
                summary="IELTS Band Score: incomplete",
            )

        return ExamResult(
            scores=scores,
            overall_band=overall_band,
            status=ExamStatus.COMPLETE,
            summary=f"IELTS Band Score: {overall_band}",
        )
