import math
from statistics import mean
from typing import Iterable, List, Optional, Sequence

from exceptions import IncompleteExamError
from models import (
    AnswerDetail,
    DIMENSIONS,
    Module,
    ModuleScore,
    ObjectiveResult,
    Source,
)

DEFAULT_BAND = 5.0

# (lower bound inclusive, band); each bucket runs up to the next lower bound
PERCENTAGE_BANDS = [
    (95, 8.5),
    (85, 8.0),
    (75, 7.5),
    (65, 7.0),
    (55, 6.5),
    (45, 6.0),
    (35, 5.5),
    (25, 5.0),
    (15, 4.5),
    (0, 4.0),
]

WRITING_FEEDBACK = 'AI scoring unavailable. Using estimate based on length and structure.'
SPEAKING_FEEDBACK = 'AI scoring unavailable. Basic evaluation applied.'


def round_to_half(value: float) -> float:
    """Round to the nearest 0.5, halves upwards (6.75 -> 7.0)."""
    return math.floor(value * 2 + 0.5) / 2


def band_from_percentage(percentage: float) -> float:
    """Convert a listening/reading percentage to an IELTS band"""
    if percentage is None or math.isnan(percentage) or percentage < 0 or percentage > 100:
        return DEFAULT_BAND

    for lower, band in PERCENTAGE_BANDS:
        if percentage >= lower:
            return band
    return DEFAULT_BAND


def _normalize(answer: Optional[str]) -> Optional[str]:
    if answer is None:
        return None
    return str(answer).strip().lower()


def score_multiple_choice(user_answers: Sequence[Optional[str]], correct_answers: Sequence[str]) -> ObjectiveResult:
    """Grade answers position by position against the key (trimmed, case-insensitive)"""
    if not correct_answers:
        raise ValueError("answer key is empty")

    correct = 0
    details = []
    for index, expected in enumerate(correct_answers):
        answer = user_answers[index] if index < len(user_answers) else None
        is_correct = answer is not None and _normalize(answer) == _normalize(expected)
        if is_correct:
            correct += 1
        details.append(AnswerDetail(
            question=index + 1,
            user_answer=answer,
            correct_answer=expected,
            is_correct=is_correct,
        ))

    percentage = correct / len(correct_answers) * 100
    return ObjectiveResult(
        correct=correct,
        total=len(correct_answers),
        percentage=percentage,
        band=band_from_percentage(percentage),
        details=details,
    )


def objective_module_score(module: Module, result: ObjectiveResult) -> ModuleScore:
    return ModuleScore(
        module=module,
        overall=result.band,
        feedback=f"{result.correct}/{result.total} correct ({result.percentage:.0f}%)",
        source=Source.ANSWER_KEY,
        objective=result,
    )


def _contains_any(text: str, markers: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in markers)


def _writing_estimate(text: str) -> float:
    score = DEFAULT_BAND
    if len(text) > 150:
        score += 0.5
    if len(text) > 250:
        score += 0.5
    if _contains_any(text, ('however', 'therefore')):
        score += 0.5
    return score


def _speaking_estimate(text: str) -> float:
    score = DEFAULT_BAND
    if len(text) > 100:
        score += 1.0
    if len(text) > 200:
        score += 0.5
    if _contains_any(text, ('i think', 'in my opinion')):
        score += 0.5
    return score


# Per-dimension offsets from the estimated band
HEURISTIC_OFFSETS = {
    Module.WRITING: {'task_achievement': 0.0, 'coherence': 0.0, 'vocabulary': -0.5, 'grammar': 0.0},
    Module.SPEAKING: {'fluency': 0.0, 'vocabulary': -0.5, 'grammar': 0.0, 'pronunciation': -0.5},
}


def estimate_band(module: Module, response_text: str) -> ModuleScore:
    """Estimate a writing/speaking score from length and marker words"""
    text = response_text or ''
    if module is Module.WRITING:
        score, feedback = _writing_estimate(text), WRITING_FEEDBACK
    elif module is Module.SPEAKING:
        score, feedback = _speaking_estimate(text), SPEAKING_FEEDBACK
    else:
        raise ValueError(f"no heuristic for {module.value}")

    offsets = HEURISTIC_OFFSETS[module]
    dimensions = {name: score + offsets[name] for name in DIMENSIONS[module]}
    return ModuleScore(
        module=module,
        dimensions=dimensions,
        overall=round_to_half(mean(dimensions.values())),
        feedback=feedback,
        source=Source.FALLBACK,
    )


def calculate_overall_band(bands: Iterable[float]) -> float:
    """Average the positive module bands, rounded to the nearest 0.5"""
    valid: List[float] = [b for b in bands if b is not None and b > 0]
    if not valid:
        raise IncompleteExamError()
    return round_to_half(mean(valid))
