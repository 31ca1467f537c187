from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from mysql.connector import Error as DatabaseError
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional
import logging
import os
import uvicorn

from ai_scorer import AIScoreClient
from config import ScoringConfig
from data.test_data import SPEAKING_QUESTION
from models import AnswerSet, Module, OBJECTIVE_MODULES
from orchestrator import ScoringOrchestrator

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO'),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="IELTS Mock Exam - Scoring API")

# Initialize database on startup
@app.on_event("startup")
async def startup():
    from database import init_db
    try:
        init_db()
    except DatabaseError as e:
        logger.error(f"Database initialization error: {e}")
        logger.warning("Running without database - exam history will not be saved")

# Scoring services
scoring_config = ScoringConfig.from_env()
ai_client = AIScoreClient(scoring_config)

@app.on_event("shutdown")
async def shutdown():
    await ai_client.aclose()

def get_ai_client() -> AIScoreClient:
    return ai_client

def get_orchestrator(client: AIScoreClient = Depends(get_ai_client)) -> ScoringOrchestrator:
    return ScoringOrchestrator(client)


# ===== REQUEST MODELS =====

class ObjectiveRequest(BaseModel):
    module: Literal['listening', 'reading']
    answers: List[Optional[str]]
    answer_key: List[str]

class WritingRequest(BaseModel):
    answer: str
    task_type: Literal['task1', 'task2'] = 'task2'
    question: Optional[str] = None

class SpeakingRequest(BaseModel):
    response: str
    question: Optional[str] = None

class CreateExamRequest(BaseModel):
    user_id: str

class AnswerRequest(BaseModel):
    user_id: str
    question_id: int
    user_answer: str
    module: Module

class ExamSubmission(BaseModel):
    answer_sets: Dict[Module, AnswerSet] = Field(default_factory=dict)


def parse_module(name):
    try:
        return Module(name)
    except ValueError:
        return None

def build_answer_sets(rows):
    """Group stored answer records into one AnswerSet per module"""
    grouped = {}
    for row in rows:
        module = parse_module(row.get('module'))
        if module is not None:
            grouped.setdefault(module, []).append(row)

    answer_sets = {}
    for module, module_rows in grouped.items():
        if module in OBJECTIVE_MODULES:
            keyed = [r for r in module_rows if r.get('correct_answer') is not None]
            if keyed:
                answer_sets[module] = AnswerSet(
                    module=module,
                    answers=[r['user_answer'] for r in keyed],
                    answer_key=[r['correct_answer'] for r in keyed]
                )
        else:
            last = module_rows[-1]
            answer_sets[module] = AnswerSet(
                module=module,
                text="\n\n".join(r['user_answer'] for r in module_rows),
                question=last.get('question_text'),
                task_type=last.get('task_type') or 'task2'
            )
    return answer_sets


# ===== PUBLIC ROUTES =====

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "IELTS Mock Exam Scoring",
        "writing_oracle": scoring_config.writing.configured,
        "speaking_oracle": scoring_config.speaking.configured
    }

@app.get("/questions/{module}")
async def get_module_questions(module: str, limit: int = 5, band_level: float = 6,
                               client: AIScoreClient = Depends(get_ai_client)):
    """Questions from the question bank, or a generated question if the bank is empty"""
    parsed = parse_module(module)
    if parsed is None:
        return JSONResponse({"error": f"Unknown module: {module}"}, status_code=400)

    try:
        from database import get_questions
        questions = get_questions(parsed.value, limit=limit)
    except DatabaseError as e:
        logger.warning(f"Question bank unavailable: {e}")
        questions = []

    if questions:
        return {"module": parsed.value, "source": "database", "questions": questions}

    generated = await client.generate_question(parsed, band_level)
    return {"module": parsed.value, "source": generated.pop("source"), "generated": generated}

# ===== EXAM ROUTES =====

@app.post("/exams")
async def create_exam_route(body: CreateExamRequest):
    """Start a new exam attempt"""
    from database import create_exam
    exam_id = create_exam(body.user_id)
    if exam_id is None:
        return JSONResponse({"error": "Could not create exam"}, status_code=503)
    return {"success": True, "exam_id": exam_id}

@app.post("/exams/{exam_id}/answers")
async def save_answer_route(exam_id: int, body: AnswerRequest):
    """Save one submitted answer"""
    from database import save_answer
    saved = save_answer(body.user_id, exam_id, body.question_id, body.user_answer, body.module.value)
    if not saved:
        return JSONResponse({"error": "Could not save answer"}, status_code=503)
    return {"success": True}

@app.post("/exams/{exam_id}/score")
async def score_exam_route(exam_id: int, submission: Optional[ExamSubmission] = None,
                           orchestrator: ScoringOrchestrator = Depends(get_orchestrator)):
    """Score every submitted module and store the result on the attempt"""
    from database import complete_exam, get_exam, get_exam_answers

    try:
        exam = get_exam(exam_id)
        if not exam:
            return JSONResponse({"error": "Exam not found"}, status_code=404)

        if submission is not None and submission.answer_sets:
            answer_sets = submission.answer_sets
        else:
            answer_sets = build_answer_sets(get_exam_answers(exam_id))
    except DatabaseError as e:
        logger.error(f"Exam lookup failed: {e}")
        return JSONResponse({"error": "Database unavailable"}, status_code=503)

    try:
        result = await orchestrator.score_exam(answer_sets)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    try:
        complete_exam(exam_id, result)
    except DatabaseError as e:
        logger.error(f"Could not store result for exam {exam_id}: {e}")

    return result.model_dump(mode='json')

@app.get("/users/{user_id}/exams")
async def user_exams(user_id: str):
    """Exam history for a user, newest first"""
    from database import get_user_exams
    try:
        exams = get_user_exams(user_id)
    except DatabaseError as e:
        logger.error(f"Exam history unavailable: {e}")
        return JSONResponse({"error": "Database unavailable"}, status_code=503)
    return {"exams": exams}

# ===== SCORING ROUTES =====

@app.post("/score/objective")
async def score_objective(body: ObjectiveRequest,
                          orchestrator: ScoringOrchestrator = Depends(get_orchestrator)):
    """Grade listening/reading answers against a key"""
    module = Module(body.module)
    answers = AnswerSet(module=module, answers=body.answers, answer_key=body.answer_key)
    try:
        score = await orchestrator.score_module(module, answers)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return score.model_dump(mode='json')

@app.post("/score/writing")
async def score_writing(body: WritingRequest,
                        orchestrator: ScoringOrchestrator = Depends(get_orchestrator)):
    """Score a writing response with AI, falling back to an estimate"""
    if len(body.answer.strip()) < 50:
        return JSONResponse({"error": "Writing too short. Minimum 50 characters required."}, status_code=400)

    answers = AnswerSet(module=Module.WRITING, text=body.answer, task_type=body.task_type, question=body.question)
    score = await orchestrator.score_module(Module.WRITING, answers)
    return score.model_dump(mode='json')

@app.post("/score/speaking")
async def score_speaking(body: SpeakingRequest,
                         orchestrator: ScoringOrchestrator = Depends(get_orchestrator)):
    """Score a speaking transcript with AI, falling back to an estimate"""
    answers = AnswerSet(module=Module.SPEAKING, text=body.response, question=body.question or SPEAKING_QUESTION)
    score = await orchestrator.score_module(Module.SPEAKING, answers)
    return score.model_dump(mode='json')

if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
