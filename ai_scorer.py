"""
AI scoring client.

Sends one rubric prompt per call to an OpenAI-compatible chat endpoint and
pulls the JSON score object out of the free-form reply. Every failure is
returned as an ``OracleFailure``; nothing is retried.
"""
import json
import logging
import re
from dataclasses import dataclass
from statistics import mean
from typing import Any, Dict, Optional, Union

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from config import OracleConfig, ScoringConfig
from data.test_data import BAND_DESCRIPTORS, FALLBACK_QUESTIONS
from exceptions import OracleError, OracleParseError, OracleSemanticError, OracleTransportError
from models import DIMENSIONS, REPLY_SCHEMAS, Module, ModuleScore, PromptKind, Source
from scoring import round_to_half

logger = logging.getLogger(__name__)

# Widest match: first "{" to last "}"
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

WRITING_CRITERIA = """1. Task Achievement/Response (0-9)
2. Coherence and Cohesion (0-9)
3. Lexical Resource (0-9)
4. Grammatical Range and Accuracy (0-9)"""

SPEAKING_CRITERIA = """1. Fluency and Coherence (0-9)
2. Lexical Resource (0-9)
3. Grammatical Range and Accuracy (0-9)
4. Pronunciation (0-9)"""

WRITING_FORMAT = """{
  "task_achievement": number,
  "coherence": number,
  "vocabulary": number,
  "grammar": number,
  "overall": number,
  "feedback": "string with specific feedback"
}"""

SPEAKING_FORMAT = """{
  "fluency": number,
  "vocabulary": number,
  "grammar": number,
  "pronunciation": number,
  "overall": number,
  "feedback": "string with specific feedback"
}"""

QUESTION_PROMPTS = {
    Module.LISTENING: """Generate an IELTS Listening section question for Band {band}.
Include: 1) A short dialogue/lecture transcript, 2) 4 multiple choice questions, 3) Correct answers.
Format as JSON: {{"transcript": string, "questions": array, "answers": array}}""",
    Module.READING: """Generate an IELTS Reading passage for Band {band} on an academic topic.
Include: 1) 250-word passage, 2) 5 True/False/Not Given questions, 3) Answers.
Format as JSON: {{"passage": string, "questions": array, "answers": array}}""",
    Module.WRITING: """Generate IELTS Writing Task 1 for Band {band}.
Describe a chart/graph/diagram with: 1) Description of visual, 2) Key features to mention, 3) Sample answer structure.
Format as JSON: {{"task_description": string, "visual_description": string, "key_features": array, "sample_structure": string}}""",
    Module.SPEAKING: """Generate IELTS Speaking Part 2 topic for Band {band}.
Include: 1) Topic card, 2) Key points to cover, 3) Sample response outline.
Format as JSON: {{"topic": string, "instructions": string, "key_points": array, "sample_outline": string}}""",
}


@dataclass(frozen=True)
class OracleFailure:
    """Tagged result of a scoring call that produced no usable score."""
    kind: Union[PromptKind, str]
    reason: str
    message: str
    provider: str = ""


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Decode the brace-delimited object embedded in a free-form reply"""
    match = JSON_OBJECT.search(text or "")
    if not match:
        raise OracleParseError("No JSON object found in reply")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise OracleParseError(f"Invalid JSON in reply: {e}") from e

    if not isinstance(payload, dict):
        raise OracleParseError("Reply JSON is not an object")
    if "error" in payload:
        raise OracleSemanticError(f"Endpoint returned an error: {payload['error']}")
    return payload


def _band_guide() -> str:
    lines = []
    for band in sorted(BAND_DESCRIPTORS, reverse=True):
        descriptor = BAND_DESCRIPTORS[band]
        lines.append(f"- Band {band} ({descriptor['description']}): {'; '.join(descriptor['characteristics'])}")
    return "\n".join(lines)


def build_scoring_prompt(kind: PromptKind, answer: str, question: Optional[str] = None) -> str:
    if kind is PromptKind.SPEAKING_RESPONSE:
        return f"""You are an IELTS examiner. Evaluate this IELTS Speaking response:

Question: {question or ''}
Candidate Response: "{answer}"

Evaluate based on:
{SPEAKING_CRITERIA}

Band guide:
{_band_guide()}

Provide the overall band (average, rounded to nearest 0.5) and specific feedback.

Return ONLY JSON format:
{SPEAKING_FORMAT}"""

    task_number = 1 if kind is PromptKind.WRITING_TASK1 else 2
    task_line = f"Task: {question}\n\n" if question else ""
    return f"""You are an IELTS examiner. Evaluate this IELTS Writing response (Task {task_number}):

{task_line}Response: "{answer}"

Use official IELTS criteria:
{WRITING_CRITERIA}

Band guide:
{_band_guide()}

Calculate overall band score (average, rounded to nearest 0.5).
Provide specific feedback for improvement.

Return ONLY JSON format:
{WRITING_FORMAT}"""


class AIScoreClient:
    """Scores writing and speaking responses through the configured oracles."""

    def __init__(self, config: ScoringConfig, clients: Optional[Dict[str, Any]] = None):
        self.config = config
        # provider name -> chat client
        self._clients: Dict[str, Any] = dict(clients or {})

    def _oracle_for(self, kind: PromptKind) -> OracleConfig:
        if kind.module is Module.SPEAKING:
            return self.config.speaking
        return self.config.writing

    def _client_for(self, oracle: OracleConfig):
        client = self._clients.get(oracle.name)
        if client is not None:
            return client
        if not oracle.configured:
            raise OracleTransportError("API key not configured", oracle.name)

        client = AsyncOpenAI(
            api_key=oracle.api_key,
            base_url=oracle.base_url,
            timeout=oracle.timeout,
            max_retries=0,
        )
        self._clients[oracle.name] = client
        return client

    async def _complete(self, oracle: OracleConfig, prompt: str) -> str:
        client = self._client_for(oracle)
        request = {
            "model": oracle.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": oracle.temperature,
        }
        if oracle.max_tokens:
            request["max_tokens"] = oracle.max_tokens

        try:
            response = await client.chat.completions.create(**request)
        except APIStatusError as e:
            raise OracleSemanticError(f"HTTP {e.status_code}: {e.message}", oracle.name) from e
        except APIConnectionError as e:
            raise OracleTransportError(str(e), oracle.name) from e
        except OpenAIError as e:
            raise OracleTransportError(str(e), oracle.name) from e

        if not response.choices:
            raise OracleSemanticError("Reply has no choices", oracle.name)
        content = response.choices[0].message.content
        if not content:
            raise OracleParseError("Reply has no text", oracle.name)
        return content

    async def aclose(self):
        """Close the chat clients opened by this scorer"""
        clients, self._clients = self._clients, {}
        for client in clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                await close()

    @staticmethod
    def _to_module_score(kind: PromptKind, payload: Dict[str, Any]) -> ModuleScore:
        schema = REPLY_SCHEMAS[kind]
        try:
            reply = schema.model_validate(payload)
        except ValidationError as e:
            raise OracleParseError(f"Reply does not match {kind.value} schema: {e.error_count()} errors") from e

        module = kind.module
        dimensions = {name: round_to_half(getattr(reply, name)) for name in DIMENSIONS[module]}
        overall = reply.overall
        if overall is None:
            overall = round_to_half(mean(dimensions.values()))

        return ModuleScore(
            module=module,
            dimensions=dimensions,
            overall=overall,
            feedback=reply.feedback,
            source=Source.AI,
        )

    async def score(self, kind: PromptKind, answer: str,
                    question: Optional[str] = None) -> Union[ModuleScore, OracleFailure]:
        """Score one response; returns a ModuleScore or an OracleFailure"""
        try:
            kind = PromptKind(kind)
        except ValueError:
            logger.warning(f"Unknown prompt kind: {kind!r}")
            return OracleFailure(kind=kind, reason=OracleSemanticError.reason, message=f"Unknown prompt kind: {kind!r}")

        oracle = self._oracle_for(kind)
        try:
            prompt = build_scoring_prompt(kind, answer, question)
            text = await self._complete(oracle, prompt)
            result = self._to_module_score(kind, extract_json_object(text))
        except OracleError as e:
            logger.warning(f"{kind.value} scoring failed ({e.reason}): {e}")
            return OracleFailure(kind=kind, reason=e.reason, message=e.message, provider=oracle.name)
        except Exception as e:
            logger.exception(f"{kind.value} scoring failed unexpectedly")
            return OracleFailure(kind=kind, reason=OracleTransportError.reason, message=str(e), provider=oracle.name)

        logger.info(f"{kind.value} scored by {oracle.name}: band {result.overall}")
        return result

    async def generate_question(self, module: Module, band_level: float = 6) -> Dict[str, Any]:
        """Generate an exam question, or return the stock question for the module"""
        module = Module(module)
        oracle = self.config.questions
        prompt = QUESTION_PROMPTS[module].format(band=band_level)

        try:
            question = extract_json_object(await self._complete(oracle, prompt))
        except OracleError as e:
            logger.warning(f"Question generation for {module.value} failed ({e.reason}): {e}")
            return {**FALLBACK_QUESTIONS[module.value], "source": Source.FALLBACK.value}

        return {**question, "source": Source.AI.value}
