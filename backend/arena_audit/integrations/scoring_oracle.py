"""LLM scoring oracle — re-scores a submission through the Anthropic Messages API.

Uses the same rubric as the platform's original auto-scorer (correctness,
readability, adherence) and expects a bare 0-100 number back. Calls are
guarded by a circuit breaker so a dead API fails fast instead of costing a
full timeout per sampled submission.

Timeouts are applied by the caller (RescorerAdapter), not here; a call the
caller cancels is recorded as a breaker failure.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time

import anthropic

from arena_audit.config import settings
from arena_audit.errors import OracleCircuitOpenError, RescoreError, ScoreParseError

logger = logging.getLogger(__name__)

_SCORE_RE = re.compile(r"\b(\d{1,3}(?:\.\d+)?)\b")
_MAX_CODE_CHARS = 8000

SYSTEM_PROMPT = (
    "You are a precise code reviewer. Always respond with only a numeric score between 0 and 100."
)

SCORING_PROMPT = """You are an expert code reviewer. Please evaluate the following submission and provide a score from 0 to 100.

TASK: {title}
SKILL AREA: {category}
DIFFICULTY: {difficulty}

SUBMISSION:
```
{proof}
```

EVALUATION CRITERIA:
- Correctness: Does the submission solve the task correctly? (0-40 points)
- Readability: Is it clear, well-structured, and easy to understand? (0-30 points)
- Adherence: Does it follow the task requirements and best practices? (0-30 points)

Respond with ONLY the numeric score (e.g., "85" or "72").

SCORE:"""


class OracleCircuitBreaker:
    """Trips re-scoring off while the oracle keeps failing.

    closed     every call goes through; consecutive failures are counted
    open       calls are rejected until ``reset_timeout`` has passed
    half_open  exactly one trial call is let through; its outcome closes
               or re-opens the circuit, other workers are rejected meanwhile

    A call cancelled by the caller's timeout counts as a failure, so a hung
    API trips the circuit the same way an erroring one does.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, reset_timeout: float = 60.0) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.reset_timeout = reset_timeout
        self._state = self.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        if self._state == self.OPEN and time.monotonic() - self._opened_at >= self.reset_timeout:
            self._state = self.HALF_OPEN
            self._trial_in_flight = False
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def allow_request(self) -> bool:
        state = self.state
        if state == self.CLOSED:
            return True
        if state == self.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            logger.info("Oracle circuit half-open, sending one trial request")
            return True
        return False

    def record_success(self) -> None:
        if self._state != self.CLOSED:
            logger.info("Oracle circuit closed after successful trial request")
        self._consecutive_failures = 0
        self._state = self.CLOSED
        self._trial_in_flight = False

    def record_failure(self, reason: str = "error") -> None:
        self._consecutive_failures += 1
        was_trial = self._state == self.HALF_OPEN
        self._trial_in_flight = False
        if was_trial or self._consecutive_failures >= self.failure_threshold:
            if self._state != self.OPEN:
                logger.warning(
                    "Oracle circuit OPEN after %d consecutive failures (last: %s)",
                    self._consecutive_failures, reason,
                )
            self._state = self.OPEN
            self._opened_at = time.monotonic()


def parse_score(text: str) -> float:
    """Extract the first number from an oracle reply, clamped to 0-100.

    Raises:
        ScoreParseError: If the reply contains no number.
    """
    match = _SCORE_RE.search(text or "")
    if match is None:
        raise ScoreParseError(f"No score in oracle reply: {text!r}")
    score = float(match.group(1))
    return float(round(min(100.0, max(0.0, score))))


class LLMScoringOracle:
    """Scoring oracle backed by Claude.

    Usage:
        oracle = LLMScoringOracle()
        score = await oracle.rescore_submission(ref.task_metadata(), ref.proof)
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        circuit_breaker: OracleCircuitBreaker | None = None,
    ) -> None:
        self.client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = model or settings.scoring_model
        self.max_tokens = max_tokens or settings.scoring_max_tokens
        self.temperature = settings.scoring_temperature if temperature is None else temperature
        self.circuit_breaker = circuit_breaker or OracleCircuitBreaker(
            failure_threshold=settings.oracle_failure_threshold,
            reset_timeout=settings.oracle_reset_timeout_seconds,
        )

    @staticmethod
    def build_prompt(task_metadata: dict, proof: str) -> str:
        code = proof or ""
        if len(code) > _MAX_CODE_CHARS:
            code = code[:_MAX_CODE_CHARS] + "..."
        return SCORING_PROMPT.format(
            title=task_metadata.get("title") or task_metadata.get("task_id", ""),
            category=task_metadata.get("category", "unknown"),
            difficulty=task_metadata.get("difficulty", "medium"),
            proof=code,
        )

    async def rescore_submission(self, task_metadata: dict, proof: str) -> float:
        """Return a fresh 0-100 score for one submission.

        Raises:
            OracleCircuitOpenError: If recent calls kept failing.
            RescoreError: On API errors or unparseable replies.
        """
        if not self.circuit_breaker.allow_request():
            raise OracleCircuitOpenError("Oracle circuit is open; re-scoring temporarily disabled")

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": self.build_prompt(task_metadata, proof)}],
            )
        except asyncio.CancelledError:
            self.circuit_breaker.record_failure("cancelled")
            raise
        except anthropic.APIError as e:
            self.circuit_breaker.record_failure(type(e).__name__)
            raise RescoreError(f"Anthropic API error: {e}") from e
        except Exception as e:
            self.circuit_breaker.record_failure(type(e).__name__)
            raise RescoreError(f"Oracle call failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()
        try:
            score = parse_score(text)
        except ScoreParseError:
            self.circuit_breaker.record_failure("unparseable reply")
            raise

        self.circuit_breaker.record_success()
        return score
