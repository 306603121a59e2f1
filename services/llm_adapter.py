"""
OpenAI LLM Adapter with retry logic and budgets
"""

import asyncio
import json
import time
from typing import Dict, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import openai
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import get_config
from services.logging_utils import get_logger
from services.models import CollaboratorResult
from services.observability import record_external_call

logger = get_logger(__name__)

@dataclass
class LLMBudget:
    max_calls_per_hour: int = 100
    max_calls_per_day: int = 1000
    max_tokens_per_call: int = 1000
    current_hour_calls: int = 0
    current_day_calls: int = 0
    hour_reset_time: datetime = field(default_factory=datetime.now)
    day_reset_time: datetime = field(default_factory=datetime.now)

class LLMAdapter:
    """OpenAI adapter returning parsed JSON objects as tagged results"""

    def __init__(self, config=None, client: Optional[Any] = None):
        self.config = config or get_config()
        self.client = client or openai.AsyncOpenAI(api_key=self.config.OPENAI_API_KEY)
        self.budget = LLMBudget(
            max_calls_per_hour=self.config.LLM_MAX_CALLS_PER_HOUR,
            max_calls_per_day=self.config.LLM_MAX_CALLS_PER_DAY,
        )

    def _roll_windows(self):
        now = datetime.now()

        # Reset hourly counter
        if now > self.budget.hour_reset_time + timedelta(hours=1):
            self.budget.current_hour_calls = 0
            self.budget.hour_reset_time = now

        # Reset daily counter
        if now > self.budget.day_reset_time + timedelta(days=1):
            self.budget.current_day_calls = 0
            self.budget.day_reset_time = now

    def _check_budget(self) -> bool:
        """Check if we're within budget limits"""
        self._roll_windows()

        if self.budget.current_hour_calls >= self.budget.max_calls_per_hour:
            logger.warning("Hourly LLM budget exceeded")
            return False

        if self.budget.current_day_calls >= self.budget.max_calls_per_day:
            logger.warning("Daily LLM budget exceeded")
            return False

        return True

    def _increment_budget(self):
        """Increment budget counters"""
        self.budget.current_hour_calls += 1
        self.budget.current_day_calls += 1

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception_type((openai.RateLimitError, openai.APITimeoutError)),
        reraise=True,
    )
    async def _create(self, prompt: str, system: Optional[str]):
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        return await asyncio.wait_for(
            self.client.chat.completions.create(
                model=self.config.OPENAI_MODEL,
                messages=messages,
                response_format={"type": "json_object"},
                max_tokens=self.budget.max_tokens_per_call,
            ),
            timeout=self.config.COLLABORATOR_TIMEOUT_SECONDS,
        )

    async def complete_json(self, prompt: str, system: Optional[str] = None) -> CollaboratorResult[Dict[str, Any]]:
        """
        Ask the model for a JSON object

        Args:
            prompt: User prompt describing the expected JSON shape
            system: Optional system prompt

        Returns:
            Success with the parsed object, or failure describing what went
            wrong (budget, timeout, API error, malformed JSON). Callers still
            validate the fields they need.
        """
        if not self._check_budget():
            record_external_call("llm", "budget_exceeded")
            return CollaboratorResult.failure("LLM budget exceeded")

        start_time = time.time()
        try:
            response = await self._create(prompt, system)
        except asyncio.TimeoutError:
            logger.error("LLM call timed out")
            record_external_call("llm", "timeout")
            return CollaboratorResult.failure("timeout")
        except openai.RateLimitError as e:
            logger.error(f"Rate limit error: {e}")
            record_external_call("llm", "rate_limited")
            return CollaboratorResult.failure(f"rate limited: {e}")
        except Exception as e:
            logger.error(f"Unexpected LLM error: {e}")
            record_external_call("llm", "error")
            return CollaboratorResult.failure(str(e))

        self._increment_budget()
        duration = time.time() - start_time
        usage = getattr(response, "usage", None)
        logger.info(
            f"LLM call completed in {duration:.2f}s, tokens: {getattr(usage, 'total_tokens', 0)}"
        )

        try:
            content = response.choices[0].message.content or "{}"
            parsed = json.loads(content)
        except (AttributeError, IndexError, TypeError, json.JSONDecodeError) as e:
            logger.warning(f"LLM returned malformed JSON: {e}")
            record_external_call("llm", "malformed")
            return CollaboratorResult.failure(f"malformed JSON: {e}")

        if not isinstance(parsed, dict):
            record_external_call("llm", "malformed")
            return CollaboratorResult.failure("expected a JSON object")

        record_external_call("llm", "success")
        return CollaboratorResult.success(parsed)

    def get_budget_status(self) -> Dict[str, Any]:
        """Get current budget status"""
        return {
            "hourly_usage": f"{self.budget.current_hour_calls}/{self.budget.max_calls_per_hour}",
            "daily_usage": f"{self.budget.current_day_calls}/{self.budget.max_calls_per_day}",
        }

    def remaining_calls(self) -> int:
        """Calls left before the hourly or daily budget runs out"""
        self._roll_windows()
        return max(0, min(
            self.budget.max_calls_per_hour - self.budget.current_hour_calls,
            self.budget.max_calls_per_day - self.budget.current_day_calls,
        ))
