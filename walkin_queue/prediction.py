"""Hosted language-model client for queue predictions and customer tips.

Talks to an OpenAI-compatible chat-completions endpoint with `httpx`.
Three request kinds are supported:

- wait-time prediction for a customer joining now
- optimization suggestions for staff
- a friendly message/tip/fun fact for one waiting customer

Nothing here touches queue state. Every failure (missing key, rate limit,
exhausted credits, network error, unparseable answer) raises
`PredictionError`; callers show it as "no data available" and may retry
manually. There is no automatic retry.

Configuration comes from the environment:
- `QUEUE_AI_API_KEY` (required to make calls)
- `QUEUE_AI_BASE_URL` (default: https://ai.gateway.lovable.dev/v1)
- `QUEUE_AI_MODEL` (default: google/gemini-2.5-flash)
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import httpx

from .errors import PredictionError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://ai.gateway.lovable.dev/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"

_FENCE_RE = re.compile(r"```(?:json)?\n?")

PREDICT_SYSTEM_PROMPT = """You are a queue management AI assistant. Based on the queue data provided, predict wait times and provide insights. Be concise and helpful. Always respond in JSON format with the following structure:
{
  "predictedWaitMinutes": number,
  "confidence": "high" | "medium" | "low",
  "factors": ["factor1", "factor2"],
  "recommendation": "string"
}"""

OPTIMIZE_SYSTEM_PROMPT = """You are a queue optimization AI. Analyze queue patterns and suggest improvements. Be actionable and specific. Always respond in JSON format:
{
  "suggestions": [{"title": "string", "description": "string", "impact": "high" | "medium" | "low"}],
  "peakHours": ["hour1", "hour2"],
  "staffingRecommendation": "string"
}"""

INSIGHTS_SYSTEM_PROMPT = """You are a helpful queue assistant. Provide friendly, encouraging messages to customers waiting in queue. Keep responses brief and positive. Respond in JSON:
{
  "message": "string",
  "tip": "string",
  "funFact": "string"
}"""


@dataclass(frozen=True)
class WaitPrediction:
    predicted_wait_minutes: float | None
    confidence: str | None
    factors: list[str] = field(default_factory=list)
    recommendation: str | None = None

    def to_message(self) -> dict[str, Any]:
        return {
            "predictedWaitMinutes": self.predicted_wait_minutes,
            "confidence": self.confidence,
            "factors": list(self.factors),
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class Suggestion:
    title: str
    description: str
    impact: str


@dataclass(frozen=True)
class OptimizationResult:
    suggestions: list[Suggestion] = field(default_factory=list)
    peak_hours: list[str] = field(default_factory=list)
    staffing_recommendation: str | None = None

    def to_message(self) -> dict[str, Any]:
        return {
            "suggestions": [
                {"title": s.title, "description": s.description, "impact": s.impact} for s in self.suggestions
            ],
            "peakHours": list(self.peak_hours),
            "staffingRecommendation": self.staffing_recommendation,
        }


@dataclass(frozen=True)
class CustomerInsights:
    message: str | None
    tip: str | None
    fun_fact: str | None

    def to_message(self) -> dict[str, Any]:
        return {"message": self.message, "tip": self.tip, "funFact": self.fun_fact}


def parse_model_json(content: Any) -> dict[str, Any]:
    """Extract the JSON object from a model answer, tolerating ``` fences."""
    if not isinstance(content, str) or not content.strip():
        raise PredictionError("malformed_response", "AI service returned an empty answer")
    cleaned = _FENCE_RE.sub("", content).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise PredictionError("malformed_response", "AI service returned invalid JSON") from e
    if not isinstance(data, dict):
        raise PredictionError("malformed_response", "AI service returned a non-object answer")
    return data


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int, float))]


class QueueAIClient:
    """Blocking client; run it off latency-sensitive threads."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 15.0,
        http_client: httpx.Client | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._http = http_client or httpx.Client(timeout=timeout)
        self._now = now

    @classmethod
    def from_env(cls) -> QueueAIClient:
        return cls(
            api_key=os.getenv("QUEUE_AI_API_KEY"),
            base_url=os.getenv("QUEUE_AI_BASE_URL", DEFAULT_BASE_URL),
            model=os.getenv("QUEUE_AI_MODEL", DEFAULT_MODEL),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def close(self) -> None:
        self._http.close()

    # -------------------- request kinds --------------------

    def predict_wait_time(self, *, queue_size: int, avg_service_time: float, served_today: int) -> WaitPrediction:
        now = self._now()
        user_prompt = (
            "Based on this queue data, predict the wait time for a new customer joining now:\n"
            f"- Current queue size: {queue_size}\n"
            f"- Average service time: {avg_service_time} minutes\n"
            f"- People served today: {served_today}\n"
            f"- Current time: {now.strftime('%H:%M:%S')}\n"
            f"- Day of week: {now.strftime('%A')}\n\n"
            "Provide a wait time prediction with confidence level and factors."
        )
        data = self._complete("predict_wait_time", PREDICT_SYSTEM_PROMPT, user_prompt)

        minutes = data.get("predictedWaitMinutes")
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
            minutes = None
        return WaitPrediction(
            predicted_wait_minutes=minutes,
            confidence=_str_or_none(data.get("confidence")),
            factors=_str_list(data.get("factors")),
            recommendation=_str_or_none(data.get("recommendation")),
        )

    def optimize_queue(self, *, total_waiting: int, served_today: int, avg_service_time: float) -> OptimizationResult:
        user_prompt = (
            "Analyze this queue data and provide optimization suggestions:\n"
            f"- Total waiting: {total_waiting}\n"
            f"- People served today: {served_today}\n"
            f"- Average service time: {avg_service_time} minutes\n"
            f"- Current hour: {self._now().hour}:00\n\n"
            "Provide actionable suggestions to improve queue efficiency."
        )
        data = self._complete("optimize_queue", OPTIMIZE_SYSTEM_PROMPT, user_prompt)

        suggestions: list[Suggestion] = []
        raw = data.get("suggestions")
        for item in raw if isinstance(raw, list) else []:
            if not isinstance(item, dict):
                continue
            suggestions.append(
                Suggestion(
                    title=str(item.get("title", "")),
                    description=str(item.get("description", "")),
                    impact=str(item.get("impact", "medium")),
                )
            )
        return OptimizationResult(
            suggestions=suggestions,
            peak_hours=_str_list(data.get("peakHours")),
            staffing_recommendation=_str_or_none(data.get("staffingRecommendation")),
        )

    def customer_insights(self, *, position: int, estimated_wait: float) -> CustomerInsights:
        user_prompt = (
            f"A customer is at position {position} with an estimated wait of {estimated_wait} minutes. "
            "Provide an encouraging message, a waiting tip, and a fun fact to pass the time."
        )
        data = self._complete("customer_insights", INSIGHTS_SYSTEM_PROMPT, user_prompt)
        return CustomerInsights(
            message=_str_or_none(data.get("message")),
            tip=_str_or_none(data.get("tip")),
            fun_fact=_str_or_none(data.get("funFact")),
        )

    # -------------------- transport --------------------

    def _complete(self, kind: str, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        if not self.api_key:
            raise PredictionError("not_configured", "AI service is not configured")

        logger.info("Processing %s request", kind)
        try:
            response = self._http.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                },
            )
        except httpx.HTTPError as e:
            logger.warning("AI gateway request failed: %s", e)
            raise PredictionError("upstream_error", "AI service unavailable") from e

        if response.status_code == 429:
            raise PredictionError("rate_limited", "Rate limit exceeded. Please try again later.")
        if response.status_code == 402:
            raise PredictionError("quota_exhausted", "AI credits exhausted. Please add credits.")
        if response.is_error:
            logger.error("AI gateway error: %s %s", response.status_code, response.text[:200])
            raise PredictionError("upstream_error", f"AI gateway error: {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise PredictionError("malformed_response", "AI service returned an unexpected payload") from e

        logger.debug("AI response received: %s", str(content)[:100])
        return parse_model_json(content)
