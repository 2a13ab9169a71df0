"""Best-effort wording refinement of insight drafts through a text model.

Every failure path returns the drafts untouched. Provider health lives in an
explicit ProviderHealth object so callers decide how long it is shared.
"""

import json
import logging
import re
import time
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from ...config import ENHANCER_COOLDOWN_SECONDS, INSIGHT_AI_ENABLED
from ...services.openrouter_service import OpenRouterService
from .schemas import EnhancedReply, InsightDraft

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 70
MAX_MESSAGE_CHARS = 180
SEVERITIES = ("info", "warning", "critical")

SYSTEM_PROMPT = (
    "You are a scheduling operations analyst. Return strict JSON only. "
    "Keep messages concise and practical for dispatch managers."
)

FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class ProviderHealth:
    """Hard failures disable the provider; soft failures start a cooldown"""

    def __init__(
        self,
        cooldown_seconds: float = ENHANCER_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.disabled_reason: Optional[str] = None
        self.cooldown_until = 0.0

    def is_available(self) -> bool:
        return self.disabled_reason is None and self.clock() >= self.cooldown_until

    def mark_hard_failure(self, reason: str) -> None:
        self.disabled_reason = reason
        logger.warning(f"⚠️ Insight enhancer disabled: {reason}")

    def mark_soft_failure(self, reason: str) -> None:
        self.cooldown_until = self.clock() + self.cooldown_seconds
        logger.warning(f"⚠️ Insight enhancer cooling down {self.cooldown_seconds:.0f}s: {reason}")

    def mark_success(self) -> None:
        self.cooldown_until = 0.0


def extract_json_object(text: str) -> Optional[Any]:
    """Parse raw JSON, then a fenced block, then the outermost braces"""
    if not text:
        return None
    candidates = [text.strip()]
    fenced = FENCED_BLOCK.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first : last + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return None


def build_user_prompt(drafts: list[InsightDraft]) -> str:
    return json.dumps(
        {
            "task": "Refine wording and confidence for schedule insights.",
            "rules": [
                "Do not invent facts.",
                "Do not change kind/date/ids.",
                f"Keep each title under {MAX_TITLE_CHARS} chars.",
                f"Keep each message under {MAX_MESSAGE_CHARS} chars.",
            ],
            "items": [
                {
                    "index": index,
                    "kind": draft.kind,
                    "severity": draft.severity,
                    "title": draft.title,
                    "message": draft.message,
                }
                for index, draft in enumerate(drafts)
            ],
            "responseShape": {
                "items": [
                    {
                        "index": 0,
                        "title": "string",
                        "message": "string",
                        "severity": "info|warning|critical",
                        "confidence": 0.75,
                    }
                ]
            },
        }
    )


def apply_reply(drafts: list[InsightDraft], reply: EnhancedReply) -> list[InsightDraft]:
    """Merge refinements; identifying fields always come from the drafts"""
    refined = list(drafts)
    for item in reply.items:
        if item.index < 0 or item.index >= len(refined):
            continue
        target = refined[item.index]
        title = (item.title or "").strip()
        message = (item.message or "").strip()
        confidence = target.confidence
        if item.confidence is not None:
            confidence = min(1.0, max(0.0, item.confidence))

        refined[item.index] = target.model_copy(
            update={
                "title": title[:MAX_TITLE_CHARS] if title else target.title,
                "message": message[:MAX_MESSAGE_CHARS] if message else target.message,
                "severity": item.severity if item.severity in SEVERITIES else target.severity,
                "confidence": confidence,
                "source": "hybrid",
            }
        )
    return refined


class InsightEnhancer:
    """Refines draft titles and messages; never raises to the caller"""

    def __init__(
        self,
        client: Optional[OpenRouterService] = None,
        health: Optional[ProviderHealth] = None,
        enabled: bool = INSIGHT_AI_ENABLED,
    ):
        self.client = client or OpenRouterService()
        self.health = health or ProviderHealth()
        self.enabled = enabled

    @property
    def model(self) -> str:
        return self.client.model

    def can_enhance(self) -> bool:
        return self.enabled and self.client.is_configured and self.health.is_available()

    async def enhance(self, drafts: list[InsightDraft]) -> list[InsightDraft]:
        if not drafts or not self.can_enhance():
            return drafts

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(drafts)},
        ]

        try:
            response = await self.client.create_completion(messages)
        except httpx.HTTPError as e:
            self.health.mark_soft_failure(f"{type(e).__name__}: {e}")
            return drafts

        if response.status_code in (401, 402):
            self.health.mark_hard_failure(f"HTTP {response.status_code}")
            return drafts
        if response.status_code == 429:
            self.health.mark_soft_failure("rate limited")
            return drafts
        if response.status_code < 200 or response.status_code >= 300:
            logger.warning(f"⚠️ Insight enhancer got HTTP {response.status_code}, keeping rule text")
            return drafts

        self.health.mark_success()

        try:
            return self._refine(drafts, response)
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning(f"⚠️ Insight enhancer reply could not be used: {type(e).__name__}: {e}")
            return drafts

    def _refine(self, drafts: list[InsightDraft], response: httpx.Response) -> list[InsightDraft]:
        try:
            body = response.json()
        except ValueError:
            logger.warning("⚠️ Insight enhancer returned non-JSON body")
            return drafts

        parsed = extract_json_object(OpenRouterService.extract_content(body) or "")
        if not isinstance(parsed, dict):
            logger.warning("⚠️ Insight enhancer reply had no JSON object")
            return drafts

        try:
            reply = EnhancedReply.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"⚠️ Insight enhancer reply failed validation: {e.error_count()} errors")
            return drafts

        refined = apply_reply(drafts, reply)
        logger.info(f"✅ Enhanced {len(reply.items)}/{len(drafts)} insight drafts")
        return refined


# Shared for the lifetime of the API process
default_provider_health = ProviderHealth()
