#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Anthropic Reasoning Engine

Drives the orchestration loop with Claude through the Messages API. The
vendor-neutral history kept by the loop is translated to Messages API turns on
every call, and the response's tool_use blocks become ToolInvocations.
"""

import logging
from typing import Dict, List, Any, Mapping, Optional, Sequence

import anthropic
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..config import AppConfig
from ..orchestration.errors import ReasoningUnavailableError
from ..orchestration.orchestrator import ReasoningEngine, ReasoningTurn, ToolInvocation, TokenUsage
from ..utils.logger import get_logger, log_sensitive

logger = get_logger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3

TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


def to_messages(history: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Translate neutral history entries into Messages API turns."""
    messages: List[Dict[str, Any]] = []

    for entry in history:
        role = entry.get("role")
        if role == "user":
            blocks = [{"type": "text", "text": entry.get("content") or ""}]
            _append(messages, "user", blocks)
        elif role == "assistant":
            blocks = []
            if entry.get("content"):
                blocks.append({"type": "text", "text": entry["content"]})
            for invocation in entry.get("invocations") or []:
                blocks.append({
                    "type": "tool_use",
                    "id": invocation["id"],
                    "name": invocation["name"],
                    "input": invocation.get("input") or {},
                })
            if not blocks:
                blocks.append({"type": "text", "text": "(no response)"})
            _append(messages, "assistant", blocks)
        elif role == "tool":
            blocks = [
                {
                    "type": "tool_result",
                    "tool_use_id": result["invocation_id"],
                    "content": result.get("content") or "",
                    "is_error": bool(result.get("is_error")),
                }
                for result in entry.get("results") or []
            ]
            if blocks:
                _append(messages, "user", blocks)
        else:
            raise ValueError(f"Unknown history role: {role}")

    return messages


def _append(messages: List[Dict[str, Any]], role: str, blocks: List[Dict[str, Any]]) -> None:
    # Consecutive turns of the same role are merged into one message
    if messages and messages[-1]["role"] == role:
        messages[-1]["content"].extend(blocks)
    else:
        messages.append({"role": role, "content": blocks})


def to_turn(response: Any) -> ReasoningTurn:
    """Turn a Messages API response into a ReasoningTurn."""
    invocations = []
    text_parts = []
    for block in response.content:
        if block.type == "tool_use":
            invocations.append(ToolInvocation(id=block.id, name=block.name, input=dict(block.input or {})))
        elif block.type == "text":
            text_parts.append(block.text)

    usage = TokenUsage(
        input_tokens=getattr(response.usage, "input_tokens", 0) or 0,
        output_tokens=getattr(response.usage, "output_tokens", 0) or 0,
    )
    return ReasoningTurn(
        invocations=invocations,
        finished=not invocations and response.stop_reason == "end_turn",
        usage=usage,
        text="\n".join(text_parts),
    )


class AnthropicReasoningEngine(ReasoningEngine):
    """Claude-backed reasoning engine."""

    def __init__(self, config: Optional[AppConfig] = None,
                 client: Optional[anthropic.Anthropic] = None,
                 model: Optional[str] = None,
                 max_tokens: Optional[int] = None):
        """
        Initialize the engine.

        Args:
            config: Application configuration (a fresh AppConfig if None)
            client: Preconfigured client; built from the configured API key if None
            model: Model name, defaults to ``config.reasoning_model``
            max_tokens: Response token limit, defaults to ``config.reasoning_max_tokens``
        """
        self.config = config or AppConfig()
        if client is None:
            if not self.config.anthropic_api_key:
                raise ValueError("Anthropic API key is required")
            log_sensitive(
                logger, logging.DEBUG, f"Creating Anthropic client with key {self.config.anthropic_api_key}",
                api_key=self.config.anthropic_api_key,
            )
            # Retries are handled here, with tenacity
            client = anthropic.Anthropic(
                api_key=self.config.anthropic_api_key,
                timeout=self.config.reasoning_timeout_secs,
                max_retries=0,
            )
        self.client = client
        self.model = model or self.config.reasoning_model
        self.max_tokens = max_tokens or self.config.reasoning_max_tokens

    @retry(
        stop=stop_after_attempt(DEFAULT_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=20),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    def _create(self, **kwargs) -> Any:
        return self.client.messages.create(**kwargs)

    def converse(self, history: Sequence[Mapping[str, Any]],
                 capabilities: Sequence[Mapping[str, Any]],
                 system: Optional[str] = None) -> ReasoningTurn:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": to_messages(history),
        }
        if capabilities:
            request["tools"] = [dict(c) for c in capabilities]
        if system:
            request["system"] = system

        try:
            response = self._create(**request)
        except anthropic.APIError as e:
            logger.error(f"Anthropic request failed: {type(e).__name__}: {e}")
            raise ReasoningUnavailableError(f"Reasoning engine unavailable: {e}") from e

        turn = to_turn(response)
        logger.debug(
            f"Reasoning turn: {len(turn.invocations)} invocations, stop_reason={response.stop_reason}, "
            f"tokens={turn.usage.total}"
        )
        return turn
