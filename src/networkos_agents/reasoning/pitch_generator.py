#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Claude-backed pitch generator used by the generate_pitch capability.
"""

import json
from typing import Dict, List, Any, Optional

import anthropic

from ..config import AppConfig
from ..capabilities.handlers import PitchGenerator, PitchResult
from ..orchestration.errors import CapabilityError
from ..utils.logger import get_logger

logger = get_logger(__name__)

PITCH_MODEL = "claude-sonnet-4-20250514"
PITCH_MAX_TOKENS = 2000

PITCH_FORMATS = {
    "email": "a cold outreach email with a compelling subject line (under 150 words)",
    "linkedin": "a LinkedIn connection message (under 300 characters)",
    "call_script": "a short cold call script with an opener, two discovery questions and a close",
}


def build_pitch_prompt(company: Dict[str, Any], contact: Optional[Dict[str, Any]],
                       pitch_type: str, tone: str, focus_products: Optional[List[str]]) -> str:
    lines = [
        f"Write {PITCH_FORMATS.get(pitch_type, pitch_type)} in a {tone.lower()} tone.",
        "",
        f"Company: {company.get('name') or company.get('domain')}",
        f"Industry: {company.get('industry') or 'Unknown'}",
        f"Size: {company.get('size') or 'Unknown'}",
    ]
    if company.get("description"):
        lines.append(f"Description: {company['description']}")
    if company.get("tech_stack"):
        lines.append(f"Tech stack: {', '.join(str(t) for t in company['tech_stack'][:10])}")
    if contact:
        lines.append(f"Recipient: {contact.get('full_name')}, {contact.get('title') or 'unknown title'}")
    if focus_products:
        lines.append(f"Products to focus on: {', '.join(focus_products)}")
    lines += [
        "",
        "Return JSON with:",
        "- subject: string (email only, otherwise null)",
        "- body: string",
        "- hooks: array of up to 3 short personalization hooks you used",
        "- call_to_action: string",
        "Return only valid JSON.",
    ]
    return "\n".join(lines)


class AnthropicPitchGenerator(PitchGenerator):
    """Writes pitches with a smaller model, priced at the sub-agent rates."""

    def __init__(self, config: Optional[AppConfig] = None,
                 client: Optional[anthropic.Anthropic] = None,
                 model: str = PITCH_MODEL):
        self.config = config or AppConfig()
        self.client = client or anthropic.Anthropic(
            api_key=self.config.anthropic_api_key,
            timeout=self.config.capability_timeout_secs,
        )
        self.model = model

    def generate(self, company: Dict[str, Any], contact: Optional[Dict[str, Any]],
                 pitch_type: str, tone: str = "Professional",
                 focus_products: Optional[List[str]] = None) -> PitchResult:
        prompt = build_pitch_prompt(company, contact, pitch_type, tone, focus_products)
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=PITCH_MAX_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise CapabilityError(f"Pitch generation failed: {e}", code="pitch_failed") from e

        text = "".join(block.text for block in response.content if block.type == "text")
        tokens_in = response.usage.input_tokens
        tokens_out = response.usage.output_tokens
        cost = (tokens_in / 1000) * self.config.subagent_rate_in + (tokens_out / 1000) * self.config.subagent_rate_out

        try:
            parsed = json.loads(text)
            if not isinstance(parsed, dict):
                raise ValueError("pitch is not a JSON object")
        except ValueError as e:
            logger.warning(f"Pitch response was not valid JSON, keeping raw text: {e}")
            parsed = {"subject": None, "body": text.strip(), "hooks": []}

        pitch = {
            "type": pitch_type,
            "tone": tone,
            "subject": parsed.get("subject"),
            "body": parsed.get("body") or "",
            "hooks": list(parsed.get("hooks") or [])[:3],
            "call_to_action": parsed.get("call_to_action"),
            "products": list(focus_products or []),
            "model": self.model,
        }
        return PitchResult(pitch=pitch, cost=cost, tokens_used=tokens_in + tokens_out)
