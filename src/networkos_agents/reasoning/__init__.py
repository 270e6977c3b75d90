"""
Reasoning engines backed by the Anthropic Messages API.
"""

from .anthropic_engine import AnthropicReasoningEngine
from .pitch_generator import AnthropicPitchGenerator

__all__ = ["AnthropicReasoningEngine", "AnthropicPitchGenerator"]
