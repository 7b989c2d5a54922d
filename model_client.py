"""
# Copyright (C) 2025 Qleric
# Licensed under AGPL-3.0 - see LICENSE file
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from anthropic import Anthropic
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------
# Configuration
# -------------------------------------------------------------------------

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TIMEOUT_SECONDS = 60.0

INPUT_TOKEN_COST = 0.000003
OUTPUT_TOKEN_COST = 0.000015

HIGH_COST_ALERT_THRESHOLD = 1.0  # Alert if single request costs over $1


def get_anthropic_api_key() -> str:
    """Get the Anthropic API key."""
    key = os.getenv('ANTHROPIC_API_KEY', '').strip()
    if not key:
        logger.warning("No ANTHROPIC_API_KEY found in .env")
        return ""
    return key


def _env_number(name: str, default, cast):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    return (input_tokens * INPUT_TOKEN_COST) + (output_tokens * OUTPUT_TOKEN_COST)


# -------------------------------------------------------------------------
# Client
# -------------------------------------------------------------------------

@dataclass
class ModelResponse:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def cost(self) -> float:
        return calculate_cost(self.input_tokens, self.output_tokens)


class ClaudeClient:
    """Single-shot text generation against the Anthropic Messages API.

    Failed calls are not retried; errors are logged and re-raised as-is.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        api_key = api_key if api_key is not None else get_anthropic_api_key()
        self.model = model or os.getenv("CLAUDE_MODEL", DEFAULT_MODEL)
        self.max_tokens = max_tokens or _env_number("CLAUDE_MAX_TOKENS", DEFAULT_MAX_TOKENS, int)
        self.timeout = timeout or _env_number("CLAUDE_TIMEOUT", DEFAULT_TIMEOUT_SECONDS, float)
        self.client = Anthropic(api_key=api_key, max_retries=0) if api_key else None

    def generate(self, prompt: str) -> ModelResponse:
        if not self.client:
            raise ValueError("Anthropic client not initialized")

        logger.info(f"Calling Claude API ({self.model}, {len(prompt)} prompt chars)...")

        try:
            response = self.client.messages.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=0,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Claude API call failed: {e}")
            raise

        text = response.content[0].text if response.content else ""
        result = ModelResponse(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        logger.info(
            f"LLM Usage: {result.input_tokens} input tokens, "
            f"{result.output_tokens} output tokens, "
            f"cost=${result.cost:.6f}"
        )
        if result.cost > HIGH_COST_ALERT_THRESHOLD:
            logger.critical(f"🚨 HIGH COST ALERT: ${result.cost:.4f} for this request")

        return result
