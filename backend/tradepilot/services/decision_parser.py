"""
Decision Parser for AI responses.

Parses and validates AI-generated trading decisions. The reply is untrusted:
anything that is not a single well-formed decision raises
DecisionParseError.
"""

import json
import logging
import math
import re
from typing import Any, Optional

from pydantic import ValidationError

from ..core.errors import DecisionParseError
from ..models.decision import Decision, decision_adapter

logger = logging.getLogger(__name__)


class DecisionParser:
    """
    Parses AI responses into a validated Decision.

    Handles:
    - JSON extraction from code blocks or surrounding prose
    - Typographic quote fixes
    - Both reply shapes: {"decision": "BUY", ...} and {"action": "buy", ...}
    - Schema and range validation
    """

    JSON_BLOCK_PATTERN = re.compile(
        r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE
    )

    ACTION_ALIASES = {
        "buy": "buy",
        "long": "buy",
        "sell": "sell",
        "short": "sell",
        "hold": "hold",
        "wait": "hold",
        "none": "hold",
    }

    def parse(self, raw_response: str) -> Decision:
        """
        Parse AI response into a Decision.

        Raises:
            DecisionParseError: If parsing or validation fails
        """
        if not raw_response or not raw_response.strip():
            raise DecisionParseError("Empty response", raw_response or "")

        cleaned = self._fix_encoding(raw_response)

        json_str = self._extract_json(cleaned)
        if not json_str:
            raise DecisionParseError("No valid JSON found in response", raw_response)

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise DecisionParseError(f"Invalid JSON: {e}", raw_response)

        if not isinstance(data, dict):
            raise DecisionParseError(
                f"Expected a JSON object, got {type(data).__name__}", raw_response
            )

        normalized = self._normalize(data, raw_response)

        try:
            return decision_adapter.validate_python(normalized)
        except ValidationError as e:
            raise DecisionParseError(f"Validation error: {e}", raw_response)

    def _fix_encoding(self, text: str) -> str:
        replacements = {
            "\u201c": '"',
            "\u201d": '"',
            "\u2018": "'",
            "\u2019": "'",
        }
        for old, new in replacements.items():
            text = text.replace(old, new)
        return text

    def _extract_json(self, text: str) -> Optional[str]:
        """
        Extract JSON from various response formats.

        Tries in order:
        1. The whole text
        2. A fenced code block
        3. The first balanced {...} object
        """
        stripped = text.strip()
        try:
            json.loads(stripped)
            return stripped
        except json.JSONDecodeError:
            pass

        match = self.JSON_BLOCK_PATTERN.search(text)
        if match:
            return match.group(1).strip()

        json_start = text.find("{")
        if json_start >= 0:
            depth = 0
            in_string = False
            escaped = False
            for i, c in enumerate(text[json_start:]):
                if in_string:
                    if escaped:
                        escaped = False
                    elif c == "\\":
                        escaped = True
                    elif c == '"':
                        in_string = False
                    continue
                if c == '"':
                    in_string = True
                elif c == "{":
                    depth += 1
                elif c == "}":
                    depth -= 1
                    if depth == 0:
                        return text[json_start : json_start + i + 1]

        logger.warning(
            f"[DecisionParser] Failed to extract JSON from response. "
            f"Response length={len(text)}, preview: {text[:300]}"
        )
        return None

    def _normalize(self, data: dict[str, Any], raw_response: str) -> dict[str, Any]:
        """Map reply variants onto the Decision schema."""
        raw_action = data.get("action", data.get("decision"))
        if not isinstance(raw_action, str):
            raise DecisionParseError("Missing 'action' (or 'decision') field", raw_response)

        action = self.ACTION_ALIASES.get(raw_action.strip().lower())
        if action is None:
            raise DecisionParseError(f"Unknown action: {raw_action!r}", raw_response)

        # Floor fractional confidence: 69.9 must stay below a threshold of 70
        confidence = data.get("confidence")
        if isinstance(confidence, float) and math.isfinite(confidence):
            confidence = math.floor(confidence)

        normalized: dict[str, Any] = {
            "action": action,
            "confidence": confidence,
            "reasoning": data.get("reasoning", ""),
        }

        symbol = data.get("symbol")
        if symbol is not None:
            normalized["symbol"] = symbol

        # null and 0 both mean "size it for me"
        quantity = data.get("quantity")
        if quantity is not None and not (
            isinstance(quantity, (int, float)) and not isinstance(quantity, bool) and quantity == 0
        ):
            normalized["quantity"] = quantity

        return normalized
