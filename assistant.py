"""Conversational parameter assistant.

Turns free text ("a massive crisis at day 100 for 25 days") into suggested
CKICAS parameter values through an OpenAI chat completion. The simulation
never imports this module; callers pass the reply's parameter_changes to
CKICASModel.configure.
"""
import os
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openai import APIError, OpenAI

from ckicas_sim import PARAMETER_CONTROLS, ParameterSet

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4"


def _ranges():
    parts = []
    for key, _, lo, hi, _ in PARAMETER_CONTROLS:
        if lo is None:
            parts.append(f"{key} (true/false)")
        elif key in ("cycle_duration", "crisis_start", "crisis_duration"):
            parts.append(f"{key} ({lo}-{hi} days)")
        else:
            parts.append(f"{key} ({lo:g}-{hi:g})")
    return ", ".join(parts)


SYSTEM_PROMPT = f"""You are the "CKICAS Conversational Parameter Assistant" for an interactive systems simulation dashboard.

Your job is to analyse the user's free-text input, infer their intent, and map it to one or more valid CKICAS simulation parameters.

Rules:
- Always respond with a JSON object including:
  - summary: a brief English summary of what the user requested (max 1-2 sentences)
  - parameter_changes: a JSON dictionary of parameter keys and their suggested new values
- Only use these parameters:
  {_ranges()}
- Stay within the valid ranges for each parameter
- If input is unclear, ask a clarifying question in the summary and return empty parameter_changes
- Map qualitative terms intelligently (e.g., "more resilient" -> increase adaptation_rate, learning_rate)

Examples:
Input: "Let's make it more adaptable and speed up the learning"
Output: {{"summary": "Increasing adaptation and learning rates as requested.", "parameter_changes": {{"adaptation_rate": 0.7, "learning_rate": 0.8}}}}

Input: "A massive crisis should hit at day 100 and last for 25 days"
Output: {{"summary": "Scheduling a strong crisis at day 100 for 25 days.", "parameter_changes": {{"crisis_intensity": 0.9, "crisis_start": 100, "crisis_duration": 25}}}}

Input: "Not sure, maybe you can suggest something?"
Output: {{"summary": "Please clarify what aspect you want to adjust (learning, crisis, resilience, etc).", "parameter_changes": {{}}}}"""


class AssistantError(RuntimeError):
    """The assistant could not produce a usable reply."""


@dataclass
class AssistantReply:
    summary: str
    parameter_changes: Dict[str, Any] = field(default_factory=dict)
    ignored: List[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def parse_reply(content: Optional[str]) -> AssistantReply:
    """Validate the model's JSON reply. Unknown parameter keys are split off into `ignored`."""
    if not content:
        raise AssistantError("No response from assistant")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse assistant response: %s", content)
        raise AssistantError("Invalid response format from assistant") from e

    if not isinstance(data, dict) or not isinstance(data.get("summary"), str) or not data["summary"]:
        raise AssistantError("Invalid response structure from assistant")

    changes = data.get("parameter_changes")
    if not isinstance(changes, dict):
        changes = {}

    known = ParameterSet.__annotations__
    accepted = {k: v for k, v in changes.items() if k in known}
    ignored = [k for k in changes if k not in known]
    if ignored:
        logger.warning("Ignoring unknown parameters from assistant: %s", ", ".join(ignored))
    return AssistantReply(summary=data["summary"], parameter_changes=accepted, ignored=ignored)


def request_parameter_changes(message: str, client: Optional[OpenAI] = None,
                              model: str = DEFAULT_MODEL) -> AssistantReply:
    if not message or not isinstance(message, str):
        raise AssistantError("Message is required")
    if client is None:
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise AssistantError("OpenAI API key not configured")
        client = OpenAI(api_key=api_key)

    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": message},
            ],
            max_tokens=500,
            temperature=0.3,
        )
    except APIError as e:
        logger.error("OpenAI API error: %s", e)
        raise AssistantError("Failed to process request with OpenAI") from e
    if not response.choices:
        raise AssistantError("No response from assistant")
    return parse_reply(response.choices[0].message.content)


def apply_reply(model, reply: AssistantReply) -> None:
    """Merge the suggested changes onto the model's current parameters and reset it."""
    model.configure({**model.params.as_dict(), **reply.parameter_changes})
