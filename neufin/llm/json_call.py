"""
NEUFIN — JSON Completion Wrapper
Runs an LLM call that must return a JSON object and substitutes a
deterministic fallback when the call or the parse fails.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from neufin.data.errors import LLMFailure
from neufin.llm.client import LLMClient
from neufin.utils.logger import get_logger

logger = get_logger("llm_json")


@dataclass
class JSONCompletion:
    """Parsed payload plus where it came from."""
    data: Dict[str, Any] = field(default_factory=dict)
    from_llm: bool = False
    error: Optional[str] = None

    @property
    def source(self) -> str:
        return "llm" if self.from_llm else "rules"


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse text as a JSON object. Raises LLMFailure otherwise."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise LLMFailure(f"malformed json: {e}") from e
    if not isinstance(data, dict):
        raise LLMFailure("json payload is not an object")
    return data


async def json_completion(
    client: Optional[LLMClient],
    system_prompt: str,
    user_prompt: str,
    fallback: Callable[[], Dict[str, Any]],
    purpose: str = "llm_call",
) -> JSONCompletion:
    """
    Ask the model for a JSON object.

    `fallback` is only invoked when the client is missing or unconfigured,
    the call fails, or the reply is not a JSON object.
    """
    if client is None or not client.configured:
        return JSONCompletion(data=fallback(), from_llm=False, error="llm not configured")

    try:
        text = await client.complete(system_prompt, user_prompt)
        data = parse_json_object(text)
    except Exception as e:
        logger.warning("llm_fallback", purpose=purpose, error=str(e))
        return JSONCompletion(data=fallback(), from_llm=False, error=str(e))

    return JSONCompletion(data=data, from_llm=True)
