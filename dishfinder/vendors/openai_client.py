"""Thin wrapper around the OpenAI SDK for the three text-generation usages.

* ``call_function``: chat completion forced onto one function tool.
* ``call_function_with_search``: Responses API call that may use web search
  before answering through a function tool.
* ``complete_json``: chat completion in JSON-object mode.

Provider failures raise ``TextGenerationError``; answers that arrive but
cannot be parsed raise ``MalformedOutputError``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import openai

from dishfinder.core.errors import MalformedOutputError, TextGenerationError

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {"type": "web_search_preview"}


@dataclass(frozen=True)
class FunctionTool:
    name: str
    description: str
    parameters: Dict[str, Any]

    def as_chat_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": self.parameters},
        }

    def as_response_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "strict": False,
        }


def _parse_json_object(raw: Optional[str], what: str) -> Dict[str, Any]:
    if not raw or not raw.strip():
        raise MalformedOutputError(f"{what} was empty")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedOutputError(f"{what} is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedOutputError(f"{what} is not a JSON object")
    return parsed


class OpenAIClient:
    """Text-generation client used by the resolver, extractor and aggregator."""

    def __init__(self, api_key: str, *, client: Optional[Any] = None, timeout: float = 120.0) -> None:
        self.client = client or openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def call_function(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        tool: FunctionTool,
    ) -> Dict[str, Any]:
        """Force a single tool call and return its decoded arguments."""
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                tools=[tool.as_chat_tool()],
                tool_choice={"type": "function", "function": {"name": tool.name}},
            )
        except openai.OpenAIError as exc:
            logger.warning("OpenAI %s call failed: %s", tool.name, exc)
            raise TextGenerationError(f"OpenAI API error: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise MalformedOutputError("No choices returned from OpenAI")
        tool_calls = getattr(choices[0].message, "tool_calls", None) or []
        if not tool_calls:
            raise MalformedOutputError("No tool call returned from OpenAI")
        return _parse_json_object(tool_calls[0].function.arguments, f"{tool.name} arguments")

    def call_function_with_search(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        tool: FunctionTool,
    ) -> Dict[str, Any]:
        """Let the model search the web, then answer through ``tool``."""
        try:
            response = self.client.responses.create(
                model=model,
                instructions=system_prompt,
                input=user_prompt,
                tools=[WEB_SEARCH_TOOL, tool.as_response_tool()],
                tool_choice="required",
            )
        except openai.OpenAIError as exc:
            logger.warning("OpenAI %s search call failed: %s", tool.name, exc)
            raise TextGenerationError(f"OpenAI API error: {exc}") from exc

        for item in getattr(response, "output", None) or []:
            if getattr(item, "type", None) == "function_call" and getattr(item, "name", None) == tool.name:
                return _parse_json_object(item.arguments, f"{tool.name} arguments")
        raise MalformedOutputError(f"No {tool.name} call returned from OpenAI")

    def complete_json(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Request a JSON object completion and decode it."""
        kwargs: Dict[str, Any] = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                **kwargs,
            )
        except openai.OpenAIError as exc:
            logger.warning("OpenAI JSON completion failed: %s", exc)
            raise TextGenerationError(f"OpenAI API error: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise MalformedOutputError("No choices returned from OpenAI")
        return _parse_json_object(choices[0].message.content, "completion content")
