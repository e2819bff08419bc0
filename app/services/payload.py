"""Composition of OpenAI Responses API request payloads.

A payload is assembled from a closed set of shapes rather than accumulated
field by field:

* the *input* is either a tool-output continuation (``FunctionCallOutputItem``
  entries answering a pending function call) or a fresh turn (an optional
  system prompt followed by the user prompt);
* the *model options* are either ``ReasoningOptions`` for reasoning models or
  ``SamplingOptions`` for everything else, never both.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel

from app.models.chat import FunctionTool, ToolOutput
from app.services.conversation import ConversationStore
from app.services.settings import Settings

DEFAULT_MAX_OUTPUT_TOKENS = 800

_REASONING_MODEL_PATTERN = re.compile(r"^(o\d|gpt-5)", re.IGNORECASE)


class InputMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class FunctionCallOutputItem(BaseModel):
    type: Literal["function_call_output"] = "function_call_output"
    call_id: str
    output: str


InputItem = Union[InputMessage, FunctionCallOutputItem]


class ReasoningOptions(BaseModel):
    effort: str


class SamplingOptions(BaseModel):
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None


class ResponsePayload(BaseModel):
    model: str
    input: List[InputItem]
    max_output_tokens: int
    stream: bool = False
    previous_response_id: Optional[str] = None
    tools: Optional[List[FunctionTool]] = None
    reasoning: Optional[ReasoningOptions] = None
    sampling: Optional[SamplingOptions] = None

    @property
    def is_tool_output_turn(self) -> bool:
        return any(isinstance(item, FunctionCallOutputItem) for item in self.input)

    def to_request(self) -> Dict[str, Any]:
        """Flatten into the keyword arguments accepted by ``responses.create``."""
        request = self.model_dump(exclude_none=True, exclude={"sampling"})
        if self.sampling is not None:
            request.update(self.sampling.model_dump(exclude_none=True))
        return request


def is_reasoning_model(model: str) -> bool:
    return bool(_REASONING_MODEL_PATTERN.match(model))


def build_payload(
    prompt: str,
    user_id: str,
    config: Settings,
    store: ConversationStore,
    stream: bool = False,
    tools: Sequence[FunctionTool] | None = None,
    tool_outputs: Sequence[ToolOutput] | None = None,
) -> ResponsePayload:
    continuation_token = store.get_continuation_token(user_id)

    if tool_outputs:
        items: List[InputItem] = [
            FunctionCallOutputItem(call_id=output.call_id, output=output.output)
            for output in tool_outputs
        ]
    else:
        items = []
        if not continuation_token:
            items.append(InputMessage(role="system", content=config.system_prompt))
        items.append(InputMessage(role="user", content=prompt))

    reasoning: ReasoningOptions | None = None
    sampling: SamplingOptions | None = None
    if is_reasoning_model(config.openai_model):
        if config.reasoning_effort:
            reasoning = ReasoningOptions(effort=config.reasoning_effort)
    else:
        sampling = SamplingOptions(
            temperature=config.llm_temperature,
            top_p=config.top_p,
            presence_penalty=config.presence_penalty,
            frequency_penalty=config.frequency_penalty,
        )

    return ResponsePayload(
        model=config.openai_model,
        input=items,
        max_output_tokens=config.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
        stream=stream,
        previous_response_id=continuation_token or None,
        tools=list(tools) if tools else None,
        reasoning=reasoning,
        sampling=sampling,
    )


def build_recovery_payload(payload: ResponsePayload, config: Settings) -> ResponsePayload:
    """Detach the payload from the stuck server-side conversation.

    Drops the continuation token and appends the system prompt so the retry
    starts a fresh upstream conversation.
    """
    return payload.model_copy(
        update={
            "previous_response_id": None,
            "input": [
                *payload.input,
                InputMessage(role="system", content=config.system_prompt),
            ],
        }
    )
