from __future__ import annotations

import re

# Once the model issues a function call, the Responses API rejects every
# further turn on that conversation until a matching function_call_output
# arrives. This is the wording it uses for that rejection.
_MISSING_TOOL_OUTPUT_PATTERN = re.compile(
    r"no tool output found for function call", re.IGNORECASE
)


class ChatProcessingError(RuntimeError):
    """Raised when the upstream model call could not produce a reply."""


def is_missing_tool_output_error(error: BaseException) -> bool:
    return bool(_MISSING_TOOL_OUTPUT_PATTERN.search(str(error)))
