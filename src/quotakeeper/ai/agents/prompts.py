"""System prompt for the agent loop."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable

from ..tools.formatting import NO_TOOLS, ToolFormat, format_tools
from ..tools.types import ToolDefinition

_TEMPLATE = """\
# CORE MISSION
Your primary goal is to provide a direct, complete, and accurate answer to the user's request. Use the available tools to gather information, then synthesize that information into a final, helpful response. Do not merely confirm that information exists or point the user to a link; extract and present the information yourself.

# AVAILABLE TOOLS
You have access to the following tools:
{tools}

# THINKING PROCESS
Follow these steps in a loop until you can give a final answer:
1. **Analyze:** Examine the user's prompt and all previous tool results to understand the user's goal.
2. **Plan:** Write a step-by-step plan. If you already have the answer, the plan is to write the final response; otherwise it involves calling a tool.
3. **Execute:** If the plan needs a tool, fill `tool_calls`. Otherwise set `tool_calls` to an empty array `[]`.
4. **Respond:**
- While calling tools, `message` tells the user what you are doing (e.g., "Checking the website for today's schedule...").
- **CRUCIAL:** When `tool_calls` is empty you have everything you need, and `message` MUST contain the complete final answer to the user's original question.

# GENERAL RULES
- Your response must ALWAYS be a valid JSON object matching the required schema.
- Be concise. Do not repeat information.
- Current Date and Time: {now}
"""


def localized_now(now: datetime | None = None) -> str:
    moment = (now or datetime.now()).astimezone()
    return moment.strftime("%A, %B %d, %Y %H:%M %Z").strip()


def build_system_prompt(
    tools: Iterable[ToolDefinition],
    *,
    tools_format: ToolFormat | str = ToolFormat.SNIPPET,
    user_notes: str | None = None,
    now: datetime | None = None,
) -> str:
    """Compose the agent system prompt, appending the caller's own system prompt as notes."""

    tool_list = list(tools)
    catalogue = format_tools(tool_list, tools_format) if tool_list else NO_TOOLS
    if not isinstance(catalogue, str):
        catalogue = json.dumps(catalogue, ensure_ascii=False, indent=2)
    prompt = _TEMPLATE.format(tools=catalogue, now=localized_now(now))
    if user_notes and user_notes.strip():
        prompt += f"\n# ADDITIONAL USER NOTES\n{user_notes.strip()}\n"
    return prompt.strip()


__all__ = ["build_system_prompt", "localized_now"]
