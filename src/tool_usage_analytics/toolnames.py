"""
Registry of the thinking tools whose invocations are tracked.

The set is closed: events naming any other tool are rejected at
validation time.
"""

from typing import Dict, List

TOOL_NAMES: List[str] = [
    "trace",
    "model",
    "pattern",
    "paradigm",
    "debug",
    "council",
    "decide",
    "reflect",
    "hypothesis",
    "debate",
    "map",
]

TOOL_DESCRIPTIONS: Dict[str, str] = {
    "trace": "structured problem breakdown",
    "model": "mental model application",
    "pattern": "pattern matching",
    "paradigm": "paradigm exploration",
    "debug": "systematic debugging",
    "council": "multi-perspective analysis",
    "decide": "decision frameworks",
    "reflect": "reflection prompts",
    "hypothesis": "hypothesis generation",
    "debate": "argument exploration",
    "map": "concept mapping",
}

TOOL_USAGE_SUGGESTIONS: Dict[str, str] = {
    "trace": "breaking down complex problems into manageable steps",
    "model": "applying mental models to understand situations",
    "pattern": "recognizing patterns in problems and solutions",
    "paradigm": "exploring different paradigms and perspectives",
    "debug": "systematically debugging issues",
    "council": "getting multiple perspectives on a problem",
    "decide": "making structured decisions with frameworks",
    "reflect": "reflecting on your thinking process",
    "hypothesis": "generating and testing hypotheses",
    "debate": "exploring arguments from multiple angles",
    "map": "mapping concepts and their relationships",
}


def is_known_tool(name: str) -> bool:
    """Return True if name belongs to the tool registry."""
    return name in TOOL_NAMES


def display_name(name: str) -> str:
    """Human-readable label, e.g. ``Trace (structured problem breakdown)``."""
    description = TOOL_DESCRIPTIONS.get(name)
    if description is None:
        return name
    return f"{name.capitalize()} ({description})"


def usage_suggestion(name: str) -> str:
    return TOOL_USAGE_SUGGESTIONS.get(name, "exploring its unique capabilities")
