# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""
Natural language task parsing.

"Clean the bathroom every Tuesday at 3pm" becomes
{"name": "Clean the bathroom", "recurrence": "weekly", "dayOfWeek": 2, "time": "15:00"}.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from google.genai import errors

from chorepulse.config import Settings, get_settings
from chorepulse.models.gemini import GeminiInvalidResponseException, Usage, call_predict_json

logger = logging.getLogger(__name__)

CATEGORIES = (
    "cleaning",
    "cooking",
    "outdoor",
    "pet_care",
    "homework",
    "organization",
    "maintenance",
    "errands",
    "personal_care",
    "other",
)
RECURRENCES = ("once", "daily", "weekly", "monthly", "custom")
TIME_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")
DEFAULT_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.1
DEFAULT_POINT_VALUE = 10

SYSTEM_PROMPT = f"""You are a helpful assistant that parses natural language task descriptions into structured data for a family chore management app called ChorePulse.

Extract the following information from the user's input:
- **name**: The task name (required)
- **description**: Additional details about the task (optional)
- **category**: Task category, inferred from the task name. Options: {", ".join(f'"{c}"' for c in CATEGORIES)}
- **recurrence**: "once", "daily", "weekly", "monthly", or "custom"
- **dayOfWeek**: Day of week as number (0=Sunday, 1=Monday, ... 6=Saturday) for weekly tasks
- **dayOfMonth**: Day of month (1-31) for monthly tasks
- **customDays**: Array of day numbers for custom recurrence (e.g., [1,4] for Monday and Thursday)
- **time**: Time in HH:MM format (24-hour)
- **dueDate**: ISO date string for one-time tasks (use today as reference if not specified)
- **assignedTo**: Name or role of person assigned (e.g., "John", "teenager", "kids")
- **pointValue**: Point reward for completing the task
- **photoRequired**: Whether photo proof is required (true/false)
- **confidence**: Your confidence in the parse (0-1)

Examples:

Input: "Clean the bathroom every Tuesday at 3pm"
Output: {{"name": "Clean the bathroom", "category": "cleaning", "recurrence": "weekly", "dayOfWeek": 2, "time": "15:00", "confidence": 0.95}}

Input: "Take out the trash on Mondays and Thursdays"
Output: {{"name": "Take out the trash", "recurrence": "custom", "customDays": [1, 4], "confidence": 0.9}}

Input: "Do laundry tomorrow at 10am worth 50 points"
Output: {{"name": "Do laundry", "recurrence": "once", "dueDate": "2025-10-29", "time": "10:00", "pointValue": 50, "confidence": 0.85}}

Input: "Vacuum the living room daily at 5pm, photo required"
Output: {{"name": "Vacuum the living room", "recurrence": "daily", "time": "17:00", "photoRequired": true, "confidence": 0.9}}

Input: "Make your bed every morning, assign to teenagers"
Output: {{"name": "Make your bed", "recurrence": "daily", "assignedTo": "teenager", "confidence": 0.85}}

Always respond with valid JSON only. If you're not confident about a field, omit it rather than guessing."""


def build_prompt(text: str, today: Optional[str] = None) -> str:
    today = today or datetime.now(timezone.utc).date().isoformat()
    return f'Today\'s date is {today}. Parse this task: "{text}"'


def fallback_task(text: str) -> dict:
    return {"name": text, "originalInput": text, "confidence": FALLBACK_CONFIDENCE}


def parse_task(
    text: str, settings: Optional[Settings] = None, client: Any = None
) -> tuple[dict, Usage]:
    """
    Parses a task description with Gemini. Any model failure degrades to a
    low-confidence task named after the raw input, with zero usage.
    """
    settings = settings or get_settings()
    try:
        parsed, usage = call_predict_json(
            build_prompt(text),
            SYSTEM_PROMPT,
            model=settings.gemini_model,
            api_key=settings.gemini_api_key,
            client=client,
        )
        if not parsed.get("name"):
            raise GeminiInvalidResponseException("Failed to extract task name")
    except (GeminiInvalidResponseException, errors.APIError):
        logger.exception("Task parsing failed for input %r", text)
        return fallback_task(text), Usage()

    task = {
        **parsed,
        "name": parsed["name"],
        "originalInput": text,
        "confidence": parsed.get("confidence") or DEFAULT_CONFIDENCE,
    }
    return task, usage


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_parsed_task(task: dict) -> list[str]:
    """Returns the validation errors for a parsed task; empty when valid."""
    problems = []
    name = task.get("name")
    if not isinstance(name, str) or not name.strip():
        problems.append("Task name is required")

    day_of_week = task.get("dayOfWeek")
    if day_of_week is not None and (not _is_number(day_of_week) or not 0 <= day_of_week <= 6):
        problems.append("Day of week must be between 0 (Sunday) and 6 (Saturday)")

    day_of_month = task.get("dayOfMonth")
    if day_of_month is not None and (not _is_number(day_of_month) or not 1 <= day_of_month <= 31):
        problems.append("Day of month must be between 1 and 31")

    time_value = task.get("time")
    if time_value and not (isinstance(time_value, str) and TIME_PATTERN.match(time_value)):
        problems.append("Time must be in HH:MM format (24-hour)")

    points = task.get("pointValue")
    if points is not None and (not _is_number(points) or points < 0):
        problems.append("Point value must be non-negative")

    confidence = task.get("confidence")
    if not _is_number(confidence) or not 0 <= confidence <= 1:
        problems.append("Confidence must be between 0 and 1")
    return problems


def to_api_format(task: dict) -> dict:
    """Shapes a parsed task like a task creation request body."""
    recurrence = task.get("recurrence")
    api_task = {
        "name": task["name"],
        "description": task.get("description") or "",
        "recurrence_type": recurrence or "once",
        "point_value": task.get("pointValue") or DEFAULT_POINT_VALUE,
        "photo_required": bool(task.get("photoRequired")),
    }
    if recurrence == "weekly" and task.get("dayOfWeek") is not None:
        api_task["day_of_week"] = task["dayOfWeek"]
    if recurrence == "monthly" and task.get("dayOfMonth") is not None:
        api_task["day_of_month"] = task["dayOfMonth"]
    if recurrence == "custom" and task.get("customDays"):
        api_task["custom_days"] = task["customDays"]
    if task.get("time"):
        api_task["time"] = task["time"]
    if task.get("dueDate"):
        api_task["due_date"] = task["dueDate"]
    return api_task
