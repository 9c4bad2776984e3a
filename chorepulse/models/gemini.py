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

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
JSON_RESPONSE_MAX_OUTPUT_TOKENS = 500

# Approximate USD cost per 1K tokens.
MODEL_COSTS = {
    "gemini-2.5-flash": {"input": 0.0003, "output": 0.0025},
    "gemini-2.5-flash-lite": {"input": 0.0001, "output": 0.0004},
    "gemini-2.5-pro": {"input": 0.00125, "output": 0.01},
}


class GeminiInvalidResponseException(Exception):
    pass


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    costs = MODEL_COSTS.get(model, MODEL_COSTS[DEFAULT_MODEL])
    return (input_tokens / 1000) * costs["input"] + (output_tokens / 1000) * costs["output"]


def _usage(model: str, response) -> Usage:
    metadata = getattr(response, "usage_metadata", None)
    input_tokens = (getattr(metadata, "prompt_token_count", None) or 0) if metadata else 0
    output_tokens = (getattr(metadata, "candidates_token_count", None) or 0) if metadata else 0
    return Usage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cost=calculate_cost(model, input_tokens, output_tokens),
    )


def call_predict_json(
    query: str,
    system_instruction: str,
    model: str = DEFAULT_MODEL,
    api_key: Optional[str] = None,
    temperature: float = 0.3,
    client: Any = None,
) -> tuple[dict, Usage]:
    """
    Calls Gemini for a JSON object response.

    Args:
        query (str): The user prompt.
        system_instruction (str): Instructions describing the expected JSON.
        model (str): The model to call with.
        api_key (str): Gemini API key, used when no client is given.
        temperature (float): Sampling temperature.
        client: An existing genai.Client.

    Returns:
        The decoded JSON object and the token usage of the call.
    """
    if client is None:
        client = genai.Client(api_key=api_key)

    start_time = time.time()
    truncated_query = (query[:200] + "...") if len(query) > 200 else query
    logger.info("Calling Gemini for JSON, prompt: '%s'", truncated_query)
    response = client.models.generate_content(
        model=model,
        contents=query,
        config=types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json",
            temperature=temperature,
            max_output_tokens=JSON_RESPONSE_MAX_OUTPUT_TOKENS,
        ),
    )
    logger.info("Gemini JSON call took: %.2fs", time.time() - start_time)

    if not response.text:
        raise GeminiInvalidResponseException()
    try:
        parsed = json.loads(response.text)
    except ValueError as e:
        raise GeminiInvalidResponseException(response.text[:200]) from e
    if not isinstance(parsed, dict):
        raise GeminiInvalidResponseException(response.text[:200])
    return parsed, _usage(model, response)
