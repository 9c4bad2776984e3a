"""
Natural language task parsing.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from chorepulse.auth import current_user
from chorepulse.config import Settings, get_settings
from chorepulse.db import AiUsageLogRecord, DbClient, UserRecord
from chorepulse.dependencies import get_db_client
from chorepulse.models.task_parser import parse_task, to_api_format, validate_parsed_task
from chorepulse.schemas import ParseTaskRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/parse-task")
def parse_task_endpoint(
    payload: ParseTaskRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    if not settings.ai_enabled:
        raise HTTPException(status_code=403, detail="AI features are not enabled")
    if not payload.input or not isinstance(payload.input, str):
        raise HTTPException(status_code=400, detail="Input is required and must be a string")

    parsed, usage = parse_task(payload.input, settings)

    try:
        db.insert(
            AiUsageLogRecord(
                user_id=user.id,
                organization_id=user.organization_id,
                feature="task_parsing",
                model=settings.gemini_model,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                request_data={"input": payload.input},
                response_data={"parsed": parsed},
                status="success",
            )
        )
    except Exception:
        logger.exception("Failed to log AI usage for user %s", user.id)

    problems = validate_parsed_task(parsed)
    if problems:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid task data", "details": problems, "parsedTask": parsed},
        )

    return {
        "success": True,
        "parsed": parsed,
        "apiFormat": to_api_format(parsed),
        "confidence": parsed["confidence"],
        "usage": {"tokens": usage.total_tokens, "cost": usage.cost},
    }
