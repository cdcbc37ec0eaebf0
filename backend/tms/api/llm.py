"""
AI Tuning Guide API Routes
LLM-backed SQL analysis, gated by FEATURE_AI_TUNING_GUIDE
"""
import time
from datetime import datetime
from fastapi import APIRouter, Depends
from typing import Any, Dict, Optional
from pydantic import BaseModel
import structlog

from tms.config import settings
from tms.models import User
from tms.core.rbac import get_current_user
from tms.core.errors import FeatureDisabled, InvalidRequest, LLMUnavailable
from tms.services.ai_providers import (
    AIProviderError, BaseAIProvider, CONTEXT_PROMPTS, SYSTEM_PROMPT,
    build_analysis_prompt, get_ai_provider
)

logger = structlog.get_logger()

router = APIRouter()


class InvalidAnalysisRequest(InvalidRequest):
    nested = True


class AnalyzeRequest(BaseModel):
    sql_text: Optional[str] = None
    execution_plan: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    context: str = "tuning"
    custom_prompt: Optional[str] = None


def require_ai_tuning_guide(current_user: User = Depends(get_current_user)) -> User:
    """Authenticated user, once the feature flag is confirmed on."""
    if not settings.FEATURE_AI_TUNING_GUIDE:
        raise FeatureDisabled("AI Tuning Guide feature is disabled")
    return current_user


def _provider_config() -> dict:
    return {
        "enabled": settings.FEATURE_AI_TUNING_GUIDE,
        "api_type": settings.LLM_API_TYPE,
        "base_url": settings.LLM_BASE_URL,
        "model_name": settings.LLM_MODEL_NAME,
    }


@router.get("/health")
async def llm_health(
    current_user: User = Depends(require_ai_tuning_guide),
    provider: BaseAIProvider = Depends(get_ai_provider)
):
    """Check the configured LLM server."""
    health = await provider.health_check()
    if not health["healthy"]:
        logger.warning("llm_unhealthy", model=health["model"], error=health["error"])
        raise LLMUnavailable(health["error"] or "LLM server is not responding", fallbackAvailable=True)

    return {
        "success": True,
        "data": {
            "healthy": True,
            "model": health["model"],
            "latency": health["latency"],
            "timestamp": health["timestamp"],
        },
        "config": _provider_config(),
    }


@router.post("/analyze")
async def llm_analyze(
    body: AnalyzeRequest,
    current_user: User = Depends(require_ai_tuning_guide),
    provider: BaseAIProvider = Depends(get_ai_provider)
):
    """Analyze one SQL statement with the tuning-guide prompts."""
    errors = []
    if not body.sql_text and not body.custom_prompt:
        errors.append("sql_text or custom_prompt is required")
    if body.context not in CONTEXT_PROMPTS:
        errors.append(f"context must be one of: {', '.join(CONTEXT_PROMPTS)}")
    if errors:
        raise InvalidAnalysisRequest("Validation failed", details=", ".join(errors))

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": body.custom_prompt or build_analysis_prompt(
            body.sql_text, body.context, body.execution_plan, body.metrics
        )},
    ]

    start_time = time.time()
    try:
        content = await provider.chat(messages)
    except AIProviderError as e:
        raise LLMUnavailable(str(e), code=e.code, fallbackAvailable=True) from e

    duration_ms = int((time.time() - start_time) * 1000)
    logger.info("llm_analysis_completed", context=body.context, model=provider.model, duration_ms=duration_ms)

    return {
        "success": True,
        "data": {
            "content": content,
            "context": body.context,
            "sql_id": (body.sql_text or "")[:50],
        },
        "meta": {
            "duration_ms": duration_ms,
            "timestamp": datetime.utcnow().isoformat(),
            "model": provider.model,
        },
    }
