"""
AI Provider Layer
Chat clients for the SQL tuning guide: Ollama and OpenAI-compatible vLLM
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Dict, Any
import time
import httpx
import structlog

from tms.config import settings

logger = structlog.get_logger()


class AIProviderError(Exception):
    """Base exception for AI provider errors."""

    def __init__(self, message: str, code: str = "LLM_UNAVAILABLE"):
        super().__init__(message)
        self.code = code


SYSTEM_PROMPT = """You are an Oracle database SQL tuning expert.

## Role
- SQL performance analysis and optimization recommendations
- Execution plan interpretation and problem diagnosis
- Index design and SQL rewrite suggestions

## Response Rules
- Clear and concise answers
- Use Oracle SQL syntax
- Provide specific improvement metrics"""

CONTEXT_PROMPTS = {
    "tuning": "Analyze the following SQL and suggest performance improvements.\n\n"
              "## Response Format\n### 1. Current Issues\n### 2. Solutions (with SQL)\n### 3. Expected Effect",
    "explain": "Explain the following SQL and execution plan simply.\n\n"
               "## Response Format\n### 1. Purpose\n### 2. Execution Flow\n### 3. High Cost Areas",
    "index": "Suggest index design for the following SQL.\n\n"
             "## Response Format\n### 1. Current Problem\n### 2. Recommended Index (CREATE INDEX DDL)\n### 3. Expected Effect",
    "rewrite": "Rewrite the following SQL more efficiently.\n\n"
               "## Response Format\n### 1. Current Issue\n### 2. Improved SQL\n### 3. Why This Change",
}


def build_analysis_prompt(
    sql_text: str,
    context: str = "tuning",
    execution_plan: Optional[str] = None,
    metrics: Optional[Dict[str, Any]] = None
) -> str:
    parts = [CONTEXT_PROMPTS[context], "", "## SQL", "```sql", sql_text.strip(), "```"]
    if execution_plan:
        parts += ["", "## Execution Plan", "```", execution_plan.strip(), "```"]
    if metrics:
        parts += ["", "## Metrics"]
        parts += [f"- {name}: {value}" for name, value in metrics.items()]
    return "\n".join(parts)


class BaseAIProvider(ABC):
    """Abstract base class for chat providers."""

    def __init__(self, base_url: str, model: str, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    @abstractmethod
    async def chat(self, messages: List[Dict[str, str]], temperature: float = 0.3) -> str:
        """Send chat messages and return the assistant reply."""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Check the server; never raises."""
        pass

    async def _check_endpoint(self, path: str) -> Dict[str, Any]:
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}{path}")
            healthy = response.status_code == 200
            error = None if healthy else f"HTTP {response.status_code}"
        except httpx.HTTPError as e:
            healthy = False
            error = str(e) or type(e).__name__

        return {
            "healthy": healthy,
            "model": self.model,
            "latency": int((time.time() - start_time) * 1000),
            "timestamp": datetime.utcnow().isoformat(),
            "error": error,
        }

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}{path}", json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            logger.error("llm_timeout", model=self.model, error=str(e))
            raise AIProviderError("LLM request timed out", code="LLM_TIMEOUT") from e
        except httpx.HTTPStatusError as e:
            code = "LLM_RATE_LIMIT" if e.response.status_code == 429 else "LLM_UNAVAILABLE"
            logger.error("llm_http_error", model=self.model, status=e.response.status_code)
            raise AIProviderError(f"LLM server returned HTTP {e.response.status_code}", code=code) from e
        except httpx.HTTPError as e:
            logger.error("llm_request_failed", model=self.model, error=str(e))
            raise AIProviderError(f"LLM server unavailable: {e}") from e


class OllamaProvider(BaseAIProvider):
    """Ollama local LLM provider."""

    async def chat(self, messages: List[Dict[str, str]], temperature: float = 0.3) -> str:
        data = await self._post("/api/chat", {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature},
        })
        return data.get("message", {}).get("content", "")

    async def health_check(self) -> Dict[str, Any]:
        return await self._check_endpoint("/api/tags")


class VLLMProvider(BaseAIProvider):
    """vLLM (OpenAI-compatible) provider."""

    async def chat(self, messages: List[Dict[str, str]], temperature: float = 0.3) -> str:
        data = await self._post("/v1/chat/completions", {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        })
        choices = data.get("choices") or [{}]
        return choices[0].get("message", {}).get("content", "")

    async def health_check(self) -> Dict[str, Any]:
        return await self._check_endpoint("/v1/models")


PROVIDERS = {
    "ollama": OllamaProvider,
    "vllm": VLLMProvider,
    "openai": VLLMProvider,
}


def get_ai_provider() -> BaseAIProvider:
    """Provider configured through LLM_* settings."""
    provider_class = PROVIDERS.get(settings.LLM_API_TYPE.lower(), OllamaProvider)
    return provider_class(settings.LLM_BASE_URL, settings.LLM_MODEL_NAME, settings.LLM_TIMEOUT)
