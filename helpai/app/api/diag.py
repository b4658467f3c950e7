"""Health and diagnostics endpoints.

Read-only views of the admission gate, plus a tiny live probe that goes
through the full dispatch path.
"""

from typing import Any

from fastapi import APIRouter, Request

from helpai.app.exceptions import unwrap_llm_result
from helpai.app.services.llm import LLMRuntime, get_llm_runtime

router = APIRouter()

PROBE_SYSTEM_PROMPT = 'Responda apenas "ok".'
PROBE_USER_PROMPT = "diga ok"


def get_runtime(request: Request) -> LLMRuntime:
    """The runtime built by the application lifespan, else the global one."""
    runtime = getattr(request.app.state, "llm", None)
    return runtime if runtime is not None else get_llm_runtime()


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness plus whether a provider credential is configured."""
    config = get_runtime(request).dispatcher.config
    return {"ok": True, "hasKey": config.has_api_key, "model": config.openai_model}


@router.get("/diag/rpm")
async def diag_rpm(request: Request) -> dict[str, Any]:
    runtime = get_runtime(request)
    return {"ok": True, **runtime.limiter.rpm_state()}


@router.get("/diag/limits")
async def diag_limits(request: Request) -> dict[str, Any]:
    runtime = get_runtime(request)
    snapshot = runtime.limiter.snapshot()
    return {
        "ok": True,
        "rpm": snapshot["rpm"],
        "tpm": snapshot["tpm"],
        "cooldownMs": snapshot["cooldownMs"],
        "serializer": runtime.serializer.state(),
        "lastUsage": snapshot["lastUsage"],
    }


@router.get("/diag/llm")
async def diag_llm(request: Request) -> dict[str, Any]:
    """Send a five-token probe through the gate.

    Throttling and billing signals map to 429, any other failure to 502.
    """
    runtime = get_runtime(request)
    async with runtime.serializer.hold():
        result = await runtime.dispatcher.complete(
            PROBE_SYSTEM_PROMPT,
            PROBE_USER_PROMPT,
            max_tokens=5,
            temperature=0,
        )
    answer = unwrap_llm_result(result, cooldown_ms=runtime.limiter.cooldown_ms())
    return {"ok": True, "answer": answer}
