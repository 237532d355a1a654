"""
Income Verifier - Analysis Router
POST /api/analyze: the gate in front of the expensive Gemini call.

Order of checks once the global limiter and bearer session have passed:
body validation (400), analyze-specific limit (429), FPL math, Gemini.
No lock is held while awaiting Gemini; limiter checks finish first.
"""
import logging

from fastapi import APIRouter, Depends, Request

from income_verifier.auth import require_session
from income_verifier.errors import ApiError, RateLimitError, UpstreamError
from income_verifier.middleware.rate_limit import client_key, rate_limit_headers
from income_verifier.schemas.analysis import AnalysisResult, AnalyzeRequest
from income_verifier.services.poverty import poverty_level, poverty_threshold

logger = logging.getLogger("income_verifier.analyze")

router = APIRouter(prefix="/api/analyze", tags=["Analysis"])


@router.post(
    "",
    response_model=AnalysisResult,
    dependencies=[Depends(require_session)],
)
async def analyze_documents(request: Request, payload: AnalyzeRequest):
    """
    Verify household income from the uploaded documents.

    Returns the model's verdict merged with the household size, the 100%
    FPL amount and the 200% eligibility threshold.
    """
    state = request.app.state
    limiter = state.rate_limiters.analyze
    key = client_key(request)

    result = limiter.check(key)
    if not result.allowed:
        logger.warning("Analyze rate limit hit for %s", key)
        raise RateLimitError(
            f"Analysis rate limit exceeded. Maximum {result.limit} analyses per "
            f"{_describe_window(limiter.policy.window_seconds)}.",
            retry_after=result.retry_after,
            headers=rate_limit_headers(result),
            extra={"retryAfter": result.retry_after},
            body_key="message",
        )

    try:
        level = poverty_level(payload.household_size)
        threshold = poverty_threshold(payload.household_size)
        assessment = await state.analyzer.analyze(
            payload.files, payload.household_size, level, threshold
        )
    except ApiError:
        raise
    except Exception as exc:
        logger.exception("Analysis failed")
        raise UpstreamError() from exc

    logger.info(
        "Analysis complete for %s: %d file(s), household of %d, eligible=%s",
        key, len(payload.files), payload.household_size, assessment.is_eligible,
    )
    return AnalysisResult(
        **assessment.model_dump(),
        household_size=payload.household_size,
        poverty_level=level,
        poverty_threshold=threshold,
    )


def _describe_window(seconds: float) -> str:
    if seconds == 3600:
        return "hour"
    if seconds % 3600 == 0:
        return f"{int(seconds // 3600)} hours"
    if seconds % 60 == 0:
        return f"{int(seconds // 60)} minutes"
    return f"{int(seconds)} seconds"
