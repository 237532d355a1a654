"""
Income Verifier - Gemini Income Analyzer
Sends the uploaded documents plus the household's FPL figures to Google
Gemini and parses the structured JSON verdict.

Every failure (missing key, network, timeout, unparseable output) is
raised as UpstreamError with the generic client message; the cause is
chained for the server log only.
"""
import asyncio
import json
import logging
from typing import Optional, Protocol

from google import genai
from google.genai import types

from income_verifier.config import ConfigError, Settings
from income_verifier.errors import UpstreamError
from income_verifier.schemas.analysis import IncomeAssessment, UploadedFile

logger = logging.getLogger("income_verifier.gemini")


class IncomeAnalyzer(Protocol):
    async def analyze(
        self,
        files: list[UploadedFile],
        household_size: int,
        poverty_level: int,
        poverty_threshold: int,
    ) -> IncomeAssessment:
        ...


# ═══════════════════════════════════════════════════════
#  Prompt & response schema
# ═══════════════════════════════════════════════════════

ANALYSIS_PROMPT = """\
You are a financial analyst verifying income for government assistance programs.
Decide whether the applicant's household income is at or below 200% of the
Federal Poverty Level (FPL).

Household size: {household_size}
100% FPL for this household (2024, 48 contiguous states and D.C.): ${poverty_level:,}
200% FPL eligibility threshold: ${poverty_threshold:,}

For the attached document(s):
1. Identify every document type (W-2, 1040, pay stub, benefit letter, application form, ...).
2. When several documents are present, cross-check their figures and prefer official
   documents over self-reported amounts. Say in your reasoning whether they agree.
3. Determine annual gross income from base pay or regular wages only. Exclude overtime,
   bonus, commission and other non-recurring pay. Annualize weekly, bi-weekly, monthly or
   year-to-date figures using the document date.
4. Compare that income with the ${poverty_threshold:,} threshold.
5. A letter confirming SNAP, TANF, WIC or Medicaid participation makes the applicant
   eligible regardless of income; state this when it applies.

Respond ONLY with the requested JSON.
"""

RESPONSE_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "isEligible": types.Schema(
            type=types.Type.BOOLEAN,
            description="True if income is at or below 200% FPL, or the applicant receives public assistance.",
        ),
        "annualIncome": types.Schema(
            type=types.Type.NUMBER,
            nullable=True,
            description="Annual gross income from regular pay only.",
        ),
        "reasoning": types.Schema(
            type=types.Type.STRING,
            description="Step-by-step explanation including cross-verification.",
        ),
        "documentType": types.Schema(
            type=types.Type.STRING,
            description="Document type(s) identified, e.g. 'W-2 and Pay Stub'.",
        ),
    },
    required=["isEligible", "annualIncome", "reasoning", "documentType"],
)


def build_prompt(household_size: int, poverty_level: int, poverty_threshold: int) -> str:
    return ANALYSIS_PROMPT.format(
        household_size=household_size,
        poverty_level=poverty_level,
        poverty_threshold=poverty_threshold,
    )


def parse_assessment(raw_text: Optional[str]) -> IncomeAssessment:
    """Parse the model's JSON text into an IncomeAssessment."""
    if not raw_text:
        raise ValueError("Empty response from Gemini")
    return IncomeAssessment.model_validate(json.loads(raw_text.strip()))


# ═══════════════════════════════════════════════════════
#  Gemini client
# ═══════════════════════════════════════════════════════


class GeminiIncomeAnalyzer:
    """IncomeAnalyzer backed by the google-genai async client."""

    def __init__(self, settings: Settings):
        self.api_key = settings.GEMINI_API_KEY
        self.model = settings.GEMINI_MODEL
        self.timeout = settings.GEMINI_TIMEOUT_SECONDS
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        """Return a cached Gemini client, creating it on first call."""
        if self._client is None:
            if not self.api_key:
                raise ConfigError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def analyze(
        self,
        files: list[UploadedFile],
        household_size: int,
        poverty_level: int,
        poverty_threshold: int,
    ) -> IncomeAssessment:
        prompt = build_prompt(household_size, poverty_level, poverty_threshold)
        parts = [types.Part.from_text(text=prompt)]
        parts.extend(
            types.Part.from_bytes(data=f.content(), mime_type=f.mime_type) for f in files
        )
        raw_text = None

        try:
            client = self._get_client()
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.model,
                    contents=[types.Content(role="user", parts=parts)],
                    config=types.GenerateContentConfig(
                        response_mime_type="application/json",
                        response_schema=RESPONSE_SCHEMA,
                    ),
                ),
                timeout=self.timeout,
            )
            raw_text = response.text
            return parse_assessment(raw_text)

        except asyncio.TimeoutError as exc:
            logger.error("Gemini call timed out after %ss", self.timeout)
            raise UpstreamError() from exc
        except ValueError as exc:  # JSONDecodeError and pydantic ValidationError included
            logger.error("Failed to parse Gemini JSON: %s\nRaw: %s", exc, raw_text)
            raise UpstreamError() from exc
        except ConfigError as exc:
            logger.error("Cannot analyze documents: %s", exc)
            raise UpstreamError() from exc
        except Exception as exc:
            logger.exception("Gemini analysis error")
            raise UpstreamError() from exc
