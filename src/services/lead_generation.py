"""
Lead generation - OpenAI-compatible chat completion (OpenRouter by default).

The provider is asked for a JSON object with a "leads" array. Any provider
failure or unparseable output falls back to a fixed set of sample leads,
flagged with fallback=True so the caller does not charge for them.
"""
import json
import logging
import random
import re
import time
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SCORE = 75
MAX_SCORE = 99
FALLBACK_NOTE = "Using high-quality sample data - AI service temporarily unavailable"

LEAD_FIELDS = ("company_name", "contact_name", "email", "phone", "website", "industry", "description")

SYSTEM_PROMPT = (
    "You are a professional lead generation assistant. Always respond with valid JSON "
    "containing realistic, high-quality business leads."
)

SAMPLE_LEADS = [
    {
        "company_name": "InnovateTech Solutions",
        "contact_name": "Sarah Chen",
        "email": "sarah.chen@innovatetech.com",
        "phone": "+1 (415) 555-0123",
        "website": "https://innovatetech.com",
        "industry": "Technology",
        "description": "B2B SaaS platform helping companies optimize their sales processes. "
                       "Rapidly growing startup looking to scale customer acquisition.",
    },
    {
        "company_name": "DataStream Analytics",
        "contact_name": "Michael Rodriguez",
        "email": "michael.rodriguez@datastream.io",
        "phone": "+1 (628) 555-0456",
        "website": "https://datastream.io",
        "industry": "Data Analytics",
        "description": "AI-powered analytics platform for enterprise clients. "
                       "Currently expanding their sales team.",
    },
    {
        "company_name": "CloudFirst Enterprises",
        "contact_name": "Emily Thompson",
        "email": "emily.thompson@cloudfirst.co",
        "phone": "+1 (650) 555-0789",
        "website": "https://cloudfirst.co",
        "industry": "Cloud Services",
        "description": "Cloud migration and infrastructure company serving mid-market businesses.",
    },
    {
        "company_name": "SecureNet Systems",
        "contact_name": "David Park",
        "email": "david.park@securenet.com",
        "phone": "+1 (415) 555-0234",
        "website": "https://securenet.com",
        "industry": "Cybersecurity",
        "description": "Cybersecurity solutions for small to medium businesses. "
                       "Recently launched new services.",
    },
    {
        "company_name": "GrowthLab Marketing",
        "contact_name": "Lisa Johnson",
        "email": "lisa.johnson@growthlab.co",
        "phone": "+1 (510) 555-0567",
        "website": "https://growthlab.co",
        "industry": "Digital Marketing",
        "description": "Performance marketing agency specializing in B2B lead generation.",
    },
    {
        "company_name": "AutoScale Platforms",
        "contact_name": "James Wilson",
        "email": "james.wilson@autoscale.io",
        "phone": "+1 (925) 555-0890",
        "website": "https://autoscale.io",
        "industry": "DevOps",
        "description": "DevOps automation platform for development teams. "
                       "Well-funded startup accelerating its go-to-market.",
    },
]


def _score() -> int:
    return random.randint(MIN_SCORE, MAX_SCORE)


def _sanitize_output_text(text: str) -> str:
    """Remove hidden reasoning blocks and markdown fences returned by some providers."""
    if not text:
        return ""
    cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL | re.IGNORECASE)
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", cleaned.strip())
    return cleaned.strip()


def build_prompt(
    query: str,
    industry: Optional[str],
    location: Optional[str],
    company_size: Optional[str],
    lead_count: int,
) -> str:
    fields = ", ".join(f'"{f}"' for f in LEAD_FIELDS)
    return (
        f"Generate {lead_count} business leads for the following criteria.\n\n"
        f"Query: {query}\n"
        f"Industry: {industry or 'Any'}\n"
        f"Location: {location or 'Global'}\n"
        f"Company Size: {company_size or 'Any'}\n\n"
        f"Each lead is an object with the keys {fields}.\n"
        'Return ONLY a JSON object with a "leads" array. No other text.'
    )


def parse_leads(content: str) -> list[dict]:
    """
    Parse provider output into lead dicts. Raises ValueError when the output
    is not a JSON object with a usable "leads" array.
    """
    parsed = json.loads(_sanitize_output_text(content))
    raw_leads = parsed.get("leads") if isinstance(parsed, dict) else None
    if not isinstance(raw_leads, list):
        raise ValueError("AI response has no leads array")

    leads = []
    for raw in raw_leads:
        if not isinstance(raw, dict) or not raw.get("company_name"):
            continue
        lead = {f: (str(raw[f]).strip() if raw.get(f) is not None else None) for f in LEAD_FIELDS}
        lead["score"] = _score()
        leads.append(lead)

    if not leads:
        raise ValueError("AI response contained no valid leads")
    return leads


def sample_leads(lead_count: int) -> list[dict]:
    return [{**lead, "score": _score()} for lead in SAMPLE_LEADS[:lead_count]]


async def _record_heartbeat() -> None:
    try:
        from src.utils.redis import get_redis, redis_key
        redis = await get_redis()
        await redis.set(redis_key("ai_service", "last_success"), datetime.now(timezone.utc).isoformat())
    except Exception as e:
        logger.debug("AI heartbeat write failed: %s", str(e))


async def _complete(prompt: str) -> str:
    from openai import AsyncOpenAI
    from src.config import get_settings
    settings = get_settings()

    if not settings.openai_api_key:
        raise ValueError("AI provider API key not configured")

    client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=(settings.openai_base_url or None),
        timeout=settings.openai_timeout_seconds,
        default_headers={"HTTP-Referer": settings.openai_referer, "X-Title": "LeadGenAI"},
    )

    start = time.monotonic()
    response = await client.chat.completions.create(
        model=settings.openai_model,
        max_tokens=settings.openai_max_tokens,
        temperature=0.8,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
    )
    latency_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "AI lead completion in %dms (model=%s)", latency_ms, settings.openai_model,
        extra={"provider": "openai"},
    )
    return response.choices[0].message.content if response.choices else ""


async def generate_leads(
    query: str,
    industry: Optional[str] = None,
    location: Optional[str] = None,
    company_size: Optional[str] = None,
    lead_count: int = 10,
) -> dict:
    """
    Generate up to lead_count leads.

    Returns:
        {
            "leads": list[dict],
            "note": str|None,
            "fallback": bool,
        }
    """
    prompt = build_prompt(query, industry, location, company_size, lead_count)
    try:
        content = await _complete(prompt)
        leads = parse_leads(content)
    except Exception as e:
        logger.warning(
            "Lead generation failed, using sample leads: %s", str(e),
            extra={"provider": "openai", "error_code": "ai_fallback"},
        )
        return {"leads": sample_leads(lead_count), "note": FALLBACK_NOTE, "fallback": True}

    await _record_heartbeat()
    return {"leads": leads[:lead_count], "note": None, "fallback": False}
