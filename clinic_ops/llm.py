"""LLM helpers: support ticket triage and equity report narratives."""

import os
import json

from openai import OpenAI
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

load_dotenv(override=True)

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
LLM_MODEL = os.environ.get("LLM_MODEL", "gpt-4o-mini")

TICKET_CATEGORIES = ["technical", "billing", "training", "feature_request", "bug", "integration"]
TICKET_PRIORITIES = ["low", "medium", "high", "critical"]

_client: OpenAI | None = None


def get_client() -> OpenAI:
    """Create the OpenAI client on first use."""
    global _client
    if _client is None:
        _client = OpenAI(api_key=OPENAI_API_KEY)
    return _client


class TicketTriage(BaseModel):
    """Category and priority suggested for a support ticket."""

    category: str | None = Field(None, description="One of the ticket categories")
    priority: str | None = Field(None, description="low, medium, high or critical")
    reason: str | None = Field(None, description="One sentence explaining the choice")

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v):
        if not v:
            return None
        v = str(v).strip().lower().replace(" ", "_")
        return v if v in TICKET_CATEGORIES else None

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v):
        if not v:
            return None
        v = str(v).strip().lower()
        return v if v in TICKET_PRIORITIES else None


TRIAGE_PROMPT = f"""You triage IT support tickets for behavioral health clinics.
Clinics use the platform for dosing, billing and patient records, so anything that
stops dosing or exposes patient data is critical.

Return a JSON object with EXACTLY these fields:
{{
  "category": one of {json.dumps(TICKET_CATEGORIES)},
  "priority": one of {json.dumps(TICKET_PRIORITIES)},
  "reason": one sentence
}}"""


def triage_ticket(subject: str, description: str = "") -> TicketTriage:
    """Classify a ticket. Returns an empty triage when the model is unavailable or unclear."""
    if not OPENAI_API_KEY:
        return TicketTriage()

    messages = [
        {"role": "system", "content": TRIAGE_PROMPT},
        {"role": "user", "content": f"Subject: {subject}\n\n{description or ''}"},
    ]

    response = get_client().chat.completions.create(
        model=LLM_MODEL,
        messages=messages,
        response_format={"type": "json_object"},
    )

    try:
        data = json.loads(response.choices[0].message.content or "")
        return TicketTriage(**data)
    except (json.JSONDecodeError, TypeError, ValueError):
        return TicketTriage()


def generate_report_narrative(findings: dict) -> str | None:
    """Write a short plain-language narrative over health equity findings.

    Args:
        findings: Disparity summary, key findings and recommendations

    Returns:
        The narrative, or None when no model is configured or it returns nothing.
    """
    if not OPENAI_API_KEY:
        return None

    system_prompt = """You are a health equity analyst at an opioid treatment program.
Write a short narrative (one or two paragraphs) for clinic leadership that explains
the disparities in the data below. Name the affected groups and metrics, state the
size of each gap in percentage points, and do not invent numbers that are not in
the data. Do NOT use markdown headings or emojis."""

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": json.dumps(findings, indent=2, default=str)},
    ]

    response = get_client().chat.completions.create(
        model=LLM_MODEL,
        messages=messages,
        max_completion_tokens=1024,
    )

    result = response.choices[0].message.content or ""
    if not result.strip():
        return None
    return result.strip()
