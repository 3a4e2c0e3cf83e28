from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


SYSTEM_PROMPT = """
You are provided with notes written by a doctor from a patient's visit.
Your job is to summarize the visit for the doctor and provide an email.
Reply with exactly three sections with the headings:
### Summary of visit for the doctor's records
### Next steps for the doctor
### Draft of email to patient in patient-friendly language
"""

GENERAL_PROMPT = """
You are a helpful assistant. Format your reply in Markdown.
"""


class ConsultationRequest(BaseModel):
    """Body of ``POST /api/consultation``: a free-form prompt or a visit record."""

    model_config = ConfigDict(extra="ignore")

    prompt: Optional[str] = Field(default=None, description="Free-form prompt text")
    patient_name: Optional[str] = Field(default=None, description="Patient's name")
    date_of_visit: Optional[str] = Field(default=None, description="Date of the visit")
    notes: Optional[str] = Field(default=None, description="Clinician's notes")

    @model_validator(mode="after")
    def _require_content(self) -> "ConsultationRequest":
        if not (self.prompt or "").strip() and not (self.notes or "").strip():
            raise ValueError("Either 'prompt' or 'notes' must be provided.")
        return self


def is_free_form(request: ConsultationRequest) -> bool:
    return bool(request.prompt and request.prompt.strip())


def user_prompt_for(request: ConsultationRequest) -> str:
    if is_free_form(request):
        return request.prompt.strip()
    return (
        "Create the summary, next steps and draft email for:\n"
        f"Patient Name: {request.patient_name or 'Unknown'}\n"
        f"Date of Visit: {request.date_of_visit or 'Unknown'}\n"
        "Notes:\n"
        f"{(request.notes or '').strip()}"
    )


def build_messages(request: ConsultationRequest) -> List[Dict[str, str]]:
    """
    Pair the user prompt with the system prompt matching the request shape.
    """
    system_prompt = GENERAL_PROMPT if is_free_form(request) else SYSTEM_PROMPT
    return [
        {"role": "system", "content": system_prompt.strip()},
        {"role": "user", "content": user_prompt_for(request)},
    ]
