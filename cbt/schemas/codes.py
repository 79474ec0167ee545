"""
cbt/schemas/codes.py
Access code issuance payloads
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class IssueCodesRequest(BaseModel):
    emails: List[str] = Field(..., min_length=1, description="One code is issued per email")
    expires_at: Optional[datetime] = Field(default=None, description="NULL means never expires")

    @field_validator("emails", mode="after")
    @classmethod
    def _clean_emails(cls, value: List[str]) -> List[str]:
        cleaned = [email.strip() for email in value if email and "@" in email.strip()]
        if not cleaned:
            raise ValueError("Please enter valid email addresses")
        return cleaned


class IssuedCode(BaseModel):
    id: str
    exam_id: str
    code: str
    user_email: str
    expires_at: Optional[datetime] = None
    take_url: str
    delivered: bool = Field(..., description="False when the code exists but the email failed")
