"""
Email-related Pydantic models.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class MailSummary(BaseModel):
    """One message in a recent-mail listing."""
    id: str
    sender: str
    subject: str
    date: str
    snippet: str = ""


class MailDraft(BaseModel):
    """A fully specified outgoing email."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    to: str = Field(min_length=3)
    subject: str = ""
    body_text: str = ""
    cc: List[str] = []
    bcc: List[str] = []

    @field_validator("to", "subject", "cc", "bcc")
    @classmethod
    def _single_line(cls, value):
        # These become MIME headers
        for item in value if isinstance(value, list) else [value]:
            if "\r" in item or "\n" in item:
                raise ValueError("must be a single line")
        return value

    @field_validator("to")
    @classmethod
    def _strip_to(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("must be an email address")
        return value

    @property
    def recipients(self) -> List[str]:
        """All 'to' addresses (comma separated in the draft)."""
        return [addr.strip() for addr in self.to.split(",") if addr.strip()]


class SentMail(BaseModel):
    """Result of sending a message."""
    id: Optional[str] = None
    thread_id: Optional[str] = None
