"""Alert message models handed from the formatter to the notification sink."""
from dataclasses import dataclass
from typing import Optional, Dict, Any

UNKNOWN = "Unknown"

# SNS rejects subjects longer than this, or containing line breaks
MAX_SUBJECT_LENGTH = 100


def sanitize_subject(subject: str) -> str:
    """Collapse a subject onto one printable line and cut it to the SNS limit."""
    printable = "".join(ch for ch in subject if ch.isprintable() or ch.isspace())
    single_line = " ".join(printable.split())
    if len(single_line) <= MAX_SUBJECT_LENGTH:
        return single_line
    return single_line[:MAX_SUBJECT_LENGTH - 3].rstrip() + "..."


@dataclass(frozen=True)
class AlertMessage:
    """Rendered notification payload"""
    subject: str
    body: str

    def to_dict(self) -> Dict[str, Any]:
        return {"subject": self.subject, "body": self.body}


@dataclass(frozen=True)
class FormatResult:
    """Outcome of formatting one event; failures carry the error instead of raising."""
    success: bool
    message: Optional[AlertMessage] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: AlertMessage) -> "FormatResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, error: str) -> "FormatResult":
        return cls(success=False, error=error)


@dataclass(frozen=True)
class PublishResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "error": self.error
        }
