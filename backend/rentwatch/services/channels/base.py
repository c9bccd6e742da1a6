from dataclasses import dataclass
from typing import Optional


@dataclass
class SendResult:
    """Outcome of one provider send. Failures are returned, not raised."""
    success: bool
    message_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
