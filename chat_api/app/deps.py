"""Process-wide dialogue service and its FastAPI dependency."""

from typing import Optional

from diag_dialogue.service import DialogueService

_service: Optional[DialogueService] = None


def get_service() -> DialogueService:
    """Return the shared :class:`DialogueService`, creating it on first use."""
    global _service
    if _service is None:
        _service = DialogueService()
    return _service


def set_service(service: Optional[DialogueService]) -> None:
    global _service
    _service = service
