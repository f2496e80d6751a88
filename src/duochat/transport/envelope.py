"""
Payload construction and parsing for channel events.
"""

import logging
from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)


def build_payload(payload: Any) -> Any:
    """Serialize an outbound payload as a dict ready for Socket.IO emit."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    return payload


def parse_payload(model: type[P], raw: Any) -> Optional[P]:
    """Parse an inbound payload. Returns None if invalid."""
    if not isinstance(raw, dict):
        logger.warning("Ignoring non-object %s payload: %r", model.__name__, raw)
        return None
    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning("Ignoring malformed %s payload: %s", model.__name__, e.errors(include_url=False))
        return None
