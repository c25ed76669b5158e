"""Per-request context passed explicitly into service calls"""

from dataclasses import dataclass, field
from typing import Optional

from ulid import ULID


@dataclass(frozen=True)
class RequestContext:
    """Caller identity and correlation id for one request

    user_id is None for anonymous callers, who may only read.
    """

    user_id: Optional[str] = None
    request_id: str = field(default_factory=lambda: str(ULID()))

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)
