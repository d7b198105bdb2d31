"""The authenticated identity for one request."""

import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Principal:
    """Who is making the request.

    Learn: Built from a verified access token and nothing else — no
    database lookup. It lives only as long as the request does, and it
    is passed explicitly to whatever needs it (route handlers, the
    session binder) rather than read from global state.
    """

    account_id: uuid.UUID
    roles: tuple[str, ...] = field(default_factory=tuple)
