"""RequestContext: carries request identity through the tool loop."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Identity of the request a tool is being executed for.

    Attributes:
        request_id: The request identifier echoed in the reply.
        user_id: The requesting user; tools scope per-user reads to it.
    """

    request_id: str
    user_id: str
