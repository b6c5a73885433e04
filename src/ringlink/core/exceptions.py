"""ringlink exception hierarchy.

Typed exceptions for every error category, so callers catch specific
failures instead of bare ``Exception`` and ``CancelledError`` always
propagates untouched.

Exception hierarchy:

```text
RingLinkError (base -- never raised directly)
├── ConfigurationError        -- config validation, missing keys, bad YAML
├── StoreError                -- persistence failures
│   └── RingExistsError       -- hosted ring id already taken
├── ConnectivityError         -- transient network failure talking to a peer
│   ├── PeerTimeoutError      -- request exceeded its timeout
│   └── PeerResponseError     -- non-2xx status or malformed body
└── FederationError           -- synchronous request outcome (HTTP status)
    ├── InvalidRequestError   -- validation: bad rating, missing field (400)
    ├── DuplicateMemberError  -- url already in members or pending (400)
    ├── NotFoundError         -- unknown ring or member (404)
    │   ├── RingNotFoundError
    │   └── MemberNotFoundError
    └── ForbiddenError        -- policy violation (403)
```

See Also:
    [PeerClient][ringlink.services.common.peers.PeerClient]: Raises
        [ConnectivityError][ringlink.core.exceptions.ConnectivityError]
        subclasses for every outbound call.
    [Federation][ringlink.services.federation.Federation]: Maps
        [FederationError][ringlink.core.exceptions.FederationError]
        subclasses to HTTP responses via ``status_code``.
    [BaseService][ringlink.core.base_service.BaseService]: Catches
        unexpected errors in the
        [run_forever()][ringlink.core.base_service.BaseService.run_forever]
        loop.
"""

from __future__ import annotations

from typing import ClassVar


class RingLinkError(Exception):
    """Base exception for all ringlink errors. Never raised directly."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(RingLinkError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StoreError(RingLinkError):
    """Base for ring store failures."""


class RingExistsError(StoreError):
    """A hosted ring with the requested id already exists."""

    def __init__(self, ring_id: str) -> None:
        super().__init__(f"ring already exists: {ring_id}")
        self.ring_id = ring_id


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(RingLinkError):
    """Base for transient failures talking to a peer node.

    Never escalated to a process-level error: the health checker counts
    it, the sync agent skips the mirror until the next cycle, and
    request/response operations surface it to their caller.
    """


class PeerTimeoutError(ConnectivityError):
    """The peer did not answer within the configured timeout."""


class PeerResponseError(ConnectivityError):
    """The peer answered with a non-2xx status or an unusable body.

    Attributes:
        status: HTTP status code returned by the peer (0 when the body,
            not the status, was the problem).
        message: Error message reported by the peer, if any.
    """

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"peer responded {status}: {message}" if status else message)
        self.status = status
        self.message = message


# ---------------------------------------------------------------------------
# Federation outcomes
# ---------------------------------------------------------------------------


class FederationError(RingLinkError):
    """Base for refusals of a synchronous federation request.

    Attributes:
        status_code: HTTP status used when the error crosses the
            federation surface.
        code: Short machine-readable error code.
    """

    status_code: ClassVar[int] = 400
    code: ClassVar[str] = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(FederationError):
    """Validation failure: bad rating range, missing or malformed field."""

    status_code = 400
    code = "invalid"


class DuplicateMemberError(FederationError):
    """The url is already present in the ring's members or pending queue."""

    status_code = 400
    code = "duplicate"


class NotFoundError(FederationError):
    """Unknown ring or member."""

    status_code = 404
    code = "not_found"


class RingNotFoundError(NotFoundError):
    """The ring id resolves to neither a hosted nor a joined ring."""

    def __init__(self, ring_id: str) -> None:
        super().__init__(f"ring not found: {ring_id}")
        self.ring_id = ring_id


class MemberNotFoundError(NotFoundError):
    """The target url is not a member of the ring."""

    def __init__(self, ring_id: str, url: str) -> None:
        super().__init__(f"member not found in {ring_id}: {url}")
        self.ring_id = ring_id
        self.url = url


class ForbiddenError(FederationError):
    """Policy violation: curated join, bad invite code, failed rater probe.

    Attributes:
        reason: Human-readable refusal reason (also the message).
    """

    status_code = 403
    code = "forbidden"

    @property
    def reason(self) -> str:
        return self.message
