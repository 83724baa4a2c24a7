"""Default timeout and retry policy for outbound calls.

All values are in seconds. They seed the matching ``Settings`` fields and
``ForwardOptions`` defaults so the relay has a single source of truth.

Hierarchy:
- Tool calls (search, AI Pipe) are short and retried once.
- Chat completions can take much longer and are not retried by default.
"""


class Timeouts:
    """Centralized timeout configuration.

    Usage:
        from relay.timeouts import Timeouts

        options = ForwardOptions(timeout_seconds=Timeouts.UPSTREAM_REQUEST)
    """

    # Single attempt against a tool endpoint
    UPSTREAM_REQUEST: float = 7.0

    # Fixed pause between retry attempts
    RETRY_BACKOFF: float = 0.3

    # Total attempts for tool endpoints (first try included)
    UPSTREAM_MAX_ATTEMPTS: int = 2

    # Single LLM chat completion
    CHAT_REQUEST: float = 60.0

    # Chat completions are not idempotent enough to replay blindly
    CHAT_MAX_ATTEMPTS: int = 1

    @classmethod
    def validate(cls) -> bool:
        """Validate the policy is coherent.

        Returns True when the backoff is shorter than a single attempt and
        chat calls get at least as long as tool calls.
        """
        return (
            cls.RETRY_BACKOFF < cls.UPSTREAM_REQUEST
            and cls.UPSTREAM_REQUEST <= cls.CHAT_REQUEST
            and cls.UPSTREAM_MAX_ATTEMPTS >= 1
            and cls.CHAT_MAX_ATTEMPTS >= 1
        )
