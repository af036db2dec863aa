"""Error types for the AI agent pipeline.

Every upstream failure that reaches the caller is an AgentServiceError with a
human-readable message. ResponseParseError and PersistenceError never leave
the pipeline; CredentialError is a configuration defect and is never retried.
"""


class AgentServiceError(Exception):
    """An agent could not be reached or answered incorrectly."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, message: str, agent_type: str | None = None):
        self.message = message
        self.agent_type = agent_type
        super().__init__(self.message)


class AgentTimeoutError(AgentServiceError):
    """All attempts timed out."""

    code = "TIMEOUT"

    def __init__(self, message: str, agent_type: str | None = None, elapsed_ms: int = 0, attempts: int = 1):
        self.elapsed_ms = elapsed_ms
        self.attempts = attempts
        super().__init__(message, agent_type)


class AgentConnectionRefusedError(AgentServiceError):
    code = "CONNECTION_REFUSED"


class AgentNetworkError(AgentServiceError):
    code = "NETWORK_ERROR"


class AgentUpstreamHTTPError(AgentServiceError):
    """Agent answered with a non-2xx status that was not (or no longer) retryable."""

    code = "UPSTREAM_HTTP_ERROR"

    def __init__(self, message: str, agent_type: str | None = None, status: int = 0, body_excerpt: str = ""):
        self.status = status
        self.body_excerpt = body_excerpt
        super().__init__(message, agent_type)


class AgentServiceUnavailableError(AgentServiceError):
    """Tunnel or proxy answered with an HTML error page instead of the agent."""

    code = "SERVICE_UNAVAILABLE"


class AgentEndpointNotRegisteredError(AgentServiceError):
    """Webhook exists on the agent host but its workflow is not active."""

    code = "ENDPOINT_NOT_REGISTERED"


class ResponseParseError(ValueError):
    """Agent body could not be decoded. Degrades to a generic reply."""

    code = "RESPONSE_PARSE_ERROR"


class PersistenceError(RuntimeError):
    """Conversation storage failed. Logged and reported, never raised to the caller."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str = "conversation_persist_failed"):
        self.message = message
        super().__init__(self.message)


class CredentialError(RuntimeError):
    """Agent credential could not be signed (missing or invalid key)."""

    code = "CREDENTIAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConversationNotFoundError(LookupError):
    """Conversation does not exist or belongs to another user."""

    code = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        self.message = f"Conversation not found: {conversation_id}"
        super().__init__(self.message)
