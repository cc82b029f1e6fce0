class FetchError(Exception):
    """
    FetchError is the base for every failure that ends a poll
    cycle. `message` is meant for the status area of the
    presentation sink, `kind` for logs and metric labels.
    """

    kind: "str" = "error"

    def __init__(self, message: "str") -> "None":
        super().__init__(message)
        self.message = message


class NoCredential(FetchError):
    kind = "no_credential"

    def __init__(
        self,
        message: "str" = "No session cookie configured. Add one to the settings file.",
    ) -> "None":
        super().__init__(message)


class AuthFailed(FetchError):
    kind = "auth_failed"

    def __init__(
        self,
        message: "str" = "Authentication failed - check your session cookie.",
    ) -> "None":
        super().__init__(message)


class HttpError(FetchError):
    kind = "http_error"

    def __init__(self, status: "int") -> "None":
        super().__init__(f"HTTP {status}")
        self.status = status


class InvalidResponse(FetchError):
    kind = "invalid_response"

    def __init__(self, message: "str" = "Invalid JSON from server") -> "None":
        super().__init__(message)


class NetworkError(FetchError):
    kind = "network_error"

    def __init__(self, detail: "str") -> "None":
        super().__init__(f"Network error: {detail}")
        self.detail = detail


class OrganizationNotFound(FetchError):
    kind = "organization_not_found"

    def __init__(
        self,
        message: "str" = "Could not resolve organization ID.",
    ) -> "None":
        super().__init__(message)


class ParseError(FetchError):
    kind = "parse_error"

    def __init__(self, detail: "str") -> "None":
        super().__init__(f"Parse error: {detail}")
        self.detail = detail


class InvalidCredential(FetchError):
    kind = "invalid_credential"

    def __init__(
        self,
        message: "str" = "Session cookie contains characters that cannot be sent.",
    ) -> "None":
        super().__init__(message)


class UnexpectedError(FetchError):
    kind = "unexpected_error"

    def __init__(self, exc: "BaseException") -> "None":
        super().__init__(f"Unexpected error: {type(exc).__name__}")
