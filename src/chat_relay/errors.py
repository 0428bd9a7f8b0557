"""Error types shared by the relay handlers, the gateway client and the stream reader."""

from fastapi.responses import JSONResponse


class RelayError(Exception):
    """Base class for errors converted to the ``{"error": message}`` envelope."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": self.message}


class MethodNotAllowed(RelayError):
    status_code = 405

    def __init__(self, message: str = "Method not allowed"):
        super().__init__(message)


class BadRequest(RelayError):
    """Request body could not be read as ``{messages: [...]}``.

    Reported as a 500 like every other handler failure; only the method check
    answers with a 4xx status.
    """


class UpstreamFailure(RelayError):
    """The completion service failed or could not be reached."""


class ToolArgumentError(RelayError):
    """Tool arguments did not match the declared schema."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Invalid arguments for {tool_name}: {message}")
        self.tool_name = tool_name


class FrameParseError(RelayError):
    """A ``data:`` line carried something other than a JSON object."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"Malformed event frame ({reason}): {line!r}")
        self.line = line


def error_response(exc: RelayError, allow_origin: str = "*") -> JSONResponse:
    """Build the JSON error envelope for ``exc`` with CORS attached."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers={"Access-Control-Allow-Origin": allow_origin},
    )
