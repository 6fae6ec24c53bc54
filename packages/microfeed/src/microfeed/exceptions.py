"""
Errors raised by the microfeed session layer.

Transport level failures come from `shared_lib.baseclient.exceptions`;
this module adds the session specific ones.
"""

from shared_lib.baseclient.exceptions import ClientError, HTTPError


class StorageUnavailable(ClientError):
    """Raised when the durable credential store cannot be read or written.

    Callers treat it as "no credential": the session keeps working from
    memory for the rest of the process but will not survive a restart.
    """

    pass


class AuthorizationError(HTTPError):
    """Raised for a 401 that token refresh could not recover.

    By the time the caller sees it the session has been logged out, and
    `Session.expired` tells the UI to ask the user to sign in again.
    """

    def __init__(self, message: str = "Session expired, please sign in again"):
        super().__init__(message, status_code=401)


class ValidationError(HTTPError):
    """Raised when the server rejects submitted fields.

    `errors` is the server's field -> messages mapping, untouched, so
    forms can render messages next to each field.
    """

    def __init__(
        self,
        errors: dict[str, list[str]],
        status_code: int | None = None,
        response_body: dict | None = None,
    ):
        super().__init__(
            "; ".join(
                f"{field} {message}"
                for field, messages in errors.items()
                for message in messages
            ),
            status_code=status_code,
            response_body=response_body,
        )
        self.errors = errors

    @property
    def messages(self) -> list[str]:
        """All messages, flattened in field order."""
        return [message for messages in self.errors.values() for message in messages]

    @classmethod
    def from_response(cls, error: HTTPError) -> "ValidationError | None":
        """
        Build a ValidationError from a failed response, if it carries one.

        Accepts both payload shapes the server produces:
        `{"errors": {"field": ["msg", ...]}}` and `{"error": "msg" | ["msg"]}`.
        The second shape, and a bare list under "errors", is keyed under
        "base".
        """
        body = error.response_body
        if not isinstance(body, dict):
            return None

        errors = body.get("errors")
        if isinstance(errors, dict):
            normalized = {
                str(field): [str(m) for m in (msgs if isinstance(msgs, list) else [msgs])]
                for field, msgs in errors.items()
            }
            return cls(normalized, status_code=error.status_code, response_body=body)

        message = body.get("error", errors)
        if isinstance(message, str):
            return cls({"base": [message]}, status_code=error.status_code, response_body=body)
        if isinstance(message, list):
            return cls(
                {"base": [str(m) for m in message]},
                status_code=error.status_code,
                response_body=body,
            )
        return None
