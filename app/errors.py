"""
Control-plane error taxonomy.
Each error carries the HTTP status and the short code the API returns as
{"ok": false, "error": <code>}.
"""

class ControlPlaneError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.code
        if code:
            self.code = code
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class AuthError(ControlPlaneError):
    status_code = 401
    code = "unauthorized"


class ValidationError(ControlPlaneError):
    status_code = 400
    code = "invalid_request"


class QueueFullError(ControlPlaneError):
    status_code = 429
    code = "queue_full"


class PodControlError(ControlPlaneError):
    status_code = 502
    code = "pod_control_failed"


class InferenceError(ControlPlaneError):
    status_code = 502
    code = "inference_failed"


class InvalidTransitionError(ControlPlaneError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, kind: str, current: str, target: str):
        super().__init__(f"illegal {kind} transition: {current} -> {target}")
        self.current = current
        self.target = target


class NotFoundError(ControlPlaneError):
    status_code = 404
    code = "not_found"
