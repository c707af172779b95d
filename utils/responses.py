from flask import jsonify


class ApiError(Exception):
    """Raised anywhere in a request; rendered as the JSON envelope by the app."""

    def __init__(self, status: int, message: str, code: str = None, **extra):
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.code:
            body["code"] = self.code
        body.update(self.extra)
        return body


def ok(message: str = None, status: int = 200, **data):
    body = {"success": True}
    if message is not None:
        body["message"] = message
    body.update(data)
    return jsonify(body), status


def fail(status: int, message: str, code: str = None, **extra):
    return jsonify(ApiError(status, message, code, **extra).to_dict()), status
