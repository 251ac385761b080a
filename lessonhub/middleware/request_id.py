import uuid
from flask import g, request


REQUEST_ID_HEADER = "X-Request-ID"


def assign_request_id():
    """
    Attach a correlation ID to the request, reusing the caller's if sent.
    """
    incoming = request.headers.get(REQUEST_ID_HEADER)
    g.request_id = incoming or str(uuid.uuid4())


def add_request_id_header(response):
    """
    Echo the correlation ID back to the caller.
    """
    response.headers[REQUEST_ID_HEADER] = g.get("request_id", "")
    return response


def init_request_id_middleware(app):
    """
    Register the request ID hooks on a Flask app.
    Must run before logging hooks so every log line carries the ID.
    """
    app.before_request(assign_request_id)
    app.after_request(add_request_id_header)
