# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify


def json_payload(f):
    """
    Parse the JSON body into a ``payload`` keyword argument.

    An empty body is an empty payload. A body that is not a JSON object is
    rejected with 400 before the engine sees it; every other outcome is an
    envelope returned with 200.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not request.get_data():
            payload = {}
        else:
            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                return jsonify({"success": False, "message": "Invalid JSON payload"}), 400

        return f(*args, payload=payload, **kwargs)

    return decorated_function


def query_filters(int_fields=(), bool_fields=()):
    """
    Collect query-string arguments into a ``filters`` keyword argument.

    Integer and boolean fields are converted here; a value that does not
    convert is rejected with 400. Other arguments pass through as strings.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            filters = {}
            for key, raw in request.args.items():
                if key in int_fields:
                    value = request.args.get(key, type=int)
                    if value is None:
                        return jsonify({"success": False, "message": f"{key} must be an integer"}), 400
                elif key in bool_fields:
                    if raw.lower() not in ("true", "false", "1", "0"):
                        return jsonify({"success": False, "message": f"{key} must be true or false"}), 400
                    value = raw.lower() in ("true", "1")
                else:
                    value = raw
                filters[key] = value

            return f(*args, filters=filters, **kwargs)

        return decorated_function

    return decorator
