from flask import request


def payload() -> dict:
    """Request body as a dict, from JSON or form data."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
