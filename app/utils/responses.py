from typing import Any


def success_response(data: Any = None, message: str = "Success") -> dict:
    """Wrap a payload in the standard success envelope"""
    return {"code": "success", "message": message, "data": data}
