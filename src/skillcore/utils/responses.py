"""Shared response helper functions.

Execution results, sync results and migration results can all be flattened
into the same envelope for callers that prefer plain dictionaries over
result models (UI layers, JSON endpoints).
"""

from typing import Any


def create_success_response(result: Any, message: str = "") -> dict:
    """Create standardized success response.

    Args:
        result: Operation result (can be any type)
        message: Optional success message for logging/display

    Returns:
        Structured response dict with success=True

    Example:
        >>> create_success_response(result="hi", message="Executed echo-cmd")
        {'success': True, 'result': 'hi', 'message': 'Executed echo-cmd'}
    """
    return {
        "success": True,
        "result": result,
        "message": message,
    }


def create_error_response(error: str, message: str, **details: Any) -> dict:
    """Create standardized error response.

    Args:
        error: Machine-readable error code (e.g., "not_found", "timeout")
        message: Human-friendly error message
        **details: Extra fields merged into the response (e.g. suggestions)

    Returns:
        Structured response dict with success=False

    Example:
        >>> create_error_response(error="timeout", message="Execution timed out")
        {'success': False, 'error': 'timeout', 'message': 'Execution timed out'}
    """
    response = {
        "success": False,
        "error": error,
        "message": message,
    }
    response.update(details)
    return response
