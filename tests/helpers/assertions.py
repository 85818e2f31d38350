"""Assertions for the response envelope of ``ExecutionResult.to_response()``."""

from typing import Any


def assert_success_response(response: dict[str, Any], skill_id: str | None = None) -> None:
    """Assert a flattened execution result reports success.

    Args:
        response: Envelope from ExecutionResult.to_response()
        skill_id: When given, the message must name this skill

    Example:
        >>> result = await engine.execute("add", {"a": 1, "b": 2})
        >>> assert_success_response(result.to_response(), skill_id="add")
    """
    assert set(response) == {"success", "result", "message"}, f"Unexpected keys: {sorted(response)}"
    assert response["success"] is True, f"Expected success, got error {response.get('error')!r}"
    assert response["message"].startswith("Executed "), response["message"]
    if skill_id is not None:
        assert f"Executed {skill_id} " in response["message"], response["message"]


def assert_error_response(response: dict[str, Any], error_code: str | None = None) -> None:
    """Assert a flattened execution result reports a failure.

    The error field holds the execution sub-kind (timeout, permission, ...)
    or, for non-execution errors, the error code.
    """
    assert response.get("success") is False, f"Expected failure, got {response!r}"
    assert response.get("error"), "Failure envelope has no error code"
    assert response.get("message"), "Failure envelope has no message"
    assert isinstance(response.get("suggestions"), list), "Failure envelope has no suggestions"
    if error_code is not None:
        assert response["error"] == error_code, (
            f"Expected error code {error_code!r}, got {response['error']!r}"
        )
