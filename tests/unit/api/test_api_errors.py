"""Tests for API error responses."""

from techpress.api.errors import (
    BadRequestError,
    ForbiddenError,
    Message,
    MessageType,
    NotFoundError,
    Result,
    UnauthorizedError,
)


class TestErrors:
    """Test error classes."""

    def test_not_found(self) -> None:
        err = NotFoundError("Blog", 42)
        assert err.status_code == 404
        assert err.code == "NotFound"
        assert "42" in err.text

    def test_bad_request(self) -> None:
        err = BadRequestError("Comment is required")
        assert err.status_code == 400
        assert err.text == "Comment is required"

    def test_unauthorized_and_forbidden(self) -> None:
        assert UnauthorizedError().status_code == 401
        assert ForbiddenError().status_code == 403

    def test_to_result_uses_wire_names(self) -> None:
        """Rendered errors use camelCase messageType and carry a timestamp."""
        result = NotFoundError("Comment", 7).to_result().model_dump(by_alias=True)
        [message] = result["messages"]
        assert message["code"] == "NotFound"
        assert message["messageType"] == "Error"
        assert message["timestamp"]


class TestResult:
    """Test Result wrapper."""

    def test_populate_by_name(self) -> None:
        msg = Message(code="BadRequest", message_type=MessageType.ERROR, text="x")
        assert Result(messages=[msg]).messages[0].message_type == MessageType.ERROR
