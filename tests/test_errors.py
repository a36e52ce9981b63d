"""Tests for bqextract error classes.

Tests cover:
- Error hierarchy
- ValidationError message lists every failure with its corrective action
- InvalidTransitionError names both states
"""

import pytest

from bqextract.errors import BqExtractError, InvalidTransitionError, ProvisioningError, ValidationError
from bqextract.schemas import ValidationFailure


class TestBqExtractError:
    """Tests for base BqExtractError."""

    def test_is_exception(self):
        """BqExtractError should be an Exception."""
        assert issubclass(BqExtractError, Exception)

    def test_has_message(self):
        """BqExtractError should have a message."""
        assert str(BqExtractError("my message")) == "my message"

    @pytest.mark.parametrize("error_class", [ValidationError, ProvisioningError, InvalidTransitionError])
    def test_subclasses(self, error_class):
        """All bqextract errors can be caught as BqExtractError."""
        assert issubclass(error_class, BqExtractError)


class TestValidationError:
    """Tests for ValidationError."""

    def test_carries_failures_in_order(self):
        """ValidationError keeps every failure, in collection order."""
        failures = [ValidationFailure("first"), ValidationFailure("second")]
        error = ValidationError(failures)
        assert [f.message for f in error.failures] == ["first", "second"]

    def test_message_lists_failures_with_actions(self):
        """The message names every failure and its corrective action."""
        error = ValidationError([
            ValidationFailure("Field 'region' is missing.", "Remove field 'region'."),
            ValidationFailure("Dataset name is invalid."),
        ])
        message = str(error)
        assert "(2 failures)" in message
        assert "Field 'region' is missing. Remove field 'region'." in message
        assert "Dataset name is invalid." in message

    def test_singular_header(self):
        """A single failure uses the singular form."""
        assert "(1 failure)" in str(ValidationError([ValidationFailure("x")]))


class TestInvalidTransitionError:
    """Tests for InvalidTransitionError."""

    def test_names_states(self):
        """The message names the current and requested states."""
        error = InvalidTransitionError("succeeded", "running")
        assert error.current == "succeeded"
        assert error.requested == "running"
        assert str(error) == "Cannot transition from 'succeeded' to 'running'"
