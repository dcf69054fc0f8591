"""Tests for the error taxonomy and Result"""

import pytest

from quant_analytics.errors import (
    DegenerateInputError, ErrorKind, InsufficientDataError, InvalidInputError,
    InvariantViolationError, Result
)


class TestErrors:
    """Structured error payloads"""

    def test_insufficient_data_details(self):
        error = InsufficientDataError("too short", required=14, available=3)
        assert error.to_dict() == {
            'error': 'insufficient_data',
            'message': 'too short',
            'details': {'required': 14, 'available': 3}
        }

    def test_default_message(self):
        assert DegenerateInputError().message == "Degenerate input"
        assert 'details' not in DegenerateInputError().to_dict()

    def test_invalid_input_is_value_error(self):
        assert isinstance(InvalidInputError(), ValueError)


class TestResult:
    """Tagged success / failure"""

    def test_success(self):
        result = Result.success(3)
        assert result.ok
        assert result.unwrap() == 3
        assert result.to_dict() == {'ok': True, 'value': 3}

    def test_failure(self):
        result = Result.failure(DegenerateInputError("flat"))
        assert not result.ok
        assert result.kind == ErrorKind.DEGENERATE_INPUT
        assert result.to_dict()['error']['error'] == 'degenerate_input'
        with pytest.raises(DegenerateInputError):
            result.unwrap()

    def test_invariant_violation_is_never_wrapped(self):
        with pytest.raises(InvariantViolationError):
            Result.failure(InvariantViolationError("weights sum to 0.9"))
