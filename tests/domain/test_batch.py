"""Tests for batch wire models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from xpapi.domain.batch import (
    BatchParams,
    BatchResponse,
    Rejection,
    RequestContext,
    UploadedFile,
    is_failure,
)


class TestBatchParams:
    def test_defaults(self) -> None:
        params = BatchParams()
        assert params.benchmark is False
        assert params.ignore_errors is False

    def test_wire_alias(self) -> None:
        params = BatchParams.model_validate({"benchmark": True, "ignoreErrors": True})
        assert params.benchmark
        assert params.ignore_errors

    def test_unknown_keys_ignored(self) -> None:
        assert BatchParams.model_validate({"verbose": 1}) == BatchParams()

    def test_rejects_non_boolean(self) -> None:
        with pytest.raises(ValidationError):
            BatchParams.model_validate({"benchmark": [1, 2]})


class TestBatchResponse:
    def test_start_counts_everything_aborted(self) -> None:
        response = BatchResponse.start(3)
        assert response.to_wire() == {
            "cmdCnt": 3,
            "worked": 0,
            "failed": 0,
            "aborted": 3,
            "results": [],
        }

    def test_record_moves_counts(self) -> None:
        response = BatchResponse.start(3)
        response.record({"output": 1}, failed=False)
        response.record({"errmsg": "no"}, failed=True)
        wire = response.to_wire()
        assert (wire["worked"], wire["failed"], wire["aborted"]) == (1, 1, 1)
        assert wire["worked"] + wire["failed"] + wire["aborted"] == wire["cmdCnt"]
        assert wire["results"] == [{"output": 1}, {"errmsg": "no"}]


class TestIsFailure:
    @pytest.mark.parametrize(
        ("result", "expected"),
        [
            ({"output": 1}, False),
            ({}, False),
            ({"errmsg": "x"}, True),
            ({"errcode": "E"}, True),
        ],
    )
    def test_is_failure(self, result: dict, expected: bool) -> None:
        assert is_failure(result) is expected  # type: ignore[arg-type]


class TestRequestContext:
    def test_state_is_per_instance(self) -> None:
        first, second = RequestContext(), RequestContext()
        first.state.user = "alice"
        assert not hasattr(second.state, "user")

    def test_uploaded_file_as_arg(self) -> None:
        upload = UploadedFile(size=3, path="/tmp/x", name="a.txt", type="text/plain")
        assert upload.as_arg() == {
            "size": 3,
            "path": "/tmp/x",
            "name": "a.txt",
            "type": "text/plain",
        }


def test_rejection_reasons_are_strings() -> None:
    assert Rejection.UNDEFINED_CMD == "Undefined cmd"
    assert f"{Rejection.INVALID_ARG}: bad" == "Invalid arg: bad"
