"""Tests for upload placeholder binding."""

from __future__ import annotations

from xpapi.domain.batch import UploadedFile
from xpapi.services.uploads import bind

PHOTO = UploadedFile(size=4, path="/tmp/xpapi-1", name="cat.png", type="image/png")


class TestBind:
    def test_replaces_placeholder(self) -> None:
        params = {"cmds": [{"cmd": "save", "args": {"@photo": None, "title": "cat"}}]}
        bound = bind(params, {"photo": PHOTO})
        assert bound["cmds"][0]["args"] == {"title": "cat", "photo": PHOTO.as_arg()}

    def test_input_not_mutated(self) -> None:
        params = {"cmds": [{"cmd": "save", "args": {"@photo": None}}]}
        bind(params, {"photo": PHOTO})
        assert params == {"cmds": [{"cmd": "save", "args": {"@photo": None}}]}

    def test_same_file_bound_to_many_commands(self) -> None:
        params = {
            "cmds": [
                {"cmd": "save", "args": {"@photo": None}},
                {"cmd": "thumb", "args": {"@photo": None}},
            ]
        }
        bound = bind(params, {"photo": PHOTO})
        assert all(c["args"] == {"photo": PHOTO.as_arg()} for c in bound["cmds"])

    def test_unmatched_placeholder_left_alone(self) -> None:
        params = {"cmds": [{"cmd": "save", "args": {"@video": None}}]}
        assert bind(params, {"photo": PHOTO}) == params

    def test_no_files_returns_copy(self) -> None:
        params = {"cmds": [{"cmd": "save", "args": {"@photo": None}}]}
        bound = bind(params, {})
        assert bound == params
        assert bound is not params

    def test_malformed_batches_pass_through(self) -> None:
        for params in (None, "text", {"cmds": "x"}, {"cmds": ["x", {"cmd": "a", "args": 5}]}):
            assert bind(params, {"photo": PHOTO}) == params
