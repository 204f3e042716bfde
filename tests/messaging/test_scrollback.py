"""Tests for messaging/scrollback.py ScrollbackStore."""

import json
import threading
from unittest.mock import patch

import pytest

from messaging.exceptions import PersistenceError
from messaging.models import ChatMessage, Direction
from messaging.scrollback import ScrollbackRecord, ScrollbackStore, scrollback_filename


def _rec(i: int, direction: str = "in") -> ScrollbackRecord:
    return ScrollbackRecord(ts_ms=i, dir=direction, who=f"+{i}", body=f"msg {i}")


@pytest.fixture
def store(tmp_path):
    return ScrollbackStore(tmp_path / "scrollback")


class TestFileNaming:
    def test_hex_encoded_key(self):
        assert scrollback_filename("contact:+1") == "636f6e746163743a2b31.jsonl"

    def test_distinct_keys_distinct_files(self, store):
        assert store.path_for("group:a/b") != store.path_for("group:a_b")
        assert "/" not in store.path_for("group:a/b").name

    def test_non_ascii_key(self):
        assert scrollback_filename("group:é") == "group:é".encode("utf-8").hex() + ".jsonl"


class TestAppend:
    def test_creates_directory_and_file(self, store):
        store.append("contact:+1", _rec(1))

        path = store.path_for("contact:+1")
        assert path.exists()
        lines = path.read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[0]) == {
            "ts_ms": 1,
            "dir": "in",
            "who": "+1",
            "body": "msg 1",
        }

    def test_appends_never_rewrite(self, store):
        path = store.path_for("contact:+1")
        store.append("contact:+1", _rec(1))
        before = path.read_bytes()
        store.append("contact:+1", _rec(2))

        after = path.read_bytes()
        assert after.startswith(before)
        assert after.count(b"\n") == 2

    def test_null_fields_serialized(self, store):
        store.append("contact:+1", ScrollbackRecord(dir="out", body="x"))
        line = store.path_for("contact:+1").read_text(encoding="utf-8").strip()
        assert json.loads(line) == {"ts_ms": None, "dir": "out", "who": None, "body": "x"}

    def test_multiline_body_stays_one_line(self, store):
        store.append("contact:+1", ScrollbackRecord(dir="in", body="a\nb"))
        text = store.path_for("contact:+1").read_text(encoding="utf-8")
        assert text.count("\n") == 1
        assert store.load_tail("contact:+1", 10)[0].body == "a\nb"

    def test_write_failure_raises_persistence_error(self, store):
        with patch("builtins.open", side_effect=PermissionError("denied")):
            with pytest.raises(PersistenceError):
                store.append("contact:+1", _rec(1))

    def test_concurrent_appends_do_not_interleave(self, store):
        body = "x" * 5000

        def writer(n: int):
            for i in range(20):
                store.append("contact:+1", ScrollbackRecord(ts_ms=n * 100 + i, dir="in", body=body))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = store.path_for("contact:+1").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 80
        for line in lines:
            assert json.loads(line)["body"] == body

    def test_append_message_round_trip(self, store):
        msg = ChatMessage(timestamp_ms=None, direction=Direction.OUTBOUND, sender="+9", body="yo")
        store.append_message("group:G", msg)
        assert store.load_messages("group:G", 10) == [msg]


class TestLoadTail:
    def test_missing_file_is_empty(self, store):
        assert store.load_tail("contact:+404", 10) == []

    def test_returns_last_n_in_write_order(self, store):
        for i in range(10):
            store.append("contact:+1", _rec(i))

        tail = store.load_tail("contact:+1", 3)
        assert [r.ts_ms for r in tail] == [7, 8, 9]

    def test_limit_larger_than_count(self, store):
        for i in range(4):
            store.append("contact:+1", _rec(i))
        assert [r.ts_ms for r in store.load_tail("contact:+1", 50)] == [0, 1, 2, 3]

    def test_skips_blank_and_corrupt_lines(self, store):
        path = store.path_for("contact:+1")
        path.parent.mkdir(parents=True)
        path.write_text(
            "\n".join(
                [
                    _rec(1).model_dump_json(),
                    "{not json",
                    "",
                    '{"dir": ["in"], "body": "bad dir"}',
                    '{"ts_ms": 2}',
                    _rec(3).model_dump_json(),
                    "   ",
                    '{"ts_ms": 4, "dir": "out',
                ]
            ),
            encoding="utf-8",
        )

        tail = store.load_tail("contact:+1", 100)
        assert [r.ts_ms for r in tail] == [1, 3]

    def test_missing_optional_and_unknown_fields(self, store):
        path = store.path_for("contact:+1")
        path.parent.mkdir(parents=True)
        path.write_text(
            '{"dir": "in", "body": "old format"}\n'
            '{"dir": "out", "body": "new format", "ts_ms": 5, "who": "+9", "edited": true}\n',
            encoding="utf-8",
        )

        tail = store.load_tail("contact:+1", 10)
        assert tail[0].ts_ms is None and tail[0].who is None
        assert tail[1].body == "new format"

    def test_unreadable_file_is_empty(self, store):
        store.append("contact:+1", _rec(1))
        with patch("builtins.open", side_effect=PermissionError("denied")):
            assert store.load_tail("contact:+1", 10) == []

    def test_load_does_not_modify_file(self, store):
        for i in range(10):
            store.append("contact:+1", _rec(i))
        before = store.path_for("contact:+1").read_bytes()
        store.load_tail("contact:+1", 2)
        assert store.path_for("contact:+1").read_bytes() == before


class TestScrollbackRecord:
    def test_direction_mapping(self):
        assert _rec(1, "out").to_message().direction is Direction.OUTBOUND
        assert _rec(1, "in").to_message().direction is Direction.INBOUND

    def test_unrecognized_direction_reads_as_inbound(self, store):
        path = store.path_for("contact:+1")
        path.parent.mkdir(parents=True)
        path.write_text(
            '{"ts_ms": 1, "dir": "recv", "who": "+1", "body": "old"}\n', encoding="utf-8"
        )

        assert store.load_messages("contact:+1", 10) == [
            ChatMessage(timestamp_ms=1, direction=Direction.INBOUND, sender="+1", body="old")
        ]
