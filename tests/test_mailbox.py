import json
import os
import time

from askbot.local.mailbox import FileMailbox


def test_put_writes_question_file(tmp_path):
    mailbox = FileMailbox(tmp_path, "abc")

    mailbox.put("q1", "Approve?", ["yes", "no"])

    data = json.loads((tmp_path / "abc.json").read_text(encoding="utf-8"))
    assert data == {"id": "q1", "text": "Approve?", "options": ["yes", "no"]}
    assert [p.name for p in tmp_path.iterdir()] == ["abc.json"]


def test_put_without_options_omits_key(tmp_path):
    mailbox = FileMailbox(tmp_path, "abc")

    mailbox.put("q1", "Free text?")

    assert "options" not in mailbox.read_question()


def test_poll_takes_the_response_once(tmp_path):
    parent = FileMailbox(tmp_path, "abc")
    ui = FileMailbox(tmp_path, "abc")

    assert parent.poll("q1") is None
    ui.respond("q1", "yes")

    assert parent.poll("q1") == "yes"
    assert parent.poll("q1") is None
    assert not (tmp_path / "response-q1.txt").exists()


def test_responses_are_keyed_by_question(tmp_path):
    mailbox = FileMailbox(tmp_path, "abc")
    mailbox.respond("q1", "first")

    assert mailbox.poll("q2") is None
    assert mailbox.poll("q1") == "first"


def test_partial_question_file_reads_as_none(tmp_path):
    mailbox = FileMailbox(tmp_path, "abc")
    (tmp_path / "abc.json").write_text('{"id": "q1", "te', encoding="utf-8")

    assert mailbox.read_question() is None


def test_heartbeat_age(tmp_path):
    mailbox = FileMailbox(tmp_path, "abc")
    assert mailbox.heartbeat_age() is None

    mailbox.touch_heartbeat()
    assert mailbox.heartbeat_age() < 1.0

    past = time.time() - 30
    os.utime(mailbox.heartbeat_path, (past, past))
    assert mailbox.heartbeat_age() >= 29


def test_close_signal(tmp_path):
    mailbox = FileMailbox(tmp_path, "abc")
    assert mailbox.close_requested() is False

    mailbox.signal_close()

    assert mailbox.close_requested() is True
    assert (tmp_path / "close-session.txt").exists()
