from __future__ import annotations

import io
import json
import os
import time

from packages.core.monitor.control import (
    JsonLineWriter,
    MessageFramer,
    StdinConfigListener,
    parse_control_message,
)
from packages.shared.config import CaptureFailure, OutputEvent, ReadySignal

VALID = json.dumps({
    "config": [
        {"emrKey": "VSC", "windowWildCard": "Visual Studio Code",
         "cropPercentages": {"top": 10, "right": 70, "left": 5, "bottom": 50}},
        {"emrKey": "EPIC", "windowWildCard": "Hyperspace",
         "cropPercentages": {"top": 0, "right": 100, "left": 0, "bottom": 100}},
    ]
})


def test_parse_valid_message_keeps_order():
    configs = parse_control_message(VALID)
    assert [c.emr_key for c in configs] == ["VSC", "EPIC"]
    assert configs[0].crop_percentages.right == 70


def test_parse_rejects_malformed_messages():
    assert parse_control_message("{not json") is None
    assert parse_control_message('{"something": []}') is None
    assert parse_control_message('{"config": [{"emrKey": "X"}]}') is None
    # percentages outside 0-100
    assert parse_control_message(
        '{"config": [{"emrKey": "X", "windowWildCard": "X",'
        ' "cropPercentages": {"left": 0, "top": 0, "right": 150, "bottom": 100}}]}'
    ) is None


def test_parse_empty_config_is_valid():
    assert parse_control_message('{"config": []}') == []


def test_listener_replaces_config_and_ignores_garbage():
    received = []
    stream = io.StringIO("\n".join(['{"config": []}', "garbage", "", VALID, '{"config": 5}']) + "\n")
    listener = StdinConfigListener(stream, received.append)

    listener.start()
    assert listener.join(timeout=5)

    assert len(received) == 2
    assert received[0] == []
    assert [c.emr_key for c in received[1]] == ["VSC", "EPIC"]


def test_handle_line_reports_whether_config_changed():
    received = []
    listener = StdinConfigListener(io.StringIO(), received.append)
    assert listener.handle_line(VALID + "\r\n")
    assert not listener.handle_line("   ")
    assert not listener.handle_line("[1, 2, 3]")
    assert len(received) == 1


def test_writer_emits_one_json_object_per_line():
    out = io.StringIO()
    writer = JsonLineWriter(out, "stdout")

    assert writer.write(ReadySignal())
    assert writer.write(OutputEvent(emr_key="VSC", window_title="Visual Studio Code — file.js", screenshot="AAAA"))

    lines = out.getvalue().splitlines()
    assert json.loads(lines[0]) == {"canAcceptConfig": True}
    assert json.loads(lines[1]) == {
        "emrKey": "VSC",
        "windowTitle": "Visual Studio Code — file.js",
        "screenshot": "AAAA",
    }


def test_error_record_shape():
    failure = CaptureFailure(emr_key="VSC", window_title="t", at="2024-01-01T00:00:00", reason="boom")
    assert json.loads(failure.to_json_line()) == {
        "type": "CAPTURE_FAILED",
        "emrKey": "VSC",
        "windowTitle": "t",
        "at": "2024-01-01T00:00:00",
        "reason": "boom",
    }


def test_writer_survives_closed_stream():
    out = io.StringIO()
    out.close()
    assert not JsonLineWriter(out, "stdout").write(ReadySignal())


def test_invalid_utf8_does_not_stop_the_listener():
    received = []
    stdin = io.TextIOWrapper(io.BytesIO(b"\xff\xfe garbage\n" + VALID.encode() + b"\n"), encoding="utf-8")
    listener = StdinConfigListener(stdin, received.append)

    listener.start()
    assert listener.join(timeout=5)

    assert [[c.emr_key for c in configs] for configs in received] == [["VSC", "EPIC"]]


def test_message_without_trailing_newline_applies_while_stdin_stays_open():
    received = []
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "rb")
    listener = StdinConfigListener(reader, received.append)
    listener.start()
    try:
        os.write(write_fd, VALID.encode())
        deadline = time.monotonic() + 5
        while not received and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(received) == 1
    finally:
        os.close(write_fd)
        assert listener.join(timeout=5)
        reader.close()


def test_framer_splits_back_to_back_objects_in_one_chunk():
    framer = MessageFramer()
    assert framer.feed('{"config": []}{"config": [1]}') == ['{"config": []}', '{"config": [1]}']


def test_framer_waits_for_the_rest_of_a_split_message():
    framer = MessageFramer()
    assert framer.feed(VALID[:25]) == []
    assert framer.feed(VALID[25:]) == [VALID]


def test_framer_ignores_braces_inside_strings():
    msg = '{"config": [{"emrKey": "a}b", "windowWildCard": "{\\"x", "cropPercentages": {}}]}'
    assert MessageFramer().feed(msg) == [msg]


def test_broken_line_does_not_swallow_the_next_message():
    received = []
    listener = StdinConfigListener(io.StringIO(), received.append)

    assert listener.feed(b'{not json\nnoise ' + VALID.encode()) == 1
    assert [c.emr_key for c in received[0]] == ["VSC", "EPIC"]


def test_multibyte_character_split_across_reads():
    received = []
    listener = StdinConfigListener(io.StringIO(), received.append)
    data = json.dumps(
        {"config": [{"emrKey": "VSC", "windowWildCard": "Visual Studio Code — ",
                     "cropPercentages": {"left": 0, "top": 0, "right": 100, "bottom": 100}}]},
        ensure_ascii=False,
    ).encode("utf-8")
    cut = data.index("—".encode("utf-8")) + 1

    assert listener.feed(data[:cut]) == 0
    assert listener.feed(data[cut:]) == 1
    assert received[0][0].window_wild_card == "Visual Studio Code — "
