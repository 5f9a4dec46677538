# SPDX-License-Identifier: MIT

import threading
import time

from pmt.orchestrator import LogTail


def append(path, text):
    with open(path, "a") as f:
        f.write(text)


def test_partial_lines_are_buffered(tmp_path):
    path = str(tmp_path / "build.log")
    tail = LogTail(path)
    tail.truncate()

    append(path, "abc")
    assert tail.read_new() == []

    append(path, "def\nghi")
    assert tail.read_new() == ["abcdef"]
    assert tail.read_new() == []

    append(path, "\n")
    assert tail.read_new() == ["ghi"]


def test_final_read_returns_partial_line(tmp_path):
    path = str(tmp_path / "build.log")
    tail = LogTail(path)
    tail.truncate()

    append(path, "one\ntwo")
    assert tail.read_new() == ["one"]
    assert tail.read_new(final=True) == ["two"]
    assert tail.read_new(final=True) == []


def test_missing_file(tmp_path):
    tail = LogTail(str(tmp_path / "does-not-exist.log"))
    assert tail.read_new() == []
    assert tail.read_new(final=True) == []


def test_truncate_starts_over(tmp_path):
    path = str(tmp_path / "build.log")
    append(path, "stale\n")
    tail = LogTail(path)
    tail.truncate()

    append(path, "fresh\n")
    assert tail.read_new() == ["fresh"]


def test_invalid_utf8_is_replaced(tmp_path):
    path = str(tmp_path / "build.log")
    with open(path, "wb") as f:
        f.write(b"caf\xe9\n")

    assert LogTail(path).read_new() == ["caf\ufffd"]


def test_concurrent_writer(tmp_path):
    path = str(tmp_path / "build.log")
    tail = LogTail(path)
    tail.truncate()
    expected = ["line {} of the build output".format(n) for n in range(300)]
    text = "".join(line + "\n" for line in expected)

    def writer():
        # Chunks deliberately split lines.
        with open(path, "a") as f:
            for n in range(0, len(text), 7):
                f.write(text[n : n + 7])
                f.flush()
                if n % 140 == 0:
                    time.sleep(0.001)

    thread = threading.Thread(target=writer)
    thread.start()
    lines = []
    while thread.is_alive():
        lines.extend(tail.read_new())
        thread.join(0.001)
    thread.join()
    lines.extend(tail.read_new(final=True))

    assert lines == expected
