"""Tests for logevt/sink.py."""
import json
import os
import threading
from io import StringIO

import pytest
import yaml

from logevt.errors import SinkError
from logevt.model import Timespec
from logevt.sink import JsonSink, YamlSink, format_timespec, make_sink


def _emit_sample(sink):
  sink.record_begin()
  sink.dict_begin()
  sink.dict_item("name")
  sink.value_string("ls")
  sink.dict_item("mode")
  sink.value_uint_oct(0o100755)
  sink.dict_item("neg")
  sink.value_int(-1)
  sink.dict_item("ok")
  sink.value_bool(True)
  sink.dict_item("none")
  sink.value_null()
  sink.dict_item("time")
  sink.value_timespec(Timespec(0, 5))
  sink.dict_item("cdhash")
  sink.value_buf_hex(b"\x00\xab\xff")
  sink.dict_item("dev")
  sink.value_ttydev(os.makedev(16, 3))
  sink.dict_item("argv")
  sink.list_begin()
  sink.list_item("arg")
  sink.value_string("-l")
  sink.list_item("arg")
  sink.value_string("/tmp")
  sink.list_end()
  sink.dict_end()
  sink.record_end()


EXPECTED = {
  "name": "ls",
  "mode": "100755",
  "neg": -1,
  "ok": True,
  "none": None,
  "time": "1970-01-01T00:00:00.000000005Z",
  "cdhash": "00abff",
  "dev": "16,3",
  "argv": ["-l", "/tmp"],
}


class TestJsonSink:
  def test_oneline_record(self):
    out = StringIO()
    _emit_sample(JsonSink(out))
    text = out.getvalue()
    assert text.count("\n") == 1
    assert json.loads(text) == EXPECTED

  def test_key_order_preserved(self):
    out = StringIO()
    _emit_sample(JsonSink(out))
    assert list(json.loads(out.getvalue())) == list(EXPECTED)

  def test_multiline_record(self):
    out = StringIO()
    _emit_sample(JsonSink(out, oneline=False))
    assert out.getvalue().count("\n") > 1
    assert json.loads(out.getvalue()) == EXPECTED

  def test_two_records_two_lines(self):
    out = StringIO()
    sink = JsonSink(out)
    _emit_sample(sink)
    _emit_sample(sink)
    lines = out.getvalue().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[1]) == EXPECTED


class TestYamlSink:
  def test_record_document(self):
    out = StringIO()
    _emit_sample(YamlSink(out))
    assert out.getvalue().startswith("---\n")
    assert yaml.safe_load(out.getvalue()) == EXPECTED

  def test_multiple_documents(self):
    out = StringIO()
    sink = YamlSink(out)
    _emit_sample(sink)
    _emit_sample(sink)
    docs = list(yaml.safe_load_all(out.getvalue()))
    assert docs == [EXPECTED, EXPECTED]

  def test_oneline_flow_style(self):
    out = StringIO()
    _emit_sample(YamlSink(out, oneline=True))
    body = out.getvalue()[len("---\n"):]
    assert body.count("\n") == 1
    assert yaml.safe_load(body) == EXPECTED


class TestTreeSinkStructure:
  """Structural misuse must never produce a record."""

  def test_value_without_key(self, collect):
    collect.record_begin()
    collect.dict_begin()
    with pytest.raises(SinkError, match="without dict_item"):
      collect.value_string("x")

  def test_key_without_value(self, collect):
    collect.record_begin()
    collect.dict_begin()
    collect.dict_item("a")
    with pytest.raises(SinkError, match="has no value"):
      collect.dict_item("b")

  def test_duplicate_key(self, collect):
    collect.record_begin()
    collect.dict_begin()
    collect.dict_item("a")
    collect.value_int(1)
    with pytest.raises(SinkError, match="duplicate"):
      collect.dict_item("a")

  def test_list_value_without_item(self, collect):
    collect.record_begin()
    collect.dict_begin()
    collect.dict_item("a")
    collect.list_begin()
    with pytest.raises(SinkError, match="without list_item"):
      collect.value_int(1)

  def test_mismatched_end(self, collect):
    collect.record_begin()
    collect.dict_begin()
    with pytest.raises(SinkError, match="list_end"):
      collect.list_end()

  def test_unclosed_block(self, collect):
    collect.record_begin()
    collect.dict_begin()
    with pytest.raises(SinkError, match="left open"):
      collect.record_end()
    assert collect.records == []

  def test_emission_outside_record(self, collect):
    with pytest.raises(SinkError, match="outside"):
      collect.dict_begin()

  def test_negative_unsigned(self, collect):
    collect.record_begin()
    collect.dict_begin()
    collect.dict_item("a")
    with pytest.raises(SinkError, match="negative"):
      collect.value_uint(-5)

  def test_unfinished_record_is_discarded(self, collect):
    collect.record_begin()
    collect.dict_begin()
    collect.dict_item("partial")
    collect.record_begin()
    collect.dict_begin()
    collect.dict_item("complete")
    collect.value_bool(True)
    collect.dict_end()
    collect.record_end()
    assert collect.records == [{"complete": True}]


class TestWriteFailure:
  def test_stream_error_propagates(self):
    class BrokenStream:
      def write(self, data):
        raise OSError("disk full")

      def flush(self):
        pass

    sink = JsonSink(BrokenStream())
    with pytest.raises(OSError, match="disk full"):
      _emit_sample(sink)


class TestThreadedRecords:
  def test_interleaved_records_stay_separate(self):
    out = StringIO()
    sink = JsonSink(out)
    opened = threading.Event()
    resume = threading.Event()
    errors = []

    def writer_a():
      try:
        sink.record_begin()
        sink.dict_begin()
        sink.dict_item("a")
        opened.set()
        resume.wait(5)
        sink.value_int(1)
        sink.dict_end()
        sink.record_end()
      except SinkError as exc:
        errors.append(exc)

    t = threading.Thread(target=writer_a)
    t.start()
    assert opened.wait(5)
    sink.record_begin()
    sink.dict_begin()
    sink.dict_item("b")
    sink.value_int(2)
    sink.dict_end()
    sink.record_end()
    resume.set()
    t.join(5)

    assert errors == []
    assert [json.loads(line) for line in out.getvalue().splitlines()] == [{"b": 2}, {"a": 1}]

  def test_many_threads_share_one_sink(self):
    out = StringIO()
    sink = JsonSink(out)

    def worker():
      for _ in range(200):
        _emit_sample(sink)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
      t.start()
    for t in threads:
      t.join()
    lines = out.getvalue().splitlines()
    assert len(lines) == 800
    assert all(json.loads(line) == EXPECTED for line in lines)


class TestMakeSink:
  def test_defaults_per_format(self):
    out = StringIO()
    assert isinstance(make_sink("json", out), JsonSink)
    assert make_sink("json", out).oneline is True
    assert isinstance(make_sink("yaml", out), YamlSink)
    assert make_sink("yaml", out).oneline is False

  def test_oneline_override(self):
    assert make_sink("json", StringIO(), oneline=False).oneline is False

  def test_unknown_format(self):
    with pytest.raises(ValueError, match="unknown log format"):
      make_sink("xml", StringIO())


def test_format_timespec():
  assert format_timespec(Timespec(1500000000, 123)) == "2017-07-14T02:40:00.000000123Z"
