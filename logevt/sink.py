"""Record sinks: the structural emission interface and its concrete encodings.

The serializers only ever talk to :class:`Sink`. A record is opened with
``record_begin``, built from nested dict/list blocks and typed values, and
handed to the encoding on ``record_end``.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional, TextIO

import yaml

from logevt.errors import SinkError
from logevt.model import Timespec

log = logging.getLogger(__name__)


class Sink(ABC):
  @abstractmethod
  def record_begin(self): ...

  @abstractmethod
  def record_end(self): ...

  @abstractmethod
  def dict_begin(self): ...

  @abstractmethod
  def dict_end(self): ...

  @abstractmethod
  def dict_item(self, key: str): ...

  @abstractmethod
  def list_begin(self): ...

  @abstractmethod
  def list_end(self): ...

  @abstractmethod
  def list_item(self, label: str): ...

  @abstractmethod
  def value_string(self, value: str): ...

  @abstractmethod
  def value_int(self, value: int): ...

  @abstractmethod
  def value_uint(self, value: int): ...

  @abstractmethod
  def value_uint_oct(self, value: int): ...

  @abstractmethod
  def value_bool(self, value: bool): ...

  @abstractmethod
  def value_null(self): ...

  @abstractmethod
  def value_timespec(self, tv: Timespec): ...

  @abstractmethod
  def value_buf_hex(self, buf: bytes): ...

  @abstractmethod
  def value_ttydev(self, dev: int): ...


def format_timespec(tv: Timespec) -> str:
  base = datetime.fromtimestamp(tv.sec, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
  return f"{base}.{tv.nsec:09d}Z"


def format_ttydev(dev: int) -> str:
  return f"{os.major(dev)},{os.minor(dev)}"


class _RecordState(threading.local):
  """Build state of the record currently open on one thread."""

  def __init__(self):
    self.reset()
    self.open = False

  def reset(self):
    self.root: Any = None
    self.stack: List[Any] = []
    self.key: Optional[str] = None
    self.item = False


class TreeSink(Sink):
  """Builds each record as nested dicts and lists, then hands it to _write.

  Structural misuse (a value without a key, unbalanced blocks) raises
  SinkError instead of producing a malformed record. Every thread builds
  its own record; only the final write is serialized.
  """

  def __init__(self):
    self.lock = threading.Lock()
    self._state = _RecordState()

  @abstractmethod
  def _write(self, record: Any):
    ...

  def _check_open(self):
    if not self._state.open:
      raise SinkError("emission outside of a record")

  def _put(self, value: Any):
    self._check_open()
    st = self._state
    if not st.stack:
      if st.root is not None:
        raise SinkError("record already has a root value")
      st.root = value
      return
    top = st.stack[-1]
    if isinstance(top, dict):
      if st.key is None:
        raise SinkError("dict value emitted without dict_item")
      top[st.key] = value
      st.key = None
    else:
      if not st.item:
        raise SinkError("list value emitted without list_item")
      top.append(value)
      st.item = False

  def record_begin(self):
    st = self._state
    if st.open:
      # A serializer failed mid-record; its partial tree is never written.
      log.warning("discarding unfinished record")
    st.reset()
    st.open = True

  def record_end(self):
    self._check_open()
    st = self._state
    if st.stack:
      raise SinkError(f"{len(st.stack)} block(s) left open at record end")
    if st.root is None:
      raise SinkError("empty record")
    record = st.root
    st.open = False
    st.reset()
    with self.lock:
      self._write(record)

  def dict_begin(self):
    block: dict = {}
    self._put(block)
    self._state.stack.append(block)

  def dict_end(self):
    self._check_open()
    st = self._state
    if not st.stack or not isinstance(st.stack[-1], dict):
      raise SinkError("dict_end without matching dict_begin")
    if st.key is not None:
      raise SinkError(f"key '{st.key}' has no value")
    st.stack.pop()

  def dict_item(self, key: str):
    self._check_open()
    st = self._state
    if not st.stack or not isinstance(st.stack[-1], dict):
      raise SinkError("dict_item outside of a dict")
    if st.key is not None:
      raise SinkError(f"key '{st.key}' has no value")
    if key in st.stack[-1]:
      raise SinkError(f"duplicate key '{key}'")
    st.key = key

  def list_begin(self):
    block: list = []
    self._put(block)
    self._state.stack.append(block)

  def list_end(self):
    self._check_open()
    st = self._state
    if not st.stack or not isinstance(st.stack[-1], list):
      raise SinkError("list_end without matching list_begin")
    if st.item:
      raise SinkError("list item has no value")
    st.stack.pop()

  def list_item(self, label: str):
    self._check_open()
    st = self._state
    if not st.stack or not isinstance(st.stack[-1], list):
      raise SinkError("list_item outside of a list")
    if st.item:
      raise SinkError("list item has no value")
    st.item = True

  def value_string(self, value: str):
    self._put(str(value))

  def value_int(self, value: int):
    self._put(int(value))

  def value_uint(self, value: int):
    if value < 0:
      raise SinkError(f"unsigned value is negative: {value}")
    self._put(int(value))

  def value_uint_oct(self, value: int):
    if value < 0:
      raise SinkError(f"unsigned value is negative: {value}")
    self._put(format(value, "o"))

  def value_bool(self, value: bool):
    self._put(bool(value))

  def value_null(self):
    self._put(None)

  def value_timespec(self, tv: Timespec):
    self._put(format_timespec(tv))

  def value_buf_hex(self, buf: bytes):
    self._put(bytes(buf).hex())

  def value_ttydev(self, dev: int):
    self._put(format_ttydev(dev))


class JsonSink(TreeSink):
  def __init__(self, stream: TextIO, oneline: bool = True):
    super().__init__()
    self.stream = stream
    self.oneline = oneline

  def _write(self, record: Any):
    if self.oneline:
      blob = json.dumps(record, separators=(",", ":"))
    else:
      blob = json.dumps(record, indent=2)
    self.stream.write(blob + "\n")
    self.stream.flush()


class YamlSink(TreeSink):
  def __init__(self, stream: TextIO, oneline: bool = False):
    super().__init__()
    self.stream = stream
    self.oneline = oneline

  def _write(self, record: Any):
    blob = yaml.safe_dump(
      record,
      sort_keys=False,
      default_flow_style=True if self.oneline else False,
      width=float("inf") if self.oneline else 80,
    )
    self.stream.write("---\n" + blob)
    self.stream.flush()


SINKS = {
  "json": (JsonSink, True),
  "yaml": (YamlSink, False),
}


def make_sink(fmt: str, stream: TextIO, oneline: Optional[bool] = None) -> Sink:
  """Create the sink for a format name; oneline None picks the format default."""
  try:
    cls, default_oneline = SINKS[fmt]
  except KeyError as exc:
    raise ValueError(f"unknown log format '{fmt}'") from exc
  return cls(stream, oneline=default_oneline if oneline is None else oneline)
