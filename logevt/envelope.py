from logevt.events import SCHEMA_VERSION
from logevt.model import EventHeader
from logevt.sink import Sink


def begin(sink: Sink, hdr: EventHeader):
  """Open a record and write version, time and eventcode, in that order."""
  if hdr is None:
    raise ValueError("event header is required")
  sink.record_begin()
  sink.dict_begin()
  sink.dict_item("version")
  sink.value_uint(SCHEMA_VERSION)
  sink.dict_item("time")
  sink.value_timespec(hdr.tv)
  sink.dict_item("eventcode")
  sink.value_uint(int(hdr.code))


def end(sink: Sink):
  sink.dict_end()
  sink.record_end()
