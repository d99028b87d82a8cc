"""Per-event-kind record writers.

Each writer produces exactly one envelope-wrapped record on the sink. The
writers decide field selection and order only; encoding belongs to the
sink and delivery to whatever the sink writes into.
"""

import dataclasses
import logging
from typing import Callable, Dict, List, Optional

from logevt import build, envelope
from logevt.config import LogConfig
from logevt.identity import IdentityResolver
from logevt.model import (
  ImageExec,
  LaunchdAdd,
  OpsEvent,
  ProcessAccess,
  SocketAccept,
  SocketConnect,
  SocketListen,
  StatsEvent,
  addr_is_empty,
)
from logevt.process import ProcessSerializer, check_script
from logevt.redaction import RedactionPolicy
from logevt.sink import Sink

log = logging.getLogger(__name__)

PROTOCOL_NAMES: Dict[int, str] = {
  1: "icmp",
  6: "tcp",
  17: "udp",
  58: "icmp6",
}


def protocol_name(protocol: int) -> str:
  return PROTOCOL_NAMES.get(protocol, str(protocol))


def _write_strlist(sink: Sink, key: str, label: str, values: List[str]):
  sink.dict_item(key)
  sink.list_begin()
  for value in values:
    sink.list_item(label)
    sink.value_string(value)
  sink.list_end()


def _write_counters(sink: Sink, counters):
  """Emit a stats dataclass as a dict keyed by its field names."""
  sink.dict_begin()
  for f in dataclasses.fields(counters):
    value = getattr(counters, f.name)
    sink.dict_item(f.name)
    if dataclasses.is_dataclass(value):
      _write_counters(sink, value)
    elif isinstance(value, (list, tuple)):
      sink.list_begin()
      for item in value:
        sink.list_item(f.metadata.get("label", "item"))
        sink.value_uint(item)
      sink.list_end()
    else:
      sink.value_uint(value)
  sink.dict_end()


class EventSerializer:
  """Serializes event descriptors under one injected configuration.

  The configuration is read-only for the lifetime of the serializer; build
  a new serializer rather than changing it.
  """

  def __init__(self, config: LogConfig, resolver: Optional[IdentityResolver] = None):
    self.config = config
    self.policy = RedactionPolicy.from_config(config)
    self.resolver = resolver or IdentityResolver(self.policy.resolve_users_groups)
    self.procs = ProcessSerializer(self.policy, self.resolver, config.ancestors)
    self._writers: Dict[type, Callable] = {
      OpsEvent: self.xnumon_ops,
      StatsEvent: self.xnumon_stats,
      ImageExec: self.image_exec,
      ProcessAccess: self.process_access,
      LaunchdAdd: self.launchd_add,
      SocketListen: self.socket_listen,
      SocketAccept: self.socket_accept,
      SocketConnect: self.socket_connect,
    }

  def write(self, sink: Sink, event):
    try:
      writer = self._writers[type(event)]
    except KeyError as exc:
      raise TypeError(f"no serializer for {type(event).__name__}") from exc
    log.debug("serializing %s", type(event).__name__)
    writer(sink, event)

  def xnumon_ops(self, sink: Sink, ops: OpsEvent):
    config = self.config
    envelope.begin(sink, ops.hdr)

    sink.dict_item("op")
    sink.value_string(ops.subtype)

    sink.dict_item("build")
    sink.dict_begin()
    sink.dict_item("version")
    sink.value_string(build.BUILD_VERSION)
    sink.dict_item("date")
    sink.value_string(build.BUILD_DATE)
    sink.dict_item("info")
    sink.value_string(build.BUILD_INFO)
    sink.dict_end()  # build

    sink.dict_item("config")
    sink.dict_begin()
    sink.dict_item("path")
    sink.value_string(config.path)
    sink.dict_item("id")
    if config.id is not None:
      sink.value_string(config.id)
    else:
      sink.value_null()
    sink.dict_item("launchd_mode")
    sink.value_bool(config.launchd_mode)
    sink.dict_item("debug")
    sink.value_bool(config.debug)
    sink.dict_item("events")
    sink.value_string(",".join(config.events))
    sink.dict_item("stats_interval")
    sink.value_uint(config.stats_interval)
    sink.dict_item("kextlevel")
    sink.value_string(config.kextlevel)
    sink.dict_item("hashes")
    sink.value_string(",".join(config.hashes))
    sink.dict_item("codesign")
    sink.value_bool(config.codesign)
    sink.dict_item("envlevel")
    sink.value_string(config.envlevel)
    sink.dict_item("resolve_users_groups")
    sink.value_bool(config.resolve_users_groups)
    for name in ("mode", "size", "mtime", "ctime", "btime", "sid", "groups", "apple_hashes"):
      sink.dict_item(f"omit_{name}")
      sink.value_bool(getattr(config.omit, name))
    sink.dict_item("ancestors")
    if config.ancestors is not None:
      sink.value_uint(config.ancestors)
    else:
      sink.value_string("unlimited")
    sink.dict_item("logdst")
    sink.value_string(config.output.destination)
    sink.dict_item("logfmt")
    sink.value_string(config.output.format)
    sink.dict_item("logoneline")
    if config.output.oneline is None:
      sink.value_null()
    else:
      sink.value_bool(config.output.oneline)
    sink.dict_item("logfile")
    if config.output.file:
      sink.value_string(config.output.file)
    else:
      sink.value_null()
    sink.dict_item("limit_nofile")
    sink.value_uint(config.limit_nofile)
    for f in dataclasses.fields(config.suppress):
      value = getattr(config.suppress, f.name)
      sink.dict_item(f"suppress_{f.name}")
      if isinstance(value, bool):
        sink.value_bool(value)
      else:
        sink.value_uint(len(value))
    sink.dict_end()  # config

    sink.dict_item("system")
    sink.dict_begin()
    sink.dict_item("name")
    sink.value_string(build.os_name())
    sink.dict_item("version")
    sink.value_string(build.os_version())
    sink.dict_item("build")
    sink.value_string(build.os_build())
    sink.dict_end()  # system

    envelope.end(sink)

  def xnumon_stats(self, sink: Sink, evt: StatsEvent):
    envelope.begin(sink, evt.hdr)
    for f in dataclasses.fields(evt.stats):
      sink.dict_item(f.name)
      _write_counters(sink, getattr(evt.stats, f.name))
    envelope.end(sink)

  def image_exec(self, sink: Sink, ie: ImageExec):
    # Checked before the record opens so a violation never starts a record.
    if ie.script is not None:
      check_script(ie.script)
    envelope.begin(sink, ie.hdr)

    if ie.pidlookup:
      sink.dict_item("reconstructed")
      sink.value_bool(True)
    if ie.argv is not None:
      _write_strlist(sink, "argv", "arg", ie.argv)
    if ie.envv is not None:
      _write_strlist(sink, "env", "var", ie.envv)
    if ie.cwd:
      sink.dict_item("cwd")
      sink.value_string(ie.cwd)

    sink.dict_item("image")
    self.procs.render_as_subject(sink, ie)
    if ie.script is not None:
      sink.dict_item("script")
      self.procs.render_as_subject(sink, ie.script)

    # The exec replaced the subject's previous image, which is what the
    # subject process was running when it called exec.
    sink.dict_item("subject")
    self.procs.write_process(sink, None if ie.pidlookup else ie.subject, 0, ie.prev)

    envelope.end(sink)

  def process_access(self, sink: Sink, pa: ProcessAccess):
    envelope.begin(sink, pa.hdr)
    sink.dict_item("method")
    sink.value_string(pa.method)
    sink.dict_item("object")
    self.procs.write_process(sink, pa.object, pa.objectpid, pa.object_image_exec)
    sink.dict_item("subject")
    self.procs.write_process(sink, pa.subject, 0, pa.subject_image_exec)
    envelope.end(sink)

  def launchd_add(self, sink: Sink, ldadd: LaunchdAdd):
    envelope.begin(sink, ldadd.hdr)

    sink.dict_item("plist")
    sink.dict_begin()
    sink.dict_item("path")
    sink.value_string(ldadd.plist_path)
    sink.dict_end()  # plist

    sink.dict_item("program")
    sink.dict_begin()
    if ldadd.program_rpath:
      sink.dict_item("rpath")
      sink.value_string(ldadd.program_rpath)
    if ldadd.program_path:
      sink.dict_item("path")
      sink.value_string(ldadd.program_path)
    if ldadd.program_argv is not None:
      _write_strlist(sink, "argv", "arg", ldadd.program_argv)
    sink.dict_end()  # program

    if not ldadd.no_subject:
      sink.dict_item("subject")
      self.procs.write_process(sink, ldadd.subject, 0, ldadd.subject_image_exec)

    envelope.end(sink)

  def _write_socket_op(self, sink: Sink, so: SocketListen, peer: bool):
    envelope.begin(sink, so.hdr)
    if so.protocol:
      sink.dict_item("proto")
      sink.value_string(protocol_name(so.protocol))
    if not addr_is_empty(so.sock_addr):
      sink.dict_item("sockaddr")
      sink.value_string(str(so.sock_addr))
      sink.dict_item("sockport")
      sink.value_uint(so.sock_port)
    if peer and not addr_is_empty(so.peer_addr):
      sink.dict_item("peeraddr")
      sink.value_string(str(so.peer_addr))
      sink.dict_item("peerport")
      sink.value_uint(so.peer_port)
    sink.dict_item("subject")
    self.procs.write_process(sink, so.subject, 0, so.subject_image_exec)
    envelope.end(sink)

  def socket_listen(self, sink: Sink, so: SocketListen):
    self._write_socket_op(sink, so, peer=False)

  def socket_accept(self, sink: Sink, so: SocketAccept):
    self._write_socket_op(sink, so, peer=True)

  def socket_connect(self, sink: Sink, so: SocketConnect):
    self._write_socket_op(sink, so, peer=True)
