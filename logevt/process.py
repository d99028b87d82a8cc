"""Process and image execution renderings.

An ImageExec is rendered one of two ways. render_as_subject gives the full
object-image field set used when the exec itself is what a record is about.
render_as_ancestor gives the compact process-context field set used for the
image attached to a process and for every entry of its ancestor list.
"""

import logging
from typing import Optional

from logevt.errors import InvariantViolation
from logevt.identity import IdentityResolver
from logevt.model import AuditProc, Hashes, ImageExec, addr_is_empty, is_no_dev
from logevt.redaction import RedactionPolicy
from logevt.sink import Sink

log = logging.getLogger(__name__)

HASH_ORDER = ("md5", "sha1", "sha256")


def check_script(script: ImageExec):
  if script.codesign is not None:
    raise InvariantViolation(f"script {script.path} carries a code signature")


class ProcessSerializer:
  def __init__(self, policy: RedactionPolicy, resolver: IdentityResolver, ancestors: Optional[int]):
    self.policy = policy
    self.resolver = resolver
    # None means unlimited
    self.ancestors = ancestors

  def write_hashes(self, sink: Sink, hashes: Hashes):
    for name in HASH_ORDER:
      if name in self.policy.hashes:
        sink.dict_item(name)
        sink.value_buf_hex(getattr(hashes, name))

  def render_as_subject(self, sink: Sink, ie: ImageExec):
    policy = self.policy
    sink.dict_begin()
    sink.dict_item("path")
    sink.value_string(ie.path)
    st = ie.stat
    if st is not None:
      if not policy.omit_mode:
        sink.dict_item("mode")
        sink.value_uint_oct(st.mode)
      self.resolver.emit_uid(sink, st.uid, "uid", "uname")
      if not policy.omit_groups:
        self.resolver.emit_gid(sink, st.gid, "gid", "gname")
      if st.size is not None and not policy.omit_size:
        sink.dict_item("size")
        sink.value_uint(st.size)
      if st.mtime is not None and not policy.omit_mtime:
        sink.dict_item("mtime")
        sink.value_timespec(st.mtime)
      if st.ctime is not None and not policy.omit_ctime:
        sink.dict_item("ctime")
        sink.value_timespec(st.ctime)
      if st.btime is not None and not policy.omit_btime:
        sink.dict_item("btime")
        sink.value_timespec(st.btime)
    if ie.hashes is not None and policy.include_hashes(ie.codesign):
      self.write_hashes(sink, ie.hashes)

    cs = ie.codesign
    if cs is not None:
      sink.dict_item("signature")
      sink.value_string(cs.result)
      if cs.origin:
        sink.dict_item("origin")
        sink.value_string(cs.origin)
      if cs.cdhash:
        sink.dict_item("cdhash")
        sink.value_buf_hex(cs.cdhash)
      if cs.ident:
        sink.dict_item("ident")
        sink.value_string(cs.ident)
      if cs.teamid:
        sink.dict_item("teamid")
        sink.value_string(cs.teamid)
      if cs.certcn:
        sink.dict_item("certcn")
        sink.value_string(cs.certcn)
    sink.dict_end()  # image

  def render_as_ancestor(self, sink: Sink, ie: ImageExec):
    sink.dict_begin()
    # A pid lookup has no trustworthy exec time.
    if not ie.pidlookup:
      sink.dict_item("exec_time")
      sink.value_timespec(ie.hdr.tv)
    sink.dict_item("exec_pid")
    sink.value_int(ie.pid)
    sink.dict_item("path")
    sink.value_string(ie.path)
    if ie.hashes is not None and self.policy.include_hashes(ie.codesign):
      self.write_hashes(sink, ie.hashes)
    cs = ie.codesign
    if cs is not None and cs.is_good():
      if cs.ident:
        sink.dict_item("ident")
        sink.value_string(cs.ident)
      if cs.teamid:
        sink.dict_item("teamid")
        sink.value_string(cs.teamid)
    if ie.script is not None:
      script = ie.script
      check_script(script)
      sink.dict_item("script")
      sink.dict_begin()
      sink.dict_item("path")
      sink.value_string(script.path)
      if script.hashes is not None:
        self.write_hashes(sink, script.hashes)
      sink.dict_end()  # script
    sink.dict_end()  # exec

  def write_ancestors(self, sink: Sink, ie: Optional[ImageExec]):
    """Walk prev links from ie outward, stopping at the configured depth."""
    depth = 0
    seen = set()
    sink.list_begin()
    node = ie
    while node is not None and node.pid > 0:
      if self.ancestors is not None and depth >= self.ancestors:
        break
      if id(node) in seen:
        log.debug("ancestor chain loops back to pid %d, truncating", node.pid)
        break
      seen.add(id(node))
      sink.list_item("ancestor")
      self.render_as_ancestor(sink, node)
      depth += 1
      node = node.prev
    sink.list_end()  # ancestors

  def write_process(
    self,
    sink: Sink,
    process: Optional[AuditProc],
    processpid: int = 0,
    ie: Optional[ImageExec] = None,
  ):
    """Render a process; a positive processpid means only the pid is known."""
    resolver = self.resolver
    policy = self.policy
    sink.dict_begin()
    if ie is not None and ie.pidlookup:
      sink.dict_item("reconstructed")
      sink.value_bool(True)
    if processpid > 0:
      sink.dict_item("pid")
      sink.value_int(processpid)
    elif process is not None:
      sink.dict_item("pid")
      sink.value_int(process.pid)
      resolver.emit_uid(sink, process.auid, "auid", "auname")
      resolver.emit_uid(sink, process.euid, "euid", "euname")
      if not policy.omit_groups:
        resolver.emit_gid(sink, process.egid, "egid", "egname")
      resolver.emit_uid(sink, process.ruid, "ruid", "runame")
      if not policy.omit_groups:
        resolver.emit_gid(sink, process.rgid, "rgid", "rgname")
      if not policy.omit_sid:
        sink.dict_item("sid")
        sink.value_uint(process.sid)
      if not is_no_dev(process.dev):
        sink.dict_item("dev")
        sink.value_ttydev(process.dev)
      if not addr_is_empty(process.addr):
        sink.dict_item("addr")
        sink.value_string(str(process.addr))
    if ie is not None:
      if ie.fork_tv is not None and ie.fork_tv.sec > 0:
        sink.dict_item("fork_time")
        sink.value_timespec(ie.fork_tv)
      sink.dict_item("image")
      self.render_as_ancestor(sink, ie)
      if self.ancestors is None or self.ancestors > 0:
        sink.dict_item("ancestors")
        self.write_ancestors(sink, ie.prev)
    sink.dict_end()  # process
