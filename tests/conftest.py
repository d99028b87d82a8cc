"""Shared pytest fixtures."""
import tempfile
from collections import namedtuple
from pathlib import Path

import pytest

from logevt.config import LogConfig
from logevt.events import EventCode
from logevt.identity import IdentityResolver
from logevt.model import AuditProc, CodeSign, EventHeader, Hashes, ImageExec, Timespec
from logevt.sink import Sink, TreeSink

_Passwd = namedtuple("_Passwd", "pw_name")
_Group = namedtuple("_Group", "gr_name")

USERS = {0: "root", 501: "alice"}
GROUPS = {0: "wheel", 20: "staff"}

MD5 = bytes(range(16))
SHA1 = bytes(range(20))
SHA256 = bytes(range(32))


class RecordingSink(Sink):
  """Records every emission call in order as (method, *args) tuples."""

  def __init__(self):
    self.calls = []

  def _call(self, *args):
    self.calls.append(args)

  def record_begin(self):
    self._call("record_begin")

  def record_end(self):
    self._call("record_end")

  def dict_begin(self):
    self._call("dict_begin")

  def dict_end(self):
    self._call("dict_end")

  def dict_item(self, key):
    self._call("dict_item", key)

  def list_begin(self):
    self._call("list_begin")

  def list_end(self):
    self._call("list_end")

  def list_item(self, label):
    self._call("list_item", label)

  def value_string(self, value):
    self._call("value_string", value)

  def value_int(self, value):
    self._call("value_int", value)

  def value_uint(self, value):
    self._call("value_uint", value)

  def value_uint_oct(self, value):
    self._call("value_uint_oct", value)

  def value_bool(self, value):
    self._call("value_bool", value)

  def value_null(self):
    self._call("value_null")

  def value_timespec(self, tv):
    self._call("value_timespec", tv)

  def value_buf_hex(self, buf):
    self._call("value_buf_hex", buf)

  def value_ttydev(self, dev):
    self._call("value_ttydev", dev)

  def keys(self):
    return [c[1] for c in self.calls if c[0] == "dict_item"]


class CollectSink(TreeSink):
  """Tree sink keeping finished records in memory."""

  def __init__(self):
    super().__init__()
    self.records = []

  def _write(self, record):
    self.records.append(record)

  @property
  def record(self):
    assert len(self.records) == 1
    return self.records[0]


@pytest.fixture
def temp_dir():
  """Create a temporary directory for test files."""
  with tempfile.TemporaryDirectory() as tmpdir:
    yield Path(tmpdir)


@pytest.fixture
def recorder():
  return RecordingSink()


@pytest.fixture
def collect():
  return CollectSink()


@pytest.fixture
def resolver():
  """Resolver backed by a fixed user/group table instead of the host's."""
  def user_lookup(uid):
    return _Passwd(USERS[uid])

  def group_lookup(gid):
    return _Group(GROUPS[gid])

  return IdentityResolver(True, user_lookup=user_lookup, group_lookup=group_lookup)


@pytest.fixture
def config():
  return LogConfig(hashes=["md5", "sha1", "sha256"], ancestors=None)


@pytest.fixture
def hdr():
  def _make(code=EventCode.IMAGE_EXEC, sec=1500000000, nsec=123):
    return EventHeader(code=code, tv=Timespec(sec, nsec))
  return _make


@pytest.fixture
def hashes():
  return Hashes(md5=MD5, sha1=SHA1, sha256=SHA256)


@pytest.fixture
def proc():
  def _make(pid=4242, **kwargs):
    values = dict(auid=501, euid=501, egid=20, ruid=501, rgid=20, sid=100)
    values.update(kwargs)
    return AuditProc(pid=pid, **values)
  return _make


@pytest.fixture
def image(hdr, hashes):
  """Factory for image execs with hashes and no signature by default."""
  def _make(pid=4242, path="/bin/ls", **kwargs):
    kwargs.setdefault("hashes", hashes)
    kwargs.setdefault("hdr", hdr(sec=1500000000 + pid))
    return ImageExec(pid=pid, path=path, **kwargs)
  return _make


@pytest.fixture
def platform_sig():
  return CodeSign(result="good", origin="system", cdhash=b"\xaa" * 20, ident="com.apple.ls")


@pytest.fixture
def sample_config_yaml(temp_dir):
  """Create a sample logevt.yaml file."""
  config_file = temp_dir / "logevt.yaml"
  config_file.write_text("""logLevel: debug
configId: test-host
launchdMode: true
events: [xnumon-ops, image-exec, socket-connect]
statsInterval: 600
kextLevel: hash
hashes: [md5, sha256]
codesign: true
envLevel: dyld
resolveUsersGroups: false
ancestors: 3
limitNofile: 4096
omit:
  mode: true
  sid: true
  appleHashes: true
suppress:
  imageExecAtStart: true
  imageExecByIdent: [com.apple.mdworker, com.apple.xpcproxy]
  socketOpLocalhost: true
log:
  destination: file
  format: yaml
  oneline: false
  file: /var/log/xnumon.log
""")
  return config_file
