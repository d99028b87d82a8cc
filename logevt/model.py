"""Immutable event descriptors handed to the serializers by the producer.

Nothing here is created or mutated by the serialization engine; the
producer owns every descriptor and guarantees it is fully populated.
"""

import ipaddress
from dataclasses import dataclass, field
from typing import List, Optional, Union

from logevt.events import EVENT_COUNT, EventCode

# Unknown uid/gid, as delivered both signed and as the unsigned 32-bit value.
NO_ID = -1
NO_ID_UNSIGNED = 0xFFFFFFFF
# No controlling terminal.
NO_DEV = -1
NO_DEV_UNSIGNED = 0xFFFFFFFF

MD5_SIZE = 16
SHA1_SIZE = 20
SHA256_SIZE = 32

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def is_no_id(value: int) -> bool:
  return value in (NO_ID, NO_ID_UNSIGNED)


def is_no_dev(value: int) -> bool:
  return value in (NO_DEV, NO_DEV_UNSIGNED)


def addr_is_empty(addr: Optional[Union[str, IPAddress]]) -> bool:
  """An unset address; the wildcard address is a real binding and not empty."""
  return addr is None or addr == ""


@dataclass(frozen=True)
class Timespec:
  sec: int
  nsec: int = 0


@dataclass(frozen=True)
class EventHeader:
  code: EventCode
  tv: Timespec


@dataclass(frozen=True)
class StatInfo:
  mode: int
  uid: int
  gid: int
  # None when only the attributes (mode/uid/gid) were acquired.
  size: Optional[int] = None
  mtime: Optional[Timespec] = None
  ctime: Optional[Timespec] = None
  btime: Optional[Timespec] = None


@dataclass(frozen=True)
class Hashes:
  md5: bytes
  sha1: bytes
  sha256: bytes

  def __post_init__(self):
    for name, size in (("md5", MD5_SIZE), ("sha1", SHA1_SIZE), ("sha256", SHA256_SIZE)):
      if len(getattr(self, name)) != size:
        raise ValueError(f"{name} must be {size} bytes")


CODESIGN_RESULTS = ("unsigned", "good", "bad", "error")
CODESIGN_ORIGINS = ("system", "appstore", "devid", "dev", "adhoc")


@dataclass(frozen=True)
class CodeSign:
  result: str
  origin: Optional[str] = None
  cdhash: Optional[bytes] = None
  ident: Optional[str] = None
  teamid: Optional[str] = None
  certcn: Optional[str] = None

  def __post_init__(self):
    if self.result not in CODESIGN_RESULTS:
      raise ValueError(f"unknown codesign result '{self.result}'")
    if self.origin is not None and self.origin not in CODESIGN_ORIGINS:
      raise ValueError(f"unknown codesign origin '{self.origin}'")

  def is_good(self) -> bool:
    return self.result == "good"

  def is_platform(self) -> bool:
    """True for a valid signature anchored in the platform vendor's own chain."""
    return self.is_good() and self.origin == "system"


@dataclass(frozen=True)
class AuditProc:
  pid: int
  auid: int = NO_ID
  euid: int = NO_ID
  egid: int = NO_ID
  ruid: int = NO_ID
  rgid: int = NO_ID
  sid: int = 0
  dev: int = NO_DEV
  addr: Optional[Union[str, IPAddress]] = None


@dataclass(frozen=True)
class ImageExec:
  hdr: EventHeader
  pid: int
  path: str
  stat: Optional[StatInfo] = None
  hashes: Optional[Hashes] = None
  codesign: Optional[CodeSign] = None
  script: Optional["ImageExec"] = None
  argv: Optional[List[str]] = None
  envv: Optional[List[str]] = None
  cwd: Optional[str] = None
  fork_tv: Optional[Timespec] = None
  prev: Optional["ImageExec"] = None
  # Reconstructed from a bare pid instead of observed exec.
  pidlookup: bool = False
  subject: Optional[AuditProc] = None


@dataclass(frozen=True)
class ProcessAccess:
  hdr: EventHeader
  method: str
  subject: AuditProc
  object: Optional[AuditProc] = None
  # Only meaningful when object is unknown.
  objectpid: int = 0
  object_image_exec: Optional[ImageExec] = None
  subject_image_exec: Optional[ImageExec] = None


@dataclass(frozen=True)
class LaunchdAdd:
  hdr: EventHeader
  plist_path: str
  subject: AuditProc
  program_rpath: Optional[str] = None
  program_path: Optional[str] = None
  program_argv: Optional[List[str]] = None
  no_subject: bool = False
  subject_image_exec: Optional[ImageExec] = None


@dataclass(frozen=True)
class SocketListen:
  hdr: EventHeader
  subject: AuditProc
  protocol: int = 0
  sock_addr: Optional[Union[str, IPAddress]] = None
  sock_port: int = 0
  subject_image_exec: Optional[ImageExec] = None


@dataclass(frozen=True)
class SocketAccept(SocketListen):
  peer_addr: Optional[Union[str, IPAddress]] = None
  peer_port: int = 0


@dataclass(frozen=True)
class SocketConnect(SocketAccept):
  pass


@dataclass(frozen=True)
class OpsEvent:
  hdr: EventHeader
  subtype: str


# Stats counters: field declaration order is emission order, field names are
# the emitted keys.

@dataclass(frozen=True)
class EvtloopStats:
  aupclobber: int = 0
  aueunknown: int = 0
  failedsyscall: int = 0
  radar38845422: int = 0
  radar38845422_fatal: int = 0
  radar38845784: int = 0
  radar39267328: int = 0
  radar39267328_fatal: int = 0
  radar39623812: int = 0
  radar39623812_fatal: int = 0
  radar42770257: int = 0
  radar42770257_fatal: int = 0
  radar42783724: int = 0
  radar42783724_fatal: int = 0
  radar42784847: int = 0
  radar42784847_fatal: int = 0
  radar42946744: int = 0
  radar42946744_fatal: int = 0
  radar43151662: int = 0
  radar43151662_fatal: int = 0
  missingtoken: int = 0
  oom: int = 0


@dataclass(frozen=True)
class ProcmonMissStats:
  bypid: int = 0
  forksubj: int = 0
  execsubj: int = 0
  execinterp: int = 0
  chdirsubj: int = 0
  getcwd: int = 0


@dataclass(frozen=True)
class ProcmonStats:
  actprocs: int = 0
  actexecimages: int = 0
  liveacq: int = 0
  miss: ProcmonMissStats = field(default_factory=ProcmonMissStats)
  oom: int = 0


@dataclass(frozen=True)
class MonitorStats:
  recvd: int = 0
  procd: int = 0
  oom: int = 0


@dataclass(frozen=True)
class FilemonStats:
  recvd: int = 0
  procd: int = 0
  lpmiss: int = 0
  oom: int = 0


@dataclass(frozen=True)
class KextCdevqStats:
  buckets: int = 0
  visitors: int = 0
  timeout: int = 0
  error: int = 0
  defer: int = 0
  deny: int = 0


@dataclass(frozen=True)
class PrepQueueStats:
  buckets: int = 0
  lookup: int = 0
  miss: int = 0
  drop: int = 0
  bktskip: int = 0


@dataclass(frozen=True)
class AupiCdevqStats:
  buckets: int = 0
  bucketmax: int = 0
  insert: int = 0
  read: int = 0
  drop: int = 0


@dataclass(frozen=True)
class WorkQueueStats:
  buckets: int = 0


@dataclass(frozen=True)
class LogQueueStats:
  buckets: int = 0
  events: List[int] = field(default_factory=lambda: [0] * EVENT_COUNT, metadata={"label": "event"})
  errors: int = 0


@dataclass(frozen=True)
class CacheStats:
  buckets: int = 0
  bucketmax: int = 0
  put: int = 0
  get: int = 0
  hit: int = 0
  miss: int = 0
  inv: int = 0


@dataclass(frozen=True)
class StatsSnapshot:
  evtloop: EvtloopStats = field(default_factory=EvtloopStats)
  procmon: ProcmonStats = field(default_factory=ProcmonStats)
  hackmon: MonitorStats = field(default_factory=MonitorStats)
  filemon: FilemonStats = field(default_factory=FilemonStats)
  sockmon: MonitorStats = field(default_factory=MonitorStats)
  kext_cdevq: KextCdevqStats = field(default_factory=KextCdevqStats)
  prep_queue: PrepQueueStats = field(default_factory=PrepQueueStats)
  aupi_cdevq: AupiCdevqStats = field(default_factory=AupiCdevqStats)
  work_queue: WorkQueueStats = field(default_factory=WorkQueueStats)
  log_queue: LogQueueStats = field(default_factory=LogQueueStats)
  hash_cache: CacheStats = field(default_factory=CacheStats)
  csig_cache: CacheStats = field(default_factory=CacheStats)
  ldpl_cache: CacheStats = field(default_factory=CacheStats)


@dataclass(frozen=True)
class StatsEvent:
  hdr: EventHeader
  stats: StatsSnapshot = field(default_factory=StatsSnapshot)
