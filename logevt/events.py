"""Event code registry shared by the serializers and the stats snapshot."""

from enum import IntEnum
from typing import Dict

# Bumped on any change to emitted field names or record shape.
SCHEMA_VERSION = 1


class EventCode(IntEnum):
  XNUMON_OPS = 0
  XNUMON_STATS = 1
  IMAGE_EXEC = 2
  PROCESS_ACCESS = 3
  LAUNCHD_ADD = 4
  SOCKET_LISTEN = 5
  SOCKET_ACCEPT = 6
  SOCKET_CONNECT = 7


EVENT_NAME_TO_ID: Dict[str, int] = {
  "xnumon-ops": EventCode.XNUMON_OPS,
  "xnumon-stats": EventCode.XNUMON_STATS,
  "image-exec": EventCode.IMAGE_EXEC,
  "process-access": EventCode.PROCESS_ACCESS,
  "launchd-add": EventCode.LAUNCHD_ADD,
  "socket-listen": EventCode.SOCKET_LISTEN,
  "socket-accept": EventCode.SOCKET_ACCEPT,
  "socket-connect": EventCode.SOCKET_CONNECT,
}

# Number of slots in the per-event log queue counters.
EVENT_COUNT = len(EventCode)
