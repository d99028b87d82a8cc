"""Numeric uid/gid to name resolution, done while serializing.

Nothing is cached between calls.
"""

import grp
import logging
import pwd
from typing import Callable, Optional, Tuple

from logevt.model import is_no_id
from logevt.sink import Sink

log = logging.getLogger(__name__)


class IdentityResolver:
  def __init__(
    self,
    enabled: bool,
    user_lookup: Callable = pwd.getpwuid,
    group_lookup: Callable = grp.getgrgid,
  ):
    self.enabled = enabled
    self._user_lookup = user_lookup
    self._group_lookup = group_lookup

  def resolve_user(self, uid: int) -> Tuple[int, Optional[str]]:
    if is_no_id(uid):
      return -1, None
    if not self.enabled:
      return uid, None
    try:
      return uid, self._user_lookup(uid).pw_name
    except (KeyError, OverflowError):
      log.debug("no user name for uid %d", uid)
      return uid, None

  def resolve_group(self, gid: int) -> Tuple[int, Optional[str]]:
    if is_no_id(gid):
      return -1, None
    if not self.enabled:
      return gid, None
    try:
      return gid, self._group_lookup(gid).gr_name
    except (KeyError, OverflowError):
      log.debug("no group name for gid %d", gid)
      return gid, None

  def emit_uid(self, sink: Sink, uid: int, idlabel: str, namelabel: str):
    _emit(sink, self.resolve_user(uid), idlabel, namelabel)

  def emit_gid(self, sink: Sink, gid: int, idlabel: str, namelabel: str):
    _emit(sink, self.resolve_group(gid), idlabel, namelabel)


def _emit(sink: Sink, resolved: Tuple[int, Optional[str]], idlabel: str, namelabel: str):
  num, name = resolved
  sink.dict_item(idlabel)
  if num < 0:
    sink.value_int(num)
    return
  sink.value_uint(num)
  if name is not None:
    sink.dict_item(namelabel)
    sink.value_string(name)
