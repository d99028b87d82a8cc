from dataclasses import dataclass
from typing import FrozenSet, Optional

from logevt.config import LogConfig
from logevt.model import CodeSign


@dataclass(frozen=True)
class RedactionPolicy:
  """Switches gating optional output fields.

  A switch only ever removes data that is present; it never nulls out or
  fabricates a value.
  """

  omit_mode: bool = False
  omit_size: bool = False
  omit_mtime: bool = False
  omit_ctime: bool = False
  omit_btime: bool = False
  omit_sid: bool = False
  omit_groups: bool = False
  omit_apple_hashes: bool = False
  resolve_users_groups: bool = True
  hashes: FrozenSet[str] = frozenset({"sha256"})

  @classmethod
  def from_config(cls, config: LogConfig) -> "RedactionPolicy":
    return cls(
      omit_mode=config.omit.mode,
      omit_size=config.omit.size,
      omit_mtime=config.omit.mtime,
      omit_ctime=config.omit.ctime,
      omit_btime=config.omit.btime,
      omit_sid=config.omit.sid,
      omit_groups=config.omit.groups,
      omit_apple_hashes=config.omit.apple_hashes,
      resolve_users_groups=config.resolve_users_groups,
      hashes=frozenset(config.hashes),
    )

  def include_hashes(self, codesign: Optional[CodeSign]) -> bool:
    """Platform binaries lose their hashes only when explicitly requested."""
    if not self.omit_apple_hashes or codesign is None:
      return True
    return not codesign.is_platform()
