import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from logevt.errors import ConfigError
from logevt.events import EVENT_NAME_TO_ID

DEFAULT_CONFIG_PATH = "/etc/xnumon/logevt.yaml"

HASH_NAMES = ("md5", "sha1", "sha256")
KEXT_LEVELS = ("none", "open", "hash", "csig")
ENV_LEVELS = ("none", "dyld", "full")
LOG_DESTINATIONS = ("-", "file", "syslog")
LOG_FORMATS = ("json", "yaml")


@dataclass
class OmitConfig:
  mode: bool = False
  size: bool = False
  mtime: bool = False
  ctime: bool = False
  btime: bool = False
  sid: bool = False
  groups: bool = False
  apple_hashes: bool = False


@dataclass
class SuppressConfig:
  image_exec_at_start: bool = False
  image_exec_by_ident: List[str] = field(default_factory=list)
  image_exec_by_path: List[str] = field(default_factory=list)
  image_exec_by_ancestor_ident: List[str] = field(default_factory=list)
  image_exec_by_ancestor_path: List[str] = field(default_factory=list)
  process_access_by_subject_ident: List[str] = field(default_factory=list)
  process_access_by_subject_path: List[str] = field(default_factory=list)
  socket_op_localhost: bool = False
  socket_op_by_subject_ident: List[str] = field(default_factory=list)
  socket_op_by_subject_path: List[str] = field(default_factory=list)


@dataclass
class OutputConfig:
  destination: str = "-"  # -|file|syslog
  format: str = "json"  # json|yaml
  oneline: Optional[bool] = None  # None lets the format decide
  file: Optional[str] = None


@dataclass
class LogConfig:
  path: str = DEFAULT_CONFIG_PATH
  id: Optional[str] = None
  log_level: str = "info"
  launchd_mode: bool = False
  debug: bool = False
  events: List[str] = field(default_factory=lambda: list(EVENT_NAME_TO_ID))
  stats_interval: int = 3600
  kextlevel: str = "open"
  hashes: List[str] = field(default_factory=lambda: ["sha256"])
  codesign: bool = True
  envlevel: str = "none"
  resolve_users_groups: bool = True
  # None means unlimited
  ancestors: Optional[int] = None
  limit_nofile: int = 16384
  omit: OmitConfig = field(default_factory=OmitConfig)
  suppress: SuppressConfig = field(default_factory=SuppressConfig)
  output: OutputConfig = field(default_factory=OutputConfig)


def _bool(raw: Dict[str, Any], key: str, default: bool) -> bool:
  value = raw.get(key, default)
  if not isinstance(value, bool):
    raise ConfigError(f"'{key}' must be a boolean, got {value!r}")
  return value


def _int(raw: Dict[str, Any], key: str, default: int) -> int:
  value = raw.get(key, default)
  if isinstance(value, bool):
    raise ConfigError(f"'{key}' must be an integer, got {value!r}")
  try:
    value = int(value)
  except (TypeError, ValueError) as exc:
    raise ConfigError(f"'{key}' must be an integer, got {value!r}") from exc
  if value < 0:
    raise ConfigError(f"'{key}' must not be negative")
  return value


def _choice(raw: Dict[str, Any], key: str, default: str, choices) -> str:
  value = str(raw.get(key, default))
  if value not in choices:
    raise ConfigError(f"'{key}' must be one of {', '.join(choices)}, got '{value}'")
  return value


def _strlist(raw: Dict[str, Any], key: str) -> List[str]:
  value = raw.get(key) or []
  if not isinstance(value, list):
    raise ConfigError(f"'{key}' must be a list")
  return [str(v) for v in value]


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
  value = data.get(key) or {}
  if not isinstance(value, dict):
    raise ConfigError(f"'{key}' must be a mapping")
  return value


def _ancestors(data: Dict[str, Any]) -> Optional[int]:
  value = data.get("ancestors", "unlimited")
  if value == "unlimited":
    return None
  return _int(data, "ancestors", 0)


def parse_config(data: Dict[str, Any], path: str = DEFAULT_CONFIG_PATH) -> LogConfig:
  """Build a LogConfig from an already parsed YAML mapping."""
  if not isinstance(data, dict):
    raise ConfigError("configuration root must be a mapping")

  events = _strlist(data, "events") if "events" in data else list(EVENT_NAME_TO_ID)
  for name in events:
    if name not in EVENT_NAME_TO_ID:
      raise ConfigError(f"unknown event '{name}'")

  hashes = _strlist(data, "hashes") if "hashes" in data else ["sha256"]
  for name in hashes:
    if name not in HASH_NAMES:
      raise ConfigError(f"unknown hash '{name}'")

  omit_cfg = _section(data, "omit")
  omit = OmitConfig(
    mode=_bool(omit_cfg, "mode", False),
    size=_bool(omit_cfg, "size", False),
    mtime=_bool(omit_cfg, "mtime", False),
    ctime=_bool(omit_cfg, "ctime", False),
    btime=_bool(omit_cfg, "btime", False),
    sid=_bool(omit_cfg, "sid", False),
    groups=_bool(omit_cfg, "groups", False),
    apple_hashes=_bool(omit_cfg, "appleHashes", False),
  )

  sup_cfg = _section(data, "suppress")
  suppress = SuppressConfig(
    image_exec_at_start=_bool(sup_cfg, "imageExecAtStart", False),
    image_exec_by_ident=_strlist(sup_cfg, "imageExecByIdent"),
    image_exec_by_path=_strlist(sup_cfg, "imageExecByPath"),
    image_exec_by_ancestor_ident=_strlist(sup_cfg, "imageExecByAncestorIdent"),
    image_exec_by_ancestor_path=_strlist(sup_cfg, "imageExecByAncestorPath"),
    process_access_by_subject_ident=_strlist(sup_cfg, "processAccessBySubjectIdent"),
    process_access_by_subject_path=_strlist(sup_cfg, "processAccessBySubjectPath"),
    socket_op_localhost=_bool(sup_cfg, "socketOpLocalhost", False),
    socket_op_by_subject_ident=_strlist(sup_cfg, "socketOpBySubjectIdent"),
    socket_op_by_subject_path=_strlist(sup_cfg, "socketOpBySubjectPath"),
  )

  log_cfg = _section(data, "log")
  oneline = log_cfg.get("oneline")
  if oneline is not None and not isinstance(oneline, bool):
    raise ConfigError(f"'oneline' must be a boolean, got {oneline!r}")
  output = OutputConfig(
    destination=_choice(log_cfg, "destination", "-", LOG_DESTINATIONS),
    format=_choice(log_cfg, "format", "json", LOG_FORMATS),
    oneline=oneline,
    file=str(log_cfg["file"]) if log_cfg.get("file") else None,
  )
  if output.destination == "file" and not output.file:
    raise ConfigError("log destination 'file' requires 'log.file'")

  config_id = data.get("configId")
  return LogConfig(
    path=str(path),
    id=str(config_id) if config_id is not None else None,
    log_level=str(data.get("logLevel", "info")),
    launchd_mode=_bool(data, "launchdMode", False),
    debug=_bool(data, "debug", False),
    events=events,
    stats_interval=_int(data, "statsInterval", 3600),
    kextlevel=_choice(data, "kextLevel", "open", KEXT_LEVELS),
    hashes=hashes,
    codesign=_bool(data, "codesign", True),
    envlevel=_choice(data, "envLevel", "none", ENV_LEVELS),
    resolve_users_groups=_bool(data, "resolveUsersGroups", True),
    ancestors=_ancestors(data),
    limit_nofile=_int(data, "limitNofile", 16384),
    omit=omit,
    suppress=suppress,
    output=output,
  )


def load_config(path: Optional[str] = None) -> LogConfig:
  path = path or os.environ.get("LOGEVT_CONFIG", DEFAULT_CONFIG_PATH)
  with open(path, "r", encoding="utf-8") as f:
    data = yaml.safe_load(f) or {}
  return parse_config(data, path=path)


def configure_logging(level: str):
  lvl = getattr(logging, level.upper(), logging.INFO)
  logging.basicConfig(level=lvl, format="%(asctime)s %(levelname)s %(message)s")
