#!/usr/bin/env python3
"""Emit an xnumon-ops record describing the effective configuration."""
import argparse
import logging
import sys
import time

from logevt.config import LOG_FORMATS, configure_logging, load_config
from logevt.events import EventCode
from logevt.model import EventHeader, OpsEvent, Timespec
from logevt.serializers import EventSerializer
from logevt.sink import make_sink

log = logging.getLogger(__name__)


def emit(config, subtype: str, out, fmt=None, oneline=None, now_ns=None):
  now_ns = time.time_ns() if now_ns is None else now_ns
  hdr = EventHeader(
    code=EventCode.XNUMON_OPS,
    tv=Timespec(sec=now_ns // 1_000_000_000, nsec=now_ns % 1_000_000_000),
  )
  fmt = fmt or config.output.format
  if oneline is None:
    oneline = config.output.oneline
  sink = make_sink(fmt, out, oneline)
  EventSerializer(config).write(sink, OpsEvent(hdr=hdr, subtype=subtype))


def main(argv=None):
  ap = argparse.ArgumentParser(description="Write an xnumon-ops record for a configuration file")
  ap.add_argument("--config", default=None, help="Path to logevt YAML config (default: $LOGEVT_CONFIG)")
  ap.add_argument("--op", default="start", help="Ops subtype to record")
  ap.add_argument("--format", choices=LOG_FORMATS, default=None, help="Override the configured log format")
  ap.add_argument("--output", default=None, help="Append the record to this file (default: log.file when log.destination is file, else stdout)")
  args = ap.parse_args(argv)

  cfg = load_config(args.config)
  configure_logging(cfg.log_level)
  log.info("loaded config %s", cfg.path)
  target = args.output
  if target is None and cfg.output.destination == "file":
    target = cfg.output.file
  if target:
    log.info("appending to %s", target)
    with open(target, "a", encoding="utf-8") as out:
      emit(cfg, args.op, out, fmt=args.format)
  else:
    emit(cfg, args.op, sys.stdout, fmt=args.format)


if __name__ == "__main__":
  main()
