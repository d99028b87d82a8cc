"""Static build and platform identity reported in the startup record."""

import platform

BUILD_VERSION = "0.1.0"
BUILD_DATE = "2026-10-16"
BUILD_INFO = "python" + platform.python_version()


def os_name() -> str:
  return platform.system()


def os_version() -> str:
  return platform.release()


def os_build() -> str:
  return platform.version()
