class ConfigError(ValueError):
  """Raised when a configuration file holds an invalid value."""


class SinkError(RuntimeError):
  """Raised by a sink when emission calls break the record structure."""


class InvariantViolation(AssertionError):
  """A descriptor handed in by the producer breaks a data model invariant."""
