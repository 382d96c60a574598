# flowsmith/errors.py


class FlowsmithError(Exception):
    """Base class for errors raised by flowsmith."""


class StructuralError(FlowsmithError):
    """
    Input cannot be turned into a workflow at all: a JSON draft without
    `nodes` and `connections`, or text that yields no nodes after extraction.
    """


class ConfigError(FlowsmithError):
    """Invalid configuration file or value."""
