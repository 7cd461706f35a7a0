"""Exception hierarchy for portkill."""


class PortKillError(Exception):
    """Base class for all portkill errors."""


class DiscoveryError(PortKillError):
    """The port listing tool could not be run or produced no usable output."""


class TerminationError(PortKillError):
    """A process could not be checked or signalled."""


class CoordinationConflict(PortKillError):
    """A kill sequence was requested while another one is still running."""


class ConfigError(PortKillError):
    """The configuration file is missing required data or cannot be parsed."""
