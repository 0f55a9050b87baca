"""Exception hierarchy for the detector.

Invalid caller input is reported with plain ``ValueError``; the classes here
cover contract violations between this wrapper and the network.
"""


class DetectorError(Exception):
    """Base exception for all detector errors."""


class NetworkOutputError(DetectorError, RuntimeError):
    """The network produced outputs with an unexpected layout."""


class InputAliasingError(DetectorError, RuntimeError):
    """Channel views no longer wrap the network input buffer."""
