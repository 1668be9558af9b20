from __future__ import annotations


class WirecheckError(Exception):
    """Base class for fatal session conditions."""


class ConfigError(WirecheckError):
    pass


class IntegrityError(WirecheckError):
    pass


class TransportError(WirecheckError):
    pass


class FrameError(ValueError):
    pass
