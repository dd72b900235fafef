"""
Exceptions for the Scope & Settlement Rules Engine.

Domain data problems never raise; these are reserved for contract
violations by the calling system (bad configuration, bad rule catalogs).
"""


class SettlementEngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(SettlementEngineError):
    """Settlement configuration is inconsistent with the data it is applied to."""


class RuleCatalogError(SettlementEngineError):
    """A companion rule catalog could not be loaded."""
