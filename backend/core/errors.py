"""
Exception taxonomy shared by the feed, calculation and chart layers.
"""


class GexError(Exception):
    """Base class for all dashboard errors."""
    pass


class FeedError(GexError):
    """Quote feed returned a non-2xx status, failed in transport, or sent a malformed body."""
    pass


class ParseError(GexError):
    """Option symbol does not carry a recognisable type/strike."""
    pass


class InvalidPriceError(GexError):
    """Underlying price is missing or not strictly positive."""
    pass


class BackendOperationError(GexError):
    """Charting backend rejected an operation."""
    pass


class ChartStateError(GexError):
    """Chart operation issued in the wrong lifecycle state."""
    pass
