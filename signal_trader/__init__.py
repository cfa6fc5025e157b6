"""Signal-driven BingX futures trader with client-side trailing stops."""

__version__ = "0.1.0"
