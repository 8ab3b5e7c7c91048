"""Version information for the CFMM arbitrage engine."""

__version__ = "0.4.0"
__version_info__ = tuple(int(i) for i in __version__.split("."))
