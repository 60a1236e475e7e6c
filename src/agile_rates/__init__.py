"""Agile Rates: half-hourly electricity price analysis and acquisition."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("agile-rates")
except Exception:
    __version__ = "dev"
