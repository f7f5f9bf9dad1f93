"""
Network providers for txforge.

Providers fetch chain data and submit transactions. They are consumed by
creator implementations, never by the transaction builder directly.
"""

from txforge.providers.errors import HttpError, parse_http_error
from txforge.providers.maestro import MaestroProvider, parse_rational

__all__ = ["MaestroProvider", "HttpError", "parse_http_error", "parse_rational"]
