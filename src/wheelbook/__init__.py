"""
wheelbook - option-selling position book

Trade lifecycle, share-lot cost basis and portfolio accounting for
cash-secured puts, covered calls and long options.
"""

from importlib.metadata import version

try:
    __version__ = version("wheelbook")
except Exception:
    __version__ = "0.0.0.dev"  # Fallback for development


__all__ = [
    "__version__",
]
