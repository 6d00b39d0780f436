"""
mediacache - cached access to external media metadata APIs.
"""

__version__ = "0.1.0"
