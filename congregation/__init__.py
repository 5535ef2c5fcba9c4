"""Congregation Hub - church community backend"""

__version__ = "0.1.0"
