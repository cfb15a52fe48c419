"""
monitor package

Event pipeline wiring for SSH Monitor.
"""

__version__ = "1.1.0"
