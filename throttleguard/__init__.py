"""
Login throttling engine.

Tracks login attempts per source address, blocks sources that exceed the
configured number of attempts, and alerts operators when failed logins
spike across the whole site.
"""

__version__ = "1.0.0"
