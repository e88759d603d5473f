"""
Timer Tracker

Categorized countdown timers driven by a one-second tick loop,
with halfway and completion notifications.
"""

__version__ = "0.1.0"
