"""
Worklog

WeCom chat intake that turns team messages into structured work-log records.
"""

__version__ = "0.1.0"
