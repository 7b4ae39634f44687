"""
memnet - persistent memory entries and user-defined tools for AI agents.
"""

__version__ = "0.1.0"
