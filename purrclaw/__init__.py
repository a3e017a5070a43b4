"""
purrclaw - A lightweight conversational agent runtime
"""

__version__ = "0.1.0"
__logo__ = "🐾"
