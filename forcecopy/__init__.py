"""
forcecopy - copy a file off failing media, zero-filling and recording
unreadable blocks so a later pass can retry only those.
"""

__version__ = "1.0.0"
