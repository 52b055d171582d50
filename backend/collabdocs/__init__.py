"""
collabdocs
==========

Document version control engine for the collaborative documents backend.
"""

__version__ = "0.1.0"
