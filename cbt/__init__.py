"""
cbt
Computer-based testing backend: access-code redemption, timed exam
sessions, automatic scoring and publish validation.
"""

__version__ = "1.0.0"
