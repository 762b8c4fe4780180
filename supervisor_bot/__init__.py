"""
Supervisor Bot - Metered spelling correction and translation for Telegram groups.

Messages ending with the marker are corrected or translated into the group's
language by a completion provider, and each call is charged against the
group's prepaid credit.
"""

__version__ = "1.0.0"
__author__ = "The Supervisor Team"
__description__ = "A Telegram bot for metered group text correction and translation"
