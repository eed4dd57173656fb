"""
Agent Guardian - Security policy and provenance engine for AI coding agent hooks
Scans prompts, commands and files for secrets, classifies risky actions and
keeps an append-only trace of every decision
"""

__version__ = '1.0.0'
