"""
Asynchronous video interview recorder.

Sequences timed webcam answers, uploads them with bounded retry and scores
transcripts against role-specific rubrics.
"""

__version__ = "1.0.0"
