"""Exam generator backend: submission API, job tracking, review and export."""

__version__ = "0.1.0"
