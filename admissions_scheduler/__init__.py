"""Admissions interview scheduling and availability service."""

__version__ = "1.0.0"
