# card_redaction/core/__init__.py

"""Core domain models and utilities used across the redaction pipeline.

This package provides domain types, exceptions, and the pattern loader
shared by the rest of the application.
"""
