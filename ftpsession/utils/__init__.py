"""Utility module for ftpsession.

This module provides cross-cutting utilities:
- Logging: Configured logging with secret redaction
- Validators: Input validation for host, port, timeout and options
- Threading: Background task helper for non-blocking transfers
"""
