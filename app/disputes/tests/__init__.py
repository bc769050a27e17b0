"""
Tests for disputes app.

Usage:
    pytest disputes/tests/
"""
