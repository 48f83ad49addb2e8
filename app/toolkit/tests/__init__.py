"""
Tests for the toolkit app.
"""
