"""
Tests for the 2048 Learning Agent
=================================

Run all tests:
    pytest tests/

Skip slow end-to-end tests:
    pytest tests/ -m "not slow"
"""
