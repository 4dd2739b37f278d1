"""
Test suite for the value tree and its codecs

Contains:
- tests/unit/          : Unit tests for individual modules
"""
