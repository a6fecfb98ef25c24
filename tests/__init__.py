"""
Test Package for query-monitor
Contains unit and integration tests.
"""
