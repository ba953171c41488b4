"""
OKR Pulse Test Suite

This package contains unit tests and fixtures for the OKR Pulse
roll-up engine.

Run tests with:
    pytest tests/
    pytest tests/test_aggregation.py -v
    pytest tests/test_aggregation.py::TestGracefulDegradation -v
"""

__version__ = "1.0.0"
