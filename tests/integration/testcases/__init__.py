"""
Test cases for trading platform end-to-end testing.

This package contains organized test suites for different aspects of the harness:
- Session lifecycle (login, subscription handshake, teardown)
- Expectations against live traffic
- Multiple concurrent sessions
"""

from .base_test_suite import BaseTestSuite
from .test_session_lifecycle import SessionLifecycleTests
from .test_expectations import ExpectationTests
from .test_multi_session import MultiSessionTests

__all__ = [
    'BaseTestSuite',
    'SessionLifecycleTests',
    'ExpectationTests',
    'MultiSessionTests',
]
