"""
Mock trading platform implementations for testing.

In-process WebSocket servers speaking the platform's subscription protocol,
used by the unit tests and the testplan integration plan.
"""

from .base_mock_platform import BaseMockPlatform
from .single_frame_platform import SingleFrameMockPlatform
from .batched_platform import BatchedMockPlatform

__all__ = [
    'BaseMockPlatform',
    'SingleFrameMockPlatform',
    'BatchedMockPlatform',
]
