"""
Shared fixtures for the receiptflow test suite.

Async behaviour is driven with ``asyncio.run`` inside plain test
functions; windows and delays are kept to tens of milliseconds.
"""

from __future__ import annotations

import pytest

from receiptflow.client.memory import InMemoryAcknowledgementEndpoint
from receiptflow.tests.helpers import RecordingSleep


@pytest.fixture
def endpoint() -> InMemoryAcknowledgementEndpoint:
    return InMemoryAcknowledgementEndpoint()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
