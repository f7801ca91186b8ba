"""Shared fixtures.  No real USB hardware required."""

import pytest

from usb_fakes import FakeLaserCubeTransport


@pytest.fixture
def fake_transport():
    return FakeLaserCubeTransport()
