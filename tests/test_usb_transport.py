"""
Tests for usb_transport: discovery, endpoint resolution, PyUsbTransport.

Tests cover:
- find_device(): VID/PID filtering over a device list
- resolve_endpoints(): control IN/OUT, data OUT + alternate setting, missing endpoints
- PyUsbTransport open/close: interface claiming, alt setting, scoped release
- Single-owner rule (DeviceBusy), release on drop
- Raw bulk read/write delegation
"""

import gc
from types import SimpleNamespace
from unittest.mock import MagicMock, call, patch

import pytest
import usb.core
import usb.util

from lasercube import usb_transport
from lasercube.constants import TIMEOUT_MS, USB_PRODUCT_ID, USB_VENDOR_ID
from lasercube.errors import DeviceBusy, DeviceNotFound, EndpointNotFound, TransportClosed
from lasercube.usb_transport import (
    DIRECTION_IN,
    DIRECTION_OUT,
    PyUsbTransport,
    find_device,
    resolve_endpoints,
)
from usb_fakes import (
    CONTROL_IN,
    CONTROL_OUT,
    DATA_OUT,
    fake_configuration,
    fake_endpoint,
    fake_interface,
    lasercube_configuration,
)


@pytest.fixture(autouse=True)
def _no_owned_devices():
    usb_transport._owned_devices.clear()
    yield
    usb_transport._owned_devices.clear()


def _make_usb_device(cfg=None, vid=USB_VENDOR_ID, pid=USB_PRODUCT_ID,
                     bus=1, address=7, active_value=1):
    dev = MagicMock()
    dev.idVendor = vid
    dev.idProduct = pid
    dev.bus = bus
    dev.address = address
    dev.__getitem__ = MagicMock(return_value=cfg or lasercube_configuration())
    dev.get_active_configuration.return_value = SimpleNamespace(
        bConfigurationValue=active_value)
    dev.is_kernel_driver_active.return_value = False
    return dev


@pytest.fixture
def usb_util():
    with patch.object(usb.util, "claim_interface") as claim, \
         patch.object(usb.util, "release_interface") as release, \
         patch.object(usb.util, "dispose_resources") as dispose:
        yield SimpleNamespace(claim=claim, release=release, dispose=dispose)


# =========================================================================
# find_device
# =========================================================================

class TestFindDevice:

    def test_first_match(self):
        other = SimpleNamespace(idVendor=0x1234, idProduct=0x5678)
        first = SimpleNamespace(idVendor=USB_VENDOR_ID, idProduct=USB_PRODUCT_ID)
        second = SimpleNamespace(idVendor=USB_VENDOR_ID, idProduct=USB_PRODUCT_ID)
        assert find_device([other, first, second]) is first

    def test_vendor_only_match_rejected(self):
        near = SimpleNamespace(idVendor=USB_VENDOR_ID, idProduct=0x0001)
        with pytest.raises(DeviceNotFound) as exc:
            find_device([near])
        assert exc.value.vid == USB_VENDOR_ID
        assert exc.value.pid == USB_PRODUCT_ID

    def test_empty_list(self):
        with pytest.raises(DeviceNotFound):
            find_device([])

    def test_defaults_to_system_list(self):
        dev = SimpleNamespace(idVendor=USB_VENDOR_ID, idProduct=USB_PRODUCT_ID)
        with patch.object(usb.core, "find", return_value=iter([dev])) as find:
            assert find_device() is dev
        find.assert_called_once_with(find_all=True)


# =========================================================================
# resolve_endpoints
# =========================================================================

class TestResolveEndpoints:

    def test_lasercube_layout(self):
        eps = resolve_endpoints(lasercube_configuration())

        assert eps.control_read.address == CONTROL_IN
        assert eps.control_read.direction == DIRECTION_IN
        assert eps.control_read.interface == 0
        assert eps.control_write.address == CONTROL_OUT
        assert eps.control_write.direction == DIRECTION_OUT
        assert eps.data_write.address == DATA_OUT
        assert eps.data_write.direction == DIRECTION_OUT
        assert eps.data_write.interface == 1
        assert eps.data_write.alternate_setting == 1
        assert eps.data_write.configuration == 0

    def test_missing_control_read(self):
        cfg = fake_configuration([
            fake_interface(0, 0, [fake_endpoint(CONTROL_OUT)]),
            fake_interface(1, 0, [fake_endpoint(DATA_OUT)]),
        ])
        with pytest.raises(EndpointNotFound) as exc:
            resolve_endpoints(cfg)
        assert exc.value.role == "control-read"

    def test_missing_control_write(self):
        cfg = fake_configuration([
            fake_interface(0, 0, [fake_endpoint(CONTROL_IN)]),
            fake_interface(1, 0, [fake_endpoint(DATA_OUT)]),
        ])
        with pytest.raises(EndpointNotFound) as exc:
            resolve_endpoints(cfg)
        assert exc.value.role == "control-write"

    def test_missing_data_write(self):
        cfg = fake_configuration([
            fake_interface(0, 0, [fake_endpoint(CONTROL_IN), fake_endpoint(CONTROL_OUT)]),
            fake_interface(1, 0, [fake_endpoint(0x83)]),  # IN only
        ])
        with pytest.raises(EndpointNotFound) as exc:
            resolve_endpoints(cfg)
        assert exc.value.role == "data-write"

    def test_data_endpoint_must_be_on_data_interface(self):
        cfg = fake_configuration([
            fake_interface(0, 0, [fake_endpoint(CONTROL_IN), fake_endpoint(CONTROL_OUT),
                                  fake_endpoint(DATA_OUT)]),
        ])
        with pytest.raises(EndpointNotFound):
            resolve_endpoints(cfg)

    def test_non_bulk_ignored(self):
        cfg = fake_configuration([
            fake_interface(0, 0, [fake_endpoint(0x82, bulk=False),
                                  fake_endpoint(CONTROL_IN), fake_endpoint(CONTROL_OUT)]),
            fake_interface(1, 0, [fake_endpoint(0x04, bulk=False)]),
            fake_interface(1, 2, [fake_endpoint(DATA_OUT)]),
        ])
        eps = resolve_endpoints(cfg)
        assert eps.control_read.address == CONTROL_IN
        assert eps.data_write.address == DATA_OUT
        assert eps.data_write.alternate_setting == 2

    def test_first_bulk_endpoint_wins(self):
        cfg = fake_configuration([
            fake_interface(0, 0, [fake_endpoint(CONTROL_IN), fake_endpoint(0x85),
                                  fake_endpoint(CONTROL_OUT)]),
            fake_interface(1, 1, [fake_endpoint(DATA_OUT), fake_endpoint(0x05)]),
        ])
        eps = resolve_endpoints(cfg)
        assert eps.control_read.address == CONTROL_IN
        assert eps.data_write.address == DATA_OUT

    def test_other_interfaces_ignored(self):
        cfg = fake_configuration([
            fake_interface(2, 0, [fake_endpoint(0x86), fake_endpoint(0x06)]),
            *lasercube_configuration().interfaces(),
        ])
        eps = resolve_endpoints(cfg)
        assert eps.control_read.address == CONTROL_IN


# =========================================================================
# PyUsbTransport
# =========================================================================

class TestPyUsbTransportOpen:

    def test_open_claims_and_resolves(self, usb_util):
        dev = _make_usb_device()
        t = PyUsbTransport(devices=[dev])
        t.open()

        assert t.is_open
        assert t.device is dev
        usb_util.claim.assert_has_calls([call(dev, 0), call(dev, 1)])
        dev.set_interface_altsetting.assert_called_once_with(interface=1, alternate_setting=1)
        assert t.endpoints.control_read.address == CONTROL_IN
        assert t.endpoints.data_write.address == DATA_OUT
        dev.set_configuration.assert_not_called()
        t.close()

    def test_open_sets_configuration_when_unconfigured(self, usb_util):
        dev = _make_usb_device()
        dev.get_active_configuration.side_effect = usb.core.USBError("Configuration not set")
        t = PyUsbTransport(devices=[dev])
        t.open()
        dev.set_configuration.assert_called_once_with(1)
        t.close()

    def test_open_detaches_kernel_driver(self, usb_util):
        dev = _make_usb_device()
        dev.is_kernel_driver_active.return_value = True
        t = PyUsbTransport(devices=[dev])
        t.open()
        dev.detach_kernel_driver.assert_has_calls([call(0), call(1)])
        t.close()

    def test_kernel_driver_query_unsupported(self, usb_util):
        dev = _make_usb_device()
        dev.is_kernel_driver_active.side_effect = NotImplementedError
        t = PyUsbTransport(devices=[dev])
        t.open()
        assert t.is_open
        t.close()

    def test_open_twice_is_noop(self, usb_util):
        dev = _make_usb_device()
        t = PyUsbTransport(devices=[dev])
        t.open()
        t.open()
        assert usb_util.claim.call_count == 2
        t.close()

    def test_device_not_found(self, usb_util):
        t = PyUsbTransport(devices=[])
        with pytest.raises(DeviceNotFound):
            t.open()
        assert not t.is_open
        usb_util.claim.assert_not_called()

    def test_missing_endpoint_releases_interfaces(self, usb_util):
        cfg = fake_configuration([
            fake_interface(0, 0, [fake_endpoint(CONTROL_IN), fake_endpoint(CONTROL_OUT)]),
        ])
        dev = _make_usb_device(cfg=cfg)
        t = PyUsbTransport(devices=[dev])

        with pytest.raises(EndpointNotFound):
            t.open()

        assert not t.is_open
        usb_util.release.assert_has_calls([call(dev, 1), call(dev, 0)])
        usb_util.dispose.assert_called_once_with(dev)
        assert not usb_transport._owned_devices

    def test_claim_failure_releases_what_was_claimed(self, usb_util):
        usb_util.claim.side_effect = [None, usb.core.USBError("Resource busy")]
        dev = _make_usb_device()
        t = PyUsbTransport(devices=[dev])

        with pytest.raises(usb.core.USBError):
            t.open()

        usb_util.release.assert_called_once_with(dev, 0)
        assert not usb_transport._owned_devices


class TestSingleOwner:

    def test_second_session_refused(self, usb_util):
        dev = _make_usb_device()
        first = PyUsbTransport(devices=[dev])
        first.open()

        second = PyUsbTransport(devices=[dev])
        with pytest.raises(DeviceBusy):
            second.open()
        assert first.is_open
        first.close()

    def test_reopen_after_close(self, usb_util):
        dev = _make_usb_device()
        first = PyUsbTransport(devices=[dev])
        first.open()
        first.close()

        second = PyUsbTransport(devices=[dev])
        second.open()
        assert second.is_open
        second.close()

    def test_distinct_devices_independent(self, usb_util):
        a = PyUsbTransport(devices=[_make_usb_device(address=7)])
        b = PyUsbTransport(devices=[_make_usb_device(address=8)])
        a.open()
        b.open()
        assert a.is_open and b.is_open
        a.close()
        b.close()

    def test_dropped_transport_releases_device(self, usb_util):
        dev = _make_usb_device()
        first = PyUsbTransport(devices=[dev])
        first.open()

        del first
        gc.collect()

        usb_util.release.assert_has_calls([call(dev, 1), call(dev, 0)])
        usb_util.dispose.assert_called_once_with(dev)
        assert not usb_transport._owned_devices

        second = PyUsbTransport(devices=[dev])
        second.open()
        assert second.is_open
        second.close()

    def test_close_then_drop_releases_once(self, usb_util):
        dev = _make_usb_device()
        t = PyUsbTransport(devices=[dev])
        t.open()
        t.close()

        del t
        gc.collect()

        assert usb_util.release.call_count == 2
        usb_util.dispose.assert_called_once_with(dev)


class TestPyUsbTransportIO:

    def _open(self):
        dev = _make_usb_device()
        t = PyUsbTransport(devices=[dev])
        t.open()
        return t, dev

    def test_write_delegates(self, usb_util):
        t, dev = self._open()
        dev.write.return_value = 5
        assert t.write(CONTROL_OUT, b"\x82\x00\x00\x00\x00") == 5
        dev.write.assert_called_once_with(CONTROL_OUT, b"\x82\x00\x00\x00\x00",
                                          timeout=TIMEOUT_MS)
        t.close()

    def test_read_returns_bytes(self, usb_util):
        t, dev = self._open()
        dev.read.return_value = [0, 0, 1, 2]
        assert t.read(CONTROL_IN, 64) == b"\x00\x00\x01\x02"
        dev.read.assert_called_once_with(CONTROL_IN, 64, timeout=TIMEOUT_MS)
        t.close()

    def test_io_when_closed(self):
        t = PyUsbTransport(devices=[])
        with pytest.raises(TransportClosed):
            t.write(CONTROL_OUT, b"\x00")
        with pytest.raises(TransportClosed):
            t.read(CONTROL_IN, 64)
        with pytest.raises(TransportClosed):
            t.endpoints

    def test_close_releases_and_is_idempotent(self, usb_util):
        t, dev = self._open()
        t.close()
        t.close()

        assert not t.is_open
        assert t.device is None
        usb_util.release.assert_has_calls([call(dev, 1), call(dev, 0)])
        assert usb_util.release.call_count == 2
        usb_util.dispose.assert_called_once_with(dev)

    def test_close_tolerates_gone_device(self, usb_util):
        t, dev = self._open()
        usb_util.release.side_effect = usb.core.USBError("No such device")
        t.close()
        assert not t.is_open
        assert not usb_transport._owned_devices

    def test_context_manager(self, usb_util):
        dev = _make_usb_device()
        with PyUsbTransport(devices=[dev]) as t:
            assert t.is_open
        assert not t.is_open
