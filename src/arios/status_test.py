import unittest

from hamcrest import assert_that, calling, is_, raises

from arios.device import DiscoveryResult
from arios.status import ConnectionFlags, Status, derive_status, status_text


class ConnectionFlagsTest(unittest.TestCase):
    def test_defaults_all_false(self):
        assert_that(ConnectionFlags(), is_(ConnectionFlags(False, False, False, False, False)))

    def test_update(self):
        sut = ConnectionFlags()
        sut.update(device_found=True, timed_out=1)
        assert_that(sut.device_found, is_(True))
        assert_that(sut.timed_out, is_(True))

    def test_update_unknown_flag(self):
        assert_that(calling(ConnectionFlags().update).with_args(bogus=True), raises(AttributeError))

    def test_copy(self):
        sut = ConnectionFlags(device_found=True)
        copy = sut.copy()
        sut.update(device_found=False)
        assert_that(copy.device_found, is_(True))


class DeriveStatusTest(unittest.TestCase):
    def test_initial(self):
        assert_that(derive_status(ConnectionFlags(), True), is_(Status.NO_DEVICE_FOUND))

    def test_missing_application_wins(self):
        flags = ConnectionFlags(device_found=True, active_device=True, active_connection=True,
                                connection_closed=True, timed_out=True)
        assert_that(derive_status(flags, False), is_(Status.MISSING_APPLICATION))
        flags.update(device_found=False)
        assert_that(derive_status(flags, False), is_(Status.MISSING_APPLICATION))

    def test_no_device_found(self):
        flags = ConnectionFlags(device_found=False, timed_out=True, connection_closed=True)
        assert_that(derive_status(flags, True), is_(Status.NO_DEVICE_FOUND))
        assert_that(derive_status(flags, False), is_(Status.NO_DEVICE_FOUND))

    def test_timeout_before_closed(self):
        flags = ConnectionFlags(device_found=True, active_device=True, timed_out=True, connection_closed=True)
        assert_that(derive_status(flags, True), is_(Status.CONNECTION_TIMEOUT))

    def test_closed_before_active(self):
        flags = ConnectionFlags(device_found=True, active_device=True, active_connection=True,
                                connection_closed=True)
        assert_that(derive_status(flags, True), is_(Status.CONNECTION_CLOSED))

    def test_active(self):
        flags = ConnectionFlags(device_found=True, active_device=True, active_connection=True)
        assert_that(derive_status(flags, True), is_(Status.CONNECTION_ACTIVE))

    def test_none(self):
        assert_that(derive_status(ConnectionFlags(device_found=True), False), is_(Status.NONE))
        assert_that(derive_status(ConnectionFlags(device_found=True, active_device=True), True), is_(Status.NONE))


class StatusTextTest(unittest.TestCase):
    def test_fixed_texts(self):
        assert_that(status_text(Status.NONE), is_(""))
        assert_that(status_text(Status.NO_DEVICE_FOUND), is_("No matching device found!"))
        assert_that(status_text(Status.MISSING_APPLICATION),
                    is_("Found device but it's not running the desired application!"))
        assert_that(status_text(Status.CONNECTION_TIMEOUT), is_("Connection timeout!"))
        assert_that(status_text(Status.CONNECTION_CLOSED), is_("Connection was closed!"))

    def test_active_describes_device(self):
        device = DiscoveryResult('lamp1', '192.0.2.5', 9000, {'toggle': 'false', 'colorpicker': 'FFFFFF'}, True)
        assert_that(status_text(Status.CONNECTION_ACTIVE, device),
                    is_("Name: lamp1 | IP: 192.0.2.5 | Port: 9000 | Service-Count: 2"))

    def test_active_without_device(self):
        assert_that(status_text(Status.CONNECTION_ACTIVE),
                    is_("Name: none | IP:  | Port: -1 | Service-Count: 0"))
