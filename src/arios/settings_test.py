import os
import shutil
import tempfile
import unittest

from configobj import ConfigObj
from hamcrest import assert_that, is_

from arios.settings import Settings, load_settings, settings_from_config


class SettingsTest(unittest.TestCase):

    def test_defaults(self):
        settings = Settings()
        assert_that(settings.discovery.timeout, is_(1.0))
        assert_that(settings.discovery.resolve_stages, is_((3.0, 10.0)))
        assert_that(settings.connection.ready_timeout, is_(1.0))
        assert_that(settings.connection.timeout, is_(1.0))
        assert_that(settings.connection.close_grace_period, is_(2.0))
        assert_that(settings.provider.closing_message, is_('Closing connection!'))

    def test_from_config(self):
        conf = ConfigObj({'discovery': {'timeout': 5.0, 'resolve_retry_timeout': 1.0},
                          'connection': {'close_grace_period': 0.5},
                          'provider': {'port': 8080}})
        settings = settings_from_config(conf)
        assert_that(settings.discovery.timeout, is_(5.0))
        assert_that(settings.discovery.resolve_stages, is_((3.0, 1.0)))
        assert_that(settings.connection.close_grace_period, is_(0.5))
        assert_that(settings.connection.timeout, is_(1.0))
        assert_that(settings.provider.port, is_(8080))

    def test_load_shipped_settings(self):
        directory = tempfile.mkdtemp()
        try:
            settings = load_settings(user_file=os.path.join(directory, 'none.cfg'))
        finally:
            shutil.rmtree(directory)
        assert_that(settings.discovery.service_type, is_('_http._tcp.local.'))
        assert_that(settings.discovery.resolve_stages, is_((3.0, 10.0)))
        assert_that(settings.provider.port, is_(0))

    def test_load_overrides(self):
        directory = tempfile.mkdtemp()
        try:
            with open(os.path.join(directory, 'arios.cfg'), 'w') as f:
                f.write('[connection]\nclose_grace_period = 0.25\n')
            settings = load_settings(directory, user_file=os.path.join(directory, 'none.cfg'))
        finally:
            shutil.rmtree(directory)
        assert_that(settings.connection.close_grace_period, is_(0.25))
        assert_that(settings.connection.timeout, is_(1.0))
