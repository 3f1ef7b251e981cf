"""
Typed access to the arios configuration. The defaults match the shipped arios.default.cfg.
"""
from arios.config.config import apply_conf_path, load_config

config_name = 'arios'


class DiscoverySettings:
    def __init__(self):
        self.service_type = '_http._tcp.local.'
        self.timeout = 1.0                  # overall time allowed to find and resolve the device
        self.resolve_timeout = 3.0          # first resolve attempt
        self.resolve_retry_timeout = 10.0   # the retry when the first attempt yields no port

    @property
    def resolve_stages(self):
        return self.resolve_timeout, self.resolve_retry_timeout


class ConnectionSettings:
    def __init__(self):
        self.ready_timeout = 1.0            # waiting for the device to be populated
        self.timeout = 1.0                  # waiting for the transport to be ready
        self.close_grace_period = 2.0       # how long the closed status is shown before teardown


class ProviderSettings:
    def __init__(self):
        self.service_type = '_http._tcp.local.'
        self.port = 0
        self.closing_message = 'Closing connection!'


class Settings:
    def __init__(self, discovery=None, connection=None, provider=None):
        self.discovery = discovery or DiscoverySettings()
        self.connection = connection or ConnectionSettings()
        self.provider = provider or ProviderSettings()


def settings_from_config(config) -> Settings:
    settings = Settings()
    apply_conf_path(config, ['discovery'], settings.discovery)
    apply_conf_path(config, ['connection'], settings.connection)
    apply_conf_path(config, ['provider'], settings.provider)
    return settings


def load_settings(directory=None, user_file=None) -> Settings:
    """
    Loads the layered arios configuration.
    :param directory: where to look for arios.cfg and its specializations. Defaults to the package config.
    :raises ConfigObjError: the configuration is not valid.
    """
    return settings_from_config(load_config(config_name, directory, user_file=user_file))
