"""
Layered configuration files.

A configuration called `name` is assembled from up to four files, each overriding the one before:

    <name>.default.cfg      shipped defaults
    <name>.<os>.cfg         platform tweaks, e.g. arios.osx.cfg
    ~/<name>.cfg            the user's overrides
    <name>.cfg              local overrides next to the shipped files

Missing layers are skipped. The result is checked against <name>.schema.cfg, which also fills in
any value none of the layers set.
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

extension = '.cfg'

# where the configuration files shipped with the package live
package_config_directory = os.path.dirname(os.path.abspath(__file__))


def flavor_filename(name, flavor=None, directory=None):
    """
    The path of a configuration file, or of one of its flavors.
    >>> os.path.basename(flavor_filename('arios', 'schema'))
    'arios.schema.cfg'
    >>> os.path.basename(flavor_filename('arios'))
    'arios.cfg'
    """
    base = name + '.' + flavor if flavor else name
    return os.path.join(directory or package_config_directory, base + extension)


def read_config_file(path, required=True) -> ConfigObj:
    """
    Parses a single configuration file.
    :param required: when False, a missing file reads as an empty configuration.
    :raises IOError: a required file does not exist.
    :raises ConfigObjError: the file can't be parsed. The message names the file.
    """
    if not required and not os.path.exists(path):
        return ConfigObj()
    try:
        return ConfigObj(path, interpolation='Template', file_error=True)
    except ConfigObjError as e:
        raise type(e)('%s in %s' % (e, path))


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    return 'osx' if name == 'darwin' else name


def os_name():
    return map_os_name(platform.system())


def user_config_file(name):
    return os.path.expanduser(os.path.join('~', name + extension))


def layer_files(name, directory=None, user_file=None):
    """ the files that make up a configuration, lowest precedence first """
    return [
        flavor_filename(name, 'default', directory),
        flavor_filename(name, os_name(), directory),
        user_file or user_config_file(name),
        flavor_filename(name, None, directory),
    ]


def describe_errors(config, result):
    """
    Lists the values that failed validation as "section/key: reason" strings.
    """
    described = []
    for sections, key, error in flatten_errors(config, result):
        if key is None:
            described.append('%s: missing section' % '/'.join(sections))
        else:
            reason = 'missing value' if error is False else str(error)
            described.append('%s: %s' % ('/'.join(sections + [key]), reason))
    return described


def load_config(name, directory=None, schema_directory=None, user_file=None) -> ConfigObj:
    """
    Merges the layers of a configuration and validates the result.
    :param directory: holds the default, platform and local layers. Defaults to the package's config directory.
    :param schema_directory: holds the schema, which must exist. Defaults to the package's config directory.
    :param user_file: the user layer. Defaults to ~/<name>.cfg
    :raises ConfigObjError: a layer can't be parsed, or the merged values don't satisfy the schema.
    :raises IOError: the schema is missing.
    """
    schema = flavor_filename(name, 'schema', schema_directory)
    config = ConfigObj(interpolation='Template', configspec=schema)
    for path in layer_files(name, directory, user_file):
        config.merge(read_config_file(path, required=False))

    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        raise ConfigObjError("the config file %s failed validation %s"
                             % (name, '; '.join(describe_errors(config, result))))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Walks down nested sections.
    :param path: the section names, outermost first
    :return: the section, or None when any part of the path is missing
    """
    for part in path:
        conf = conf.get(part)
        if conf is None:
            return None
    return conf


def apply_conf(conf: Section, target):
    """
    Copies the plain values of a section onto the attributes of the same name on target.
    Values without a matching attribute, and nested sections, are left alone.
    :return: the target
    """
    for key, value in conf.items():
        if not isinstance(value, Section) and hasattr(target, key):
            setattr(target, key, value)
    return target


def apply_conf_path(conf: Section, path, target):
    """ applies the section at path to target, if there is one. Returns the target. """
    section = fetch_conf_path(conf, path)
    if section:
        apply_conf(section, target)
    return target
