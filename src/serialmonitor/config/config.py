"""
Loads the monitor configuration from layered configobj files and applies it to a settings object.
"""
import logging
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from configobj.validate import Validator

from serialmonitor.support.mixins import ValueObject

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'

# The base name of the monitor configuration files
config_name = 'serialmonitor'

# the directory holding the packaged default and schema files
default_directory = os.path.dirname(__file__)

line_terminators = {
    'lf': '\n',
    'crlf': '\r\n',
    'cr': '\r',
    'none': ''
}


def config_flavor(name, flavor=None):
    configname = name if not flavor else name + '.' + flavor
    return configname


def config_filename(name, directory=None):
    """
    Determines the location of a config file in the given directory.
    """
    config_file = os.path.join(directory, name + config_extension)
    return config_file


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name. Missing files load as an empty configuration.
    """
    configname = config_flavor(name, subpart)
    file = config_filename(configname, directory)
    return load_config_file_base(file, False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def user_config_file(name):
    return os.path.expanduser('~/' + name + config_extension)


def load_config(name, directory, defaults_directory=None):
    """
        Loads all the configuration files that relate to the given name.
        Configurations are merged in this order, later ones taking precedence:
        - the default specialization
        - the platform specialization
        - the user override in the home directory
        - the base configuration
        The merged configuration is validated against the "schema" specialization, when there is one. The schema is
        parsed as a configspec so check expressions stay whole, and it also supplies defaults and converts values to their declared types.
    :param directory: the location of the base configuration file
    :param defaults_directory: the location of the default, platform and schema files.
        When not given, these are also taken from directory.
    :return: the validated ConfigObj
    """
    base = defaults_directory or directory
    default_config = config_flavor_file(name, base, 'default')
    platform_config = config_flavor_file(name, base, os_name())
    user_config = load_config_file_base(user_config_file(name), must_exist=False)
    local_config = config_flavor_file(name, directory)

    schema_file = config_filename(config_flavor(name, 'schema'), base)
    config = ConfigObj(configspec=schema_file if os.path.exists(schema_file) else None)
    config.merge(default_config)
    config.merge(platform_config)
    config.merge(user_config)
    config.merge(local_config)

    if config.configspec is None:
        return config
    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        problems = []
        for section_list, key, error in flatten_errors(config, result):
            location = '.'.join(section_list + ([key] if key else []))
            problems.append('%s: %s' % (location, error or 'missing'))
        raise ConfigObjError("the config file %s failed validation %s" % (name, '; '.join(problems)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:        The root configuration
    :param path:        An iterable that lists the names of the sections to resolve
    :return: The configuration section identified by the path, or None
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf(conf: Section, target, prefix=''):
    """
    Applies the attributes contained in a configuration section to a target object.
    Each value is assigned to the attribute named prefix + key, provided the target already
    has that attribute.
    """
    for k, v in conf.items():
        name = prefix + k
        if hasattr(target, name):
            setattr(target, name, v)


def apply_conf_path(conf: Section, name_parts, target, prefix=''):
    """
    Applies a configuration path to a given target object
    """
    conf = fetch_conf_path(conf, name_parts)
    if conf:
        apply_conf(conf, target, prefix)


class MonitorSettings(ValueObject):
    """ The tunable values of the monitor core. The defaults match the packaged default configuration. """

    def __init__(self):
        self.framing_policy = 'quiescence'
        self.idle_threshold = 0.1       # seconds without bytes before a frame is complete
        self.poll_interval = 0.1        # seconds between framer ticks
        self.delimiter = '\n'
        self.delimiter_idle_threshold = None
        self.flush_on_close = False
        self.baud_rates = (9600, 19200, 38400, 57600, 115200)
        self.default_baud_rate = None
        self.read_timeout = 0.05
        self.write_timeout = 1.0
        self.encoding = 'latin-1'
        self.line_terminator = '\n'


def settings_from_config(conf: Section) -> MonitorSettings:
    settings = MonitorSettings()
    apply_conf_path(conf, ['framing'], settings)
    apply_conf_path(conf, ['serial'], settings)
    if 'policy' in conf.get('framing', {}):
        settings.framing_policy = conf['framing']['policy']
    settings.baud_rates = tuple(settings.baud_rates)
    settings.delimiter = settings.delimiter.encode('latin-1').decode('unicode_escape')
    settings.line_terminator = line_terminators[settings.line_terminator]
    if settings.default_baud_rate is None or settings.default_baud_rate not in settings.baud_rates:
        settings.default_baud_rate = settings.baud_rates[0]
    return settings


def load_settings(directory=None, name=config_name) -> MonitorSettings:
    """
    Loads the monitor settings. The packaged defaults and schema are always used; the given directory
    (when supplied) holds a further override named after the configuration.
    """
    conf = load_config(name, directory or default_directory, default_directory)
    settings = settings_from_config(conf)
    logger.debug("loaded %r", settings)
    return settings
