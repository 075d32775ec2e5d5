# backer: Profile driven backups powered by rsync.
#
# Author: Peter Odding <peter@peterodding.com>
# Last Change: October 18, 2026

"""
Storage and parsing of backup profiles.

A profile is a plain text file containing ``key=value`` lines that describe a
single backup. Profiles are stored in the ``profiles`` subdirectory of the
configuration directory, the persisted exclude list of each profile is stored
in the ``excludes`` subdirectory under the same name.
"""

# Standard library modules.
import fnmatch
import logging
import os
import re
import shlex

# External dependencies.
from executor.contexts import LocalContext
from humanfriendly import coerce_boolean
from humanfriendly.text import compact
from property_manager import (
    PropertyManager,
    lazy_property,
    mutable_property,
    required_property,
    set_property,
)

# Modules included in our package.
from backer.exceptions import (
    InvalidProfileError,
    InvalidProfileNameError,
    ProfileExistsError,
    ProfileNotFoundError,
)

DEFAULT_CONFIG_DIRECTORY = '~/.backer'
"""The default configuration directory (a string, subject to tilde expansion)."""

DEFAULT_PROFILE_NAME = 'default'
"""The name of the profile created when no name is given (a string)."""

DEFAULT_PROFILE = """
source=/home/
destination=/media/backup/home/
# source_mount=/home
# destination_mount=/media/backup
# email=joe@example.org
# email_on_error=1
# log_directory=/media/backup/log
"""
"""The contents of newly created profiles (a string)."""

PATH_SETTINGS = ('source', 'destination', 'source_mount', 'destination_mount', 'log_directory')
"""The names of profile settings that are subject to tilde and variable expansion."""

KNOWN_SETTINGS = PATH_SETTINGS + ('email', 'email_on_error')
"""The names of all supported profile settings."""

SETTING_PATTERN = re.compile(r'^(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.*)$')
"""A compiled regular expression pattern to parse ``key=value`` lines."""

# Initialize a logger for this module.
logger = logging.getLogger(__name__)


class Profile(PropertyManager):

    """
    A named set of backup parameters.

    Profiles are created by :func:`parse_profile()` (usually via
    :func:`ProfileStore.load()`) and are treated as read only
    while a backup is running.
    """

    @required_property
    def name(self):
        """The name of the profile (a string)."""

    @required_property
    def source(self):
        """The pathname of the directory to backup (a string)."""

    @required_property
    def destination(self):
        """The location where the backup is written, in rsync syntax (a string)."""

    @mutable_property
    def source_mount(self):
        """A mount point that must be active before :attr:`source` can be read (a string or :data:`None`)."""

    @mutable_property
    def destination_mount(self):
        """A mount point that must be active before :attr:`destination` can be written (a string or :data:`None`)."""

    @mutable_property
    def email(self):
        """The e-mail address that receives backup reports (a string or :data:`None`)."""

    @mutable_property
    def email_on_error(self):
        """
        :data:`True` to only send reports for failed backups, :data:`False` otherwise.

        When this is :data:`False` (the default) a report is sent after every
        backup, provided :attr:`email` is set.
        """
        return False

    @email_on_error.setter
    def email_on_error(self, value):
        """Automatically coerce strings to booleans."""
        set_property(self, 'email_on_error', coerce_boolean(value))

    @mutable_property
    def log_directory(self):
        """The directory where rsync output is logged (a string or :data:`None`)."""


def parse_profile(name, text):
    """
    Parse the contents of a profile.

    :param name: The name of the profile (a string).
    :param text: The contents of the profile file (a string).
    :returns: A :class:`Profile` object.
    :raises: :exc:`.InvalidProfileError` when a line can't be parsed or a
             required setting is missing.

    Blank lines and lines starting with ``#`` are ignored. Values may be
    surrounded by single or double quotes. Tilde and environment variable
    expansion is applied to pathnames, but trailing slashes are preserved
    because they are meaningful to rsync.
    """
    settings = {}
    for line_number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        match = SETTING_PATTERN.match(line)
        if not match:
            msg = "Failed to parse line %i of profile %r! (%r)"
            raise InvalidProfileError(msg % (line_number, name, line))
        key, value = match.group('key'), unquote(match.group('value'))
        if key not in KNOWN_SETTINGS:
            logger.warning("Ignoring unknown setting %r on line %i of profile %r.", key, line_number, name)
            continue
        if key in PATH_SETTINGS:
            value = os.path.expanduser(os.path.expandvars(value))
        if value:
            settings[key] = value
    for required in 'source', 'destination':
        if required not in settings:
            raise InvalidProfileError(compact("""
                Profile {name} doesn't define the required setting
                '{setting}'! (tip: use --edit to fix the profile)
            """, name=repr(name), setting=required))
    try:
        return Profile(name=name, **settings)
    except ValueError as e:
        raise InvalidProfileError("Invalid setting in profile %r! (%s)" % (name, e))


def unquote(value):
    """
    Strip matching single or double quotes from a profile value.

    :param value: The value to unquote (a string).
    :returns: The unquoted value (a string).
    """
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in '"\'':
        value = value[1:-1]
    return value


class ProfileStore(PropertyManager):

    """
    Create, list, load, edit and delete profiles in a configuration directory.

    The :attr:`config_directory` property is required.
    """

    @required_property
    def config_directory(self):
        """The configuration directory containing the profiles (a string)."""

    @lazy_property(writable=True)
    def context(self):
        """The execution context used to run the editor (defaults to :class:`~executor.contexts.LocalContext`)."""
        return LocalContext()

    @property
    def profile_directory(self):
        """The directory where profiles are stored (a string)."""
        return os.path.join(self.config_directory, 'profiles')

    @property
    def exclude_directory(self):
        """The directory where persisted exclude lists are stored (a string)."""
        return os.path.join(self.config_directory, 'excludes')

    def profile_file(self, name):
        """
        Get the pathname of a profile.

        :param name: The name of the profile (a string).
        :returns: The absolute pathname of the profile file (a string).
        :raises: :exc:`.InvalidProfileNameError` when the name is empty or
                 contains a path separator.
        """
        if not name or os.sep in name or name in ('.', '..'):
            raise InvalidProfileNameError("Invalid profile name! (%r)" % name)
        return os.path.join(self.profile_directory, name)

    def exclude_file(self, name):
        """
        Get the pathname of the persisted exclude list of a profile.

        :param name: The name of the profile (a string).
        :returns: The absolute pathname of the exclude list (a string).
        """
        self.profile_file(name)
        return os.path.join(self.exclude_directory, name)

    def exists(self, name):
        """:data:`True` if the named profile exists, :data:`False` otherwise."""
        return os.path.isfile(self.profile_file(name))

    def list(self, pattern=None):
        """
        Find the names of the available profiles.

        :param pattern: A shell pattern (see :mod:`fnmatch`) to select
                        profiles or :data:`None` to select all profiles.
        :returns: A sorted list of profile names (strings).
        """
        if not os.path.isdir(self.profile_directory):
            return []
        names = [
            name for name in os.listdir(self.profile_directory)
            if os.path.isfile(os.path.join(self.profile_directory, name))
        ]
        if pattern:
            names = fnmatch.filter(names, pattern)
        return sorted(names)

    def load(self, name):
        """
        Load a profile.

        :param name: The name of the profile (a string).
        :returns: A :class:`Profile` object.
        :raises: :exc:`.ProfileNotFoundError` when the profile doesn't exist,
                 :exc:`.InvalidProfileError` when it can't be parsed.
        """
        if not self.exists(name):
            raise ProfileNotFoundError("Profile %r doesn't exist!" % name)
        logger.debug("Loading profile %r from %s ..", name, self.profile_file(name))
        with open(self.profile_file(name)) as handle:
            return parse_profile(name, handle.read())

    def create(self, name=DEFAULT_PROFILE_NAME):
        """
        Create a new profile based on :data:`DEFAULT_PROFILE`.

        :param name: The name of the profile (a string).
        :returns: The pathname of the new profile (a string).
        :raises: :exc:`.ProfileExistsError` when the profile already exists.
        """
        if self.exists(name):
            raise ProfileExistsError("Profile %r already exists!" % name)
        filename = self.profile_file(name)
        if not os.path.isdir(self.profile_directory):
            os.makedirs(self.profile_directory)
        logger.info("Creating profile %r (%s) ..", name, filename)
        with open(filename, 'w') as handle:
            handle.write(DEFAULT_PROFILE.lstrip())
        return filename

    def delete(self, name):
        """
        Delete a profile.

        :param name: The name of the profile (a string).
        :raises: :exc:`.ProfileNotFoundError` when the profile doesn't exist.

        The persisted exclude list of the profile is left alone.
        """
        if not self.exists(name):
            raise ProfileNotFoundError("Profile %r doesn't exist!" % name)
        logger.info("Deleting profile %r ..", name)
        os.unlink(self.profile_file(name))

    def edit(self, name, editor=None):
        """
        Open a profile in a text editor.

        :param name: The name of the profile (a string).
        :param editor: The editor command line (a string). Defaults to
                       ``$VISUAL``, ``$EDITOR`` or ``vi``.
        :raises: :exc:`.ProfileNotFoundError` when the profile doesn't exist,
                 :exc:`~executor.ExternalCommandFailed` when the editor fails.
        """
        if not self.exists(name):
            raise ProfileNotFoundError("Profile %r doesn't exist!" % name)
        if not editor:
            editor = os.environ.get('VISUAL') or os.environ.get('EDITOR') or 'vi'
        command = shlex.split(editor) + [self.profile_file(name)]
        logger.info("Editing profile %r ..", name)
        self.context.execute(*command, tty=True)
