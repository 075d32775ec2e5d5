# backer: Profile driven backups powered by rsync.
#
# Author: Peter Odding <peter@peterodding.com>
# Last Change: October 18, 2026

"""
Usage: backer [OPTIONS]

Backup data using rsync, based on profiles.

Each profile names a source and a destination, which are synchronized using
'rsync -azv --delete'. Profiles are plain text files containing key=value
lines, they're stored in the 'profiles' subdirectory of the configuration
directory. The following settings are supported:

  source=/home/                   The directory to backup (required).
  destination=/media/backup/home/ Where the backup is written (required).
  source_mount=/home              Only backup when this is mounted.
  destination_mount=/media/backup Only backup when this is mounted.
  email=joe@example.org           Send a report to this address.
  email_on_error=1                Only send a report when the backup failed.
  log_directory=/media/backup/log Write the rsync output to a log file.

Patterns in the file 'excludes/PROFILE' in the configuration directory are
excluded from the backup, as are filesystems mounted below the source.

When no profile action is given all profiles matching --profile (all
profiles when --profile isn't given) are backed up, one after another.

Supported options:

  -n, --dry-run

    Don't make any changes, just report what would be done. This runs
    rsync with the --dry-run option.

  -C, --config=DIRECTORY

    Use DIRECTORY for configuration. Defaults to $BACKER_CONFIG_DIR
    or ~/.backer when the environment variable isn't set.

  -P, --profile=PROFILE

    Use PROFILE for the action. This can be a shell pattern
    like 'home-*' to select multiple profiles.

  -N, --new

    Create a new profile (named 'default' unless --profile is given).

  -L, --list

    List the available profiles.

  -D, --delete

    Delete the profile given by --profile.

  -E, --edit

    Edit the profile given by --profile using $VISUAL or $EDITOR.

  -i, --interactive

    Ask for confirmation before deleting profiles and open new
    profiles in an editor.

  -f, --non-interactive

    Don't ask any questions (this is the default
    unless $INTERACTIVE is set).

  -v, --verbose

    Make more noise (increase logging verbosity). Can be repeated.

  -q, --quiet

    Make less noise (decrease logging verbosity). Can be repeated.

  -h, --help

    Show this message and exit.
"""

# Standard library modules.
import enum
import getopt
import logging
import os
import sys

# External dependencies.
import coloredlogs
from executor.contexts import LocalContext
from humanfriendly import coerce_boolean, parse_path
from humanfriendly.prompts import prompt_for_confirmation
from humanfriendly.terminal import output, usage, warning

# Modules included in our package.
from backer import BackupRunner
from backer.exceptions import BackerError, ProfileError
from backer.mail import find_mail_sender
from backer.profiles import DEFAULT_CONFIG_DIRECTORY, DEFAULT_PROFILE_NAME, ProfileStore

# Initialize a logger.
logger = logging.getLogger(__name__)


class ProfileAction(enum.Enum):

    """The profile management actions supported on the command line."""

    CREATE = 'create'
    LIST = 'list'
    DELETE = 'delete'
    EDIT = 'edit'


def main():
    """Command line interface for the ``backer`` program."""
    # Initialize logging to the terminal and system log.
    coloredlogs.install(syslog=True)
    # Parse the command line arguments.
    config_directory = os.environ.get('BACKER_CONFIG_DIR', DEFAULT_CONFIG_DIRECTORY)
    dry_run = False
    profile_pattern = None
    action = None
    try:
        interactive = coerce_boolean(os.environ.get('INTERACTIVE', 'false'))
        if coerce_boolean(os.environ.get('VERBOSE', 'false')):
            coloredlogs.increase_verbosity()
        options, arguments = getopt.getopt(sys.argv[1:], 'nC:P:NLDEifvqh', [
            'dry-run', 'config=', 'profile=', 'new', 'list', 'delete', 'edit',
            'interactive', 'non-interactive', 'verbose', 'quiet', 'help',
        ])
        for option, value in options:
            if option in ('-n', '--dry-run'):
                logger.info("Performing a dry run (because of %s option) ..", option)
                dry_run = True
            elif option in ('-C', '--config'):
                config_directory = value
            elif option in ('-P', '--profile'):
                profile_pattern = value
            elif option in ('-N', '--new'):
                action = ProfileAction.CREATE
            elif option in ('-L', '--list'):
                action = ProfileAction.LIST
            elif option in ('-D', '--delete'):
                action = ProfileAction.DELETE
            elif option in ('-E', '--edit'):
                action = ProfileAction.EDIT
            elif option in ('-i', '--interactive'):
                interactive = True
            elif option in ('-f', '--non-interactive'):
                interactive = False
            elif option in ('-v', '--verbose'):
                coloredlogs.increase_verbosity()
            elif option in ('-q', '--quiet'):
                coloredlogs.decrease_verbosity()
            elif option in ('-h', '--help'):
                usage(__doc__)
                return
            else:
                raise Exception("Unhandled option! (programming error)")
        if arguments:
            msg = "Unexpected positional arguments! (%s)"
            raise Exception(msg % " ".join(arguments))
        if action in (ProfileAction.DELETE, ProfileAction.EDIT) and not profile_pattern:
            msg = "The %s action requires a profile name! (use --profile)"
            raise Exception(msg % action.value)
    except Exception as e:
        warning("Error: %s", e)
        sys.exit(1)
    context = LocalContext()
    store = ProfileStore(config_directory=parse_path(config_directory), context=context)
    try:
        if action:
            perform_profile_action(store, action, profile_pattern, interactive)
        else:
            # Resolve the mail program once, before any profiles are backed up.
            runner = BackupRunner(
                config_directory=store.config_directory,
                context=context,
                dry_run=dry_run,
                mail_sender=find_mail_sender(context),
            )
            if not backup_profiles(store, runner, profile_pattern):
                sys.exit(1)
    except Exception as e:
        if isinstance(e, BackerError):
            # Known problems shouldn't produce
            # an intimidating traceback to users.
            logger.error("Aborting due to error: %s", e)
        else:
            # Unhandled exceptions do get a traceback,
            # because it may help fix programming errors.
            logger.exception("Aborting due to unhandled exception!")
        sys.exit(1)


def perform_profile_action(store, action, name, interactive=False):
    """
    Create, list, delete or edit profiles.

    :param store: A :class:`~backer.profiles.ProfileStore` object.
    :param action: One of the :class:`ProfileAction` values.
    :param name: The profile name given on the command line (a string or
                 :data:`None`). For :attr:`ProfileAction.LIST` this is
                 used as a shell pattern.
    :param interactive: :data:`True` to ask for confirmation and open new
                        profiles in an editor, :data:`False` otherwise.
    """
    if action is ProfileAction.CREATE:
        name = name or DEFAULT_PROFILE_NAME
        filename = store.create(name)
        if interactive:
            store.edit(name)
        else:
            logger.info("Use --profile=%s --edit to customize %s.", name, filename)
    elif action is ProfileAction.LIST:
        for profile_name in store.list(name):
            output(profile_name)
    elif action is ProfileAction.DELETE:
        if interactive and not prompt_for_confirmation("Delete profile %r?" % name, default=False):
            logger.info("Not deleting profile %r.", name)
            return
        store.delete(name)
    elif action is ProfileAction.EDIT:
        store.edit(name)
    else:
        raise Exception("Unhandled profile action! (programming error)")


def backup_profiles(store, runner, pattern=None):
    """
    Backup the selected profiles, one after another.

    :param store: A :class:`~backer.profiles.ProfileStore` object.
    :param runner: A :class:`~backer.BackupRunner` object.
    :param pattern: A shell pattern to select profiles (a string or
                    :data:`None` to select all profiles).
    :returns: :data:`True` if all profiles were backed up successfully,
              :data:`False` otherwise.
    :raises: :exc:`.ProfileError` when a profile can't be loaded, because
             that indicates a configuration problem.

    When the backup of a profile fails the error is logged and
    the remaining profiles are still backed up.
    """
    names = store.list(pattern)
    if not names:
        if pattern:
            raise ProfileError("No profiles match %r! (tip: use --list)" % pattern)
        raise ProfileError("No profiles found in %s! (tip: use --new)" % store.profile_directory)
    success = True
    for name in names:
        try:
            profile = store.load(name)
        except ProfileError as e:
            raise ProfileError("Could not load profile %r! (%s)" % (name, e))
        try:
            runner.run(profile)
        except BackerError as e:
            logger.error("Could not backup profile %r: %s", name, e)
            success = False
        except Exception:
            logger.exception("Could not backup profile %r!", name)
            success = False
    return success
