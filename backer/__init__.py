# backer: Profile driven backups powered by rsync.
#
# Author: Peter Odding <peter@peterodding.com>
# Last Change: October 18, 2026

"""
Simple to use Python API for profile driven backups powered by rsync.

The :mod:`backer` module contains the Python API of the `backer` package. The
core logic of the package is contained in the :class:`BackupRunner` class,
profiles are managed by :mod:`backer.profiles` and e-mail reports are sent
by :mod:`backer.mail`.
"""

# Standard library modules.
import gzip
import logging
import os
import re
import shutil
import socket
import tempfile
import time

# External dependencies.
from executor import quote
from executor.contexts import LocalContext
from humanfriendly import Timer
from humanfriendly.text import pluralize
from linux_utils.fstab import parse_fstab
from property_manager import (
    PropertyManager,
    lazy_property,
    mutable_property,
    required_property,
)

# Modules included in our package.
from backer.exceptions import BackupFailedError, MountPointInactiveError
from backer.mail import find_mail_sender
from backer.profiles import ProfileStore

# Semi-standard module versioning.
__version__ = '1.0'

# Initialize a logger for this module.
logger = logging.getLogger(__name__)

MOUNTS_FILE = '/proc/mounts'
"""The pathname of the kernel's table of mounted filesystems (a string)."""

LOG_TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'
"""The :func:`time.strftime()` format used in the names of log files (a string)."""

SUBJECT_DATE_FORMAT = '%Y-%m-%d'
"""The :func:`time.strftime()` format used in the subject of e-mail reports (a string)."""


class BackupRunner(PropertyManager):

    """
    Python API for backing up profiles using rsync.

    The following properties can be set by passing keyword arguments to the
    :class:`BackupRunner` initializer: :attr:`config_directory`,
    :attr:`context`, :attr:`dry_run`, :attr:`mail_sender` and
    :attr:`mounts_file`. These are expected to be set once (at startup)
    after which :func:`run()` can be called for any number of profiles.
    """

    @required_property
    def config_directory(self):
        """The configuration directory that contains the persisted exclude lists (a string)."""

    @lazy_property(writable=True)
    def context(self):
        """
        The execution context used to run external commands.

        This is expected to be an execution context created by
        :mod:`executor.contexts`. It defaults to
        :class:`executor.contexts.LocalContext`.
        """
        return LocalContext()

    @mutable_property
    def dry_run(self):
        """:data:`True` to have rsync report changes without applying them, :data:`False` otherwise."""
        return False

    @lazy_property(writable=True)
    def mail_sender(self):
        """
        The :class:`~backer.mail.MailSender` used to send reports.

        Defaults to the result of :func:`~backer.mail.find_mail_sender()`.
        """
        return find_mail_sender(self.context)

    @mutable_property
    def mounts_file(self):
        """The table of mounted filesystems (a string, defaults to :data:`MOUNTS_FILE`)."""
        return MOUNTS_FILE

    @lazy_property
    def profile_store(self):
        """The :class:`~backer.profiles.ProfileStore` for :attr:`config_directory`."""
        return ProfileStore(config_directory=self.config_directory, context=self.context)

    def run(self, profile):
        """
        Backup a single profile.

        :param profile: A :class:`~backer.profiles.Profile` object.
        :returns: A :class:`BackupRun` object.
        :raises: The following exceptions can be raised:

                 - :exc:`.MountPointInactiveError` when a mount checkpoint of
                   the profile isn't mounted. In this case rsync isn't run
                   and no files are created.
                 - :exc:`.BackupFailedError` when rsync exits with a nonzero
                   status code. This is raised after the log file has been
                   compressed and the e-mail report has been sent.

        The temporary files created during the backup (the exclude list that
        is passed to rsync, the message body and the compressed log file) are
        stored in a temporary directory that is removed before this method
        returns or raises.
        """
        timer = Timer()
        run = BackupRun(profile=profile)
        self.check_mount_points(profile)
        logger.info("Backing up %r to %r ..", profile.source, profile.destination)
        with tempfile.TemporaryDirectory(prefix='backer-') as scratch_directory:
            exclude_file = self.prepare_exclude_file(profile, scratch_directory)
            rsync_command = self.compose_command(profile, exclude_file)
            run.mail_file = os.path.join(scratch_directory, 'message.txt')
            with open(run.mail_file, 'w'):
                pass
            if run.log_file:
                self.execute_logged(run, rsync_command, scratch_directory)
            else:
                self.execute_verbose(run, rsync_command)
            self.notify(run)
        if run.error_occurred:
            logger.error("Backup of profile %r failed after %s! (rsync exited with %i)",
                         profile.name, timer, run.returncode)
            raise BackupFailedError("rsync exited with status code %i!" % run.returncode, run=run)
        logger.info("Took %s to backup profile %r.", timer, profile.name)
        return run

    def check_mount_points(self, profile):
        """
        Make sure the mount checkpoints of a profile are mounted.

        :param profile: A :class:`~backer.profiles.Profile` object.
        :raises: :exc:`.MountPointInactiveError` when the
                 :attr:`~backer.profiles.Profile.source_mount` or
                 :attr:`~backer.profiles.Profile.destination_mount`
                 isn't mounted.
        """
        for label, mount_point in (('Source', profile.source_mount),
                                   ('Destination', profile.destination_mount)):
            if mount_point:
                if self.is_mount_point(mount_point):
                    logger.debug("%s mount point is active (%s).", label, mount_point)
                else:
                    logger.debug("%s mount point isn't active (%s)!", label, mount_point)
                    raise MountPointInactiveError("%s not mounted." % label)

    def is_mount_point(self, pathname):
        """
        Check whether a directory is an active mount point.

        :param pathname: The pathname of the directory (a string).
        :returns: :data:`True` if the directory is a mount point,
                  :data:`False` otherwise.
        """
        return self.context.test('mountpoint', '-q', pathname)

    def find_mounted_filesystems(self):
        """
        Find the mount points of the currently mounted filesystems.

        :returns: A list of pathnames (strings).

        The mount points are parsed from :attr:`mounts_file`, which uses the
        same syntax as ``/etc/fstab``.
        """
        logger.debug("Parsing %s to find mounted filesystems ..", self.mounts_file)
        return [decode_mount_point(entry.tokens[1])
                for entry in parse_fstab(filename=self.mounts_file, context=self.context)]

    def prepare_exclude_file(self, profile, directory):
        """
        Create the exclude list that is passed to rsync.

        :param profile: A :class:`~backer.profiles.Profile` object.
        :param directory: The directory where the exclude list should be
                          created (a string).
        :returns: The pathname of the exclude list (a string).

        The persisted exclude list of the profile is created when it doesn't
        exist yet and its contents are copied to a new file in the given
        directory. Filesystems mounted below the source directory are
        appended to the new file, so that rsync doesn't descend into them.
        The persisted exclude list itself is never changed.
        """
        persisted_file = self.profile_store.exclude_file(profile.name)
        if not os.path.isfile(persisted_file):
            logger.debug("Creating empty exclude list: %s", persisted_file)
            persisted_directory = os.path.dirname(persisted_file)
            if not os.path.isdir(persisted_directory):
                os.makedirs(persisted_directory)
            with open(persisted_file, 'wb'):
                pass
        # The persisted patterns are copied as bytes because they can name
        # files in any encoding.
        with open(persisted_file, 'rb') as handle:
            contents = handle.read()
        nested_mounts = find_nested_mounts(profile.source, self.find_mounted_filesystems())
        if nested_mounts:
            logger.info("Excluding %s below %s: %s",
                        pluralize(len(nested_mounts), "mounted filesystem"),
                        profile.source, ", ".join(nested_mounts))
            if contents and not contents.endswith(b'\n'):
                contents += b'\n'
            for mount_point in nested_mounts:
                contents += os.fsencode(exclude_pattern(profile.source, mount_point)) + b'\n'
        exclude_file = os.path.join(directory, 'excludes')
        with open(exclude_file, 'wb') as handle:
            handle.write(contents)
        return exclude_file

    def compose_command(self, profile, exclude_file):
        """
        Get the rsync command line for a profile.

        :param profile: A :class:`~backer.profiles.Profile` object.
        :param exclude_file: The pathname of the exclude list (a string).
        :returns: A list of strings.
        """
        rsync_command = ['rsync', '-azv']
        if self.dry_run:
            rsync_command.append('--dry-run')
        # Files that no longer exist in the source are removed from the destination.
        rsync_command.append('--delete')
        rsync_command.append('--exclude-from=%s' % exclude_file)
        rsync_command.append(profile.source)
        rsync_command.append(profile.destination)
        return rsync_command

    def execute_logged(self, run, rsync_command, directory):
        """
        Run rsync with its output redirected to the log file.

        :param run: The :class:`BackupRun` object.
        :param rsync_command: The command line (a list of strings).
        :param directory: The directory where the compressed log
                          file should be created (a string).

        The standard output stream of rsync is written to
        :attr:`BackupRun.log_file` while the standard error stream is appended
        to :attr:`BackupRun.mail_file`. Afterwards the log file is compressed
        and a reference to the attachment is added to the message.
        """
        log_directory = os.path.dirname(run.log_file)
        if not os.path.isdir(log_directory):
            logger.info("Creating missing log directory: %s", log_directory)
            os.makedirs(log_directory)
        logger.info("Logging rsync output to %s ..", run.log_file)
        with open(run.log_file, 'wb') as stdout, open(run.mail_file, 'ab') as stderr:
            cmd = self.context.execute(*rsync_command, check=False, stdout_file=stdout, stderr_file=stderr)
        run.returncode = cmd.returncode
        log_name = os.path.basename(run.log_file)
        run.compressed_log = os.path.join(directory, log_name + '.gz')
        logger.debug("Compressing %s to %s ..", run.log_file, run.compressed_log)
        with open(run.log_file, 'rb') as source, gzip.open(run.compressed_log, 'wb') as target:
            shutil.copyfileobj(source, target)
        with open(run.mail_file, 'a') as handle:
            handle.write("Attached log: %s\n" % log_name)

    def execute_verbose(self, run, rsync_command):
        """
        Run rsync with its output connected to the terminal.

        :param run: The :class:`BackupRun` object.
        :param rsync_command: The command line (a list of strings).
        """
        logger.info("Executing command: %s", quote(rsync_command))
        cmd = self.context.execute(*rsync_command, check=False)
        run.returncode = cmd.returncode

    def notify(self, run):
        """
        Send an e-mail report about a backup (if configured).

        :param run: The :class:`BackupRun` object.

        Nothing happens when the profile doesn't define an e-mail address.
        When the profile sets :attr:`~backer.profiles.Profile.email_on_error`
        the report is only sent when the backup failed.
        """
        profile = run.profile
        if not profile.email:
            return
        if profile.email_on_error and not run.error_occurred:
            logger.debug("Not notifying %r because the backup succeeded.", profile.email)
            return
        logger.info("Notifying %r ..", profile.email)
        subject = "Backup for %s on %s" % (socket.gethostname(), time.strftime(SUBJECT_DATE_FORMAT))
        with open(run.mail_file, errors='replace') as handle:
            body = handle.read()
        run.notified = self.mail_sender.send(
            subject=subject,
            recipient=profile.email,
            body=body,
            attachment=run.compressed_log,
        )


class BackupRun(PropertyManager):

    """
    The state of a single invocation of :func:`BackupRunner.run()`.

    The :attr:`profile` property is required, the other properties are
    filled in as the backup progresses.
    """

    @required_property
    def profile(self):
        """The :class:`~backer.profiles.Profile` being backed up."""

    @lazy_property
    def timestamp(self):
        """The time when the run started (a :class:`time.struct_time` object)."""
        return time.localtime()

    @lazy_property
    def log_file(self):
        """
        The pathname of the log file (a string or :data:`None`).

        When the profile defines a
        :attr:`~backer.profiles.Profile.log_directory` the log file is named
        after the profile and :attr:`timestamp`, otherwise this is
        :data:`None`.
        """
        if self.profile.log_directory:
            filename = '%s-%s.log' % (self.profile.name, time.strftime(LOG_TIMESTAMP_FORMAT, self.timestamp))
            return os.path.join(self.profile.log_directory, filename)

    @mutable_property
    def mail_file(self):
        """The pathname of the temporary file containing the message body (a string or :data:`None`)."""

    @mutable_property
    def compressed_log(self):
        """The pathname of the temporary compressed copy of :attr:`log_file` (a string or :data:`None`)."""

    @mutable_property
    def returncode(self):
        """The exit code of rsync (an integer or :data:`None`)."""

    @mutable_property
    def notified(self):
        """:data:`True` if an e-mail report was sent, :data:`False` otherwise."""
        return False

    @property
    def error_occurred(self):
        """:data:`True` if rsync exited with a nonzero status code, :data:`False` otherwise."""
        return self.returncode is not None and self.returncode != 0


def find_nested_mounts(source, mount_points):
    """
    Find the mount points that are nested below a source directory.

    :param source: The pathname of the source directory (a string).
    :param mount_points: An iterable of mount point pathnames (strings).
    :returns: A list of pathnames (strings) in the order given, without
              duplicates.

    Pathnames are compared one path segment at a time, so a source of
    ``/home`` matches ``/home/user/data`` but not ``/homestead``. The source
    directory itself is never included. Remote sources (in rsync's
    ``HOST:PATH`` syntax) don't have local mount points.
    """
    if is_remote_location(source):
        return []
    root = os.path.abspath(source)
    prefix = root.rstrip('/') + '/'
    nested = []
    for mount_point in mount_points:
        mount_point = os.path.normpath(mount_point)
        if mount_point != root and mount_point.startswith(prefix) and mount_point not in nested:
            nested.append(mount_point)
    return nested


def exclude_pattern(source, mount_point):
    """
    Get the rsync exclude pattern for a mount point below a source directory.

    :param source: The pathname of the source directory (a string).
    :param mount_point: The pathname of a mount point below `source` (a string).
    :returns: An exclude pattern that is anchored to the root of the transfer
              (a string).

    When the source ends in a slash rsync transfers the contents of the
    directory, otherwise it transfers the directory itself, which means the
    name of the directory is part of the pattern.
    """
    root = os.path.abspath(source)
    relative_path = os.path.relpath(mount_point, root)
    if not source.endswith('/'):
        relative_path = os.path.join(os.path.basename(root), relative_path)
    return '/%s/' % escape_wildcards(relative_path)


def escape_wildcards(pathname):
    """
    Escape the characters that rsync interprets as wildcards.

    :param pathname: A literal pathname (a string).
    :returns: A pattern that matches only `pathname` (a string).

    Backslashes are only special to rsync in patterns that contain wildcards,
    so they are left alone when there's nothing else to escape.
    """
    if not re.search(r'[*?\[]', pathname):
        return pathname
    return re.sub(r'([*?\[\\])', r'\\\1', pathname)


def is_remote_location(location):
    """
    Check whether an rsync location refers to a remote system.

    :param location: An rsync source or destination (a string).
    :returns: :data:`True` for ``[USER@]HOST:PATH``, ``HOST::MODULE`` and
              ``rsync://`` locations, :data:`False` otherwise.
    """
    return bool(re.match(r'^(rsync://|[^/]*:)', location))


def decode_mount_point(value):
    """
    Decode the octal escape sequences used in ``/proc/mounts``.

    :param value: The raw mount point field of a line in ``/proc/mounts``
                  (a string, still containing the escape sequences).
    :returns: The decoded pathname (a string).

    The kernel encodes spaces, tabs, newlines and backslashes as ``\\040``,
    ``\\011``, ``\\012`` and ``\\134``.
    """
    return re.sub(r'\\([0-7]{3})', lambda m: chr(int(m.group(1), 8)), value)
