# backer: Profile driven backups powered by rsync.
#
# Author: Peter Odding <peter@peterodding.com>
# Last Change: October 18, 2026

"""Custom exceptions used by backer."""


class BackerError(Exception):

    """Base exception for custom exceptions raised by backer."""


class ProfileError(BackerError):

    """Base exception for problems with the profile store."""


class InvalidProfileNameError(ProfileError):

    """Raised when a profile name is empty or contains a path separator."""


class ProfileNotFoundError(ProfileError):

    """Raised when a profile that doesn't exist is loaded, deleted or edited."""


class ProfileExistsError(ProfileError):

    """Raised when a profile is created that already exists."""


class InvalidProfileError(ProfileError):

    """Raised when a profile can't be parsed or lacks a required setting."""


class MountPointInactiveError(BackerError):

    """Raised when a configured mount checkpoint isn't mounted."""


class BackupFailedError(BackerError):

    """
    Raised when rsync exits with a nonzero status code.

    The :attr:`run` attribute holds the :class:`~backer.BackupRun` object
    describing the failed run.
    """

    def __init__(self, message, run=None):
        """Initialize a :class:`BackupFailedError` object."""
        super(BackupFailedError, self).__init__(message)
        self.run = run
