# backer: Profile driven backups powered by rsync.
#
# Author: Peter Odding <peter@peterodding.com>
# Last Change: October 18, 2026

"""
Delivery of backup reports by e-mail.

Backer doesn't talk SMTP itself, instead it relies on one of the following
mail programs being installed:

1. ``mimemail`` is preferred because it can attach the compressed log file.
2. ``mail`` is used as a fall back, it only sends the message body.

The available program is detected once by :func:`find_mail_sender()` and the
resulting :class:`MailSender` object is handed to :class:`~backer.BackupRunner`.
"""

# Standard library modules.
import logging

# External dependencies.
from executor.contexts import LocalContext
from property_manager import PropertyManager, lazy_property

# Public identifiers that require documentation.
__all__ = (
    'logger',
    'MailSender',
    'MimeMailSender',
    'PlainMailSender',
    'NullMailSender',
    'find_mail_sender',
)

# Initialize a logger for this module.
logger = logging.getLogger(__name__)


class MailSender(PropertyManager):

    """Abstract base class for the supported ways of sending e-mail."""

    program_name = None
    """The name of the mail program used by this sender (a string or :data:`None`)."""

    supports_attachments = False
    """:data:`True` if attachments can be sent, :data:`False` otherwise."""

    @lazy_property(writable=True)
    def context(self):
        """The execution context used to run the mail program (defaults to :class:`~executor.contexts.LocalContext`)."""
        return LocalContext()

    def compose_command(self, subject, recipient, attachment=None):
        """
        Get the command line of the mail program.

        :param subject: The subject of the message (a string).
        :param recipient: The e-mail address of the recipient (a string).
        :param attachment: The pathname of a file to attach (a string or :data:`None`).
        :returns: A list of strings.
        """
        raise NotImplementedError()

    def send(self, subject, recipient, body, attachment=None):
        """
        Send an e-mail message.

        :param subject: The subject of the message (a string).
        :param recipient: The e-mail address of the recipient (a string).
        :param body: The body of the message (a string).
        :param attachment: The pathname of a file to attach (a string or
                           :data:`None`). Ignored by senders that don't
                           support attachments.
        :returns: :data:`True` when the mail program exited with status code
                  zero, :data:`False` otherwise.

        The mail program is run exactly once. When it fails a warning is
        logged but no exception is raised, because a failing notification
        shouldn't change the outcome of the backup it reports on.
        """
        if attachment and not self.supports_attachments:
            logger.debug("Not attaching %s (%s doesn't support attachments).", attachment, self.program_name)
            attachment = None
        command = self.compose_command(subject, recipient, attachment)
        cmd = self.context.execute(*command, check=False, input=body or '')
        if cmd.returncode != 0:
            logger.warning("Failed to send e-mail to %s! (%s exited with %i)",
                           recipient, self.program_name, cmd.returncode)
            return False
        return True


class MimeMailSender(MailSender):

    """Send e-mail using ``mimemail`` (supports attachments)."""

    program_name = 'mimemail'
    supports_attachments = True

    def compose_command(self, subject, recipient, attachment=None):
        """Get the ``mimemail -s SUBJECT -t RECIPIENT [ATTACHMENT]`` command line."""
        command = [self.program_name, '-s', subject, '-t', recipient]
        if attachment:
            command.append(attachment)
        return command


class PlainMailSender(MailSender):

    """Send e-mail using ``mail`` (only the message body is sent)."""

    program_name = 'mail'

    def compose_command(self, subject, recipient, attachment=None):
        """Get the ``mail -s SUBJECT RECIPIENT`` command line."""
        return [self.program_name, '-s', subject, recipient]


class NullMailSender(MailSender):

    """Placeholder used when no mail program is installed."""

    def send(self, subject, recipient, body, attachment=None):
        """Log that the notification was skipped and return :data:`False`."""
        logger.info("Not notifying %s because no mail program is installed (mimemail or mail).", recipient)
        return False


def find_mail_sender(context=None):
    """
    Find the best available way to send e-mail.

    :param context: The execution context in which to search for mail
                    programs (defaults to :class:`~executor.contexts.LocalContext`).
    :returns: A :class:`MimeMailSender`, :class:`PlainMailSender` or
              :class:`NullMailSender` object.
    """
    context = context or LocalContext()
    for cls in MimeMailSender, PlainMailSender:
        if context.find_program(cls.program_name):
            logger.debug("Using %s to send e-mail.", cls.program_name)
            return cls(context=context)
    logger.debug("No mail program found, e-mail notifications are disabled.")
    return NullMailSender(context=context)
