# Test suite for the `backer' Python package.
#
# Author: Peter Odding <peter@peterodding.com>
# Last Change: October 18, 2026

"""Test suite for the `backer` package."""

# Standard library modules.
import glob
import gzip
import logging
import os
import socket

# External dependencies.
from humanfriendly.testing import MockedProgram, TemporaryDirectory, TestCase, run_cli
from mock import MagicMock, patch

# The module we're testing.
from backer import BackupRun, BackupRunner, decode_mount_point, exclude_pattern, find_nested_mounts, is_remote_location
from backer.cli import ProfileAction, backup_profiles, main, perform_profile_action
from backer.exceptions import (
    BackupFailedError,
    InvalidProfileError,
    InvalidProfileNameError,
    MountPointInactiveError,
    ProfileExistsError,
    ProfileNotFoundError,
)
from backer.mail import (
    MimeMailSender,
    NullMailSender,
    PlainMailSender,
    find_mail_sender,
)
from backer.profiles import DEFAULT_PROFILE_NAME, Profile, ProfileStore, parse_profile

# Initialize a logger for this module.
logger = logging.getLogger(__name__)

# Shell script fragment used by the mocked rsync program to save a copy of
# the (temporary) exclude list that it was given.
SAVE_EXCLUDE_LIST = '''
for arg; do
    case "$arg" in
        --exclude-from=*) cp "${arg#--exclude-from=}" %s ;;
    esac
done
'''


class BackerTestCase(TestCase):

    """:mod:`unittest` compatible container for `backer` tests."""

    def test_usage(self):
        """Test the usage message."""
        for options in ['-h'], ['--help']:
            exit_code, output = run_cli(main, *options)
            assert "Usage:" in output

    def test_invalid_arguments(self):
        """Test the handling of incorrect command line arguments."""
        # Positional arguments should report an error.
        exit_code, output = run_cli(main, 'unexpected', merged=True)
        assert exit_code != 0
        assert "Error" in output
        # Deleting and editing require a profile name.
        for option in '--delete', '--edit':
            exit_code, output = run_cli(main, option, merged=True)
            assert exit_code != 0
            assert "Error" in output

    def test_profile_parsing(self):
        """Test the parsing of profiles."""
        profile = parse_profile('example', '''
            # Comments and blank lines are ignored.

            source="/home/"
            destination = '/media/backup/home/'
            source_mount=/home
            destination_mount=/media/backup
            email=joe@example.org
            email_on_error=yes
            log_directory=~/logs
        ''')
        assert profile.name == 'example'
        assert profile.source == '/home/'
        assert profile.destination == '/media/backup/home/'
        assert profile.source_mount == '/home'
        assert profile.destination_mount == '/media/backup'
        assert profile.email == 'joe@example.org'
        assert profile.email_on_error is True
        assert profile.log_directory == os.path.expanduser('~/logs')
        # Optional settings have sensible defaults.
        profile = parse_profile('minimal', 'source=/srv/\ndestination=/mnt/srv/\n')
        assert profile.source_mount is None
        assert profile.destination_mount is None
        assert profile.email is None
        assert profile.email_on_error is False
        assert profile.log_directory is None
        # Boolean values are coerced.
        assert parse_profile('x', 'source=/a\ndestination=/b\nemail_on_error=0').email_on_error is False
        assert parse_profile('x', 'source=/a\ndestination=/b\nemail_on_error=1').email_on_error is True

    def test_invalid_profiles(self):
        """Test that InvalidProfileError is raised as expected."""
        self.assertRaises(InvalidProfileError, parse_profile, 'x', 'destination=/b')
        self.assertRaises(InvalidProfileError, parse_profile, 'x', 'source=/a')
        self.assertRaises(InvalidProfileError, parse_profile, 'x', 'source=/a\ndestination=/b\nthis is not valid')
        # Values that can't be coerced to a boolean are reported.
        self.assertRaises(InvalidProfileError, parse_profile, 'x', 'source=/a\ndestination=/b\nemail_on_error=maybe')
        # Unknown settings are ignored.
        profile = parse_profile('x', 'source=/a\ndestination=/b\ncolor=blue')
        assert not hasattr(profile, 'color')

    def test_profile_store(self):
        """Test creating, listing, loading and deleting profiles."""
        with TemporaryDirectory() as config_directory:
            store = ProfileStore(config_directory=config_directory)
            assert store.list() == []
            store.create()
            store.create('home')
            store.create('home-music')
            assert store.list() == [DEFAULT_PROFILE_NAME, 'home', 'home-music']
            assert store.list('home*') == ['home', 'home-music']
            assert store.list('home') == ['home']
            # New profiles are based on the default template.
            profile = store.load('home')
            assert profile.source == '/home/'
            assert profile.destination == '/media/backup/home/'
            assert profile.email is None
            self.assertRaises(ProfileExistsError, store.create, 'home')
            store.delete('home')
            assert store.list() == [DEFAULT_PROFILE_NAME, 'home-music']
            self.assertRaises(ProfileNotFoundError, store.load, 'home')
            self.assertRaises(ProfileNotFoundError, store.delete, 'home')
            self.assertRaises(InvalidProfileNameError, store.create, '../escape')
            self.assertRaises(InvalidProfileNameError, store.load, '')
            assert store.exclude_file('home') == os.path.join(config_directory, 'excludes', 'home')

    def test_profile_editing(self):
        """Test that profiles are edited using an external editor."""
        with TemporaryDirectory() as config_directory:
            store = ProfileStore(config_directory=config_directory)
            self.assertRaises(ProfileNotFoundError, store.edit, 'home', editor='fake-editor')
            store.create('home')
            with MockedProgram('fake-editor', script='echo "email=joe@example.org" >> "$1"'):
                store.edit('home', editor='fake-editor')
            assert store.load('home').email == 'joe@example.org'

    def test_cli_profile_actions(self):
        """Test the profile actions of the command line interface."""
        with TemporaryDirectory() as config_directory:
            exit_code, output = run_cli(main, '--config=%s' % config_directory, '--new', '--profile=home')
            assert exit_code == 0
            exit_code, output = run_cli(main, '--config=%s' % config_directory, '--new')
            assert exit_code == 0
            exit_code, output = run_cli(main, '--config=%s' % config_directory, '--list')
            assert exit_code == 0
            assert output.split() == [DEFAULT_PROFILE_NAME, 'home']
            # Creating an existing profile fails.
            exit_code, output = run_cli(main, '--config=%s' % config_directory, '--new', '--profile=home')
            assert exit_code != 0
            exit_code, output = run_cli(main, '-C', config_directory, '-D', '-P', 'home')
            assert exit_code == 0
            exit_code, output = run_cli(main, '-C', config_directory, '-L')
            assert output.split() == [DEFAULT_PROFILE_NAME]

    def test_interactive_delete(self):
        """Test that profiles are only deleted after confirmation in interactive mode."""
        with TemporaryDirectory() as config_directory:
            store = ProfileStore(config_directory=config_directory)
            store.create('home')
            with patch('backer.cli.prompt_for_confirmation', return_value=False):
                perform_profile_action(store, ProfileAction.DELETE, 'home', interactive=True)
            assert store.exists('home')
            with patch('backer.cli.prompt_for_confirmation', return_value=True):
                perform_profile_action(store, ProfileAction.DELETE, 'home', interactive=True)
            assert not store.exists('home')

    def test_find_nested_mounts(self):
        """Test the selection of mount points below the source directory."""
        mount_points = ['/', '/home', '/home/user/data', '/homestead', '/home/user/data', '/proc']
        assert find_nested_mounts('/home/', mount_points) == ['/home/user/data']
        assert find_nested_mounts('/home', mount_points) == ['/home/user/data']
        assert find_nested_mounts('/home/user/data', mount_points) == []
        assert find_nested_mounts('/', mount_points) == ['/home', '/home/user/data', '/homestead', '/proc']
        # Remote sources don't have local mount points.
        assert find_nested_mounts('server:/home/', mount_points) == []

    def test_exclude_pattern(self):
        """Test that exclude patterns are anchored to the root of the transfer."""
        assert exclude_pattern('/home/', '/home/user/data') == '/user/data/'
        assert exclude_pattern('/home', '/home/user/data') == '/home/user/data/'
        assert exclude_pattern('/', '/proc') == '/proc/'
        # Wildcard characters in mount points are matched literally.
        assert exclude_pattern('/home/', '/home/a[1]') == '/a\\[1]/'
        assert exclude_pattern('/home/', '/home/what?') == '/what\\?/'
        assert exclude_pattern('/home/', '/home/back\\slash*') == '/back\\\\slash\\*/'
        assert exclude_pattern('/home/', '/home/back\\slash') == '/back\\slash/'

    def test_remote_locations(self):
        """Test the recognition of remote rsync locations."""
        assert is_remote_location('server:/backups/')
        assert is_remote_location('user@server:backups')
        assert is_remote_location('server::module/directory')
        assert is_remote_location('rsync://server/module')
        assert not is_remote_location('/media/backup/home/')
        assert not is_remote_location('relative/path')

    def test_decode_mount_point(self):
        """Test the decoding of escape sequences in ``/proc/mounts``."""
        assert decode_mount_point(r'/media/my\040backup') == '/media/my backup'
        assert decode_mount_point('/media/backup') == '/media/backup'

    def test_find_mounted_filesystems(self):
        """Test that the mount table is parsed correctly."""
        with TemporaryDirectory() as directory:
            runner = self.create_runner(directory, mounts=['/', '/home', '/media/backup'])
            assert runner.find_mounted_filesystems() == ['/', '/home', '/media/backup']
            # Escape sequences are decoded exactly once.
            with open(runner.mounts_file, 'w') as handle:
                handle.write('/dev/fake /media/my\\040backup ext4 rw 0 0\n')
                handle.write('/dev/fake /media/tab\\011here ext4 rw 0 0\n')
                handle.write('/dev/fake /media/literal\\134040 ext4 rw 0 0\n')
            assert runner.find_mounted_filesystems() == [
                '/media/my backup',
                '/media/tab\there',
                '/media/literal\\040',
            ]

    def test_exclude_file(self):
        """Test the construction of the temporary exclude list."""
        with TemporaryDirectory() as directory:
            source = os.path.join(directory, 'source')
            nested = os.path.join(source, 'data')
            runner = self.create_runner(directory, mounts=['/', source, nested, source + 'stead'])
            profile = Profile(name='example', source=source + '/', destination='/media/backup/')
            scratch_directory = os.path.join(directory, 'scratch')
            os.mkdir(scratch_directory)
            # The persisted exclude list is created when it doesn't exist.
            persisted_file = runner.profile_store.exclude_file('example')
            assert not os.path.exists(persisted_file)
            exclude_file = runner.prepare_exclude_file(profile, scratch_directory)
            assert os.path.isfile(persisted_file)
            assert read_lines(persisted_file) == []
            assert read_lines(exclude_file) == ['/data/']
            # The persisted patterns come first and are never modified.
            with open(persisted_file, 'w') as handle:
                handle.write('*.tmp\n/cache/')
            exclude_file = runner.prepare_exclude_file(profile, scratch_directory)
            assert read_lines(exclude_file) == ['*.tmp', '/cache/', '/data/']
            assert read_lines(persisted_file) == ['*.tmp', '/cache/']
            # Patterns that aren't valid UTF-8 are copied byte for byte.
            with open(persisted_file, 'wb') as handle:
                handle.write(b'/caf\xe9/')
            exclude_file = runner.prepare_exclude_file(profile, scratch_directory)
            with open(exclude_file, 'rb') as handle:
                assert handle.read() == b'/caf\xe9/\n/data/\n'

    def test_rsync_command(self):
        """Test the composition of the rsync command line."""
        with TemporaryDirectory() as directory:
            profile = Profile(name='example', source='/home/', destination='/media/backup/home/')
            runner = self.create_runner(directory)
            assert runner.compose_command(profile, '/tmp/excludes') == [
                'rsync', '-azv', '--delete', '--exclude-from=/tmp/excludes',
                '/home/', '/media/backup/home/',
            ]
            runner = self.create_runner(directory, dry_run=True)
            assert runner.compose_command(profile, '/tmp/excludes') == [
                'rsync', '-azv', '--dry-run', '--delete', '--exclude-from=/tmp/excludes',
                '/home/', '/media/backup/home/',
            ]

    def test_destination_not_mounted(self):
        """Test that rsync isn't run when the destination isn't mounted."""
        with TemporaryDirectory() as directory:
            log_directory = os.path.join(directory, 'logs')
            profile = Profile(
                name='home',
                source='/home/',
                destination='/media/backup/home/',
                source_mount='/home',
                destination_mount='/media/backup',
                log_directory=log_directory,
                email='joe@example.org',
            )
            runner = self.create_runner(directory)
            runner.is_mount_point = MagicMock(side_effect=lambda pathname: pathname != '/media/backup')
            runner.execute_logged = MagicMock()
            runner.execute_verbose = MagicMock()
            with self.assertRaises(MountPointInactiveError) as context:
                runner.run(profile)
            assert str(context.exception) == "Destination not mounted."
            assert not runner.execute_logged.called
            assert not runner.execute_verbose.called
            assert not runner.mail_sender.send.called
            assert not os.path.exists(log_directory)

    def test_source_not_mounted(self):
        """Test that ``mountpoint`` is used to check mount points."""
        with TemporaryDirectory() as directory:
            profile = Profile(
                name='home',
                source='/home/',
                destination='/media/backup/home/',
                source_mount='/home',
            )
            runner = self.create_runner(directory)
            runner.execute_verbose = MagicMock()
            with MockedProgram('mountpoint', returncode=1):
                with self.assertRaises(MountPointInactiveError) as context:
                    runner.run(profile)
            assert str(context.exception) == "Source not mounted."
            assert not runner.execute_verbose.called

    def test_logged_backup(self):
        """Test a backup that logs the output of rsync and sends a report."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            log_directory = os.path.join(directory, 'logs')
            profile = Profile(
                name='home',
                source=source + '/',
                destination=os.path.join(directory, 'destination') + '/',
                log_directory=log_directory,
                email='joe@example.org',
            )
            runner = self.create_runner(directory, mounts=['/', os.path.join(source, 'data')])
            report = {}

            def fake_send(subject, recipient, body, attachment=None):
                report.update(subject=subject, recipient=recipient, body=body, attachment=attachment)
                with gzip.open(attachment, 'rt') as handle:
                    report['log'] = handle.read()
                return True

            runner.mail_sender.send.side_effect = fake_send
            arguments_file = os.path.join(directory, 'arguments.txt')
            excludes_copy = os.path.join(directory, 'excludes-copy.txt')
            with MockedProgram('rsync', script='\n'.join([
                'echo "$@" > %s' % arguments_file,
                SAVE_EXCLUDE_LIST % excludes_copy,
                'echo sending incremental file list',
                'echo some warning >&2',
            ])):
                run = runner.run(profile)
            # Check the log file.
            log_files = glob.glob(os.path.join(log_directory, 'home-*.log'))
            assert log_files == [run.log_file]
            assert len(os.path.basename(run.log_file)) == len('home-YYYYMMDDHHMMSS.log')
            with open(run.log_file) as handle:
                assert "sending incremental file list" in handle.read()
            # Check the rsync command line and exclude list.
            with open(arguments_file) as handle:
                arguments = handle.read().split()
            assert arguments[:2] == ['-azv', '--delete']
            assert arguments[-2:] == [profile.source, profile.destination]
            assert read_lines(excludes_copy) == ['/data/']
            # Check the report.
            assert report['recipient'] == 'joe@example.org'
            assert report['subject'].startswith("Backup for %s on " % socket.gethostname())
            assert "some warning" in report['body']
            assert "Attached log: %s" % os.path.basename(run.log_file) in report['body']
            assert "sending incremental file list" in report['log']
            assert run.notified
            # The temporary files are cleaned up.
            assert not os.path.exists(report['attachment'])
            assert not os.path.exists(run.mail_file)
            assert not run.error_occurred

    def test_verbose_backup(self):
        """Test a backup without a log directory."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            profile = Profile(
                name='home',
                source=source + '/',
                destination=os.path.join(directory, 'destination') + '/',
                email='joe@example.org',
            )
            runner = self.create_runner(directory, dry_run=True)
            arguments_file = os.path.join(directory, 'arguments.txt')
            with MockedProgram('rsync', script='echo "$@" > %s' % arguments_file):
                run = runner.run(profile)
            assert run.log_file is None
            assert run.compressed_log is None
            assert run.returncode == 0
            with open(arguments_file) as handle:
                assert '--dry-run' in handle.read().split()
            # A report is sent, but without an attachment.
            assert runner.mail_sender.send.call_count == 1
            assert runner.mail_sender.send.call_args[1]['attachment'] is None

    def test_backup_failure(self):
        """Test that a failing rsync still results in a report."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            log_directory = os.path.join(directory, 'logs')
            profile = Profile(
                name='home',
                source=source + '/',
                destination=os.path.join(directory, 'destination') + '/',
                log_directory=log_directory,
                email='joe@example.org',
                email_on_error=True,
            )
            runner = self.create_runner(directory)
            with MockedProgram('rsync', returncode=23):
                with self.assertRaises(BackupFailedError) as context:
                    runner.run(profile)
            run = context.exception.run
            assert run.returncode == 23
            assert run.error_occurred
            assert os.path.isfile(run.log_file)
            assert runner.mail_sender.send.call_count == 1
            assert runner.mail_sender.send.call_args[1]['attachment'] == run.compressed_log
            assert not os.path.exists(run.compressed_log)

    def test_email_on_error_only(self):
        """Test that ``email_on_error`` suppresses reports of successful backups."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            profile = Profile(
                name='home',
                source=source + '/',
                destination=os.path.join(directory, 'destination') + '/',
                email='joe@example.org',
                email_on_error=True,
            )
            runner = self.create_runner(directory)
            with MockedProgram('rsync', returncode=0):
                runner.run(profile)
            assert not runner.mail_sender.send.called

    def test_no_email(self):
        """Test that no report is sent when the profile doesn't define an e-mail address."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            profile = Profile(
                name='home',
                source=source + '/',
                destination=os.path.join(directory, 'destination') + '/',
            )
            runner = self.create_runner(directory)
            with MockedProgram('rsync', returncode=1):
                self.assertRaises(BackupFailedError, runner.run, profile)
            assert not runner.mail_sender.send.called

    def test_mime_mail_sender(self):
        """Test sending e-mail using ``mimemail``."""
        with TemporaryDirectory() as directory:
            arguments_file = os.path.join(directory, 'arguments.txt')
            body_file = os.path.join(directory, 'body.txt')
            with MockedProgram('mimemail', script='echo "$@" > %s; cat > %s' % (arguments_file, body_file)):
                sender = MimeMailSender()
                assert sender.send("Subject", 'joe@example.org', "Attached log: x.log\n", attachment='/tmp/x.log.gz')
            with open(arguments_file) as handle:
                assert handle.read().split() == ['-s', 'Subject', '-t', 'joe@example.org', '/tmp/x.log.gz']
            with open(body_file) as handle:
                assert handle.read() == "Attached log: x.log\n"

    def test_plain_mail_sender(self):
        """Test sending e-mail using ``mail`` (without attachments)."""
        with TemporaryDirectory() as directory:
            arguments_file = os.path.join(directory, 'arguments.txt')
            with MockedProgram('mail', script='echo "$@" > %s; cat > /dev/null' % arguments_file):
                sender = PlainMailSender()
                assert sender.send("Subject", 'joe@example.org', "Body\n", attachment='/tmp/x.log.gz')
            with open(arguments_file) as handle:
                assert handle.read().split() == ['-s', 'Subject', 'joe@example.org']
            # Failing mail programs don't raise exceptions.
            with MockedProgram('mail', returncode=1):
                assert not PlainMailSender().send("Subject", 'joe@example.org', "Body\n")
            assert not NullMailSender().send("Subject", 'joe@example.org', "Body\n")

    def test_find_mail_sender(self):
        """Test the detection of the available mail program."""
        def fake_context(*programs):
            context = MagicMock()
            context.find_program.side_effect = lambda name: ['/usr/bin/%s' % name] if name in programs else []
            return context
        assert isinstance(find_mail_sender(fake_context('mimemail', 'mail')), MimeMailSender)
        assert isinstance(find_mail_sender(fake_context('mail')), PlainMailSender)
        assert isinstance(find_mail_sender(fake_context()), NullMailSender)

    def test_cli_backup(self):
        """Test that a failing profile doesn't prevent other profiles from being backed up."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            config_directory = os.path.join(directory, 'config')
            store = ProfileStore(config_directory=config_directory)
            self.write_profile(store, 'a-unmounted', [
                'source=%s/' % source,
                'destination=%s/' % os.path.join(directory, 'unmounted'),
                'destination_mount=%s' % os.path.join(directory, 'unmounted'),
            ])
            self.write_profile(store, 'b-working', [
                'source=%s/' % source,
                'destination=%s/' % os.path.join(directory, 'destination'),
                'log_directory=%s' % os.path.join(directory, 'logs'),
            ])
            with MockedProgram('mountpoint', returncode=1):
                with MockedProgram('rsync', returncode=0):
                    exit_code, output = run_cli(main, '--config=%s' % config_directory, merged=True)
            assert exit_code != 0
            assert len(glob.glob(os.path.join(directory, 'logs', 'b-working-*.log'))) == 1
            # Selecting the working profile succeeds.
            with MockedProgram('rsync', returncode=0):
                exit_code, output = run_cli(main, '--config=%s' % config_directory, '--profile=b-*', merged=True)
            assert exit_code == 0

    def test_cli_backup_failures(self):
        """Test that rsync failures and unusual exclude lists don't stop the batch."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            config_directory = os.path.join(directory, 'config')
            log_directory = os.path.join(directory, 'logs')
            store = ProfileStore(config_directory=config_directory)
            for name in 'a-failing', 'b-latin1', 'c-working':
                self.write_profile(store, name, [
                    'source=%s/' % source,
                    'destination=%s/' % os.path.join(directory, name),
                    'log_directory=%s' % log_directory,
                ])
            os.makedirs(store.exclude_directory)
            with open(store.exclude_file('b-latin1'), 'wb') as handle:
                handle.write(b'/caf\xe9/\n')
            script = 'case "$*" in *a-failing*) exit 23;; esac'
            with MockedProgram('rsync', returncode=0, script=script):
                exit_code, output = run_cli(main, '--config=%s' % config_directory, merged=True)
            assert exit_code != 0
            for name in 'a-failing', 'b-latin1', 'c-working':
                assert len(glob.glob(os.path.join(log_directory, '%s-*.log' % name))) == 1

    def test_unexpected_backup_error(self):
        """Test that an unexpected exception is reported as a failed profile."""
        with TemporaryDirectory() as directory:
            store = ProfileStore(config_directory=directory)
            for name in 'a', 'b':
                self.write_profile(store, name, ['source=/home/', 'destination=/media/backup/'])
            runner = MagicMock()
            runner.run.side_effect = [RuntimeError("Unexpected failure!"), MagicMock()]
            assert backup_profiles(store, runner) is False
            assert runner.run.call_count == 2

    def test_scratch_directory_cleanup(self):
        """Test that temporary files are removed when a backup raises an unexpected error."""
        with TemporaryDirectory() as directory:
            source = self.create_source(directory)
            profile = Profile(
                name='home',
                source=source + '/',
                destination=os.path.join(directory, 'destination') + '/',
                log_directory=os.path.join(directory, 'logs'),
            )
            runner = self.create_runner(directory)
            scratch_directories = []

            def fail(run, rsync_command, scratch_directory):
                scratch_directories.append(scratch_directory)
                raise RuntimeError("Unexpected failure!")

            runner.execute_logged = MagicMock(side_effect=fail)
            self.assertRaises(RuntimeError, runner.run, profile)
            assert len(scratch_directories) == 1
            assert not os.path.exists(scratch_directories[0])
            assert not hasattr(BackupRun, '__enter__')

    def test_environment_variables(self):
        """Test the $INTERACTIVE and $VERBOSE environment variables."""
        with patch.dict(os.environ, INTERACTIVE='garbage'):
            exit_code, output = run_cli(main, '--list', merged=True)
        assert exit_code != 0
        assert "Error" in output
        with TemporaryDirectory() as directory:
            with patch.dict(os.environ, VERBOSE='yes'):
                with patch('coloredlogs.increase_verbosity') as increase_verbosity:
                    exit_code, output = run_cli(main, '--config=%s' % directory, '--list')
            assert exit_code == 0
            assert increase_verbosity.called

    def test_cli_invalid_profile(self):
        """Test that a profile that can't be loaded aborts the program."""
        with TemporaryDirectory() as directory:
            config_directory = os.path.join(directory, 'config')
            store = ProfileStore(config_directory=config_directory)
            self.write_profile(store, 'broken', ['source=/home/'])
            exit_code, output = run_cli(main, '--config=%s' % config_directory, merged=True)
            assert exit_code != 0
            # A setting with an invalid value is a load failure as well.
            store.delete('broken')
            self.write_profile(store, 'maybe', [
                'source=/home/',
                'destination=%s/' % os.path.join(directory, 'destination'),
                'email_on_error=maybe',
                'log_directory=%s' % os.path.join(directory, 'logs'),
            ])
            exit_code, output = run_cli(main, '--config=%s' % config_directory, merged=True)
            assert exit_code != 0
            assert not os.path.exists(os.path.join(directory, 'logs'))
            # No profiles at all is also an error.
            exit_code, output = run_cli(main, '--config=%s' % os.path.join(directory, 'empty'), merged=True)
            assert exit_code != 0

    def create_runner(self, directory, mounts=('/',), **options):
        """Create a :class:`.BackupRunner` with a fake mount table and mail sender."""
        mounts_file = os.path.join(directory, 'mounts')
        with open(mounts_file, 'w') as handle:
            for mount_point in mounts:
                handle.write('/dev/fake %s ext4 rw,relatime 0 0\n' % mount_point)
        options.setdefault('config_directory', os.path.join(directory, 'config'))
        options.setdefault('mail_sender', MagicMock())
        return BackupRunner(mounts_file=mounts_file, **options)

    def create_source(self, directory):
        """Create a source directory for testing backups."""
        source = os.path.join(directory, 'source')
        os.makedirs(os.path.join(source, 'data'))
        with open(os.path.join(source, 'notes.txt'), 'w') as handle:
            handle.write("This file should be included in the backup.\n")
        return source

    def write_profile(self, store, name, lines):
        """Write a profile to the given profile store."""
        if not os.path.isdir(store.profile_directory):
            os.makedirs(store.profile_directory)
        with open(store.profile_file(name), 'w') as handle:
            handle.write('\n'.join(lines) + '\n')


def read_lines(filename):
    """Get the nonempty lines in a text file."""
    with open(filename) as handle:
        return [line for line in handle.read().splitlines() if line]
