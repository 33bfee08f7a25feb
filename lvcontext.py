# The run context carries everything a single volume backup needs to know:
# the volume, the moment the run was started and all paths derived from
# these. Each component receives it as a parameter, there are no shared
# module variables holding the state of a run.



import datetime
from enum import Enum
import lvconfig
import os
from runcmdutils import write_log, LogLevel



# This is the timestamp format string used in the names of archive files.
timestampFormatString = '%Y-%m-%d.%H%M%S'

# The format of the date in the name of the log files.
logDateFormatString = '%Y-%m-%d'

# The name of the state file tar uses to track incremental changes.
snar_file_name = 'incremental.snar'

# The sub-directory of the destination where the previous generation of
# archives is kept while a new full backup is written.
staging_dir_name = 'old'



# The states a backup run passes through. A failure in any of the forward
# states leads to RECOVERING and from there to ABORTED.
class RunState(Enum):
    START = 0
    SHARE_MOUNTED = 1
    SNAPSHOT_MOUNTED = 2
    ARCHIVED = 3
    SNAPSHOT_REMOVED = 4
    DONE = 5
    RECOVERING = 6
    ABORTED = 7



# Decided once per run before the archive is written.
class BackupMode(Enum):
    FULL = 'full'
    INCREMENTAL = 'incremental'



class RunContext:

    def __init__ (self, config, volume, started = None):
        if (started is None):
            started = datetime.datetime.now()
        self.config = config
        self.volume = volume
        self.started = started
        self.timestamp = started.strftime (timestampFormatString)
        self.weekday = lvconfig.weekdays[started.weekday()]
        self.state = RunState.START
        self.mode = None
        # The last state reached before a failure.
        self.failed_state = None

    def __repr__ (self):
        return 'RunContext(volume={0!r}, timestamp={1!r}, state={2})'.format (self.volume, self.timestamp, self.state.name)

    @property
    def volume_device (self):
        return os.path.join (self.config.volume_group_path(), self.volume)

    @property
    def snapshot_name (self):
        return '{0}_snapshot'.format (self.volume)

    @property
    def snapshot_device (self):
        return os.path.join (self.config.volume_group_path(), self.snapshot_name)

    # Where the snapshot gets mounted read-only.
    @property
    def snapshot_mount (self):
        return os.path.join (self.config.temp_mount_path, self.volume)

    # The local mount point of a CIFS share. Every volume gets its own one,
    # so that concurrent jobs do not unmount the share under each other.
    # '@' is not allowed in logical volume names and therefore never
    # clashes with a snapshot mount point.
    @property
    def share_mount (self):
        return os.path.join (self.config.temp_mount_path, '{0}@{1}'.format (self.config.nas_host, self.volume))

    # The root of the backup destination, either the mounted CIFS share
    # or the directory reached through autofs.
    @property
    def backup_root (self):
        if (self.config.is_cifs()):
            return self.share_mount
        return self.config.backup_path

    @property
    def destination (self):
        return os.path.join (self.backup_root, self.volume)

    @property
    def archive_file (self):
        return os.path.join (self.destination, 'incremental_{0}.tar'.format (self.timestamp))

    @property
    def snar_file (self):
        return os.path.join (self.destination, snar_file_name)

    @property
    def staging_dir (self):
        return os.path.join (self.destination, staging_dir_name)

    @property
    def log_file (self):
        return os.path.join (self.config.log_dir, '{0}_volume_backup_{1}.log'.format (self.volume, self.started.strftime (logDateFormatString)))

    def transition (self, state):
        write_log ('Backup of volume \'{0}\' moves from {1} to {2}'.format (self.volume, self.state.name, state.name), level = LogLevel.DEBUG)
        self.state = state
