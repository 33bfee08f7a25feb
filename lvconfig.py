# Loads the settings of the logical volume backup from an INI file.
# Nothing in here is meant to change between two runs: the NAS, the
# volume group and the mount prefixes are fixed when the backup is set up.



import configparser
import os



# The location of the configuration file if none is given on the
# command line.
default_config_file = '/etc/lvbackup.conf'

# The share types we know how to mount.
NAS_TYPE_CIFS = 'cifs'
NAS_TYPE_NFS = 'nfs'

weekdays = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']



class ConfigError(Exception):
    pass



# This class holds all settings of a backup run. The values assigned here
# are the defaults which are used if the configuration file does not set
# them.
class Config:
    # NAS hostname/ip address
    nas_host = 'host'
    # Either 'cifs' (mounted with credentials) or 'nfs' (reached through autofs)
    nas_type = NAS_TYPE_CIFS
    nas_user = 'username'
    nas_password = 'password'
    # The CIFS share, e.g. //host/backup/
    share_path = None
    # The root autofs path of the backup host, e.g. /net/host
    autofs_path = None
    # The path to the root backup directory if the NAS is reached via autofs
    backup_path = None

    # The volume group which contains the logical volumes to be backed up
    volume_group = 'VolGroup01'
    # The space reserved for the copy-on-write data of each snapshot
    snapshot_size = '1G'
    # Options for mounting the snapshot, 'ro' is always added. XFS volumes
    # need 'nouuid' here.
    snapshot_mount_options = 'ro'

    # The prefix path where logical volume snapshots will be mounted
    temp_mount_path = '/mnt/temporary_backup_mounts'
    # On this day a new full backup is started
    full_backup_day = 'Sunday'
    log_dir = '/var/log/backup'
    # Directories added to the PATH to find lvcreate and friends
    command_path = '/sbin:/usr/sbin'

    def __init__ (self, **kwargs):
        for key, value in kwargs.items():
            if (not hasattr (Config, key)):
                raise ConfigError ('Unknown configuration setting \'{0}\''.format (key))
            setattr (self, key, value)
        if (self.share_path is None):
            self.share_path = '//{0}/backup/'.format (self.nas_host)
        if (self.autofs_path is None):
            self.autofs_path = '/net/{0}'.format (self.nas_host)
        if (self.backup_path is None):
            self.backup_path = os.path.join (self.autofs_path, 'backup')
        self.validate()

    def validate (self):
        if (self.nas_type not in [NAS_TYPE_CIFS, NAS_TYPE_NFS]):
            raise ConfigError ('Unsupported NAS type \'{0}\', expected \'{1}\' or \'{2}\''.format (self.nas_type, NAS_TYPE_CIFS, NAS_TYPE_NFS))
        if (self.full_backup_day not in weekdays):
            raise ConfigError ('Invalid full backup day \'{0}\', expected one of {1}'.format (self.full_backup_day, ', '.join (weekdays)))
        if (not self.volume_group):
            raise ConfigError ('No volume group configured')
        if (not os.path.isabs (self.temp_mount_path)):
            raise ConfigError ('The temporary mount path \'{0}\' must be absolute'.format (self.temp_mount_path))

    def is_cifs (self):
        return self.nas_type == NAS_TYPE_CIFS

    # The device path of the volume group, e.g. /dev/VolGroup01
    def volume_group_path (self):
        return os.path.join ('/dev', self.volume_group)



# Maps the sections and keys of the configuration file to the
# attributes of the Config class.
_config_keys = {
    'nas': {'host': 'nas_host', 'type': 'nas_type', 'user': 'nas_user', 'password': 'nas_password', 'share_path': 'share_path', 'autofs_path': 'autofs_path', 'backup_path': 'backup_path'},
    'lvm': {'volume_group': 'volume_group', 'snapshot_size': 'snapshot_size', 'mount_options': 'snapshot_mount_options'},
    'backup': {'temp_mount_path': 'temp_mount_path', 'full_backup_day': 'full_backup_day', 'log_dir': 'log_dir', 'command_path': 'command_path'},
}



# Reads the configuration file. A missing file is not an error, all
# settings keep their defaults in that case.
def load_config (fileName = None):
    if (fileName is None):
        fileName = default_config_file
    parser = configparser.ConfigParser (interpolation = None)
    try:
        parser.read (fileName, encoding = 'utf-8')
    except configparser.Error as e:
        raise ConfigError ('Cannot parse configuration file \'{0}\': {1}'.format (fileName, e)) from e

    settings = {}
    for section in parser.sections():
        if (section not in _config_keys):
            raise ConfigError ('Unknown section [{0}] in \'{1}\''.format (section, fileName))
        for key, value in parser.items (section):
            if (key not in _config_keys[section]):
                raise ConfigError ('Unknown key \'{0}\' in section [{1}] of \'{2}\''.format (key, section, fileName))
            settings[_config_keys[section][key]] = value.strip()
    if ('nas_type' in settings):
        settings['nas_type'] = settings['nas_type'].lower()
    if ('full_backup_day' in settings):
        settings['full_backup_day'] = settings['full_backup_day'].capitalize()
    return Config (**settings)
