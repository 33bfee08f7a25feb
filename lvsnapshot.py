# Creates, mounts, unmounts and removes the LVM snapshot of a logical volume.
#
# The snapshot of volume 'data' in volume group 'VolGroup01' is called
# 'data_snapshot' and lives at /dev/VolGroup01/data_snapshot. It gets mounted
# read-only at '{temp_mount_path}/data' for as long as the archive is written.



import re
import lvmount
from runcmdutils import run_cmd, check_cmd, write_log, LogLevel



# Sizes like '1G', '512M' or '1.5g', interpreted the way lvcreate does,
# i.e. in powers of two.
_sizeRe = re.compile (r'^(?P<size>[0-9]+(\.[0-9]+)?)\s*(?P<unit>[bBsSkKmMgGtTpPeE]?)$')

_sizeUnits = {'': 2**20, 'B': 1, 'S': 512, 'K': 2**10, 'M': 2**20, 'G': 2**30, 'T': 2**40, 'P': 2**50, 'E': 2**60}



# Raised when a snapshot cannot be created because a precondition is not met.
class SnapshotError(Exception):
    pass



# Converts a size string as passed to 'lvcreate -L' into a number of bytes.
# A number without a unit means megabytes, just like for lvcreate.
def parse_size (size):
    m = _sizeRe.match (size.strip())
    if (not m):
        raise ValueError ('Invalid size \'{0}\''.format (size))
    return int (float (m.group ('size')) * _sizeUnits[m.group ('unit').upper()])



# Returns the names of all logical volumes in the volume group. If the
# volume group cannot be queried, a CommandError is raised in strict mode,
# otherwise None is returned.
def list_logical_volumes (config, *, strict = True):
    args = ['lvs', '--noheadings', '-o', 'lv_name', config.volume_group]
    if (strict):
        res = check_cmd (args)
    else:
        res = run_cmd (args)
        if (res.returncode != 0):
            write_log ('Listing the logical volumes of \'{0}\' failed with exit code {1}'.format (config.volume_group, res.returncode), level = LogLevel.WARNING)
            return None
    return [line.strip() for line in res.stdout.splitlines() if line.strip()]



def snapshot_exists (ctx):
    return ctx.snapshot_name in list_logical_volumes (ctx.config)



# Returns the free space of the volume group in bytes.
def volume_group_free_bytes (config):
    res = check_cmd (['vgs', '--noheadings', '--nosuffix', '--units', 'b', '-o', 'vg_free', config.volume_group])
    return int (res.stdout.strip().split()[0])



# Checks the preconditions of a snapshot and creates it.
def create_snapshot (ctx):
    if (snapshot_exists (ctx)):
        raise SnapshotError ('The snapshot \'{0}\' already exists'.format (ctx.snapshot_device))

    required = parse_size (ctx.config.snapshot_size)
    free = volume_group_free_bytes (ctx.config)
    write_log ('Volume group \'{0}\' has {1} bytes free, the snapshot needs {2}'.format (ctx.config.volume_group, free, required))
    if (free < required):
        raise SnapshotError ('Not enough free space in volume group \'{0}\' for a snapshot of {1} ({2} bytes free)'.format (ctx.config.volume_group, ctx.config.snapshot_size, free))

    write_log ('Creating snapshot \'{0}\' of \'{1}\''.format (ctx.snapshot_device, ctx.volume_device))
    check_cmd (['lvcreate', '-L{0}'.format (ctx.config.snapshot_size), '-s', '-n', ctx.snapshot_name, ctx.volume_device])



# Returns the mount options for the snapshot, read-only is always enforced.
def _mount_options (config):
    options = [o.strip() for o in config.snapshot_mount_options.split (',') if o.strip()]
    options = [o for o in options if o != 'rw']
    if ('ro' not in options):
        options.insert (0, 'ro')
    return ','.join (options)



def mount_snapshot (ctx):
    lvmount.mkdir (ctx.snapshot_mount)
    write_log ('Mounting snapshot \'{0}\' read-only at \'{1}\''.format (ctx.snapshot_device, ctx.snapshot_mount))
    lvmount.mount (ctx.snapshot_device, ctx.snapshot_mount, options = _mount_options (ctx.config))



# Creates the directory of this volume at the backup destination.
def ensure_destination (ctx):
    if (not lvmount.is_dir (ctx.destination)):
        write_log ('Creating backup directory \'{0}\''.format (ctx.destination))
        lvmount.mkdir (ctx.destination)



# Takes the snapshot of the volume and mounts it read-only. Afterwards the
# destination directory of the volume exists.
def create_and_mount (ctx):
    create_snapshot (ctx)
    mount_snapshot (ctx)
    ensure_destination (ctx)



def unmount_snapshot (ctx):
    if (lvmount.umount_if_mounted (ctx.snapshot_mount)):
        write_log ('Unmounted snapshot from \'{0}\''.format (ctx.snapshot_mount))
    if (lvmount.rmdir_if_exists (ctx.snapshot_mount)):
        write_log ('Removed snapshot mount point \'{0}\''.format (ctx.snapshot_mount), level = LogLevel.DEBUG)



def remove_snapshot (ctx):
    if (not snapshot_exists (ctx)):
        write_log ('There is no snapshot \'{0}\' to remove'.format (ctx.snapshot_name), level = LogLevel.DEBUG)
        return False
    write_log ('Removing snapshot \'{0}\''.format (ctx.snapshot_device))
    check_cmd (['lvremove', '-f', ctx.snapshot_device])
    return True



# Undoes create_and_mount(). Every step checks whether there is still
# something to do, so calling this more than once is harmless.
def unmount_and_remove (ctx):
    unmount_snapshot (ctx)
    remove_snapshot (ctx)
