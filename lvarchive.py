# Writes the contents of a mounted snapshot into a tar archive at the backup
# destination.
#
# tar keeps track of what it has already archived in the file
# 'incremental.snar' next to the archives. A full backup starts a new chain:
# the previous archives and the state file are moved into the sub-directory
# 'old', a fresh archive and state file are written, and only then 'old' is
# deleted. An incremental backup adds one more archive to the chain and
# updates the state file in place.



import plumbum as pb
from lvcontext import BackupMode
from runcmdutils import check_cmd, write_log, LogLevel



# Returns the archives that are currently present at the destination.
def list_archives (ctx):
    destination = pb.local.path (ctx.destination)
    if (not destination.is_dir()):
        return []
    return sorted (destination.glob ('*.tar'), key = str)



# Decides whether this run writes a full or an incremental backup. A full
# backup is done on the configured day of the week, and whenever there is
# no chain yet to continue.
def decide_backup_mode (ctx):
    if (ctx.weekday == ctx.config.full_backup_day):
        write_log ('Today is {0}, doing a full backup of \'{1}\''.format (ctx.weekday, ctx.volume))
        return BackupMode.FULL
    if (not list_archives (ctx)):
        write_log ('No previous backup of \'{0}\' found, doing a full backup'.format (ctx.volume))
        return BackupMode.FULL
    if (not pb.local.path (ctx.snar_file).exists()):
        write_log ('The incremental state file \'{0}\' is missing, doing a full backup'.format (ctx.snar_file), level = LogLevel.WARNING)
        return BackupMode.FULL
    write_log ('Performing incremental backup of \'{0}\''.format (ctx.volume))
    return BackupMode.INCREMENTAL



# Moves the archives and the state file of the previous chain into the
# staging directory. Returns the list of moved files.
def stage_previous_generation (ctx):
    destination = pb.local.path (ctx.destination)
    staging = pb.local.path (ctx.staging_dir)
    staging.mkdir (parents = True, exist_ok = True)
    moved = []
    for f in destination.glob ('*.tar') + destination.glob ('*.snar'):
        write_log ('Moving \'{0}\' to \'{1}\''.format (f, staging), level = LogLevel.DEBUG)
        f.move (staging / f.name)
        moved.append (f.name)
    write_log ('Staged {0} file(s) of the previous backup of \'{1}\''.format (len (moved), ctx.volume))
    return moved



def discard_previous_generation (ctx):
    staging = pb.local.path (ctx.staging_dir)
    if (staging.exists()):
        write_log ('Removing the previous backup generation in \'{0}\''.format (staging))
        staging.delete()



# Runs tar on the mounted snapshot. tar is started inside the mount point,
# so the archive holds paths relative to the root of the volume.
def create_tar_archive (ctx):
    args = ['tar', '--create',
            '--xattrs',
            '--preserve-permissions',
            '--file={0}'.format (ctx.archive_file),
            '--listed-incremental={0}'.format (ctx.snar_file),
            '--directory={0}'.format (ctx.snapshot_mount),
            '.']
    check_cmd (args)



# Writes the archive of the mounted snapshot using the given mode.
def archive (ctx, mode):
    write_log ('Writing {0} backup of \'{1}\' to \'{2}\''.format (mode.value, ctx.volume, ctx.archive_file))
    if (mode == BackupMode.FULL):
        stage_previous_generation (ctx)
        create_tar_archive (ctx)
        discard_previous_generation (ctx)
    else:
        create_tar_archive (ctx)
    write_log ('Backup file successfully created for volume \'{0}\''.format (ctx.volume))
