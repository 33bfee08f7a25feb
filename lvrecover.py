# Brings the system back into the state it was in before a backup was
# started. This is used after a backup failed or got interrupted, and for
# cleaning up after a crashed run of which nothing is known any more.
#
# Nothing is taken for granted here: every step first looks at the mount
# table and the list of logical volumes to find out whether there is
# anything left to undo. A failing step is logged and the next one is tried
# anyway. A partly written archive at the destination is left alone.



import lvmount
import lvsnapshot
from runcmdutils import check_cmd, write_log, LogLevel



# Runs a single cleanup step and logs instead of raising if it fails.
# Returns True if the step succeeded.
def _try_step (description, fn, *args):
    try:
        fn (*args)
        return True
    except Exception as e:
        write_log ('Recovery step \'{0}\' failed: {1}'.format (description, e), level = LogLevel.WARNING)
        return False



def _unmount_snapshot (ctx, done):
    if (lvmount.is_mounted (ctx.snapshot_mount)):
        check_cmd (['umount', ctx.snapshot_mount])
        done.append ('unmounted {0}'.format (ctx.snapshot_mount))



def _remove_snapshot_mount_point (ctx, done):
    if (lvmount.rmdir_if_exists (ctx.snapshot_mount)):
        done.append ('removed {0}'.format (ctx.snapshot_mount))



def _unmount_share (ctx, done):
    if (lvmount.is_mounted (ctx.share_mount)):
        check_cmd (['umount', ctx.share_mount])
        done.append ('unmounted {0}'.format (ctx.share_mount))



def _remove_share_mount_point (ctx, done):
    if (lvmount.rmdir_if_exists (ctx.share_mount)):
        done.append ('removed {0}'.format (ctx.share_mount))



def _remove_temp_root (ctx, done):
    if (lvmount.remove_empty_dir (ctx.config.temp_mount_path)):
        done.append ('removed {0}'.format (ctx.config.temp_mount_path))



# If lvs cannot tell whether the snapshot is there, it is removed anyway.
def _remove_snapshot (ctx, done):
    volumes = lvsnapshot.list_logical_volumes (ctx.config, strict = False)
    if (volumes is None or ctx.snapshot_name in volumes):
        check_cmd (['lvremove', '-f', ctx.snapshot_device])
        done.append ('removed snapshot {0}'.format (ctx.snapshot_device))



# Undoes whatever a backup of the volume in ctx has left behind. Never
# raises. Returns the list of actions that were taken.
def recover (ctx):
    write_log ('Restoring the system to its original state after the backup of \'{0}\''.format (ctx.volume), level = LogLevel.WARNING)
    done = []
    steps = [('unmount snapshot', _unmount_snapshot), ('remove snapshot mount point', _remove_snapshot_mount_point)]
    if (ctx.config.is_cifs()):
        steps.extend ([('unmount share', _unmount_share), ('remove share mount point', _remove_share_mount_point), ('remove temporary mount root', _remove_temp_root)])
    steps.append (('remove snapshot', _remove_snapshot))

    failed = 0
    for description, step in steps:
        if (not _try_step (description, step, ctx, done)):
            failed += 1

    if (done):
        write_log ('Recovery of \'{0}\' did: {1}'.format (ctx.volume, '; '.join (done)))
    else:
        write_log ('Recovery of \'{0}\' found nothing to clean up'.format (ctx.volume))
    if (failed):
        write_log ('{0} recovery step(s) for \'{1}\' failed, manual cleanup may be needed'.format (failed, ctx.volume), level = LogLevel.ERROR)
    return done
