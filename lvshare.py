# Makes the backup destination available on the local machine. A CIFS share
# is mounted with the configured credentials, an NFS export is reached
# through autofs and only needs to be touched to get mounted.



import lvmount
from runcmdutils import check_cmd, write_log, LogLevel



# The password is handed to mount.cifs through its PASSWD environment
# variable, so it does not end up in the log.
def _mount_cifs_share (ctx):
    config = ctx.config
    lvmount.mkdir (ctx.share_mount)
    options = 'user={0}'.format (config.nas_user)
    write_log ('Mounting share \'{0}\' at \'{1}\''.format (config.share_path, ctx.share_mount))
    lvmount.mount (config.share_path, ctx.share_mount, fs_type = 'cifs', options = options, extra_env = {'PASSWD': config.nas_password})



# Listing the autofs directory of the host makes autofs mount it.
def _wake_autofs (ctx):
    write_log ('Waking up autofs at \'{0}\''.format (ctx.config.autofs_path))
    check_cmd (['ls', ctx.config.autofs_path])



# Makes sure the backup destination is accessible. Raises if the share
# cannot be mounted.
def mount_share (ctx):
    if (ctx.config.is_cifs()):
        _mount_cifs_share (ctx)
    else:
        _wake_autofs (ctx)



# Unmounts a CIFS share and removes its local mount point. Nothing needs to
# be done for autofs, it unmounts idle filesystems by itself. This can be
# called repeatedly, steps that have already been done are skipped.
def unmount_share (ctx):
    if (not ctx.config.is_cifs()):
        return
    if (lvmount.umount_if_mounted (ctx.share_mount)):
        write_log ('Unmounted share from \'{0}\''.format (ctx.share_mount))
    if (lvmount.rmdir_if_exists (ctx.share_mount)):
        write_log ('Removed share mount point \'{0}\''.format (ctx.share_mount), level = LogLevel.DEBUG)
