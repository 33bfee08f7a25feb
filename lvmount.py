# Small wrappers around mount(8), umount(8) and friends which are used for
# the snapshot as well as for the backup share. The probing functions only
# look at the system and report what they find.



import plumbum as pb
from runcmdutils import run_cmd, check_cmd, write_log, LogLevel



# Returns True if the path is currently a mount point.
def is_mounted (path):
    res = run_cmd (['mountpoint', '-q', path])
    return res.returncode == 0



# Creates a directory at the given location including all parents.
def mkdir (path):
    pb.local.path (path).mkdir (parents = True, exist_ok = True)



def is_dir (path):
    return pb.local.path (path).is_dir()



# Removes an empty directory. Mount points are only ever removed this way,
# which makes sure we never delete anything on a still mounted filesystem.
def rmdir (path):
    check_cmd (['rmdir', path])



# Removes the directory if it exists. Returns True if something was removed.
def rmdir_if_exists (path):
    if (not pb.local.path (path).exists()):
        return False
    rmdir (path)
    return True



def mount (source, target, *, fs_type = None, options = None, extra_env = None):
    args = ['mount']
    if (fs_type):
        args.extend (['-t', fs_type])
    if (options):
        args.extend (['-o', options])
    args.extend ([source, target])
    check_cmd (args, extra_env = extra_env)



# Unmounts the path if it is mounted. Returns True if it was unmounted.
def umount_if_mounted (path):
    if (not is_mounted (path)):
        write_log ('\'{0}\' is not mounted'.format (path), level = LogLevel.DEBUG)
        return False
    check_cmd (['umount', path])
    return True



# Removes the directory if it exists and is empty. The temporary mount root
# is shared by all volume jobs, so another job may still be using it; that
# is not an error. Returns True if the directory was removed.
def remove_empty_dir (path):
    p = pb.local.path (path)
    if (not p.is_dir() or p.list()):
        return False
    res = run_cmd (['rmdir', path])
    if (res.returncode != 0):
        write_log ('Directory \'{0}\' was not removed, it is in use'.format (path), level = LogLevel.DEBUG)
        return False
    return True
