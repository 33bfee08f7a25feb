#!/usr/bin/python3

# Logical volume backup
#
# Backs up logical volumes to an NFS share or a Windows (CIFS) share. Each
# volume is snapshotted, the snapshot is mounted read-only and its contents
# are written into a tar archive on the share. Afterwards the snapshot and
# all mounts are removed again.
#
# To run it type: lvbackup lv1 lv2 lv3
# where lv1, lv2 and lv3 are logical volumes of the configured volume group,
# e.g. /dev/VolGroup01/LogVol00 or /dev/VolGroup01/NFSHome.
#
# Requirements:
# 1. Free space in the volume group of the size of one snapshot (1G by
#    default) for every volume that is backed up at the same time.
# 2. A share with free space equaling the used space of the logical volumes
#    to be backed up.



import argparse
import contextlib
import datetime
import getpass
import multiprocessing
import os
import signal
import sys
import traceback
import lvarchive
import lvconfig
from lvcontext import RunContext, RunState
import lvmount
import lvrecover
import lvshare
import lvsnapshot
import runcmdutils
from runcmdutils import write_log, LogLevel



# This is the version of the script.
script_version = '1.0.0'

# The signals that make a running backup give up and clean up.
_trapped_signals = [signal.SIGINT, signal.SIGTERM]



# Raised inside a volume job when it receives one of the trapped signals.
class BackupInterrupted(Exception):

    def __init__ (self, signum):
        self.signum = signum
        super().__init__ ('Backup interrupted by signal {0}'.format (signal.Signals (signum).name))



def init_arg_parser():
    parser = argparse.ArgumentParser (prog = 'lvbackup', description = 'Backup of logical volumes through LVM snapshots.')
    parser.add_argument ('volumes', nargs = '+', metavar = 'VOLUME', help = 'Name of a logical volume in the configured volume group. Several volumes are backed up at the same time.')
    parser.add_argument ('--config', '-c', dest = 'config_file', required = False, default = lvconfig.default_config_file, metavar = 'FILENAME', help = 'Specifies the configuration file (default: %(default)s).')
    parser.add_argument ('--log-dir', '-l', dest = 'log_dir', required = False, default = None, metavar = 'PATH', help = 'Overrides the directory the per volume log files are written to.')
    parser.add_argument ('--recover', dest = 'recover', required = False, action = 'store_const', const = True, help = 'Only clean up snapshots and mounts left behind by an aborted run for the given volumes.')
    parser.set_defaults (recover = False)
    parser.add_argument ('--quiet', dest = 'silent_mode', required = False, action = 'store_const', const = True, help = 'Suppresses all console output of this script.')
    parser.set_defaults (silent_mode = False)
    parser.add_argument ('--verbose', '-v', dest = 'verbose', required = False, action = 'store_const', const = True, help = 'Also log debug messages.')
    parser.set_defaults (verbose = False)
    parser.add_argument ('--version', action = 'version', version = '%(prog)s {0}'.format (script_version))
    return parser



def parse_args (*args):
    parser = init_arg_parser()
    return parser.parse_args (*args)



def get_user_info():
    user_id = os.getuid()
    user_name = getpass.getuser()
    return '{0} ({1})'.format (user_name, user_id)



# Loads the configuration and applies the command line options to it and
# to the logger. Returns the configuration.
def init_env (args):
    config = lvconfig.load_config (args.config_file)
    if (args.log_dir):
        config.log_dir = args.log_dir
    # If '--quiet' is set as a script parameter, we remove the stream-handler
    # from the logger.
    if (args.silent_mode):
        runcmdutils.remove_console_log_handler()
    if (args.verbose):
        runcmdutils.set_log_level (LogLevel.DEBUG)
    runcmdutils.add_to_env_path (config.command_path)
    return config



# Takes one volume from START to ARCHIVED. Every resource is registered for
# release as soon as we start acquiring it; the releases run in reverse
# order when the block is left, which is the normal teardown as well as the
# first rollback attempt if anything goes wrong.
def backup_volume (ctx):
    with contextlib.ExitStack() as releases:
        releases.callback (lvshare.unmount_share, ctx)
        lvshare.mount_share (ctx)
        ctx.transition (RunState.SHARE_MOUNTED)

        releases.callback (lvsnapshot.unmount_and_remove, ctx)
        lvsnapshot.create_and_mount (ctx)
        ctx.transition (RunState.SNAPSHOT_MOUNTED)

        ctx.mode = lvarchive.decide_backup_mode (ctx)
        lvarchive.archive (ctx, ctx.mode)
        ctx.transition (RunState.ARCHIVED)

    ctx.transition (RunState.SNAPSHOT_REMOVED)
    lvmount.remove_empty_dir (ctx.config.temp_mount_path)



def _raise_interrupted (signum, frame):
    # The first signal is enough, cleaning up must not be interrupted again.
    _ignore_signals()
    raise BackupInterrupted (signum)



def _ignore_signals():
    for s in _trapped_signals:
        signal.signal (s, signal.SIG_IGN)



# Installs the handlers that turn the trapped signals into a
# BackupInterrupted exception. Returns the previous handlers.
def arm_recovery():
    return {s: signal.signal (s, _raise_interrupted) for s in _trapped_signals}



def disarm_recovery (previous):
    for s, handler in previous.items():
        signal.signal (s, handler)



# Runs the backup of a single volume. If anything goes wrong, or a trapped
# signal arrives, the system is recovered and the run ends. Returns True if
# the backup succeeded.
def run_backup (ctx):
    write_log ('Starting backup of volume \'{0}\' ({1})'.format (ctx.volume, ctx.volume_device))
    previous = arm_recovery()
    try:
        backup_volume (ctx)
        disarm_recovery (previous)
    except Exception as e:
        _ignore_signals()
        ctx.failed_state = ctx.state
        ctx.transition (RunState.RECOVERING)
        write_log ('The backup of volume \'{0}\' failed after state {1}: {2}'.format (ctx.volume, ctx.failed_state.name, e), level = LogLevel.ERROR)
        write_log ('The traceback for this is {0}'.format (traceback.format_exc()), level = LogLevel.DEBUG)
        lvrecover.recover (ctx)
        ctx.transition (RunState.ABORTED)
        disarm_recovery (previous)
        return False

    ctx.transition (RunState.DONE)
    write_log ('Backup of volume \'{0}\' finished'.format (ctx.volume))
    return True



# Runs the backup of one volume with all its output going into the log file
# of the volume. Anything written to stdout or stderr, like a traceback,
# ends up there as well. Returns True on success.
def backup_job (config, volume, started):
    ctx = RunContext (config, volume, started)
    # The console keeps logging until the log file could be opened.
    fileHandler = runcmdutils.add_log_file_handler (ctx.log_file)
    runcmdutils.remove_console_log_handler()
    try:
        with contextlib.redirect_stdout (fileHandler.stream), contextlib.redirect_stderr (fileHandler.stream):
            try:
                return run_backup (ctx)
            except Exception as e:
                write_log ('The backup job of volume \'{0}\' failed: {1}'.format (volume, e), level = LogLevel.ERROR)
                write_log ('The traceback for this is {0}'.format (traceback.format_exc()), level = LogLevel.ERROR)
                return False
    finally:
        runcmdutils.remove_log_file_handler (fileHandler)



# The entry point of a job process. When the process was not forked, the
# command environment and log level of the parent have to be set up again.
def _job_main (config, volume, started, logLevel):
    runcmdutils.add_to_env_path (config.command_path)
    runcmdutils.set_log_level (logLevel)
    try:
        ok = backup_job (config, volume, started)
    except Exception as e:
        # Without a log file this is all there is to see of the job.
        write_log ('The backup job of volume \'{0}\' could not be run: {1}'.format (volume, e), level = LogLevel.ERROR)
        ok = False
    sys.exit (0 if ok else 1)



# Signals received by the driver are passed on to all jobs still running,
# which then clean up after themselves.
def _mk_signal_forwarder (jobs):
    def forward (signum, frame):
        write_log ('Received signal {0}, stopping all backup jobs'.format (signal.Signals (signum).name), level = LogLevel.WARNING)
        for volume, proc in jobs:
            if (proc.is_alive()):
                os.kill (proc.pid, signum)
    return forward



# Starts one job process per volume, all of them at the same time, and
# waits for them. Returns the list of volumes whose backup failed.
def run_volumes (config, volumes, *, started = None):
    if (started is None):
        started = datetime.datetime.now()
    lvmount.mkdir (config.log_dir)

    jobs = []
    for volume in volumes:
        proc = multiprocessing.Process (target = _job_main, args = (config, volume, started, runcmdutils.get_log_level()), name = 'lvbackup-{0}'.format (volume))
        proc.start()
        write_log ('Started backup of volume \'{0}\' (pid {1}), logging to \'{2}\''.format (volume, proc.pid, RunContext (config, volume, started).log_file))
        jobs.append ((volume, proc))

    previous = {s: signal.signal (s, _mk_signal_forwarder (jobs)) for s in _trapped_signals}
    failed = []
    try:
        for volume, proc in jobs:
            proc.join()
            if (proc.exitcode != 0):
                write_log ('Backup of volume \'{0}\' failed with exit code {1}, see its log file'.format (volume, proc.exitcode), level = LogLevel.ERROR)
                failed.append (volume)
            else:
                write_log ('Backup of volume \'{0}\' succeeded'.format (volume))
    finally:
        disarm_recovery (previous)
    return failed



# Cleans up after an aborted run without knowing what it had done.
def recover_volumes (config, volumes):
    for volume in volumes:
        lvrecover.recover (RunContext (config, volume))



def inner_main (*args):
    args = parse_args (*args)
    config = init_env (args)
    if (args.recover):
        recover_volumes (config, args.volumes)
        return 0
    failed = run_volumes (config, args.volumes)
    return 1 if failed else 0



def main (*args):
    write_log ('Current user of the script is: \'{0}\''.format (get_user_info()), level = LogLevel.DEBUG)
    try:
        return inner_main (*args)
    except lvconfig.ConfigError as e:
        write_log ('Invalid configuration: {0}'.format (e), level = LogLevel.ERROR)
        return 2



# Start the main method if we were called as a script.
if __name__ == '__main__':
    sys.exit (main())
