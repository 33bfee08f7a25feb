import datetime
import os
import shutil
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

import lvconfig
from lvcontext import RunContext
import lvmount
import lvsnapshot
import runcmdutils
from runcmdutils import ProcessResult



SUNDAY = datetime.datetime (2024, 1, 7, 3, 0, 0)
MONDAY = datetime.datetime (2024, 1, 8, 3, 0, 0)

SHARE = '//nas/backup/'



# Stands in for LVM, mount(8), tar and the other tools run by the backup.
# Mounting moves the contents of the backing directory into the mount
# point, unmounting moves them back, so the local mount points look empty
# again once everything is unmounted.
class FakeSystem:

    def __init__ (self, root, volume_group = 'VolGroup01'):
        self.root = root
        self.volume_group = volume_group
        self.volumes = {}
        self.snapshots = set()
        self.mounts = {}
        self.shares = {}
        self.vg_free = 10 * 2**30
        self.commands = []
        self.envs = []
        self.failures = []
        self.hooks = {}

    def add_volume (self, name, files = None):
        backing = self.root / 'volumes' / name
        backing.mkdir (parents = True)
        for rel, content in (files or {'etc/hostname': 'server\n'}).items():
            path = backing / rel
            path.parent.mkdir (parents = True, exist_ok = True)
            path.write_text (content)
        self.volumes[name] = backing
        return backing

    def add_share (self, source = SHARE):
        backing = self.root / 'nas'
        backing.mkdir (parents = True, exist_ok = True)
        self.shares[source] = backing
        return backing

    # Makes the program fail from now on. With 'after' set, the first
    # matching calls still succeed.
    def fail (self, program, returncode = 1, match = None, after = 0):
        self.failures.append ({'program': program, 'match': match, 'returncode': returncode, 'after': after})

    def ran (self, program):
        return [c for c in self.commands if c[0] == program]

    def _device_backing (self, source):
        if (source in self.shares):
            return self.shares[source]
        name = os.path.basename (source)
        if (os.path.dirname (source) == '/dev/' + self.volume_group and name in self.snapshots):
            return self.volumes[name[:-len ('_snapshot')]]
        return None

    @staticmethod
    def _move_entries (src, dst):
        for entry in os.listdir (src):
            shutil.move (os.path.join (src, entry), os.path.join (dst, entry))

    def _failure_for (self, args):
        for failure in self.failures:
            if (args[0] != failure['program']):
                continue
            if (failure['match'] is not None and failure['match'] not in ' '.join (args)):
                continue
            if (failure['after'] > 0):
                failure['after'] -= 1
                continue
            return failure
        return None

    def run_cmd (self, args, *, extra_env = None):
        args = [str (a) for a in args]
        self.commands.append (args)
        self.envs.append (extra_env)
        failure = self._failure_for (args)
        if (failure):
            return ProcessResult (failure['returncode'], '', '{0}: simulated failure'.format (args[0]))
        if (args[0] in self.hooks):
            self.hooks[args[0]](args)
        return getattr (self, '_cmd_' + args[0])(args)

    def _cmd_mountpoint (self, args):
        return ProcessResult (0 if args[-1] in self.mounts else 32)

    def _cmd_mount (self, args):
        source, target = args[-2], args[-1]
        backing = self._device_backing (source)
        if (backing is None):
            return ProcessResult (32, '', 'mount: special device {0} does not exist'.format (source))
        if (not os.path.isdir (target) or target in self.mounts):
            return ProcessResult (32, '', 'mount: {0} busy or missing'.format (target))
        self._move_entries (backing, target)
        self.mounts[target] = backing
        return ProcessResult (0)

    def _cmd_umount (self, args):
        target = args[-1]
        if (target not in self.mounts):
            return ProcessResult (32, '', 'umount: {0}: not mounted'.format (target))
        self._move_entries (target, self.mounts.pop (target))
        return ProcessResult (0)

    def _cmd_rmdir (self, args):
        try:
            os.rmdir (args[-1])
        except OSError as e:
            return ProcessResult (1, '', str (e))
        return ProcessResult (0)

    def _cmd_ls (self, args):
        if (not os.path.exists (args[-1])):
            return ProcessResult (2, '', 'ls: cannot access {0}'.format (args[-1]))
        return ProcessResult (0, '\n'.join (os.listdir (args[-1])))

    def _cmd_lvs (self, args):
        names = sorted (self.volumes) + sorted (self.snapshots)
        return ProcessResult (0, ''.join ('  {0}\n'.format (n) for n in names))

    def _cmd_vgs (self, args):
        return ProcessResult (0, '  {0}\n'.format (self.vg_free))

    def _cmd_lvcreate (self, args):
        name = args[args.index ('-n') + 1]
        origin = os.path.basename (args[-1])
        if (origin not in self.volumes or name in self.snapshots):
            return ProcessResult (5, '', 'lvcreate: cannot create {0}'.format (name))
        self.snapshots.add (name)
        return ProcessResult (0)

    def _cmd_lvremove (self, args):
        name = os.path.basename (args[-1])
        if (name not in self.snapshots):
            return ProcessResult (5, '', 'lvremove: {0} not found'.format (name))
        self.snapshots.remove (name)
        return ProcessResult (0)

    # Writes the level of the archive and the archived file names instead
    # of a real tar file.
    def _cmd_tar (self, args):
        opts = dict (a[2:].split ('=', 1) for a in args if a.startswith ('--') and '=' in a)
        directory = opts['directory']
        files = []
        for base, dirs, names in os.walk (directory):
            files.extend (os.path.relpath (os.path.join (base, n), directory) for n in names)
        level = 1 if os.path.exists (opts['listed-incremental']) else 0
        with open (opts['file'], 'w') as f:
            f.write ('level {0}\n'.format (level))
            f.write ('\n'.join (sorted (files)))
        with open (opts['listed-incremental'], 'a') as f:
            f.write ('{0}\n'.format (os.path.basename (opts['file'])))
        return ProcessResult (0)



@pytest.fixture
def fake_system (tmp_path, monkeypatch):
    fake = FakeSystem (tmp_path)
    monkeypatch.setattr (runcmdutils, 'run_cmd', fake.run_cmd)
    monkeypatch.setattr (lvmount, 'run_cmd', fake.run_cmd)
    monkeypatch.setattr (lvsnapshot, 'run_cmd', fake.run_cmd)
    return fake



@pytest.fixture
def cifs_config (tmp_path):
    return lvconfig.Config (
        nas_host = 'nas',
        nas_type = 'cifs',
        nas_user = 'backup',
        nas_password = 'secret',
        share_path = SHARE,
        temp_mount_path = str (tmp_path / 'mnt'),
        log_dir = str (tmp_path / 'log'),
    )



@pytest.fixture
def nfs_config (tmp_path):
    (tmp_path / 'net' / 'nas' / 'backup').mkdir (parents = True)
    return lvconfig.Config (
        nas_host = 'nas',
        nas_type = 'nfs',
        autofs_path = str (tmp_path / 'net' / 'nas'),
        backup_path = str (tmp_path / 'net' / 'nas' / 'backup'),
        temp_mount_path = str (tmp_path / 'mnt'),
        log_dir = str (tmp_path / 'log'),
    )



@pytest.fixture
def cifs_ctx (cifs_config, fake_system):
    fake_system.add_volume ('data')
    fake_system.add_share()
    return RunContext (cifs_config, 'data', MONDAY)



@pytest.fixture
def nfs_ctx (nfs_config, fake_system):
    fake_system.add_volume ('data')
    return RunContext (nfs_config, 'data', MONDAY)
