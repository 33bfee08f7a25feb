import pytest

import lvconfig
from lvconfig import Config, ConfigError



def test_defaults_match_the_classic_setup (tmp_path):
    config = lvconfig.load_config (str (tmp_path / 'missing.conf'))
    assert config.nas_host == 'host'
    assert config.is_cifs()
    assert config.share_path == '//host/backup/'
    assert config.autofs_path == '/net/host'
    assert config.volume_group_path() == '/dev/VolGroup01'
    assert config.snapshot_size == '1G'
    assert config.temp_mount_path == '/mnt/temporary_backup_mounts'
    assert config.full_backup_day == 'Sunday'
    assert config.log_dir == '/var/log/backup'



def test_load_config_reads_all_sections (tmp_path):
    conf = tmp_path / 'lvbackup.conf'
    conf.write_text (
        '[nas]\n'
        'host = filer\n'
        'type = NFS\n'
        'backup_path = /net/filer/export/backups\n'
        '[lvm]\n'
        'volume_group = vg0\n'
        'snapshot_size = 2G\n'
        'mount_options = ro,nouuid\n'
        '[backup]\n'
        'full_backup_day = saturday\n'
        'temp_mount_path = /mnt/snap\n'
    )
    config = lvconfig.load_config (str (conf))
    assert config.nas_type == lvconfig.NAS_TYPE_NFS
    assert not config.is_cifs()
    assert config.autofs_path == '/net/filer'
    assert config.backup_path == '/net/filer/export/backups'
    assert config.volume_group_path() == '/dev/vg0'
    assert config.snapshot_size == '2G'
    assert config.snapshot_mount_options == 'ro,nouuid'
    assert config.full_backup_day == 'Saturday'
    assert config.temp_mount_path == '/mnt/snap'



# Passwords are taken as they are, '%' must not be interpolated.
def test_password_with_percent_sign_is_read_literally (tmp_path):
    conf = tmp_path / 'lvbackup.conf'
    conf.write_text ('[nas]\npassword = 50%off\n')
    assert lvconfig.load_config (str (conf)).nas_password == '50%off'



@pytest.mark.parametrize ('content, message', [
    ('[nas]\ntype = smb\n', 'Unsupported NAS type'),
    ('[backup]\nfull_backup_day = Someday\n', 'Invalid full backup day'),
    ('[backup]\ntemp_mount_path = relative/path\n', 'must be absolute'),
    ('[nas]\nhostname = x\n', 'Unknown key'),
    ('[tape]\ndrive = /dev/st0\n', 'Unknown section'),
])
def test_invalid_configuration_is_rejected (tmp_path, content, message):
    conf = tmp_path / 'lvbackup.conf'
    conf.write_text (content)
    with pytest.raises (ConfigError, match = message):
        lvconfig.load_config (str (conf))



def test_unknown_setting_is_rejected():
    with pytest.raises (ConfigError):
        Config (volume_grup = 'vg0')
