from .phase_10_backup_configs import BackupConfigsPhase
from .phase_20_update_packages import UpdatePackagesPhase
from .phase_30_install_packages import InstallPackagesPhase
from .phase_40_configure_storage import ConfigureStoragePhase
from .phase_50_ssh_hardening import SshHardeningPhase
from .phase_55_fail2ban import Fail2banPhase
from .phase_70_enable_services import EnableServicesPhase
from .phase_90_verify import VerifySetupPhase

__all__ = [
    "BackupConfigsPhase",
    "UpdatePackagesPhase",
    "InstallPackagesPhase",
    "ConfigureStoragePhase",
    "SshHardeningPhase",
    "Fail2banPhase",
    "EnableServicesPhase",
    "VerifySetupPhase",
]
