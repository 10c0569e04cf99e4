"""NVMe storage configuration.

Per device the partitioner walks:

    Unconfigured -> ConsentPending -> Partitioning | MountingExisting
                 -> Mounted -> FstabPersisted

and may end in Skipped from any point. Repartitioning a device that
already has partitions requires prior operator consent; a device with no
partitions is partitioned without asking. Without consent, a device with
exactly two partitions is mounted as-is and never formatted.

Known risk window: a signal that lands between ``wipefs`` and the final
``mkfs`` leaves the device half-written. There is no undo for a format;
the operator is told to repartition manually.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Set

from .errors import CommandError, StorageError, StorageSafetyError
from .lib import block, fstab, mounts
from .lib.block import BlockDevice, Partition
from .lib.command import run_cmd
from .lib.prompt import Prompter

logger = logging.getLogger(__name__)

MIN_DEVICE_GIB = 100
SYSTEM_PARTITION_END = "256GiB"
SYSTEM_LABEL = "danger-data"
CONTENT_LABEL = "danger-content"

DATA_SUBDIRS = [
    "traefik",
    "komodo",
    "jellyfin/config",
    "jellyfin/cache",
    "komga/config",
    "kiwix",
    "logs",
    "backups",
    "raspap",
    "step-ca",
    "cdn",
    "sync",
    "adguard/work",
    "adguard/conf",
    "config",
    "cache",
]

CONTENT_SUBDIRS = [
    "movies",
    "tv",
    "webtv",
    "music",
    "audiobooks",
    "books",
    "comics",
    "magazines",
    "games/roms",
    "kiwix",
    "media",
    "documents",
    "downloads",
    "sync",
]


class StorageState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONSENT_PENDING = "consent_pending"
    PARTITIONING = "partitioning"
    MOUNTING_EXISTING = "mounting_existing"
    MOUNTED = "mounted"
    FSTAB_PERSISTED = "fstab_persisted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PartitionTarget:
    path: str
    label: str
    mountpoint: str
    uuid: Optional[str] = None


@dataclass(frozen=True)
class PartitionPlan:
    """Fresh two-partition layout. Only built after consent when destructive."""

    device: str
    system: PartitionTarget
    content: PartitionTarget

    @property
    def targets(self) -> List[PartitionTarget]:
        return [self.system, self.content]


@dataclass(frozen=True)
class MountPlan:
    """Pre-existing partitions to mount by UUID, never formatted."""

    device: str
    targets: List[PartitionTarget]


@dataclass
class PartitionOutcome:
    target: PartitionTarget
    mounted: bool = False
    persisted: bool = False
    reason: str = ""


@dataclass
class StorageResult:
    device: Optional[str] = None
    state: StorageState = StorageState.UNCONFIGURED
    transitions: List[StorageState] = field(default_factory=lambda: [StorageState.UNCONFIGURED])
    outcomes: List[PartitionOutcome] = field(default_factory=list)
    reason: str = ""

    def to(self, state: StorageState) -> None:
        self.state = state
        self.transitions.append(state)
        logger.debug("Storage %s -> %s", self.device or "-", state.value)

    def skip(self, reason: str) -> "StorageResult":
        self.reason = reason
        self.to(StorageState.SKIPPED)
        logger.info("Skipping NVMe configuration: %s", reason)
        return self

    @property
    def formatted(self) -> bool:
        return StorageState.PARTITIONING in self.transitions


class StoragePartitioner:
    def __init__(
        self,
        *,
        backup_dir: str,
        fstab_path: str = fstab.DEFAULT_FSTAB,
        data_mount: str = "/data",
        content_mount: str = "/content",
        min_size_gib: int = MIN_DEVICE_GIB,
        settle: Callable[[float], None] = time.sleep,
        settle_seconds: float = 2.0,
    ):
        self.backup_dir = backup_dir
        self.fstab_path = fstab_path
        self.data_mount = data_mount
        self.content_mount = content_mount
        self.min_size_gib = min_size_gib
        self._settle = settle
        self.settle_seconds = settle_seconds
        self._applied: Set[str] = set()

    # -- discovery -----------------------------------------------------

    def select_device(self, preferred: Optional[str] = None) -> Optional[BlockDevice]:
        disks = block.list_nvme_disks()
        if not disks:
            return None
        if preferred:
            for d in disks:
                if d.path == preferred or d.name == preferred.rsplit("/", 1)[-1]:
                    return d
            logger.warning("Configured NVMe device %s not found; using %s", preferred, disks[0].path)
        logger.info("Found NVMe devices: %s", " ".join(d.name for d in disks))
        return disks[0]

    def is_eligible(self, device: BlockDevice) -> Optional[str]:
        """Return a reason the device must be skipped, or None."""

        if device.size_gib < self.min_size_gib:
            return f"{device.path} is smaller than expected ({device.size_gib}GB < {self.min_size_gib}GB)"
        mounted_at = {p.mountpoint for p in device.partitions}
        if len(device.partitions) == 2 and {self.data_mount, self.content_mount} <= mounted_at:
            return f"{device.path} is already mounted on {self.data_mount} and {self.content_mount}"
        return None

    def needs_consent(self, device: BlockDevice) -> bool:
        return bool(device.partitions)

    def request_consent(self, prompter: Prompter, device: BlockDevice) -> bool:
        """Ask before destroying existing partitions. Never asks for a blank device."""

        if not self.needs_consent(device):
            logger.info("%s has no partitions; it will be partitioned without prompting", device.path)
            return True

        layout = "\n".join(
            f"  {p.path} {p.fstype or '-'} {p.mountpoint or ''}".rstrip() for p in device.partitions
        )
        prompter.warn_box(
            "DESTRUCTIVE OPERATION WARNING",
            f"REPARTITIONING WILL PERMANENTLY DESTROY ALL DATA ON {device.path}\n"
            f"Current partitions:\n{layout}\n"
            f"New layout: {SYSTEM_PARTITION_END} for {self.data_mount}, remaining space for {self.content_mount}",
        )
        confirmed = prompter.confirm(
            f"I understand the risks and want to repartition {device.path}", default=False
        )
        logger.info("NVMe repartitioning %s for %s", "confirmed" if confirmed else "declined", device.path)
        return confirmed

    def plan_for(self, device: BlockDevice) -> PartitionPlan:
        return PartitionPlan(
            device=device.path,
            system=PartitionTarget(block.part_path(device.path, 1), SYSTEM_LABEL, self.data_mount),
            content=PartitionTarget(block.part_path(device.path, 2), CONTENT_LABEL, self.content_mount),
        )

    def mount_plan_for(self, device: BlockDevice) -> MountPlan:
        first, second = sorted(device.partitions, key=lambda p: p.name)[:2]
        return MountPlan(
            device=device.path,
            targets=[
                PartitionTarget(first.path, first.label or SYSTEM_LABEL, self.data_mount, self._uuid_of(first)),
                PartitionTarget(second.path, second.label or CONTENT_LABEL, self.content_mount, self._uuid_of(second)),
            ],
        )

    @staticmethod
    def _uuid_of(p: Partition) -> Optional[str]:
        return p.uuid or block.get_uuid(p.path) or None

    # -- workflow ------------------------------------------------------

    def configure(self, *, consent: bool, device_path: Optional[str] = None) -> StorageResult:
        """Run the whole storage workflow for the first eligible NVMe device.

        Raises StorageSafetyError only when a confirmed repartition finds
        partitions still mounted after unmount escalation.
        """

        result = StorageResult()
        logger.info("Detecting NVMe storage devices...")
        try:
            device = self.select_device(device_path)
        except (CommandError, StorageError, ValueError) as e:
            logger.error("Could not list NVMe devices: %s", e)
            return result.skip(f"device detection failed: {e}")
        if device is None:
            return result.skip("no NVMe devices detected")

        result.device = device.path
        logger.info("Using NVMe device %s (%sGB, %s partitions)", device.path, device.size_gib, len(device.partitions))

        reason = self.is_eligible(device)
        if reason:
            return result.skip(reason)

        result.to(StorageState.CONSENT_PENDING)
        existing = len(device.partitions)

        if existing and not consent:
            if existing != 2:
                return result.skip(f"repartitioning not confirmed and {existing} partition(s) do not match the expected layout")
            logger.info("Partitioning was declined, but found exactly 2 partitions; mounting them")
            result.to(StorageState.MOUNTING_EXISTING)
            return self._finish(result, self.mount_existing(self.mount_plan_for(device)), fresh=False)

        if existing:
            logger.info("Existing partitions on %s - repartitioning as confirmed", device.path)
            try:
                self.release_mounts(device)
            except StorageSafetyError:
                raise
            except (CommandError, StorageError, ValueError) as e:
                logger.error("Could not confirm %s is unmounted: %s", device.path, e)
                return result.skip(f"could not confirm {device.path} is unmounted: {e}")

        plan = self.plan_for(device)
        result.to(StorageState.PARTITIONING)
        try:
            self.apply_partition_plan(plan)
        except (CommandError, StorageError) as e:
            logger.error("Partitioning %s failed: %s", device.path, e)
            logger.error("Configure %s manually after installation", device.path)
            return result.skip(f"partitioning failed: {e}")

        return self._finish(result, self.mount_targets(plan.targets), fresh=True)

    def release_mounts(self, device: BlockDevice) -> None:
        """Unmount every mounted partition; refuse to continue if any remain.

        Raises StorageError if the device cannot be re-read afterwards.
        """

        for p in device.mounted_partitions():
            logger.info("Unmounting %s from %s...", p.path, p.mountpoint)
            mounts.unmount_escalating(str(p.mountpoint))

        mounts.sync()
        self._settle(self.settle_seconds)

        try:
            still = block.read_disk(device.path).mounted_partitions()
        except (CommandError, ValueError) as e:
            raise StorageError(f"cannot re-read {device.path} after unmounting: {e}") from e
        if still:
            for p in still:
                logger.error("Still mounted: %s on %s", p.path, p.mountpoint)
            raise StorageSafetyError(device.path, [f"{p.path} on {p.mountpoint}" for p in still])

    def apply_partition_plan(self, plan: PartitionPlan) -> None:
        if plan.device in self._applied:
            raise StorageError(f"Partition plan for {plan.device} was already applied in this run")
        self._applied.add(plan.device)

        dev = plan.device
        logger.info("Creating new partition layout on %s...", dev)
        mounts.sync()
        run_cmd(["wipefs", "-a", dev])
        run_cmd(["parted", "-s", dev, "mklabel", "gpt"])
        run_cmd(["parted", "-s", dev, "mkpart", "primary", "ext4", "1MiB", SYSTEM_PARTITION_END])
        run_cmd(["parted", "-s", dev, "mkpart", "primary", "ext4", SYSTEM_PARTITION_END, "100%"])
        self._settle(self.settle_seconds)
        run_cmd(["partprobe", dev])
        self._settle(self.settle_seconds)

        for t in plan.targets:
            logger.info("Formatting %s (%s)...", t.path, t.label)
            run_cmd(["mkfs.ext4", "-F", "-L", t.label, t.path])
            Path(t.mountpoint).mkdir(parents=True, exist_ok=True)

    def mount_targets(self, targets: List[PartitionTarget]) -> List[PartitionOutcome]:
        outcomes: List[PartitionOutcome] = []
        for t in targets:
            o = PartitionOutcome(target=t)
            if mounts.mount(t.path, t.mountpoint):
                self._verify(o)
            else:
                o.reason = "mount failed"
            outcomes.append(o)
        return outcomes

    def mount_existing(self, plan: MountPlan) -> List[PartitionOutcome]:
        outcomes: List[PartitionOutcome] = []
        for t in plan.targets:
            o = PartitionOutcome(target=t)
            outcomes.append(o)
            if not t.uuid:
                o.reason = "no filesystem UUID"
                logger.error("Could not determine UUID for %s; not mounting", t.path)
                continue

            source = f"UUID={t.uuid}"
            current = mounts.mount_source(t.mountpoint)
            if current in (t.path, source):
                logger.info("%s already mounted on %s", t.path, t.mountpoint)
                self._verify(o, unmount_on_failure=False)
                continue
            if current:
                logger.warning("%s is mounted from %s, unmounting first", t.mountpoint, current)
                mounts.unmount(t.mountpoint)

            if mounts.mount(source, t.mountpoint):
                self._verify(o)
            else:
                o.reason = "mount failed"
        return outcomes

    def _verify(self, o: PartitionOutcome, *, unmount_on_failure: bool = True) -> None:
        if mounts.verify_writable(o.target.mountpoint):
            o.mounted = True
            logger.info("%s mount verified", o.target.mountpoint)
            return
        o.reason = "mounted but not writable"
        if unmount_on_failure:
            mounts.unmount(o.target.mountpoint)

    def persist(self, outcomes: List[PartitionOutcome]) -> None:
        """Add fstab entries for verified mounts only, keyed by UUID."""

        entries: List[fstab.FstabEntry] = []
        pending: List[PartitionOutcome] = []
        for o in outcomes:
            if not o.mounted:
                continue
            uuid = o.target.uuid or block.get_uuid(o.target.path)
            if not uuid:
                o.reason = "no filesystem UUID; not added to fstab"
                logger.warning("Could not get UUID for %s, not adding to fstab", o.target.path)
                continue
            entries.append(fstab.FstabEntry(spec=f"UUID={uuid}", mountpoint=o.target.mountpoint))
            pending.append(o)

        if entries and fstab.update_fstab(entries, backup_dir=self.backup_dir, fstab_path=self.fstab_path):
            for o in pending:
                o.persisted = True

    def _finish(self, result: StorageResult, outcomes: List[PartitionOutcome], *, fresh: bool) -> StorageResult:
        result.outcomes = outcomes
        mounted = [o for o in outcomes if o.mounted]
        if not mounted:
            return result.skip("no partition could be mounted")

        result.to(StorageState.MOUNTED)
        try:
            self.persist(outcomes)
        except OSError as e:
            logger.error("Failed to update fstab: %s", e)

        if fresh:
            try:
                self._create_layout(mounted)
            except OSError as e:
                logger.warning("Could not create directory layout: %s", e)

        for o in outcomes:
            status = "ok" if o.mounted else f"skipped ({o.reason})"
            logger.info("  %s -> %s: %s", o.target.path, o.target.mountpoint, status)

        if any(o.persisted for o in outcomes):
            result.to(StorageState.FSTAB_PERSISTED)
        if len(mounted) < len(outcomes):
            logger.warning("Partial success: only some partitions could be mounted")
        return result

    def _create_layout(self, mounted: List[PartitionOutcome]) -> None:
        for o in mounted:
            subdirs = DATA_SUBDIRS if o.target.mountpoint == self.data_mount else CONTENT_SUBDIRS
            for sub in subdirs:
                (Path(o.target.mountpoint) / sub).mkdir(parents=True, exist_ok=True)


def collect_consent(config, prompter: Prompter, *, partitioner: Optional[StoragePartitioner] = None) -> bool:
    """Decide repartitioning consent before any phase runs.

    An explicit NVME_PARTITION_CONFIRMED=true is consent. Otherwise only an
    interactive operator can give it; a non-interactive run never consents.
    """

    if config.nvme_partition_confirmed:
        logger.info("NVMe repartitioning pre-confirmed by configuration")
        return True
    if not prompter.interactive:
        return False

    partitioner = partitioner or StoragePartitioner(backup_dir="")
    try:
        device = partitioner.select_device(config.nvme_device)
    except (CommandError, ValueError) as e:
        logger.warning("Could not inspect NVMe devices: %s", e)
        return False
    if device is None or partitioner.is_eligible(device):
        return False
    return partitioner.request_consent(prompter, device)
