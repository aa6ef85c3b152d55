# proposal/bootstrategies.py
# Partitions needed to boot the proposed system.
#
# Copyright (C) 2024  Red Hat, Inc.
#
# This copyrighted material is made available to anyone wishing to use,
# modify, copy, or redistribute it subject to the terms and conditions of
# the GNU General Public License v.2, or (at your option) any later version.
# This program is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY expressed or implied, including the implied warranties of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU General
# Public License for more details.  You should have received a copy of the
# GNU General Public License along with this program; if not, write to the
# Free Software Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston, MA
# 02110-1301, USA.  Any Red Hat trademarks that are incorporated in the
# source code or documentation are not subject to the GNU General Public
# License and may only be used or replicated with the express permission of
# Red Hat, Inc.
#

""" Boot requirements.

    Every supported way of booting is a member of :class:`BootStrategy`.
    :func:`needed_partitions` returns the planned devices a strategy needs
    on top of the ones already planned, and :func:`boot_strategy_for`
    picks the strategy for the target system.
"""

from enum import Enum

from ..devices.lib import PartitionId, PartitionTableType
from ..errors import BootRequirementsError
from ..i18n import _
from ..size import Size, UNLIMITED
from ..util import default_namedtuple
from .planned import PlannedDevice, Target, Align

import logging
log = logging.getLogger("autopart")

# GRUB's core image and its environment block, both embedded in the MBR gap
GRUB_SIZE = Size("256 KiB")
GRUB_ENV_SIZE = Size("1 KiB")

EFI_MAX_START = Size("2 TiB")
FAT32_OPTIONS = "-F32"
SIZE_FOR_FAT32 = Size("256 MiB")

FIRMWARE_MOUNT_POINT = "/boot/vc"

# sizes and properties of the devices planned by the strategies
BootVolume = default_namedtuple("BootVolume",
                                ["mount_point", "fs_type", "min_size", "desired_size",
                                 "max_size", ("partition_id", None)])

BOOT_VOLUME = BootVolume("/boot", "ext4", Size("100 MiB"), Size("200 MiB"), Size("500 MiB"))
BIOS_BOOT_VOLUME = BootVolume(None, None, Size("256 KiB"), Size("1 MiB"), Size("8 MiB"),
                              PartitionId.bios_boot)
EFI_VOLUME = BootVolume("/boot/efi", "vfat", Size("33 MiB"), Size("500 MiB"), UNLIMITED,
                        PartitionId.esp)
BLS_EFI_VOLUME = BootVolume("/boot/efi", "vfat", Size("512 MiB"), Size("1 GiB"), Size("1 GiB"),
                            PartitionId.esp)
PREP_VOLUME = BootVolume(None, None, Size("256 KiB"), Size("1 MiB"), Size("8 MiB"),
                         PartitionId.prep)
ZIPL_VOLUME = BootVolume("/boot/zipl", "ext2", Size("100 MiB"), Size("200 MiB"), Size("1 GiB"))


class BootStrategy(Enum):
    legacy = "legacy"
    uefi = "uefi"
    bls = "bls"
    prep = "prep"
    zipl = "zipl"
    raspi = "raspi"
    nfs_root = "nfs_root"


def boot_strategy_for(context):
    """ Return the boot strategy for the system described by the context.

        :param context: the planning context
        :type context: :class:`~.context.PlanningContext`
        :rtype: :class:`BootStrategy`
    """
    arch = context.arch
    if arch.nfs_root:
        strategy = BootStrategy.nfs_root
    elif arch.raspberry_pi:
        strategy = BootStrategy.raspi
    elif arch.efiboot:
        strategy = BootStrategy.bls if arch.bls_bootloader else BootStrategy.uefi
    elif arch.s390:
        strategy = BootStrategy.zipl
    elif arch.ppc:
        strategy = BootStrategy.prep
    else:
        strategy = BootStrategy.legacy

    log.debug("boot strategy for %r: %s", arch, strategy.value)
    return strategy


def needed_partitions(strategy, analyzer, target, context):
    """ Return the devices needed to boot, on top of the planned ones.

        :param strategy: the way the system boots
        :type strategy: :class:`BootStrategy`
        :param analyzer: analyzer of the devices planned so far
        :type analyzer: :class:`~.bootanalyzer.BootAnalyzer`
        :param target: which size bound to plan for
        :type target: :class:`~.planned.Target`
        :param context: the planning context
        :type context: :class:`~.context.PlanningContext`
        :rtype: list of :class:`~.planned.PlannedDevice`
        :raises: :class:`~.errors.BootRequirementsError`
    """
    handlers = {BootStrategy.legacy: _legacy_partitions,
                BootStrategy.uefi: _uefi_partitions,
                BootStrategy.bls: _bls_partitions,
                BootStrategy.prep: _prep_partitions,
                BootStrategy.zipl: _zipl_partitions,
                BootStrategy.raspi: _raspi_partitions,
                BootStrategy.nfs_root: lambda analyzer, target, context: []}

    devices = handlers[BootStrategy(strategy)](analyzer, Target(target), context)
    log.info("%s boot requirements: %s", BootStrategy(strategy).value, devices)
    return devices


#
# helpers shared by the strategies
#
def planned_boot_partition(volume, analyzer, target, **kwargs):
    """ A new partition for the given boot volume on the boot disk. """
    min_size = volume.min_size if target == Target.min else volume.desired_size
    disk = analyzer.boot_disk
    kwargs.setdefault("disk", disk.name if disk is not None else None)
    return PlannedDevice.partition(volume.mount_point, volume.fs_type,
                                   min_size=min_size, max_size=max(volume.max_size, min_size),
                                   weight=analyzer.max_planned_weight,
                                   partition_id=volume.partition_id, **kwargs)


def biggest_partition(partitions):
    """ The biggest of the partitions, the last one on ties. """
    result = None
    for partition in partitions:
        if result is None or partition.size >= result.size:
            result = partition
    return result


def esp_partitions(partitions):
    """ Partitions usable as EFI system partitions. """
    return [p for p in partitions
            if p.part_id == PartitionId.esp and p.filesystem is not None and
            p.filesystem.type == "vfat"]


#
# legacy (BIOS)
#
def _root_can_embed_grub(analyzer):
    return (analyzer.btrfs_root and not
            (analyzer.root_in_lvm or analyzer.root_in_software_raid or analyzer.encrypted_root))


def _legacy_partitions(analyzer, target, context):
    devices = []
    disk = analyzer.boot_disk
    if disk is None:
        return devices

    msdos = analyzer.boot_ptable_type(PartitionTableType.msdos)
    if msdos and not _root_can_embed_grub(analyzer):
        # GRUB goes to the gap between the MBR and the first partition
        gap = disk.mbr_gap
        if Size(0) < gap < GRUB_SIZE:
            raise BootRequirementsError(_("Not enough space before the first partition "
                                          "to install the bootloader. Leave at least %s.")
                                        % GRUB_SIZE,
                                        suggestion="/boot")
        if gap < GRUB_SIZE + GRUB_ENV_SIZE and analyzer.free_mountpoint("/boot"):
            devices.append(planned_boot_partition(BOOT_VOLUME, analyzer, target))

    if analyzer.boot_ptable_type(PartitionTableType.gpt) and _bios_boot_missing(analyzer):
        devices.append(planned_boot_partition(BIOS_BOOT_VOLUME, analyzer, target,
                                              align=Align.keep_size, bootable=False))

    return devices


def _bios_boot_missing(analyzer):
    if analyzer.planned_partitions_with_id(PartitionId.bios_boot):
        return False
    return not any(p.part_id == PartitionId.bios_boot for p in analyzer.boot_disk_partitions())


#
# UEFI and friends
#
def _reusable_esp(analyzer, context):
    esp = biggest_partition(esp_partitions(analyzer.boot_disk_partitions()))
    if esp is None:
        esp = biggest_partition(esp_partitions(context.devicegraph.partitions))
    return esp


def _efi_partition(volume, analyzer, target, context, reusable=None):
    if reusable is not None:
        log.info("reusing %s as EFI system partition", reusable.name)
        return PlannedDevice.partition(volume.mount_point, volume.fs_type,
                                       min_size=reusable.size, max_size=reusable.size,
                                       partition_id=PartitionId.esp,
                                       reuse_name=reusable.name)

    planned = planned_boot_partition(volume, analyzer, target, max_start_offset=EFI_MAX_START)
    if planned.min_size >= SIZE_FOR_FAT32:
        planned.mkfs_options = FAT32_OPTIONS
    return planned


def _uefi_partitions(analyzer, target, context, volume=EFI_VOLUME):
    if not analyzer.free_mountpoint(volume.mount_point):
        return []
    return [_efi_partition(volume, analyzer, target, context,
                           reusable=_reusable_esp(analyzer, context))]


def _bls_partitions(analyzer, target, context):
    return _uefi_partitions(analyzer, target, context, volume=BLS_EFI_VOLUME)


def _first_dos32_partition(disk):
    """ First partition of an msdos table if it is a vfat DOS32 one. """
    table = disk.partition_table
    if table is None or table.type != PartitionTableType.msdos or not disk.partitions:
        return None
    first = min(disk.partitions, key=lambda p: int(p.start))
    if first.part_id != PartitionId.dos32:
        return None
    fs = first.filesystem
    if fs is None or fs.type != "vfat":
        return None
    return first


def _raspi_partitions(analyzer, target, context):
    devices = []
    reusable_efi = None
    firmware = None

    disk = analyzer.boot_disk
    boot_partition = _first_dos32_partition(disk) if disk is not None else None
    if boot_partition is not None and boot_partition.filesystem.efi_content:
        reusable_efi = boot_partition
    else:
        candidates = [boot_partition] if boot_partition is not None else []
        candidates += [_first_dos32_partition(d) for d in context.devicegraph.disks if d is not disk]
        firmware = next((p for p in candidates
                         if p is not None and p.filesystem.rpi_firmware), None)
        if firmware is not None and analyzer.free_mountpoint(FIRMWARE_MOUNT_POINT):
            log.info("reusing %s for the Raspberry Pi firmware", firmware.name)
            devices.append(PlannedDevice.partition(FIRMWARE_MOUNT_POINT, "vfat",
                                                   min_size=firmware.size,
                                                   max_size=firmware.size,
                                                   reuse_name=firmware.name))
        else:
            firmware = None
        reusable_efi = biggest_partition(esp_partitions(analyzer.boot_disk_partitions()))

    if analyzer.free_mountpoint(EFI_VOLUME.mount_point):
        planned = _efi_partition(EFI_VOLUME, analyzer, target, context, reusable=reusable_efi)
        if not planned.reuse and firmware is None:
            # the firmware only reads the first partition of an msdos table
            planned.ptable_type = PartitionTableType.msdos
            planned.partition_id = PartitionId.dos32
            planned.max_start_offset = Size("1 MiB")
        devices.append(planned)

    return devices


#
# PReP
#
def _prep_partitions(analyzer, target, context):
    if context.arch.powernv:
        return []
    if not (analyzer.root_in_lvm or analyzer.encrypted_root):
        return []
    if analyzer.planned_partitions_with_id(PartitionId.prep):
        return []
    if any(p.part_id == PartitionId.prep for p in analyzer.boot_disk_partitions()):
        return []
    return [planned_boot_partition(PREP_VOLUME, analyzer, target,
                                   align=Align.keep_size, bootable=True)]


#
# zipl (s390)
#
def _zipl_partitions(analyzer, target, context):
    disk = analyzer.boot_disk
    if disk is None:
        raise BootRequirementsError(_("There is no disk to boot from."))
    if disk.is_dasd and (disk.dasd_type == "fba" or disk.dasd_format == "ldl"):
        raise BootRequirementsError(_("Booting from %s is not supported: it is an FBA "
                                      "or LDL formatted DASD.") % disk.name)
    return [planned_boot_partition(ZIPL_VOLUME, analyzer, target)]
