# proposal/planned.py
# Devices planned by the proposal.
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

from enum import Enum

from ..devices.lib import PartitionId, PartitionTableType
from ..devices.lvm import DEFAULT_PE_SIZE, useful_pv_space, real_pv_size
from ..formats import get_format
from ..formats.luks import LUKS
from ..formats.lvmpv import LVMPhysicalVolume
from ..size import Size, UNLIMITED, ROUND_UP, size_sum
from .settings import LvmVgStrategy
from .. import util

import logging
log = logging.getLogger("autopart")

DEFAULT_VG_NAME = "system"


class Target(str, Enum):
    """ Which size bound a planning attempt aims for. """
    min = "min"
    desired = "desired"


class PlannedKind(str, Enum):
    partition = "partition"
    logical_volume = "logical_volume"


class Align(str, Enum):
    """ How the size of a new partition is aligned. """
    align = "align"
    # keep the requested size, the partition is not grown
    keep_size = "keep_size"


class PlannedDevice(util.ObjectID):

    """ A partition or logical volume to be created (or reused).

        Sizes are bounds: the device gets at least :attr:`min_size` and at
        most :attr:`max_size`, the space in between being shared among
        the devices according to their :attr:`weight`.
    """

    def __init__(self, kind, mount_point=None, fs_type=None, min_size=Size(0),
                 max_size=UNLIMITED, weight=0, **kwargs):
        """
            :param kind: partition or logical volume
            :type kind: :class:`PlannedKind`
            :keyword str mount_point: where the device will be mounted
            :keyword str fs_type: the filesystem (or "swap") to create
            :keyword min_size: the minimal size of the device
            :keyword max_size: the maximal size of the device
            :keyword int weight: share of the extra space the device gets

            The remaining keyword arguments set the optional attributes of
            the same name (disk, reuse_name, ptable_type, ...).
        """
        self.kind = PlannedKind(kind)
        self.mount_point = util.clean_mount_point(mount_point)
        self.fs_type = fs_type
        self.min_size = Size(min_size)
        self.max_size = Size(max_size)
        self.weight = weight

        # name of an existing device to use instead of creating a new one
        self.reuse_name = kwargs.pop("reuse_name", None)
        self.reformat = kwargs.pop("reformat", False)
        self.disk = kwargs.pop("disk", None)
        self.max_start_offset = kwargs.pop("max_start_offset", None)
        ptable_type = kwargs.pop("ptable_type", None)
        self.ptable_type = PartitionTableType(ptable_type) if ptable_type else None
        self.encryption_password = kwargs.pop("encryption_password", None)
        self.subvolumes = list(kwargs.pop("subvolumes", None) or [])
        self.default_subvolume = kwargs.pop("default_subvolume", None)
        self.read_only = kwargs.pop("read_only", False)
        self.snapshots = kwargs.pop("snapshots", False)
        partition_id = kwargs.pop("partition_id", None)
        self.partition_id = PartitionId.from_string(partition_id) if partition_id else None
        self.bootable = kwargs.pop("bootable", False)
        self.align = Align(kwargs.pop("align", Align.align))
        self.lv_name = kwargs.pop("lv_name", None)
        self.lvm_volume_group_name = kwargs.pop("lvm_volume_group_name", None)
        self.mkfs_options = kwargs.pop("mkfs_options", None)
        self.primary = kwargs.pop("primary", False)
        self.label = kwargs.pop("label", None)
        self.uuid = kwargs.pop("uuid", None)
        if kwargs:
            raise TypeError("unexpected arguments: %s" % ", ".join(sorted(kwargs)))

    def __repr__(self):
        return ("PlannedDevice(kind=%s, mount_point=%s, fs_type=%s, min=%s, max=%s, "
                "weight=%s, reuse=%s, disk=%s)" %
                (self.kind.value, self.mount_point, self.fs_type,
                 self.min_size.human_readable(xlate=False),
                 self.max_size.human_readable(xlate=False), self.weight,
                 self.reuse_name, self.disk))

    def __str__(self):
        name = self.mount_point or self.lvm_volume_group_name or self.partition_id_name or "-"
        return "%s:%s:%d:%d:%s" % (self.kind.value, name, int(self.min_size),
                                   int(self.max_size), self.weight)

    @classmethod
    def partition(cls, mount_point=None, fs_type=None, **kwargs):
        return cls(PlannedKind.partition, mount_point, fs_type, **kwargs)

    @classmethod
    def logical_volume(cls, mount_point=None, fs_type=None, **kwargs):
        return cls(PlannedKind.logical_volume, mount_point, fs_type, **kwargs)

    @property
    def partition_id_name(self):
        return self.partition_id.name if self.partition_id else None

    @property
    def is_partition(self):
        return self.kind == PlannedKind.partition

    @property
    def is_lv(self):
        return self.kind == PlannedKind.logical_volume

    @property
    def reuse(self):
        """ Whether the device reuses an existing one. """
        return bool(self.reuse_name)

    @property
    def root(self):
        return self.mount_point == "/"

    @property
    def swap(self):
        return self.fs_type == "swap"

    @property
    def btrfs(self):
        return self.fs_type == "btrfs"

    @property
    def encrypted(self):
        return bool(self.encryption_password)

    @property
    def keep_size(self):
        return self.align == Align.keep_size

    @property
    def lvm_pv(self):
        """ Whether this is a partition for an LVM physical volume. """
        return self.is_partition and self.lvm_volume_group_name is not None

    def new_format(self):
        """ The format to put on the device created for this one.

            PVs and devices with an encryption password get their content
            wrapped in LUKS.
        """
        if self.lvm_pv:
            fmt = LVMPhysicalVolume(vg_name=self.lvm_volume_group_name)
        elif self.swap:
            fmt = get_format("swap", uuid=self.uuid, label=self.label)
        elif self.fs_type:
            kwargs = dict(mountpoint=self.mount_point, label=self.label, uuid=self.uuid,
                          mkfs_options=self.mkfs_options, read_only=self.read_only)
            if self.btrfs:
                kwargs.update(subvolumes=self.subvolumes, snapshots=self.snapshots,
                              default_subvolume=self.default_subvolume or None)
            fmt = get_format(self.fs_type, **kwargs)
        else:
            fmt = None

        if self.encrypted:
            fmt = LUKS(passphrase=self.encryption_password, content=fmt)
        return fmt

    def subvolume_mount_path(self, path):
        """ Where a subvolume of this device ends up in the mounted tree. """
        if not self.mount_point or not self.mount_point.startswith("/"):
            return None
        return util.clean_mount_point("%s/%s" % (self.mount_point, path))

    def shadowed_subvolumes(self, mount_points):
        """ Subvolumes hidden by other devices mounted below this one.

            A subvolume is shadowed when one of the given mount points lies
            strictly under the mount point of the device and the subvolume
            path is that mount point or something under it.
        """
        result = []
        for path in self.subvolumes:
            mounted_at = self.subvolume_mount_path(path)
            if mounted_at is None:
                continue
            for other in mount_points:
                if not util.path_is_under(other, self.mount_point):
                    continue
                if mounted_at == util.clean_mount_point(other) or util.path_is_under(mounted_at, other):
                    result.append(path)
                    break
        return result


def remove_shadowed_subvolumes(planned_devices):
    """ Drop the subvolumes shadowed by other planned devices.

        :param planned_devices: all the planned devices
        :type planned_devices: list of :class:`PlannedDevice`
        :returns: the same list
    """
    mount_points = [d.mount_point for d in planned_devices if d.mount_point]
    for device in planned_devices:
        if not device.btrfs or not device.subvolumes:
            continue
        shadowed = device.shadowed_subvolumes(mount_points)
        if shadowed:
            log.info("removing subvolumes %s of %s, shadowed by other devices",
                     shadowed, device.mount_point)
            device.subvolumes = [s for s in device.subvolumes if s not in shadowed]
    return planned_devices


def ensure_size_bounds(planned_devices):
    """ Make sure max_size is never smaller than min_size. """
    for device in planned_devices:
        if device.max_size < device.min_size:
            device.max_size = device.min_size
    return planned_devices


class PlannedVg(object):

    """ A volume group to be created (or reused) for the planned LVs. """

    def __init__(self, volume_group_name=DEFAULT_VG_NAME, lvs=None, pvs_encryption_password=None,
                 size_strategy=LvmVgStrategy.use_available, vg_size=Size(0),
                 extent_size=DEFAULT_PE_SIZE):
        """
            :keyword str volume_group_name: the name of the VG
            :keyword lvs: the planned logical volumes
            :type lvs: list of :class:`PlannedDevice`
            :keyword str pvs_encryption_password: password to encrypt new PVs
            :keyword size_strategy: how to decide the size of the VG
            :type size_strategy: :class:`~.settings.LvmVgStrategy`
            :keyword vg_size: the size to use with the use_vg_size strategy
            :keyword extent_size: the extent size of the VG
        """
        self.volume_group_name = volume_group_name
        self.lvs = list(lvs or [])
        self.pvs_encryption_password = pvs_encryption_password
        self.size_strategy = LvmVgStrategy(size_strategy)
        self.vg_size = Size(vg_size)
        self.extent_size = Size(extent_size)

        # existing volume group to be reused, see :meth:`reuse`
        self.reuse_name = None
        self.reused_size = Size(0)

    def __repr__(self):
        return ("PlannedVg(name=%s, lvs=%s, strategy=%s, reuse=%s, missing=%s)" %
                (self.volume_group_name, [lv.mount_point for lv in self.lvs],
                 self.size_strategy.value, self.reuse_name,
                 self.missing_space.human_readable(xlate=False)))

    def reuse(self, vg):
        """ Plan to reuse the given existing volume group. """
        self.reuse_name = vg.name
        self.volume_group_name = vg.name
        self.extent_size = vg.extent_size
        self.reused_size = vg.size

    @property
    def pvs_encrypted(self):
        return bool(self.pvs_encryption_password)

    @property
    def lvs_size(self):
        return size_sum(lv.min_size.round_to_nearest(self.extent_size, rounding=ROUND_UP)
                        for lv in self.lvs)

    @property
    def target_size(self):
        """ Size the volume group should get. """
        if self.size_strategy == LvmVgStrategy.use_vg_size:
            return max(self.vg_size, self.lvs_size)
        return self.lvs_size

    @property
    def missing_space(self):
        """ Space to be provided by new physical volumes. """
        missing = self.target_size - self.reused_size
        return missing if missing > Size(0) else Size(0)

    @property
    def max_extra_space(self):
        """ Space the new physical volumes may add beyond the missing one. """
        if self.size_strategy != LvmVgStrategy.use_available:
            return Size(0)
        if any(lv.max_size.unlimited for lv in self.lvs):
            return UNLIMITED
        extra = size_sum(lv.max_size for lv in self.lvs) - self.target_size
        return extra if extra > Size(0) else Size(0)

    def useful_pv_space(self, size):
        """ VG space provided by a PV device of the given size. """
        return useful_pv_space(size, self.extent_size, self.pvs_encrypted)

    def real_pv_size(self, useful_size):
        """ Size of a PV device providing the given VG space. """
        return real_pv_size(useful_size, self.extent_size, self.pvs_encrypted)

    @property
    def min_pv_size(self):
        return self.real_pv_size(self.extent_size)

    def _pv_partition(self, min_size, max_size):
        return PlannedDevice.partition(min_size=min_size, max_size=max_size,
                                       weight=sum(lv.weight for lv in self.lvs),
                                       partition_id=PartitionId.lvm,
                                       lvm_volume_group_name=self.volume_group_name,
                                       encryption_password=self.pvs_encryption_password)

    def minimal_pv_partition(self):
        """ The smallest possible PV partition for this VG. """
        return self._pv_partition(self.min_pv_size, self.min_pv_size)

    def single_pv_partition(self):
        """ A PV partition providing all the missing space by itself. """
        max_size = self.missing_space + self.max_extra_space
        return self._pv_partition(self.real_pv_size(self.missing_space),
                                  self.real_pv_size(max_size))
