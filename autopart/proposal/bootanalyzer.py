# proposal/bootanalyzer.py
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

from ..devices import Disk, LVMLogicalVolume
from ..devices.lib import PartitionTableType
from .. import util

import logging
log = logging.getLogger("autopart")

_NOT_SET = object()


class BootAnalyzer(object):

    """ Answers questions about the boot-relevant parts of a layout.

        The answers combine the devices already planned with the ones
        present in the devicegraph, the planned ones taking precedence.
        They are computed on first use and cached, so an analyzer must not
        outlive the planning attempt it was built for.
    """

    def __init__(self, devicegraph, planned_devices, boot_disk_name=None):
        """
            :param devicegraph: the devicegraph the attempt starts from
            :type devicegraph: :class:`~.devicegraph.Devicegraph`
            :param planned_devices: devices planned so far
            :type planned_devices: list of :class:`~.planned.PlannedDevice`
            :keyword str boot_disk_name: name of the disk to boot from, if known
        """
        self.devicegraph = devicegraph
        self.planned_devices = list(planned_devices)
        self.boot_disk_name = boot_disk_name
        self._boot_disk = _NOT_SET
        self._root_filesystem = _NOT_SET

    def __repr__(self):
        return "BootAnalyzer(planned=%s, boot_disk_name=%s)" % \
            ([d.mount_point for d in self.planned_devices], self.boot_disk_name)

    @property
    def root_planned_device(self):
        return self.planned_for_mountpoint("/")

    @property
    def root_filesystem(self):
        """ Existing device holding the root filesystem, if any. """
        if self._root_filesystem is _NOT_SET:
            self._root_filesystem = self.filesystem_for_mountpoint("/")
        return self._root_filesystem

    #
    # boot disk
    #
    @property
    def boot_disk(self):
        """ The disk the system will boot from, None only with no disks. """
        if self._boot_disk is _NOT_SET:
            disk = None
            if self.boot_disk_name:
                disk = self._disk_named(self.boot_disk_name)
            if disk is None:
                disk = self._boot_disk_from_planned()
            if disk is None:
                disk = self._boot_disk_from_devicegraph()
            if disk is None and self.devicegraph.disks:
                disk = self.devicegraph.disks[0]
            self._boot_disk = disk
            log.debug("boot disk: %s", disk.name if disk else None)
        return self._boot_disk

    def _disk_named(self, name):
        return next((d for d in self.devicegraph.disks if d.name == name), None)

    def _boot_disk_from_planned(self):
        for mount_point in ("/boot", "/"):
            planned = self.planned_for_mountpoint(mount_point)
            if planned is None:
                continue
            disk_name = planned.disk
            if disk_name is None and planned.is_lv:
                # LVs live wherever the PVs of their VG go
                disk_name = next((d.disk for d in self.planned_devices
                                  if d.lvm_pv and d.disk), None)
            if disk_name:
                return self._disk_named(disk_name)
        return None

    def _boot_disk_from_devicegraph(self):
        device = self.filesystem_for_mountpoint("/boot") or self.root_filesystem
        if device is None:
            return None
        disks = self.devicegraph.disks_of(device)
        return disks[0] if disks else None

    #
    # root device
    #
    @property
    def root_in_lvm(self):
        planned = self.root_planned_device
        if planned is not None:
            return planned.is_lv
        if self.root_filesystem is not None:
            return isinstance(self.root_filesystem, LVMLogicalVolume)
        return False

    @property
    def root_in_software_raid(self):
        # there are no MD RAIDs in the devicegraph model
        return False

    @property
    def encrypted_root(self):
        planned = self.root_planned_device
        if planned is not None:
            return planned.encrypted
        device = self.root_filesystem
        if device is not None:
            return any(d.encrypted for d in [device] + self.devicegraph.ancestors(device))
        return False

    @property
    def btrfs_root(self):
        planned = self.root_planned_device
        if planned is not None:
            return planned.btrfs
        device = self.root_filesystem
        if device is not None:
            return device.filesystem.type == "btrfs"
        return False

    #
    # misc
    #
    def boot_ptable_type(self, ptable_type):
        """ Whether the boot disk uses (or would use) the given table type. """
        disk = self.boot_disk
        if disk is None:
            return False
        ptable_type = PartitionTableType(ptable_type)
        if disk.partition_table is not None:
            return disk.partition_table.type == ptable_type
        return disk.preferred_ptable_type == ptable_type

    def free_mountpoint(self, path):
        """ Whether nothing planned or existing is mounted at path. """
        return (self.planned_for_mountpoint(path) is None and
                self.filesystem_for_mountpoint(path) is None)

    @property
    def max_planned_weight(self):
        """ Biggest weight among the planned devices (0 without any). """
        return max([d.weight for d in self.planned_devices] or [0])

    def planned_for_mountpoint(self, path):
        path = util.clean_mount_point(path)
        return next((d for d in self.planned_devices if d.mount_point == path), None)

    def filesystem_for_mountpoint(self, path):
        return self.devicegraph.find_by_mount_point(path)

    def planned_partitions_with_id(self, partition_id):
        return [d for d in self.planned_devices
                if d.is_partition and d.partition_id == partition_id]

    def boot_disk_partitions(self):
        disk = self.boot_disk
        if not isinstance(disk, Disk):
            return []
        return disk.partitions
