# devices/partition.py
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

from ..errors import DeviceResizeError
from ..size import Size
from ..storage_log import log_method_call
from .device import Device
from .lib import PartitionId, PartitionType, partition_name, align_down

import logging
log = logging.getLogger("autopart")

# classifications used to decide what may be deleted
WINDOWS = "windows"
LINUX = "linux"
OTHER = "other"


class Partition(Device):

    """ A disk partition.

        Partitions know their disk and their region on it. The region is
        expressed in bytes from the start of the disk.
    """
    _type = "partition"

    def __init__(self, disk, number, start, size, part_type=PartitionType.primary,
                 part_id=PartitionId.linux, fmt=None, bootable=False, exists=True,
                 min_size=None):
        """
            :param disk: the disk holding the partition
            :type disk: :class:`~.devices.Disk`
            :param int number: the partition number
            :param start: offset of the partition from the start of the disk
            :type start: :class:`~.size.Size`
            :param size: the size of the partition
            :type size: :class:`~.size.Size`
            :keyword part_type: primary, extended or logical
            :type part_type: :class:`~.lib.PartitionType`
            :keyword part_id: the partition id
            :type part_id: :class:`~.lib.PartitionId`
            :keyword fmt: the format on the partition
            :keyword bool bootable: whether the boot flag is set
            :keyword min_size: the minimal size the content can be shrunk to
            :type min_size: :class:`~.size.Size`
        """
        Device.__init__(self, partition_name(disk.name, number), size=size,
                        fmt=fmt, exists=exists)
        self.disk = disk
        self.number = number
        self.start = Size(start)
        self.part_type = PartitionType(part_type)
        self.part_id = PartitionId.from_string(part_id)
        self.bootable = bootable
        self._min_size = Size(min_size) if min_size is not None else None

    def __repr__(self):
        return "Partition(name=%s, start=%s, size=%s, type=%s, id=%s, sid=%d)" % \
            (self.name, self.start.human_readable(xlate=False),
             self.size.human_readable(xlate=False), self.part_type.value,
             self.part_id.name, self.sid)

    @property
    def end(self):
        return self.start + self.size

    @property
    def is_extended(self):
        return self.part_type == PartitionType.extended

    @property
    def is_logical(self):
        return self.part_type == PartitionType.logical

    @property
    def windows_system(self):
        """ Whether this partition holds a Windows installation. """
        fs = self.filesystem
        if fs is None or fs.type not in ("ntfs", "vfat"):
            return False
        return self.part_id.windows_system and fs.windows_system

    @property
    def linux_system(self):
        return self.part_id.linux_system

    @property
    def classification(self):
        """ One of "windows", "linux" or "other". """
        if self.windows_system:
            return WINDOWS
        if self.linux_system:
            return LINUX
        return OTHER

    @property
    def min_size(self):
        """ How small the partition can get when shrinking its content. """
        if self._min_size is not None:
            return self._min_size
        return self.size

    @property
    def recoverable_size(self):
        """ Space that shrinking the partition would give back. """
        if self.is_extended:
            return Size(0)
        return align_down(self.size - self.min_size)

    def resize(self, new_size):
        log_method_call(self, self.name, new_size=new_size)
        new_size = Size(new_size)
        if new_size < self.min_size:
            raise DeviceResizeError("cannot shrink %s below %s" % (self.name, self.min_size))
        if new_size > self.size:
            raise DeviceResizeError("cannot grow %s in place" % self.name)
        self.size = new_size
