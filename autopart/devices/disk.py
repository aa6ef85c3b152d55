# devices/disk.py
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

from .. import util
from ..errors import DeviceError, PartitioningError
from ..size import Size
from ..storage_log import log_method_call
from .device import Device
from .freespace import FreeDiskSpace
from .lib import Tags, PartitionTableType, PartitionType, ALIGNMENT_GRAIN
from .lib import DEFAULT_MBR_GAP, GPT_END_RESERVED, LOGICAL_OVERHEAD
from .lib import align_up, align_down

import logging
log = logging.getLogger("autopart")


class PartitionTable(object):

    """ A partition table on a disk.

        The table owns the list of partitions. Partitions are kept sorted by
        their start offset.
    """

    def __init__(self, disk, table_type):
        self.disk = disk
        self.type = PartitionTableType(table_type)
        self.partitions = []

    def __repr__(self):
        return "PartitionTable(type=%s, disk=%s, partitions=%d)" % \
            (self.type.value, self.disk.name, len(self.partitions))

    @property
    def max_primary(self):
        return self.type.max_primary

    @property
    def extended_possible(self):
        return self.type.extended_possible

    @property
    def extended(self):
        return next((p for p in self.partitions if p.is_extended), None)

    @property
    def has_extended(self):
        return self.extended is not None

    @property
    def num_primary(self):
        """ Number of used primary slots (the extended partition uses one). """
        return len([p for p in self.partitions if not p.is_logical])

    @property
    def num_logical(self):
        return len([p for p in self.partitions if p.is_logical])

    def usable_region(self):
        """ Return the (start, end) region where partitions may be placed. """
        start = align_up(DEFAULT_MBR_GAP if self.type == PartitionTableType.msdos else ALIGNMENT_GRAIN)
        if self.type == PartitionTableType.gpt:
            end = align_down(self.disk.size - GPT_END_RESERVED)
        else:
            end = align_down(self.disk.size)
        return (start, end)

    def next_number(self, part_type):
        """ Return the number for a new partition of the given type. """
        if part_type == PartitionType.logical:
            used = [p.number for p in self.partitions if p.is_logical]
            return max(used + [4]) + 1

        used = set(p.number for p in self.partitions if not p.is_logical)
        for number in range(1, self.max_primary + 1):
            if number not in used:
                return number

        raise PartitioningError("no free partition slot in %s" % self.disk.name)

    def add(self, partition):
        self.partitions.append(partition)
        self.partitions.sort(key=lambda p: (int(p.start), p.is_logical))

    def remove(self, partition):
        self.partitions.remove(partition)

    def _gaps(self, start, end, used):
        """ Aligned gaps of at least one grain in [start, end). """
        gaps = []
        pos = start
        for (ustart, uend) in sorted(used):
            if ustart > pos:
                gaps.append((pos, ustart))
            pos = max(pos, uend)
        if end > pos:
            gaps.append((pos, end))

        result = []
        for (gstart, gend) in gaps:
            gstart = align_up(gstart)
            gend = align_down(gend)
            if gend - gstart >= ALIGNMENT_GRAIN:
                result.append((gstart, gend))
        return result

    def free_spaces(self):
        """ Return the list of :class:`~.FreeDiskSpace` on this table. """
        (start, end) = self.usable_region()
        top = [(p.start, p.end) for p in self.partitions if not p.is_logical]
        spaces = [FreeDiskSpace(self.disk, s, e - s)
                  for (s, e) in self._gaps(start, end, top)]

        extended = self.extended
        if extended is not None:
            # each logical partition is preceded by its EBR
            logical = [(p.start - LOGICAL_OVERHEAD, p.end)
                       for p in self.partitions if p.is_logical]
            spaces.extend(FreeDiskSpace(self.disk, s, e - s, in_extended=True)
                          for (s, e) in self._gaps(extended.start, extended.end, logical))

        spaces.sort(key=lambda s: int(s.start))
        return spaces


class Disk(Device):

    """ A local or remote disk, including DASDs. """
    _type = "disk"

    def __init__(self, name, size=None, fmt=None, mbr_gap=None, tags=None,
                 dasd_type=None, dasd_format=None, exists=True):
        """
            :param str name: the device name, e.g. /dev/sda
            :keyword size: the size of the disk
            :type size: :class:`~.size.Size`
            :keyword fmt: format stored directly on the disk, if any
            :keyword mbr_gap: gap before the first partition, overrides the
                              value deduced from the partitions
            :type mbr_gap: :class:`~.size.Size`
            :keyword tags: tags describing the disk (e.g. usb)
            :type tags: iterable of :class:`~.lib.Tags`
            :keyword str dasd_type: "eckd" or "fba" for DASDs
            :keyword str dasd_format: "cdl" or "ldl" for ECKD DASDs
        """
        Device.__init__(self, name, size=size, fmt=fmt, exists=exists)
        self.partition_table = None
        self._mbr_gap = Size(mbr_gap) if mbr_gap is not None else None
        self.tags = set(Tags(t) for t in (tags or []))
        self.dasd_type = dasd_type
        self.dasd_format = dasd_format

        # table type used for a new partition table; the proposal adjusts it
        # to the architecture and to the needs of the planned partitions
        self.default_ptable_type = PartitionTableType.gpt
        self.forced_ptable_type = None

    @property
    def is_dasd(self):
        return self.dasd_type is not None

    @property
    def usb(self):
        return Tags.usb in self.tags

    @property
    def partitions(self):
        if self.partition_table is None:
            return []
        return list(self.partition_table.partitions)

    @property
    def has_children(self):
        """ Whether the disk holds anything (partitions or a format). """
        return self.format is not None or self.partition_table is not None

    @property
    def mbr_gap(self):
        """ The gap between the MBR and the first partition. """
        if self._mbr_gap is not None:
            return self._mbr_gap

        partitions = self.partitions
        if partitions:
            return min(p.start for p in partitions)

        return DEFAULT_MBR_GAP

    @mbr_gap.setter
    def mbr_gap(self, value):
        self._mbr_gap = Size(value) if value is not None else None

    @property
    def preferred_ptable_type(self):
        if self.forced_ptable_type is not None:
            return PartitionTableType(self.forced_ptable_type)
        if self.is_dasd:
            return PartitionTableType.dasd
        return PartitionTableType(self.default_ptable_type)

    def as_not_empty(self):
        """ Return the partition table, or the one a new table would be.

            The returned table is not attached to the disk when the disk has
            none, so it can be used to reason about an empty disk without
            modifying it.
        """
        if self.partition_table is not None:
            return self.partition_table
        return PartitionTable(self, self.preferred_ptable_type)

    def create_partition_table(self, table_type=None):
        log_method_call(self, self.name, table_type=table_type)
        if self.format is not None:
            raise DeviceError("disk %s is not empty" % self.name)

        table_type = table_type or self.preferred_ptable_type
        self.partition_table = PartitionTable(self, table_type)
        log.debug("created %s partition table on %s", self.partition_table.type.value, self.name)
        return self.partition_table

    def delete_partition_table(self):
        log_method_call(self, self.name)
        self.partition_table = None
        self._mbr_gap = None

    def free_spaces(self):
        """ Return the free spaces of the disk.

            A disk with no partition table and no format is completely free,
            while a disk with a format but no table has no free space at all.
        """
        if self.partition_table is None and self.format is not None:
            return []
        return self.as_not_empty().free_spaces()

    def sort_key(self):
        return util.natural_sort_key(self.name)
