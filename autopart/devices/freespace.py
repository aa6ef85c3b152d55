# devices/freespace.py
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

from ..size import Size


class FreeDiskSpace(object):

    """ A contiguous, aligned region of a disk not used by any partition.

        The region may lie inside an extended partition, in which case only
        logical partitions can be created in it.
    """

    def __init__(self, disk, start, size, in_extended=False):
        """
            :param disk: the disk the space belongs to
            :type disk: :class:`~.devices.Disk`
            :param start: offset of the region from the start of the disk
            :type start: :class:`~.size.Size`
            :param size: length of the region
            :type size: :class:`~.size.Size`
            :keyword bool in_extended: whether the region is inside an
                                       extended partition
        """
        self.disk = disk
        self.start = Size(start)
        self.size = Size(size)
        self.in_extended = in_extended
        # set on the space next to a partition being shrunk, see
        # DistributionCalculator.resizing_size
        self.growing = False

    def __repr__(self):
        return "FreeDiskSpace(disk=%s, start=%s, size=%s%s)" % \
            (self.disk_name, self.start.human_readable(xlate=False),
             self.size.human_readable(xlate=False),
             ", logical" if self.in_extended else "")

    def __str__(self):
        return "%s[%d+%d]" % (self.disk_name, int(self.start), int(self.size))

    @property
    def disk_name(self):
        return self.disk.name

    @property
    def disk_size(self):
        """ Size of the space (named after the disk region it covers). """
        return self.size

    @property
    def start_offset(self):
        return self.start

    @property
    def end(self):
        return self.start + self.size

    @property
    def partition_table(self):
        """ Partition table that new partitions in this space will use. """
        return self.disk.as_not_empty()
