# devices/lib.py
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

from ..size import Size, ROUND_DOWN, ROUND_UP

LINUX_SECTOR_SIZE = Size(512)

# all new partitions start and end on MiB boundaries
ALIGNMENT_GRAIN = Size("1 MiB")

# every logical partition is preceded by its own EBR, which together with
# the alignment costs a whole grain
LOGICAL_OVERHEAD = ALIGNMENT_GRAIN

# the gap before the first partition of a freshly created MS-DOS table
DEFAULT_MBR_GAP = Size("1 MiB")

# the backup GPT header and partition entries at the end of the disk
GPT_END_RESERVED = Size("16.5 KiB")


class Tags(str, Enum):
    """Tags that describe various classes of disk."""
    local = 'local'
    remote = 'remote'
    removable = 'removable'
    ssd = 'ssd'
    usb = 'usb'


class PartitionTableType(str, Enum):
    gpt = "gpt"
    msdos = "msdos"
    dasd = "dasd"

    @property
    def max_primary(self):
        return {"gpt": 128, "msdos": 4, "dasd": 3}[self.value]

    @property
    def extended_possible(self):
        return self is PartitionTableType.msdos


class PartitionType(str, Enum):
    primary = "primary"
    extended = "extended"
    logical = "logical"


class PartitionId(Enum):

    """ Partition ids (the MBR system id or the GPT type they map to). """

    linux = 0x83
    swap = 0x82
    lvm = 0x8e
    raid = 0xfd
    extended = 0x0f
    esp = 0xef
    prep = 0x41
    dos12 = 0x01
    dos16 = 0x06
    ntfs = 0x07
    dos32 = 0x0c
    bios_boot = 0x101
    windows_basic_data = 0x102
    microsoft_reserved = 0x103
    unknown = 0x100

    @classmethod
    def from_string(cls, value):
        """ Return the id for a name like "esp" or "BIOS_BOOT", or a number. """
        if isinstance(value, PartitionId):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().lower()]
        except KeyError:
            raise ValueError("unknown partition id: %s" % value)

    @property
    def windows_system(self):
        """ Whether the id is used for Windows system partitions. """
        return self in (PartitionId.dos12, PartitionId.dos16, PartitionId.dos32,
                        PartitionId.ntfs, PartitionId.windows_basic_data)

    @property
    def linux_system(self):
        """ Whether the id is used for Linux system partitions. """
        return self in (PartitionId.linux, PartitionId.swap, PartitionId.lvm,
                        PartitionId.raid)


def align_up(size, grain=ALIGNMENT_GRAIN):
    return Size(size).round_to_nearest(grain, rounding=ROUND_UP)


def align_down(size, grain=ALIGNMENT_GRAIN):
    return Size(size).round_to_nearest(grain, rounding=ROUND_DOWN)


def partition_name(disk_name, number):
    """ Return the name of the partition number on the given disk.

        :param str disk_name: name of the disk, e.g. /dev/sda or /dev/nvme0n1
        :param int number: partition number
        :rtype: str
    """
    if disk_name and disk_name[-1].isdigit():
        return "%sp%d" % (disk_name, number)
    return "%s%d" % (disk_name, number)
