# fs.py
# Filesystem classes.
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

""" Filesystem classes. """

from . import DeviceFormat, register_device_format
from ..util import clean_mount_point


class FS(DeviceFormat):

    """ Filesystem base class. """
    _type = "Abstract Filesystem Class"  # fs type name
    _name = None
    _mountable = True

    def __init__(self, mountpoint=None, label=None, uuid=None, exists=False,
                 mkfs_options=None, read_only=False, content_hints=None):
        """
            :keyword str mountpoint: the filesystem's mount point
            :keyword str label: the filesystem label
            :keyword str uuid: the filesystem UUID
            :keyword bool exists: whether the filesystem already exists
            :keyword str mkfs_options: extra options for the mkfs utility
            :keyword bool read_only: whether the filesystem is mounted read-only
            :keyword content_hints: things known to be stored in the
                                    filesystem, like "windows" or "rpi_firmware"
            :type content_hints: iterable of str
        """
        DeviceFormat.__init__(self, uuid=uuid, label=label, exists=exists)
        self._mountpoint = clean_mount_point(mountpoint)
        self.mkfs_options = mkfs_options
        self.read_only = read_only
        self.content_hints = set(content_hints or [])

    def __repr__(self):
        return "%s(mountpoint=%s, label=%s, exists=%s)" % \
            (self.__class__.__name__, self.mountpoint, self.label, self.exists)

    def _get_mountpoint(self):
        return self._mountpoint

    def _set_mountpoint(self, value):
        self._mountpoint = clean_mount_point(value)

    mountpoint = property(_get_mountpoint, _set_mountpoint,
                          doc="the filesystem's mount point")

    @property
    def windows_system(self):
        """ Whether the filesystem holds a Windows installation. """
        return "windows" in self.content_hints

    @property
    def rpi_firmware(self):
        """ Whether the filesystem holds the Raspberry Pi boot firmware. """
        return "rpi_firmware" in self.content_hints

    @property
    def efi_content(self):
        """ Whether the filesystem holds an EFI boot loader tree. """
        return "efi" in self.content_hints

    def to_dict(self):
        data = DeviceFormat.to_dict(self)
        if self.mountpoint:
            data["mount_point"] = self.mountpoint
        if self.content_hints:
            data["content"] = sorted(self.content_hints)
        return data


class Ext2FS(FS):
    _type = "ext2"
    _name = "ext2"


register_device_format(Ext2FS)


class Ext3FS(Ext2FS):
    _type = "ext3"
    _name = "ext3"


register_device_format(Ext3FS)


class Ext4FS(Ext3FS):
    _type = "ext4"
    _name = "ext4"


register_device_format(Ext4FS)


class XFS(FS):
    _type = "xfs"
    _name = "XFS"


register_device_format(XFS)


class BTRFS(FS):

    """ A btrfs filesystem and its subvolumes. """
    _type = "btrfs"
    _name = "Btrfs"

    def __init__(self, **kwargs):
        self.subvolumes = list(kwargs.pop("subvolumes", None) or [])
        self.default_subvolume = kwargs.pop("default_subvolume", None)
        self.snapshots = kwargs.pop("snapshots", False)
        super(BTRFS, self).__init__(**kwargs)

    def to_dict(self):
        data = FS.to_dict(self)
        if self.subvolumes:
            data["subvolumes"] = list(self.subvolumes)
        if self.default_subvolume:
            data["default_subvolume"] = self.default_subvolume
        if self.snapshots:
            data["snapshots"] = True
        return data


register_device_format(BTRFS)


class FATFS(FS):
    _type = "vfat"
    _name = "vfat"
    _aliases = ("fat", "fat32", "efi")


register_device_format(FATFS)


class NTFS(FS):
    _type = "ntfs"
    _name = "ntfs"


register_device_format(NTFS)
