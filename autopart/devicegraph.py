# devicegraph.py
# In-memory graph of the storage devices the proposal works on.
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

import copy
import re

import yaml

from .devices import Disk, Partition, LVMVolumeGroup, LVMLogicalVolume
from .devices.lib import PartitionId, PartitionType, LOGICAL_OVERHEAD
from .devices.lvm import DEFAULT_PE_SIZE
from .errors import DevicegraphError, DevicegraphFormatError, DeviceNotFoundError
from .formats import get_format
from .formats.lvmpv import LVMPhysicalVolume
from .formats.luks import LUKS
from .size import Size, UNLIMITED
from .storage_log import log_method_call
from . import util

import logging
log = logging.getLogger("autopart")


class Devicegraph(object):

    """ A graph of disks, partitions, volume groups and their formats.

        The proposal never modifies the graph it is given: every attempt
        works on a :meth:`copy`, and devices are matched between copies by
        their sid.
    """

    def __init__(self):
        self._disks = []
        self._vgs = []

    def __str__(self):
        lines = []
        for disk in self.disks:
            table = disk.partition_table
            lines.append("%s %s %s" % (disk.name, disk.size,
                                       table.type.value if table else "-"))
            for part in disk.partitions:
                lines.append("  %s %s %s %s %s" % (part.name, part.size, part.part_id.name,
                                                   part.format.type if part.format else "-",
                                                   part.mountpoint or ""))
        for vg in self.vgs:
            lines.append("%s %s" % (vg.name, vg.size))
            for lv in vg.lvs:
                lines.append("  %s %s %s" % (lv.name, lv.size, lv.mountpoint or ""))
        return "\n".join(lines)

    def copy(self):
        """ Return an independent copy keeping the device sids. """
        return copy.deepcopy(self)

    #
    # queries
    #
    @property
    def disks(self):
        return list(self._disks)

    @property
    def partitions(self):
        return [p for d in self._disks for p in d.partitions]

    @property
    def vgs(self):
        return list(self._vgs)

    @property
    def lvs(self):
        return [lv for vg in self._vgs for lv in vg.lvs]

    @property
    def devices(self):
        return self.disks + self.partitions + self.vgs + self.lvs

    @property
    def blk_devices(self):
        """ Devices that can hold a format. """
        return self.disks + self.partitions + self.lvs

    @property
    def filesystems(self):
        """ Block devices holding a mountable format. """
        return [d for d in self.blk_devices if d.filesystem is not None]

    @property
    def mount_points(self):
        return [d.mountpoint for d in self.blk_devices if d.mountpoint]

    def find_by_name(self, name):
        return next((d for d in self.devices if d.name == name), None)

    def find_by_sid(self, sid):
        return next((d for d in self.devices if d.sid == sid), None)

    def find_by_mount_point(self, mount_point):
        mount_point = util.clean_mount_point(mount_point)
        return next((d for d in self.blk_devices if d.mountpoint == mount_point), None)

    def get_disk(self, name):
        disk = self.find_by_name(name)
        if not isinstance(disk, Disk):
            raise DeviceNotFoundError("no disk named %s" % name)
        return disk

    def vg_of(self, device):
        """ The VG the device is a physical volume of, if any. """
        return next((vg for vg in self._vgs if device in vg.pvs), None)

    def ancestors(self, device):
        """ All the devices the given one is built upon. """
        result = []
        if isinstance(device, Partition):
            result.append(device.disk)
        elif isinstance(device, LVMLogicalVolume):
            result.append(device.vg)
            for pv in device.vg.pvs:
                result.append(pv)
                result.extend(self.ancestors(pv))
        elif isinstance(device, LVMVolumeGroup):
            for pv in device.pvs:
                result.append(pv)
                result.extend(self.ancestors(pv))
        return util.dedup_list(result)

    def disks_of(self, device):
        """ The disks the device is built upon (or the device itself). """
        if isinstance(device, Disk):
            return [device]
        return [d for d in self.ancestors(device) if isinstance(d, Disk)]

    #
    # modifications
    #
    def add_disk(self, disk):
        if self.find_by_name(disk.name):
            raise DevicegraphError("duplicate device name %s" % disk.name)
        self._disks.append(disk)
        return disk

    def create_partition(self, disk, start, size, part_type=PartitionType.primary,
                         part_id=PartitionId.linux, fmt=None, number=None):
        """ Create a partition in the disk's table (creating the table first
            if needed) and return it.
        """
        log_method_call(self, disk.name, start=start, size=size, part_type=part_type)
        table = disk.partition_table or disk.create_partition_table()
        part_type = PartitionType(part_type)
        if part_type == PartitionType.logical and not table.has_extended:
            raise DevicegraphError("no extended partition on %s" % disk.name)
        if part_type == PartitionType.extended and table.has_extended:
            raise DevicegraphError("%s already has an extended partition" % disk.name)

        if number is None:
            number = table.next_number(part_type)
        partition = Partition(disk, number, start, size, part_type=part_type,
                              part_id=part_id, fmt=fmt, exists=False)
        table.add(partition)
        log.debug("created %r", partition)
        return partition

    def delete_partition(self, partition, disk_names=None):
        """ Delete the partition and everything built on top of it.

            If the partition is a PV, its VG is deleted as well, together
            with the other PVs of that VG that live on one of disk_names.

            :returns: the sids of all deleted devices
            :rtype: list of int
        """
        log_method_call(self, partition.name)
        deleted = []
        table = partition.disk.partition_table
        if partition not in table.partitions:
            return deleted

        if partition.is_extended:
            for logical in [p for p in table.partitions if p.is_logical]:
                deleted.extend(self.delete_partition(logical, disk_names))

        vg = self.vg_of(partition)
        if vg is not None:
            deleted.extend(self.delete_vg(vg))
            for pv in list(vg.pvs):
                if pv is partition or not isinstance(pv, Partition):
                    continue
                if disk_names is not None and pv.disk.name in disk_names:
                    deleted.extend(self.delete_partition(pv, disk_names))

        if partition in table.partitions:
            table.remove(partition)
            deleted.append(partition.sid)
            log.debug("deleted partition %s", partition.name)

        return deleted

    def delete_vg(self, vg):
        log_method_call(self, vg.name)
        if vg not in self._vgs:
            return []
        self._vgs.remove(vg)
        return [vg.sid] + [lv.sid for lv in vg.lvs]

    def wipe_disk(self, disk):
        """ Remove the partition table or format from the disk.

            :returns: the sids of all deleted devices
            :rtype: list of int
        """
        log_method_call(self, disk.name)
        deleted = []
        for part in disk.partitions:
            deleted.extend(self.delete_partition(part))

        vg = self.vg_of(disk)
        if vg is not None:
            deleted.extend(self.delete_vg(vg))

        disk.delete_partition_table()
        disk.format = None
        return util.dedup_list(deleted)

    def create_vg(self, name, pvs, extent_size=DEFAULT_PE_SIZE):
        log_method_call(self, name, pvs=[pv.name for pv in pvs])
        if any(vg.name == name for vg in self._vgs):
            raise DevicegraphError("volume group %s already exists" % name)
        vg = LVMVolumeGroup(name, pvs=pvs, extent_size=extent_size, exists=False)
        self._vgs.append(vg)
        return vg

    def add_vg(self, vg):
        self._vgs.append(vg)
        return vg

    def create_lv(self, vg, lv_name, size, fmt=None):
        log_method_call(self, vg.name, lv_name=lv_name, size=size)
        lv = LVMLogicalVolume(vg, lv_name, size=size, fmt=fmt, exists=False)
        vg.add_lv(lv)
        return lv

    #
    # (de)serialization
    #
    @classmethod
    def from_yaml(cls, stream):
        """ Build a devicegraph from a YAML description.

            :param stream: YAML text or an open file
            :raises: :class:`~.errors.DevicegraphFormatError`
        """
        try:
            data = yaml.safe_load(stream)
        except yaml.YAMLError as e:
            raise DevicegraphFormatError("invalid YAML: %s" % e)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data):
        """ Build a devicegraph from a list of one-key dicts, see
            :class:`DevicegraphReader`.
        """
        return DevicegraphReader(data).read()

    def to_dict(self):
        return DevicegraphWriter(self).write()

    def to_yaml(self):
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


def load_devicegraph(path):
    """ Read a devicegraph from a YAML file. """
    log.info("loading devicegraph from %s", path)
    with open(path, "r") as f:
        return Devicegraph.from_yaml(f)


def _size(value, default=None):
    if value is None:
        return default
    try:
        return Size(value)
    except ValueError as e:
        raise DevicegraphFormatError(str(e))


class DevicegraphReader(object):

    """ Builds a :class:`Devicegraph` from its dict/YAML description.

        The description is a list of entries, each one a dict with a single
        key (disk, dasd or lvm_vg)::

            - disk:
                name: /dev/sda
                size: 500 GiB
                partition_table: msdos
                partitions:
                - partition:
                    size: 100 GiB
                    id: ntfs
                    file_system: ntfs
                    content: [windows]
                    min_size: 20 GiB
                - free:
                    size: 10 GiB
                - partition:
                    size: unlimited
                    file_system: btrfs
                    mount_point: /
    """

    _NUMBER_RE = re.compile(r"(\d+)$")

    def __init__(self, data):
        self.data = data or []
        self.graph = Devicegraph()

    def read(self):
        if not isinstance(self.data, list):
            raise DevicegraphFormatError("a devicegraph description must be a list")

        vgs = []
        for entry in self.data:
            if not isinstance(entry, dict) or len(entry) != 1:
                raise DevicegraphFormatError("invalid devicegraph entry: %s" % entry)
            (kind, attrs) = list(entry.items())[0]
            attrs = attrs or {}
            if kind in ("disk", "dasd"):
                self._read_disk(kind, attrs)
            elif kind == "lvm_vg":
                # VGs refer to PVs by name, so they go last
                vgs.append(attrs)
            else:
                raise DevicegraphFormatError("unknown devicegraph entry: %s" % kind)

        for attrs in vgs:
            self._read_vg(attrs)

        return self.graph

    def _format(self, attrs, fs_key="file_system"):
        fs_type = attrs.get(fs_key)
        fmt = None
        if fs_type:
            kwargs = {}
            if fs_type != "swap":
                kwargs = dict(mountpoint=attrs.get("mount_point"), label=attrs.get("label"),
                              uuid=attrs.get("uuid"), exists=True,
                              content_hints=attrs.get("content"))
                if fs_type == "btrfs":
                    kwargs["subvolumes"] = attrs.get("subvolumes")
                    kwargs["default_subvolume"] = attrs.get("default_subvolume")
            else:
                kwargs = dict(label=attrs.get("label"), uuid=attrs.get("uuid"), exists=True)
            fmt = get_format(fs_type, **kwargs)

        encryption = attrs.get("encryption")
        if encryption:
            fmt = LUKS(passphrase=encryption.get("password"), content=fmt, exists=True)

        return fmt

    def _read_disk(self, kind, attrs):
        name = attrs.get("name")
        size = _size(attrs.get("size"))
        if not name or size is None:
            raise DevicegraphFormatError("disks need a name and a size")

        tags = list(attrs.get("tags") or [])
        if attrs.get("usb"):
            tags.append("usb")

        dasd_type = None
        dasd_format = None
        if kind == "dasd":
            dasd_type = attrs.get("type", "eckd")
            dasd_format = attrs.get("format", "cdl")

        disk = Disk(name, size=size, fmt=self._format(attrs), mbr_gap=_size(attrs.get("mbr_gap")),
                    tags=tags, dasd_type=dasd_type, dasd_format=dasd_format)
        self.graph.add_disk(disk)

        ptable = attrs.get("partition_table")
        if ptable:
            disk.create_partition_table(ptable)
            self._read_partitions(disk, attrs.get("partitions") or [])
        elif attrs.get("partitions"):
            raise DevicegraphFormatError("partitions on %s without a partition table" % name)

    def _read_partitions(self, disk, entries):
        table = disk.partition_table
        (pos, end) = table.usable_region()
        if disk._mbr_gap is not None:
            pos = disk._mbr_gap
        logical_pos = None

        for entry in entries:
            (kind, attrs) = list(entry.items())[0]
            attrs = attrs or {}
            if kind == "free":
                size = _size(attrs.get("size"), Size(0))
                if logical_pos is not None and logical_pos < table.extended.end:
                    logical_pos += size
                else:
                    pos += size
                continue
            elif kind != "partition":
                raise DevicegraphFormatError("unknown partition entry: %s" % kind)

            part_type = PartitionType(attrs.get("type", "primary"))
            if part_type == PartitionType.logical:
                if logical_pos is None:
                    raise DevicegraphFormatError("logical partition without extended one on %s" % disk.name)
                start = _size(attrs.get("start"), logical_pos + LOGICAL_OVERHEAD)
                limit = table.extended.end
            else:
                start = _size(attrs.get("start"), pos)
                limit = end

            size = _size(attrs.get("size"), UNLIMITED)
            if size.unlimited:
                size = limit - start
            if size <= Size(0) or start + size > limit:
                raise DevicegraphFormatError("partition does not fit in %s" % disk.name)

            number = None
            if attrs.get("name"):
                m = self._NUMBER_RE.search(attrs["name"])
                number = int(m.group(1)) if m else None

            fmt = self._format(attrs)
            default_id = PartitionId.swap if (fmt and fmt.innermost.type == "swap") else PartitionId.linux
            if part_type == PartitionType.extended:
                default_id = PartitionId.extended
            part_id = PartitionId.from_string(attrs.get("id", default_id))

            partition = self.graph.create_partition(disk, start, size, part_type=part_type,
                                                    part_id=part_id, fmt=fmt, number=number)
            partition.exists = True
            partition.bootable = bool(attrs.get("bootable", False))
            if attrs.get("min_size") is not None:
                partition._min_size = _size(attrs["min_size"])

            if part_type == PartitionType.extended:
                logical_pos = start
                pos = start + size
            elif part_type == PartitionType.logical:
                logical_pos = start + size
            else:
                pos = start + size

    def _read_vg(self, attrs):
        vg_name = attrs.get("vg_name")
        if not vg_name:
            raise DevicegraphFormatError("volume groups need a vg_name")

        pvs = []
        for entry in attrs.get("lvm_pvs") or []:
            pv_attrs = entry.get("lvm_pv") or {}
            device = self.graph.find_by_name(pv_attrs.get("blk_device"))
            if device is None:
                raise DevicegraphFormatError("unknown PV device %s" % pv_attrs.get("blk_device"))
            pv_format = LVMPhysicalVolume(vg_name=vg_name, exists=True)
            if device.encrypted:
                device.format.content = pv_format
            else:
                device.format = pv_format
            pvs.append(device)

        vg = LVMVolumeGroup(vg_name, pvs=pvs,
                            extent_size=_size(attrs.get("extent_size"), DEFAULT_PE_SIZE))
        self.graph.add_vg(vg)

        for entry in attrs.get("lvm_lvs") or []:
            lv_attrs = entry.get("lvm_lv") or {}
            size = _size(lv_attrs.get("size"), UNLIMITED)
            if size.unlimited:
                size = vg.free_space
            lv = LVMLogicalVolume(vg, lv_attrs.get("lv_name"), size=size,
                                  fmt=self._format(lv_attrs))
            vg.add_lv(lv)


class DevicegraphWriter(object):

    """ Dumps a :class:`Devicegraph` in the format read by :class:`DevicegraphReader`. """

    def __init__(self, graph):
        self.graph = graph

    def write(self):
        result = []
        for disk in self.graph.disks:
            kind = "dasd" if disk.is_dasd else "disk"
            attrs = {"name": disk.name, "size": self._size(disk.size)}
            if disk.usb:
                attrs["usb"] = True
            if disk.is_dasd:
                attrs["type"] = disk.dasd_type
                attrs["format"] = disk.dasd_format
            attrs.update(self._format(disk.format))
            if disk.partition_table is not None:
                attrs["partition_table"] = disk.partition_table.type.value
                attrs["partitions"] = [self._partition(p) for p in disk.partitions]
            result.append({kind: attrs})

        for vg in self.graph.vgs:
            attrs = {"vg_name": vg.name, "extent_size": self._size(vg.extent_size),
                     "lvm_pvs": [{"lvm_pv": {"blk_device": pv.name}} for pv in vg.pvs],
                     "lvm_lvs": []}
            for lv in vg.lvs:
                lv_attrs = {"lv_name": lv.lv_name, "size": self._size(lv.size)}
                lv_attrs.update(self._format(lv.format))
                attrs["lvm_lvs"].append({"lvm_lv": lv_attrs})
            result.append({"lvm_vg": attrs})

        return result

    @staticmethod
    def _size(size):
        return size.human_readable(max_places=None, xlate=False)

    def _partition(self, part):
        attrs = {"name": part.name, "start": self._size(part.start), "size": self._size(part.size),
                 "type": part.part_type.value, "id": part.part_id.name}
        if part.bootable:
            attrs["bootable"] = True
        attrs.update(self._format(part.format))
        return {"partition": attrs}

    @staticmethod
    def _format(fmt):
        if fmt is None:
            return {}

        attrs = {}
        inner = fmt
        if fmt.type == "luks":
            attrs["encryption"] = {"type": "luks"}
            inner = fmt.content
        if inner is None or inner.type == "lvmpv":
            return attrs

        attrs["file_system"] = inner.type
        if inner.mountpoint and inner.type != "swap":
            attrs["mount_point"] = inner.mountpoint
        if inner.label:
            attrs["label"] = inner.label
        if getattr(inner, "subvolumes", None):
            attrs["subvolumes"] = list(inner.subvolumes)
        return attrs
