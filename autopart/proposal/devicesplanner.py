# proposal/devicesplanner.py
# Turning the proposal settings into planned devices.
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

from ..errors import BootRequirementsError, NotBootableError
from ..size import Size, size_sum
from ..storage_log import log_method_call, log_planned_devices
from .bootanalyzer import BootAnalyzer
from .bootstrategies import boot_strategy_for, needed_partitions
from .planned import PlannedDevice, Target, remove_shadowed_subvolumes, ensure_size_bounds

import logging
log = logging.getLogger("autopart")

# legacy swap sizing
MIN_SWAP_SIZE = Size("512 MiB")
MAX_SWAP_SIZE = Size("2 GiB")
SWAP_WEIGHT = 100


def devices_planner(settings, context, boot_strategy=None):
    """ Return the planner for the format of the settings. """
    cls = LegacyDevicesPlanner if settings.legacy else NgDevicesPlanner
    return cls(settings, context, boot_strategy=boot_strategy)


class DevicesPlanner(object):

    """ Base class of the devices planners.

        A planner never modifies the settings it is given.
    """

    def __init__(self, settings, context, boot_strategy=None):
        """
            :param settings: the proposal settings
            :type settings: :class:`~.settings.ProposalSettings`
            :param context: the planning context
            :type context: :class:`~.context.PlanningContext`
            :keyword boot_strategy: how the system boots, deduced from the
                                    context if not given
            :type boot_strategy: :class:`~.bootstrategies.BootStrategy`
        """
        self.settings = settings
        self.context = context
        self.boot_strategy = boot_strategy
        self.target = Target.desired

    @property
    def devicegraph(self):
        return self.context.devicegraph

    @property
    def ram_size(self):
        return self.context.ram_size

    def planned_devices(self, target):
        """ Return the list of devices to create for the given target.

            :param target: which size bound to aim for
            :type target: :class:`~.planned.Target`
            :rtype: list of :class:`~.planned.PlannedDevice`
            :raises: :class:`~.errors.NotBootableError`
        """
        log_method_call(self, target=target)
        self.target = Target(target)
        devices = self._planned_devices()
        remove_shadowed_subvolumes(devices)
        ensure_size_bounds(devices)
        log_planned_devices(devices, "planned devices (%s)" % self.target.value)
        return devices

    def _planned_devices(self):
        raise NotImplementedError()

    def planned_boot_devices(self, planned_devices):
        """ Devices needed to boot on top of the given ones. """
        analyzer = BootAnalyzer(self.devicegraph, planned_devices,
                                boot_disk_name=self.settings.root_device)
        strategy = self.boot_strategy or boot_strategy_for(self.context)
        try:
            return needed_partitions(strategy, analyzer, self.target, self.context)
        except BootRequirementsError as e:
            raise NotBootableError(str(e))

    def reusable_swap(self, required_size):
        """ The existing swap partition to use instead of creating one.

            Only without LVM and encryption. The smallest swap partition
            that is big enough wins, ties are broken by the device name.
        """
        if self.settings.use_lvm or self.settings.use_encryption:
            return None

        swaps = [p for p in self.devicegraph.partitions
                 if p.format is not None and p.format.type == "swap" and p.size >= required_size]
        if not swaps:
            return None
        return min(swaps, key=lambda p: (int(p.size), p.name))

    def _new_device(self, mount_point, fs_type):
        if self.settings.use_lvm:
            return PlannedDevice.logical_volume(mount_point, fs_type)
        return PlannedDevice.partition(mount_point, fs_type,
                                       encryption_password=self.settings.encryption_password)

    def _adjust_swap(self, device, required_size):
        if device.is_lv:
            device.lv_name = "swap"
            return

        reuse = self.reusable_swap(required_size)
        if reuse is not None:
            device.reuse_name = reuse.name
            log.info("planned to reuse swap %s", reuse.name)


class NgDevicesPlanner(DevicesPlanner):

    """ Planner for settings with a list of volume specifications. """

    def _planned_devices(self):
        devices = [self.planned_device(v) for v in self.settings.volumes if v.proposed]
        return self.planned_boot_devices(devices) + devices

    def planned_device(self, volume):
        device = self._new_device(volume.mount_point, volume.fs_type)
        device.weight = self.value_with_fallbacks(volume, "weight")
        device.partition_id = volume.partition_id
        self._adjust_sizes(device, volume)
        self._adjust_btrfs(device, volume)
        self._adjust_disk(device, volume)
        if volume.reuse_name:
            device.reuse_name = volume.reuse_name
        elif device.swap:
            self._adjust_swap(device, device.min_size)
        return device

    def value_with_fallbacks(self, volume, attr):
        """ The value of attr plus the ones of the volumes falling back to
            this one because they are not proposed.
        """
        value = getattr(volume, attr)
        if volume.ignore_fallback_sizes:
            return value
        for other in self.settings.volumes:
            if other.proposed:
                continue
            if getattr(other, "fallback_for_%s" % attr) == volume.mount_point:
                value = value + getattr(other, attr)
        return value

    def _adjust_sizes(self, device, volume):
        if self.target == Target.min:
            device.min_size = self.value_with_fallbacks(volume, "min_size")
        else:
            device.min_size = self.value_with_fallbacks(volume, "desired_size")

        max_size_lvm = self.value_with_fallbacks(volume, "max_size_lvm")
        if self.settings.use_lvm and max_size_lvm > Size(0):
            device.max_size = max_size_lvm
        else:
            device.max_size = self.value_with_fallbacks(volume, "max_size")

        if volume.adjust_by_ram and not volume.ignore_adjust_by_ram:
            device.min_size = max(device.min_size, self.ram_size)
            device.max_size = max(device.max_size, self.ram_size)

    def _adjust_btrfs(self, device, volume):
        if not device.btrfs:
            return

        device.default_subvolume = volume.btrfs_default_subvolume or ""
        device.subvolumes = list(volume.subvolumes)
        device.snapshots = volume.snapshots
        device.read_only = volume.btrfs_read_only
        if not device.snapshots or volume.ignore_snapshots_sizes:
            return

        if volume.snapshots_size > Size(0):
            device.min_size += volume.snapshots_size
            device.max_size += volume.snapshots_size
        elif volume.snapshots_percentage > 0:
            multiplicator = 1 + volume.snapshots_percentage / 100.0
            device.min_size *= multiplicator
            device.max_size *= multiplicator

    def _adjust_disk(self, device, volume):
        if not device.is_partition:
            return
        if self.settings.allocate_volume_mode == "device" and volume.device:
            device.disk = volume.device
        elif device.root:
            device.disk = self.settings.root_device


class LegacyDevicesPlanner(DevicesPlanner):

    """ Planner for the flat legacy settings (root, swap and home). """

    def _planned_devices(self):
        root = self.root_device()
        devices = self.planned_boot_devices([root]) + [root, self.swap_device()]
        if self.settings.use_separate_home and self._room_for_home():
            devices.append(self.home_device())
        return devices

    def _room_for_home(self):
        names = self.settings.candidate_devices
        disks = [d for d in self.devicegraph.disks if names is None or d.name in names]
        available = size_sum(d.size for d in disks)
        if available < self.settings.min_size_to_use_separate_home:
            log.info("not enough disk space (%s) for a separate /home", available)
            return False
        return True

    def root_device(self):
        settings = self.settings
        root = self._new_device("/", settings.root_filesystem_type)
        if root.is_partition:
            root.disk = settings.root_device
        root.weight = settings.root_space_percent
        root.max_size = settings.root_max_size
        if self.target == Target.min or root.max_size.unlimited:
            root.min_size = settings.root_base_size
        else:
            root.min_size = root.max_size

        if root.btrfs:
            if settings.use_snapshots:
                log.info("enabling snapshots for /")
                root.snapshots = True
                multiplicator = 1 + settings.btrfs_increase_percentage / 100.0
                root.min_size *= multiplicator
                root.max_size *= multiplicator
            if settings.subvolumes:
                root.default_subvolume = settings.btrfs_default_subvolume or ""
                root.subvolumes = list(settings.subvolumes)
        return root

    def swap_device(self):
        min_size = max_size = MAX_SWAP_SIZE
        if self.settings.enlarge_swap_for_suspend:
            min_size = max_size = max(self.ram_size, MAX_SWAP_SIZE)
        elif self.target == Target.min:
            min_size = MIN_SWAP_SIZE

        swap = self._new_device("swap", "swap")
        swap.min_size = min_size
        swap.max_size = max_size
        swap.weight = SWAP_WEIGHT
        self._adjust_swap(swap, max_size)
        return swap

    def home_device(self):
        settings = self.settings
        home = self._new_device("/home", settings.home_filesystem_type)
        home.min_size = settings.home_min_size
        home.max_size = settings.home_max_size
        home.weight = 100 - settings.root_space_percent
        return home
