# devices/lvm.py
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

from ..errors import DeviceError, NotEnoughFreeSpaceError
from ..size import Size, ROUND_DOWN, ROUND_UP, size_sum
from ..storage_log import log_method_call
from ..formats.luks import LUKS_METADATA_SIZE
from .device import Device

import logging
log = logging.getLogger("autopart")

DEFAULT_PE_SIZE = Size("4 MiB")

# space at the start of every PV used by the LVM metadata area
PV_METADATA_SIZE = Size("1 MiB")


def pv_overhead(encrypted=False):
    """ Space of a PV device that does not end up in the volume group. """
    overhead = PV_METADATA_SIZE
    if encrypted:
        overhead += LUKS_METADATA_SIZE
    return overhead


def useful_pv_space(size, extent_size=DEFAULT_PE_SIZE, encrypted=False):
    """ Return the VG space a PV device of the given size provides. """
    useful = Size(size) - pv_overhead(encrypted)
    if useful <= Size(0):
        return Size(0)
    return useful.round_to_nearest(extent_size, rounding=ROUND_DOWN)


def real_pv_size(useful_size, extent_size=DEFAULT_PE_SIZE, encrypted=False):
    """ Return the size a PV device needs to provide useful_size to a VG. """
    useful = Size(useful_size).round_to_nearest(extent_size, rounding=ROUND_UP)
    return useful + pv_overhead(encrypted)


class LVMVolumeGroup(Device):

    """ An LVM volume group. """
    _type = "lvmvg"

    def __init__(self, name, pvs=None, extent_size=DEFAULT_PE_SIZE, exists=True):
        """
            :param str name: the VG name
            :keyword pvs: devices used as physical volumes
            :type pvs: list of :class:`~.devices.Device`
            :keyword extent_size: the physical extent size
            :type extent_size: :class:`~.size.Size`
        """
        Device.__init__(self, name, exists=exists)
        self.pvs = list(pvs or [])
        self.lvs = []
        self.extent_size = Size(extent_size)

    def __repr__(self):
        return "LVMVolumeGroup(name=%s, pvs=%s, lvs=%s, sid=%d)" % \
            (self.name, [pv.name for pv in self.pvs], [lv.lv_name for lv in self.lvs], self.sid)

    def _get_size(self):
        return size_sum(useful_pv_space(pv.size, self.extent_size, pv.encrypted)
                        for pv in self.pvs)

    @property
    def free_space(self):
        return self.size - size_sum(lv.size for lv in self.lvs)

    def add_pv(self, device):
        log_method_call(self, self.name, pv=device.name)
        if device in self.pvs:
            raise DeviceError("%s is already a PV of %s" % (device.name, self.name))
        self.pvs.append(device)

    def add_lv(self, lv):
        if lv.size > self.free_space:
            raise NotEnoughFreeSpaceError("not enough free space in %s for %s" % (self.name, lv.lv_name))
        self.lvs.append(lv)


class LVMLogicalVolume(Device):

    """ An LVM logical volume. """
    _type = "lvmlv"

    def __init__(self, vg, lv_name, size=None, fmt=None, exists=True):
        """
            :param vg: the volume group holding the LV
            :type vg: :class:`LVMVolumeGroup`
            :param str lv_name: the name of the LV inside the VG
            :keyword size: the size of the LV
            :keyword fmt: the format on the LV
        """
        Device.__init__(self, "%s-%s" % (vg.name, lv_name), size=size, fmt=fmt,
                        exists=exists)
        self.vg = vg
        self.lv_name = lv_name
