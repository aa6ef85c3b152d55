# lvmpv.py
# LVM physical volume format.
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

from . import DeviceFormat, register_device_format


class LVMPhysicalVolume(DeviceFormat):

    """ An LVM physical volume. """
    _type = "lvmpv"
    _name = "physical volume (LVM)"
    _aliases = ("lvm", "pv")

    def __init__(self, vg_name=None, **kwargs):
        """
            :keyword str vg_name: the name of the VG this PV belongs to
        """
        DeviceFormat.__init__(self, **kwargs)
        self.vg_name = vg_name

    def __repr__(self):
        return "LVMPhysicalVolume(vg_name=%s, exists=%s)" % (self.vg_name, self.exists)

    def to_dict(self):
        data = DeviceFormat.to_dict(self)
        if self.vg_name:
            data["vg_name"] = self.vg_name
        return data


register_device_format(LVMPhysicalVolume)
