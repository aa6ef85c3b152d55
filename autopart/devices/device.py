# devices/device.py
# Base class for all devices.
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
from ..size import Size

import logging
log = logging.getLogger("autopart")


class Device(util.ObjectID):

    """ A generic block device.

        Devices carry a :attr:`sid` that survives copying the devicegraph
        they live in, so a device found in one graph can be looked up in
        a copy of it.
    """

    _type = "device"

    def __init__(self, name, size=None, fmt=None, exists=True):
        """
            :param str name: the device name
            :keyword size: the size of the device
            :type size: :class:`~.size.Size`
            :keyword fmt: the format stored on the device
            :type fmt: :class:`~.formats.DeviceFormat`
            :keyword bool exists: whether the device already exists
        """
        self.name = name
        self._size = Size(size or 0)
        self.format = fmt
        self.exists = exists

    def __repr__(self):
        return "%s(name=%s, size=%r, sid=%d)" % \
            (self.__class__.__name__, self.name, self.size, self.sid)

    def __str__(self):
        return "%s %s (%d)" % (self.type, self.name, self.sid)

    @property
    def type(self):
        return self._type

    def _get_size(self):
        return self._size

    def _set_size(self, value):
        self._size = Size(value)

    size = property(lambda s: s._get_size(), lambda s, v: s._set_size(v),
                    doc="the size of the device")

    @property
    def filesystem(self):
        """ The mountable format on this device, looking through encryption. """
        if self.format is None:
            return None
        fmt = self.format.innermost
        if fmt.mountable:
            return fmt
        return None

    @property
    def encrypted(self):
        return self.format is not None and self.format.type == "luks"

    @property
    def mountpoint(self):
        fmt = self.format.innermost if self.format is not None else None
        return fmt.mountpoint if fmt is not None else None
