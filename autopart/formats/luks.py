# luks.py
# LUKS encryption format.
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
from ..size import Size

# space taken by the LUKS2 header at the start of the device
LUKS_METADATA_SIZE = Size("16 MiB")


class LUKS(DeviceFormat):

    """ A LUKS encrypted device wrapping another format. """
    _type = "luks"
    _name = "LUKS"
    _aliases = ("crypto_luks", "encryption")

    def __init__(self, passphrase=None, content=None, **kwargs):
        """
            :keyword str passphrase: the passphrase of the encrypted device
            :keyword content: the format stored inside the encrypted device
            :type content: :class:`~.formats.DeviceFormat`
        """
        DeviceFormat.__init__(self, **kwargs)
        self.passphrase = passphrase
        self._content = content

    def __repr__(self):
        return "LUKS(content=%r, exists=%s)" % (self._content, self.exists)

    def _get_content(self):
        return self._content

    def _set_content(self, value):
        self._content = value

    content = property(_get_content, _set_content,
                       doc="the format inside the encrypted device")

    @property
    def mountpoint(self):
        return self._content.mountpoint if self._content else None

    def to_dict(self):
        data = DeviceFormat.to_dict(self)
        if self._content is not None:
            data["content"] = self._content.to_dict()
        return data


register_device_format(LUKS)
