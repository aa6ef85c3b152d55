# formats/__init__.py
# Entry point for the device formats subpackage.
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

from ..util import ObjectID
from ..errors import DeviceFormatError

import logging
log = logging.getLogger("autopart")

device_formats = {}


def register_device_format(fmt_class):
    if not issubclass(fmt_class, DeviceFormat):
        raise ValueError("arg1 must be a subclass of DeviceFormat")

    device_formats[fmt_class._type] = fmt_class
    log.debug("registered device format class %s as %s", fmt_class.__name__,
              fmt_class._type)


default_fstypes = ("ext4", "xfs", "btrfs")


def get_format(fmt_type, *args, **kwargs):
    """ Return an instance of the appropriate DeviceFormat class.

        :param fmt_type: The name of the formatting type
        :type fmt_type: str.
        :return: the format instance
        :rtype: :class:`DeviceFormat`
        :raises: :class:`~.errors.DeviceFormatError` for unknown types

        .. note::

            Any additional arguments will be passed on to the constructor for
            the format class.
    """
    fmt_class = get_device_format_class(fmt_type)
    if not fmt_class:
        raise DeviceFormatError("unknown format type: %s" % fmt_type)

    return fmt_class(*args, **kwargs)


def get_device_format_class(fmt_type):
    """ Return an appropriate format class.

        :param fmt_type: The name of the format type.
        :type fmt_type: str.
        :returns: The chosen DeviceFormat class
        :rtype: class.

        Returns None if no class is found for fmt_type.
    """
    if fmt_type is None:
        return None

    fmt_type = str(fmt_type).lower()
    fmt = device_formats.get(fmt_type)
    if not fmt:
        for fmt_class in device_formats.values():
            if fmt_type in fmt_class._aliases:
                fmt = fmt_class
                break

    return fmt


class DeviceFormat(ObjectID):

    """ Generic device format.

        Formats describe what a device holds. They are pure data here: the
        proposal only reads and assigns them, it never writes them to disk.
    """
    _type = None
    _name = "Unknown"
    _aliases = ()
    _mountable = False

    def __init__(self, uuid=None, label=None, exists=False):
        """
            :keyword str uuid: the UUID of the format
            :keyword str label: the label of the format
            :keyword bool exists: whether the format already exists on disk
        """
        self.uuid = uuid
        self.label = label
        self.exists = exists

    def __repr__(self):
        return "%s(type=%s, uuid=%s, label=%s, exists=%s)" % \
            (self.__class__.__name__, self.type, self.uuid, self.label, self.exists)

    @property
    def type(self):
        return self._type

    @property
    def name(self):
        return self._name

    @property
    def mountable(self):
        return self._mountable

    @property
    def mountpoint(self):
        return None

    @property
    def content(self):
        """ The format inside this one (only encryption has one). """
        return None

    @property
    def innermost(self):
        """ The format that is finally visible after unwrapping layers. """
        fmt = self
        while fmt.content is not None:
            fmt = fmt.content
        return fmt

    def to_dict(self):
        data = {"type": self.type}
        if self.uuid:
            data["uuid"] = self.uuid
        if self.label:
            data["label"] = self.label
        return data


# pylint: disable=wrong-import-position,unused-import
from . import fs
from . import swap
from . import lvmpv
from . import luks
