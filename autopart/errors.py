# errors.py
# Exception classes for the autopart partitioning proposal.
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

from .i18n import N_


class StorageError(Exception):

    def __init__(self, *args, **kwargs):
        self.hardware_fault = kwargs.pop("hardware_fault", False)
        super(StorageError, self).__init__(*args, **kwargs)

# Device


class DeviceError(StorageError):
    pass


class DeviceNotFoundError(StorageError):
    pass


class DeviceResizeError(DeviceError):
    pass

# DeviceFormat


class DeviceFormatError(StorageError):
    pass

# Devicegraph


class DevicegraphError(StorageError):
    pass


class DevicegraphFormatError(DevicegraphError):
    """ A devicegraph description could not be parsed. """
    pass

# Size


class SizePlacesError(StorageError):
    pass

# partitioning


class PartitioningError(StorageError):
    pass


class NotEnoughFreeSpaceError(StorageError):
    pass

# settings


class SettingsError(StorageError):
    """ Invalid or inconsistent proposal settings. """
    pass

# boot requirements


class BootRequirementsError(StorageError):
    """ The boot layout cannot be satisfied with the given devices. """

    def __init__(self, *args, **kwargs):
        self.suggestion = kwargs.pop("suggestion", None)
        super(BootRequirementsError, self).__init__(*args, **kwargs)

# proposal


class ProposalError(StorageError):
    pass


class NoDiskSpaceError(ProposalError):
    message = N_("There is not enough space in the candidate disks "
                 "to allocate the planned devices.")

    def __str__(self):
        return super(NoDiskSpaceError, self).__str__() or self.message


class NoMorePartitionSlotError(NoDiskSpaceError):
    message = N_("There are not enough partition slots in the partition "
                 "table to allocate the planned devices.")


class NotBootableError(ProposalError):
    message = N_("The proposed layout would not be bootable.")

    def __str__(self):
        return super(NotBootableError, self).__str__() or self.message
