# proposal/context.py
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

from ..arch import ArchFacts
from ..size import Size

import logging
log = logging.getLogger("autopart")


class PlanningContext(object):

    """ Everything a planning attempt may look at besides the settings.

        :attr devicegraph: the devicegraph the attempt starts from
        :attr arch: :class:`~.arch.ArchFacts` of the target system
        :attr ram_size: the amount of RAM, used to size swap
    """

    def __init__(self, devicegraph, arch=None, ram_size=None):
        self.devicegraph = devicegraph
        self.arch = arch if arch is not None else ArchFacts()
        if ram_size is None:
            ram_size = self.arch.ram_size
        self.ram_size = Size(ram_size)

    def __repr__(self):
        return "PlanningContext(arch=%r, ram_size=%s)" % (self.arch, self.ram_size)

    @classmethod
    def probe(cls, devicegraph, bootloader=None, nfs_root=False):
        """ Build a context for the running system. """
        return cls(devicegraph, ArchFacts.probe(bootloader=bootloader, nfs_root=nfs_root))

    def with_devicegraph(self, devicegraph):
        """ Return the same context for another devicegraph. """
        return PlanningContext(devicegraph, arch=self.arch, ram_size=self.ram_size)
