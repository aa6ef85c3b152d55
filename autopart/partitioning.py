# partitioning.py
# Growing planned devices inside a region of free units.
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

from decimal import Decimal

from .i18n import _
from .size import Size, ROUND_UP, ROUND_DOWN
from .devices.lib import ALIGNMENT_GRAIN

import logging
log = logging.getLogger("autopart")


class Request(object):

    """ A request for growing a planned device.

        Request instances are used for calculating how much to grow
        planned partitions and logical volumes. All the numbers are counts
        of the units of the chunk the request is added to.
    """

    def __init__(self, device, base, max_units=None, weight=0, growable=True):
        """
            :param device: the planned device being requested
            :type device: :class:`~.proposal.planned.PlannedDevice`
            :param int base: units the device needs at least
            :keyword max_units: units the device may grow up to (None for no limit)
            :type max_units: int or NoneType
            :keyword int weight: relative share of the free units
            :keyword bool growable: whether the device may grow at all
        """
        self.device = device
        self.base = base
        self.weight = weight
        self.growth = 0
        if max_units is None:
            self.max_growth = None
        else:
            self.max_growth = max(max_units - base, 0)
        self.growable = growable
        self.done = not growable or self.max_growth == 0

    def __repr__(self):
        s = ("%(type)s instance --\n"
             "name = %(name)s  growable = %(growable)s  weight = %(weight)s\n"
             "base = %(base)d  growth = %(growth)d  max_grow = %(max_grow)s\n"
             "done = %(done)s" %
             {"type": self.__class__.__name__, "name": self.name,
              "growable": self.growable, "weight": self.weight,
              "base": self.base, "growth": self.growth,
              "max_grow": self.max_growth, "done": self.done})
        return s

    @property
    def name(self):
        return getattr(self.device, "mount_point", None) or str(self.device)

    @property
    def units(self):
        """ Units assigned to the device after growing. """
        return self.base + self.growth


class Chunk(object):

    """ A region of free units from which devices will be allocated """

    def __init__(self, length, requests=None):
        """
            :param int length: the length of the chunk (units vary with subclass)
            :keyword requests: list of requests to add
            :type requests: list of :class:`Request`
        """
        self.length = length
        self.pool = length                  # free unit count
        self.requests = []
        for req in requests or []:
            self.add_request(req)

    def __repr__(self):
        return ("%(type)s instance --\n"
                "length = %(length)d  size = %(size)s\n"
                "remaining = %(rem)d  pool = %(pool)d" %
                {"type": self.__class__.__name__, "length": self.length,
                 "size": self.length_to_size(self.length),
                 "pool": self.pool, "rem": self.remaining})

    def __str__(self):
        return "%d units" % self.length

    def add_request(self, req):
        """ Add a request to this chunk.

            :param req: the request to add
            :type req: :class:`Request`
        """
        log.debug("adding request %s to chunk %s", req.name, self)
        self.requests.append(req)
        self.pool -= req.base

    @property
    def growth(self):
        """ Sum of growth for all requests in this chunk. """
        return sum(r.growth for r in self.requests)

    @property
    def remaining(self):
        """ Number of requests still being grown in this chunk. """
        return len([r for r in self.requests if not r.done])

    @property
    def done(self):
        """ True if we are finished growing all requests in this chunk. """
        return self.remaining == 0 or self.pool <= 0

    def length_to_size(self, length):
        return length

    def size_to_length(self, size):
        return size

    def trim_over_grown_request(self, req):
        """ Enforce max growth and return extra units to the pool. """
        if req.max_growth is not None and req.growth >= req.max_growth:
            if req.growth > req.max_growth:
                extra = req.growth - req.max_growth
                log.debug("taking back %d (%s) from %s", extra,
                          self.length_to_size(extra), req.name)
                self.pool += extra
                req.growth = req.max_growth

            req.done = True

    @staticmethod
    def _shares(requests):
        """ Relative shares of the pool for the given requests.

            Weights decide. When none of the requests has a weight, the
            base sizes do, and with no base either the pool is split evenly.
        """
        for attr in ("weight", "base"):
            shares = [Decimal(getattr(r, attr)) for r in requests]
            if sum(shares) > 0:
                return shares
        return [Decimal(1)] * len(requests)

    def grow_requests(self):
        """ Calculate growth amounts for requests in this chunk.

            Given a total number of available units, requests receive an
            allotment proportional to their weights. A request with weight
            40 grows four times as fast as one with weight 10. Requests
            that reach their maximum give the extra units back to the pool,
            which is then shared among the remaining ones.
        """
        log.debug("Chunk.grow_requests: %r", self)

        last_pool = None   # used to track changes to the pool across iterations
        while not self.done and last_pool != self.pool:
            last_pool = self.pool
            growing = [r for r in self.requests if not r.done]
            shares = self._shares(growing)
            total = sum(shares)
            log.debug("%d requests and %s (%s) left in chunk",
                      len(growing), self.pool, self.length_to_size(self.pool))
            for (req, share) in zip(growing, shares):
                growth = int(share / total * last_pool)  # truncate, don't round
                req.growth += growth
                self.pool -= growth
                self.trim_over_grown_request(req)
                log.debug("new grow amount for %s is %s units, or %s",
                          req.name, req.growth, self.length_to_size(req.growth))

        if self.pool > 0:
            # allocate any leftovers in pool to the first request that can
            # still grow
            for req in self.requests:
                if req.done:
                    continue

                req.growth += self.pool
                self.pool = 0
                self.trim_over_grown_request(req)
                if self.pool == 0:
                    break


class SpaceChunk(Chunk):

    """ A free disk space from which partitions will be allocated.

        The unit is the alignment grain, so every partition gets an aligned
        size.
    """

    def __init__(self, size, requests=None):
        """
            :param size: usable size of the space
            :type size: :class:`~.size.Size`
        """
        self.grain = ALIGNMENT_GRAIN
        super(SpaceChunk, self).__init__(int(Size(size) // self.grain), requests=requests)

    def length_to_size(self, length):
        return Size(length * int(self.grain))

    def size_to_length(self, size):
        return int(Size(size).round_to_nearest(self.grain, rounding=ROUND_UP) // self.grain)

    def request_for(self, device, weight=None):
        """ Return a :class:`Request` for the given planned partition. """
        base = self.size_to_length(device.min_size)
        max_units = None
        if not device.max_size.unlimited:
            max_units = max(int(device.max_size.round_to_nearest(self.grain, rounding=ROUND_DOWN) // self.grain),
                            base)
        growable = not device.keep_size
        weight = device.weight if weight is None else weight
        return Request(device, base, max_units=max_units, weight=weight, growable=growable)


class VGChunk(Chunk):

    """ A volume group from which logical volumes will be allocated. """

    def __init__(self, size, extent_size, requests=None):
        """
            :param size: free space in the volume group
            :type size: :class:`~.size.Size`
            :param extent_size: the physical extent size of the VG
            :type extent_size: :class:`~.size.Size`
        """
        self.extent_size = Size(extent_size)
        if self.extent_size <= Size(0):
            raise ValueError(_("invalid extent size"))
        super(VGChunk, self).__init__(int(Size(size) // self.extent_size), requests=requests)

    def length_to_size(self, length):
        return Size(length * int(self.extent_size))

    def size_to_length(self, size):
        return int(Size(size).round_to_nearest(self.extent_size, rounding=ROUND_UP) // self.extent_size)

    def request_for(self, device):
        """ Return a :class:`Request` for the given planned logical volume. """
        base = self.size_to_length(device.min_size)
        max_units = None
        if not device.max_size.unlimited:
            max_units = max(int(device.max_size.round_to_nearest(self.extent_size, rounding=ROUND_DOWN)
                                // self.extent_size), base)
        return Request(device, base, max_units=max_units, weight=device.weight)
