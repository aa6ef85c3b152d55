# proposal/physvol.py
# Placing the physical volumes of the planned volume group.
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

import itertools

from ..devices.lib import PartitionType, LOGICAL_OVERHEAD
from ..errors import NoDiskSpaceError
from ..flags import flags
from ..size import Size, UNLIMITED, size_sum
from .settings import LvmVgStrategy

import logging
log = logging.getLogger("autopart")

# only the biggest useful spaces are considered
MAX_USEFUL_SPACES = 7


def pv_strategy_for(distribution, spaces, planned_vg):
    """ Return the strategy adding the PVs of planned_vg to distribution. """
    if planned_vg.size_strategy == LvmVgStrategy.use_available:
        cls = UseAvailable
    else:
        cls = UseNeeded
    return cls(distribution, spaces, planned_vg)


class PhysVolStrategy(object):

    """ Base class of the ways of adding PV partitions to a distribution.

        Subclasses provide :meth:`space_combinations` and
        :meth:`processed_distribution`.
    """

    def __init__(self, distribution, spaces, planned_vg):
        """
            :param distribution: distribution of the other planned partitions
            :type distribution: :class:`~.distribution.PartitionsDistribution`
            :param spaces: free spaces that may hold PVs
            :type spaces: list of :class:`~.devices.FreeDiskSpace`
            :param planned_vg: the volume group missing some space
            :type planned_vg: :class:`~.planned.PlannedVg`
        """
        self.initial_distribution = distribution
        self.all_spaces = spaces
        self.planned_vg = planned_vg
        self._useful_spaces = None
        self._useful_sizes = {}
        self._potential_sizes = {}

    def __repr__(self):
        return "%s(vg=%s, spaces=%s)" % (self.__class__.__name__,
                                         self.planned_vg.volume_group_name, self.all_spaces)

    def add_physical_volumes(self):
        """ The best distribution with enough PVs, None if there is none. """
        best = None
        for spaces in self.space_combinations():
            if not self.worth_checking(spaces):
                continue
            candidate = self.processed_distribution(spaces)
            if candidate is None:
                continue
            if best is None or candidate.better_than(best) < 0:
                best = candidate
        return best

    def space_combinations(self):
        raise NotImplementedError()

    def processed_distribution(self, spaces):
        raise NotImplementedError()

    def worth_checking(self, spaces):
        return True

    def estimated_available_size(self, space):
        """ Space the other planned partitions leave free in space. """
        assigned = self.initial_distribution.space_at(space)
        if assigned is None:
            return space.disk_size

        size = assigned.extra_size
        if assigned.partition_type == PartitionType.logical:
            size -= LOGICAL_OVERHEAD
        return size

    @property
    def useful_spaces(self):
        """ Spaces that can hold at least a minimal PV, biggest first. """
        if self._useful_spaces is None:
            useful = [s for s in self.all_spaces
                      if self.estimated_available_size(s) >= self.planned_vg.min_pv_size]
            useful.sort(key=lambda s: int(self.useful_size(s)), reverse=True)
            if len(useful) > MAX_USEFUL_SPACES:
                log.info("only considering the %d biggest of %d spaces for PVs",
                         MAX_USEFUL_SPACES, len(useful))
                useful = useful[:MAX_USEFUL_SPACES]
            self._useful_spaces = useful
        return self._useful_spaces

    def useful_size(self, space):
        """ VG space a PV taking everything left in space would provide. """
        if space not in self._useful_sizes:
            available = self.estimated_available_size(space)
            self._useful_sizes[space] = self.planned_vg.useful_pv_space(available)
        return self._useful_sizes[space]

    def new_pv_at(self, assigned_space):
        return next((p for p in assigned_space.partitions
                     if p.lvm_pv and p.lvm_volume_group_name == self.planned_vg.volume_group_name),
                    None)

    def potential_partition_size(self, partition, assigned_space):
        if partition not in self._potential_sizes:
            self._potential_sizes[partition] = assigned_space.usable_extra_size + partition.min_size
        return self._potential_sizes[partition]

    def potential_lvm_size(self, distribution):
        """ VG space the PVs of distribution provide if they grow to the max. """
        total = Size(0)
        for space in distribution.spaces:
            pv = self.new_pv_at(space)
            if pv is not None:
                total += self.planned_vg.useful_pv_space(self.potential_partition_size(pv, space))
        return total

    def adjust_weights(self, distribution):
        """ PVs grow like the other partitions of their space together. """
        for space in distribution.spaces:
            pv = self.new_pv_at(space)
            if pv is None:
                continue
            pv.weight = sum(p.weight or 0 for p in space.partitions if p is not pv) or 1

    def _add_pvs(self, spaces):
        pvs = dict((space, self.planned_vg.minimal_pv_partition()) for space in spaces)
        try:
            return self.initial_distribution.add_partitions(pvs)
        except NoDiskSpaceError as e:
            log.debug("cannot add PVs to %s: %s", spaces, e)
            return None


class UseAvailable(PhysVolStrategy):

    """ PVs take all the space they can get in as many spaces as possible. """

    def __init__(self, distribution, spaces, planned_vg):
        super(UseAvailable, self).__init__(distribution, spaces, planned_vg)
        self._successful = []

    def space_combinations(self):
        spaces = self.useful_spaces
        for size in range(len(spaces), 0, -1):
            for combination in itertools.combinations(spaces, size):
                yield combination

    def worth_checking(self, spaces):
        optimistic = size_sum(self.useful_size(s) for s in spaces)
        if optimistic < self.planned_vg.missing_space:
            return False
        # a subset of a combination that worked can only be worse
        return not any(set(spaces) <= set(checked) for checked in self._successful)

    def processed_distribution(self, spaces):
        result = self._add_pvs(spaces)
        if result is None:
            return None
        if self.potential_lvm_size(result) < self.planned_vg.missing_space:
            return None

        self._successful.append(spaces)
        self.adjust_sizes(result)
        self.adjust_weights(result)
        return result

    def adjust_sizes(self, distribution):
        """ Every PV gets what is still missing (or its whole space) as min
            and may grow as long as the volume group can use the space.
        """
        vg = self.planned_vg
        missing = vg.missing_space
        if vg.max_extra_space.unlimited:
            max_size = UNLIMITED
        else:
            max_size = vg.real_pv_size(vg.missing_space + vg.max_extra_space)

        pv_spaces = [s for s in distribution.spaces if self.new_pv_at(s) is not None]
        pv_spaces.sort(key=lambda s: int(self.potential_partition_size(self.new_pv_at(s), s)),
                       reverse=True)
        for space in pv_spaces:
            pv = self.new_pv_at(space)
            potential = self.potential_partition_size(pv, space)
            if missing > 0:
                pv.min_size = min(potential, vg.real_pv_size(missing))
                missing -= vg.useful_pv_space(pv.min_size)
            pv.max_size = max(max_size, pv.min_size)


class UseNeeded(PhysVolStrategy):

    """ PVs are added in order until the missing space is covered, the last
        one only as big as needed.

        Every permutation of the useful spaces is an order to try. The
        number of permutations is capped by ``flags.max_pv_permutations``.
    """

    def __init__(self, distribution, spaces, planned_vg):
        super(UseNeeded, self).__init__(distribution, spaces, planned_vg)
        self._checked = []

    def space_combinations(self):
        return itertools.islice(itertools.permutations(self.useful_spaces),
                                flags.max_pv_permutations)

    def worth_checking(self, spaces):
        return not any(self._redundant(spaces, checked) for checked in self._checked)

    @staticmethod
    def _redundant(spaces, checked):
        """ Whether spaces starts with the same spaces as checked, with the
            same last one.
        """
        last = len(checked) - 1
        if spaces[last] is not checked[last]:
            return False
        return set(spaces[:last]) == set(checked[:last])

    def processed_distribution(self, spaces):
        missing = self.planned_vg.missing_space
        pvs = {}
        result = None

        for (i, space) in enumerate(spaces):
            pvs[space] = self.planned_vg.minimal_pv_partition()
            useful = self.useful_size(space)
            if useful < missing:
                missing -= useful
                continue

            try:
                result = self.initial_distribution.add_partitions(pvs)
            except NoDiskSpaceError:
                return None

            if self.potential_lvm_size(result) >= self.planned_vg.missing_space:
                self._checked.append(spaces[:i + 1])
                self.adjust_sizes(result, space)
                self.adjust_weights(result)
                return result

            # the overhead of the PVs made the estimation too optimistic
            missing -= useful
            result = None

        return result

    def adjust_sizes(self, distribution, last_space):
        vg = self.planned_vg
        missing = vg.missing_space

        for space in distribution.spaces:
            pv = self.new_pv_at(space)
            if pv is None or space.disk_space is last_space:
                continue
            size = self.potential_partition_size(pv, space)
            pv.min_size = pv.max_size = size
            missing -= vg.useful_pv_space(size)

        pv = self.new_pv_at(distribution.space_at(last_space))
        pv.min_size = max(vg.real_pv_size(missing), vg.min_pv_size)
        other_pvs_size = vg.missing_space - missing
        max_size = vg.real_pv_size(vg.missing_space + vg.max_extra_space - other_pvs_size)
        pv.max_size = max(max_size, pv.min_size)
