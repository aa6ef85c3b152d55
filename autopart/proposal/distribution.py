# proposal/distribution.py
# Distributing planned partitions among free disk spaces.
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

import copy
import functools
import itertools

from ..devices import FreeDiskSpace
from ..devices.lib import PartitionType, LOGICAL_OVERHEAD, ALIGNMENT_GRAIN
from ..errors import NoDiskSpaceError, NoMorePartitionSlotError
from ..size import Size, ROUND_UP, size_sum
from ..storage_log import log_distribution
from .physvol import pv_strategy_for

import logging
log = logging.getLogger("autopart")


def aligned_min_sizes(partitions, grain=ALIGNMENT_GRAIN):
    """ Sum of the minimal sizes, each one rounded up to the grain. """
    return size_sum(p.min_size.round_to_nearest(grain, rounding=ROUND_UP) for p in partitions)


class AssignedSpace(object):

    """ A free disk space with the planned partitions to be created in it. """

    def __init__(self, disk_space, partitions):
        """
            :param disk_space: the free space
            :type disk_space: :class:`~.devices.FreeDiskSpace`
            :param partitions: planned partitions to create in the space
            :type partitions: list of :class:`~.planned.PlannedDevice`
        """
        self.disk_space = disk_space
        # partitions with a max start offset first, the space is filled
        # from its start
        self.partitions = sorted(partitions, key=lambda p: (p.max_start_offset is None,
                                                            p.max_start_offset or 0))
        self.num_logical = 0
        self._partition_type = None
        self._partition_type_known = False

    def __repr__(self):
        return "AssignedSpace(disk_space=%s, partitions=%s, num_logical=%d)" % \
            (self.disk_space, [str(p) for p in self.partitions], self.num_logical)

    @property
    def disk(self):
        return self.disk_space.disk

    @property
    def disk_name(self):
        return self.disk_space.disk_name

    @property
    def disk_size(self):
        return self.disk_space.disk_size

    @property
    def partition_type(self):
        """ Type all the partitions in this space must have, if fixed.

            None means the space is in a MS-DOS table with no extended
            partition yet, so both primary and logical partitions are
            possible.
        """
        if not self._partition_type_known:
            table = self.disk.as_not_empty()
            if not table.extended_possible:
                self._partition_type = PartitionType.primary
            elif table.has_extended:
                if self.disk_space.in_extended:
                    self._partition_type = PartitionType.logical
                else:
                    self._partition_type = PartitionType.primary
            else:
                self._partition_type = None
            self._partition_type_known = True
        return self._partition_type

    @property
    def total_weight(self):
        return sum(p.weight or 0 for p in self.partitions)

    @property
    def usable_size(self):
        """ Size left after the overhead of the logical partitions. """
        return self.disk_size - LOGICAL_OVERHEAD * self.num_logical

    @property
    def valid(self):
        if not self._primary_partitions_fit():
            return False
        if self.disk_space.growing:
            return True
        return self.usable_size >= aligned_min_sizes(self.partitions)

    def _primary_partitions_fit(self):
        if not self.num_logical:
            return True
        return not any(p.primary for p in self.partitions[-self.num_logical:])

    @property
    def unused(self):
        """ Space no partition may grow into. """
        max_size = size_sum(p.min_size if p.keep_size else p.max_size for p in self.partitions)
        if max_size >= self.usable_size:
            return Size(0)
        return self.usable_size - max_size

    @property
    def extra_size(self):
        return self.disk_size - aligned_min_sizes(self.partitions)

    @property
    def usable_extra_size(self):
        return self.usable_size - size_sum(p.min_size for p in self.partitions)

    @property
    def total_needed_size(self):
        return aligned_min_sizes(self.partitions) + LOGICAL_OVERHEAD * self.num_logical

    @property
    def total_missing_size(self):
        return self.total_needed_size - self.disk_size

    def comparable_string(self):
        return "<disk_space=%s, partitions=<%s>>" % \
            (self.disk_space, "".join(sorted(str(p) for p in self.partitions)))


def partitions_in_new_extended(num_partitions, table):
    """ Number of logical partitions needed to create num_partitions. """
    free_primary_slots = table.max_primary - table.num_primary
    if free_primary_slots >= num_partitions:
        return 0
    return num_partitions - free_primary_slots + 1


def _num_partitions(spaces):
    return sum(len(s.partitions) for s in spaces)


class PartitionsDistribution(object):

    """ A way of spreading the planned partitions over the free spaces.

        Building a distribution decides how many partitions of each space
        will be logical ones. An impossible distribution cannot be built.
    """

    def __init__(self, partitions_by_space):
        """
            :param partitions_by_space: planned partitions for every free
                                        space, including empty lists
            :type partitions_by_space: dict
            :raises: :class:`~.errors.NoDiskSpaceError`
        """
        self.spaces = []
        self.unassigned_spaces = []
        for (space, partitions) in partitions_by_space.items():
            if partitions:
                self.spaces.append(self._assigned_space(space, partitions))
            else:
                self.unassigned_spaces.append(space)

        for (disk, spaces) in self._spaces_by_disk():
            self._set_num_logical_for(spaces, disk.as_not_empty())

    def __repr__(self):
        return "PartitionsDistribution(spaces=%s)" % self.spaces

    @staticmethod
    def _assigned_space(space, partitions):
        assigned = AssignedSpace(space, partitions)
        if not assigned.valid:
            raise NoDiskSpaceError("partitions cannot be allocated into %s" % space)
        return assigned

    def _spaces_by_disk(self):
        result = []
        for space in self.spaces:
            entry = next((e for e in result if e[0] is space.disk), None)
            if entry is None:
                entry = (space.disk, [])
                result.append(entry)
            entry[1].append(space)
        return result

    def add_partitions(self, partitions_by_space):
        """ Return a new distribution with some more partitions.

            :param partitions_by_space: one new partition per free space
            :type partitions_by_space: dict
            :raises: :class:`~.errors.NoDiskSpaceError`
        """
        partitions = dict((s.disk_space, list(s.partitions)) for s in self.spaces)
        for space in self.unassigned_spaces:
            partitions[space] = []
        for (space, partition) in partitions_by_space.items():
            partitions.setdefault(space, []).append(partition)
        return PartitionsDistribution(partitions)

    def space_at(self, disk_space):
        return next((s for s in self.spaces if s.disk_space is disk_space), None)

    @property
    def partitions(self):
        return [p for s in self.spaces for p in s.partitions]

    #
    # logical partitions
    #
    def _set_num_logical(self, space, num):
        space.num_logical = num
        if not space.valid:
            raise NoDiskSpaceError("partitions cannot be allocated into %s" % space.disk_space)

    def _set_num_logical_for(self, spaces, table):
        if spaces[0].partition_type is None:
            self._calculate_num_logical(spaces, table)
            return

        if self._too_many_primary(spaces, table):
            raise NoMorePartitionSlotError("too many primary partitions needed on %s" %
                                           table.disk.name)
        for space in spaces:
            logical = space.partition_type == PartitionType.logical
            self._set_num_logical(space, len(space.partitions) if logical else 0)

    def _calculate_num_logical(self, spaces, table):
        if table.num_primary + len(spaces) > table.max_primary:
            raise NoMorePartitionSlotError("too sparse distribution on %s" % table.disk.name)

        num_logical = partitions_in_new_extended(_num_partitions(spaces), table)
        if num_logical == 0:
            for space in spaces:
                self._set_num_logical(space, 0)
            return

        candidates = [s for s in spaces if self._room_for_logical(s, num_logical)]
        if not candidates:
            raise NoDiskSpaceError("no suitable space for the extended partition on %s" %
                                   table.disk.name)
        extended_space = max(candidates, key=lambda s: (len(s.partitions), int(s.disk_space.start)))
        primary_spaces = [s for s in spaces if s is not extended_space]
        if self._too_many_primary_with_extended(primary_spaces, table):
            raise NoMorePartitionSlotError("too many primary partitions needed on %s" %
                                           table.disk.name)

        self._set_num_logical(extended_space, num_logical)
        for space in primary_spaces:
            self._set_num_logical(space, 0)

    @staticmethod
    def _room_for_logical(space, num_logical):
        return space.extra_size >= LOGICAL_OVERHEAD * num_logical

    @staticmethod
    def _too_many_primary_with_extended(primary_spaces, table):
        # num_primary already counts an existing extended partition
        new_extended = 0 if table.has_extended else 1
        return _num_partitions(primary_spaces) + table.num_primary + new_extended > table.max_primary

    def _too_many_primary(self, spaces, table):
        primary_spaces = [s for s in spaces if s.partition_type == PartitionType.primary]
        if not table.extended_possible:
            return table.num_primary + _num_partitions(primary_spaces) > table.max_primary
        if table.has_extended:
            return self._too_many_primary_with_extended(primary_spaces, table)
        return False

    #
    # comparison
    #
    @property
    def gaps_total_size(self):
        return size_sum([s.unused for s in self.spaces] +
                        [s.disk_size for s in self.unassigned_spaces])

    @property
    def gaps_count(self):
        return len([s for s in self.spaces if s.unused > 0]) + len(self.unassigned_spaces)

    @property
    def spaces_count(self):
        return len(self.spaces)

    @property
    def partitions_count(self):
        return sum(len(s.partitions) for s in self.spaces)

    @property
    def weight_space_deviation(self):
        """ How far the extra space of each space is from its share of weight. """
        total_extra = size_sum(s.usable_extra_size for s in self.spaces)
        total_weight = sum(s.total_weight for s in self.spaces)
        if total_weight == 0:
            return 0.0
        if total_extra == 0:
            return 1.0

        result = 0.0
        for space in self.spaces:
            normalized_size = float(int(space.usable_extra_size)) / int(total_extra)
            normalized_weight = float(space.total_weight) / total_weight
            result += abs(normalized_size - normalized_weight)
        return result

    def comparable_string(self):
        return "".join(sorted(s.comparable_string() for s in self.spaces))

    _criteria = ("gaps_total_size", "gaps_count", "partitions_count",
                 "weight_space_deviation", "spaces_count")

    def better_than(self, other):
        """ Compare with another distribution, smaller means better.

            :returns: -1, 0 or 1
            :rtype: int
        """
        for criterion in self._criteria:
            mine = getattr(self, criterion)
            theirs = getattr(other, criterion)
            if mine != theirs:
                return -1 if mine < theirs else 1

        mine = self.comparable_string()
        theirs = other.comparable_string()
        return (mine > theirs) - (mine < theirs)


def best_of(distributions):
    """ The best of the given distributions, None for an empty list. """
    if not distributions:
        return None
    return min(distributions, key=functools.cmp_to_key(lambda a, b: a.better_than(b)))


class DistributionCalculator(object):

    """ Finds the best way of placing the planned partitions (and the
        physical volumes of the planned volume group) in the free spaces.
    """

    def __init__(self, planned_vg=None, default_disks=None):
        """
            :keyword planned_vg: volume group that may need new PVs
            :type planned_vg: :class:`~.planned.PlannedVg`
            :keyword default_disks: names of the disks to use for partitions
                                    with no disk of their own (None for any)
            :type default_disks: list of str
        """
        self.planned_vg = planned_vg
        self.default_disks = default_disks

    def __repr__(self):
        return "DistributionCalculator(planned_vg=%r, default_disks=%s)" % \
            (self.planned_vg, self.default_disks)

    @property
    def lvm(self):
        """ Whether new PVs are needed. """
        return self.planned_vg is not None and self.planned_vg.missing_space > 0

    def _single_pv_partitions(self):
        return [self.planned_vg.single_pv_partition()] if self.lvm else []

    def best_distribution(self, planned_partitions, spaces):
        """ Return the best distribution, or None if there is none.

            :param planned_partitions: partitions to distribute
            :type planned_partitions: list of :class:`~.planned.PlannedDevice`
            :param spaces: the free spaces
            :type spaces: list of :class:`~.devices.FreeDiskSpace`
            :rtype: :class:`PartitionsDistribution` or NoneType
        """
        log.info("calculating best distribution for %s", [str(p) for p in planned_partitions])
        if self.impossible(planned_partitions, spaces):
            log.info("not enough space, no need to look for a distribution")
            return None

        try:
            hashes = self._distribute(planned_partitions, spaces)
        except NoDiskSpaceError as e:
            log.info("no distribution: %s", e)
            return None

        candidates = self._distributions_from_hashes(hashes)
        if self.lvm:
            candidates = [self._add_physical_volumes(d, spaces) for d in candidates]
            candidates = [d for d in candidates if d is not None]

        log.info("comparing %d distributions", len(candidates))
        best = best_of(candidates)
        if best is not None:
            log_distribution(best, "best distribution")
        return best

    def impossible(self, planned_partitions, spaces):
        """ Quick check based only on the sizes. """
        partitions = list(planned_partitions) + self._single_pv_partitions()
        needed = size_sum(p.min_size for p in partitions)
        if needed > size_sum(s.disk_size for s in spaces):
            return True

        for disk_name in set(p.disk for p in partitions if p.disk):
            needed = size_sum(p.min_size for p in partitions if p.disk == disk_name)
            available = size_sum(s.disk_size for s in spaces if s.disk_name == disk_name)
            if needed > available:
                log.info("impossible on %s: needed %s, available %s", disk_name, needed, available)
                return True

        return False

    def _compatible_disk(self, partition, disk_name):
        if partition.disk:
            return partition.disk == disk_name
        if self.default_disks is None:
            return True
        return disk_name in self.default_disks

    @staticmethod
    def _compatible_ptable(partition, space):
        if partition.ptable_type is None or space.disk.partition_table is None:
            return True
        return partition.ptable_type == space.disk.partition_table.type

    def suitable_space(self, space, partition):
        if not self._compatible_disk(partition, space.disk_name):
            return False
        if not self._compatible_ptable(partition, space):
            return False
        if not space.growing and space.disk_size < partition.min_size:
            return False
        if partition.max_start_offset is not None and space.start_offset > partition.max_start_offset:
            return False
        return True

    def _candidate_spaces(self, planned_partitions, spaces):
        result = []
        for partition in planned_partitions:
            candidates = [s for s in spaces if self.suitable_space(s, partition)]
            if not candidates:
                raise NoDiskSpaceError("no suitable free space for %s" % partition)
            result.append((partition, candidates))
        return result

    def _distribute(self, planned_partitions, spaces):
        """ All the possible assignments of partitions to spaces, each one as
            a dict with every space as key.
        """
        candidates = self._candidate_spaces(planned_partitions, spaces)
        partitions = [c[0] for c in candidates]
        result = []
        for combination in itertools.product(*[c[1] for c in candidates]):
            hash_ = dict((space, []) for space in spaces)
            for (partition, space) in zip(partitions, combination):
                hash_[space].append(partition)
            result.append(hash_)
        return result

    @staticmethod
    def _distributions_from_hashes(hashes):
        result = []
        for hash_ in hashes:
            try:
                result.append(PartitionsDistribution(hash_))
            except NoDiskSpaceError as e:
                log.debug("discarded distribution: %s", e)
        return result

    def _pv_spaces(self, spaces):
        if self.default_disks is None:
            return list(spaces)
        return [s for s in spaces if s.disk_name in self.default_disks]

    def _add_physical_volumes(self, distribution, spaces):
        strategy = pv_strategy_for(distribution, self._pv_spaces(spaces), self.planned_vg)
        return strategy.add_physical_volumes()

    #
    # resizing
    #
    def resizing_size(self, partition, planned_partitions, spaces):
        """ How much the partition must shrink to fit the planned partitions.

            :param partition: the existing partition to shrink
            :type partition: :class:`~.devices.Partition`
            :param planned_partitions: partitions to distribute
            :param spaces: the free spaces
            :returns: the size to reclaim, the whole partition size if no
                      amount is known to be enough
            :rtype: :class:`~.size.Size`
        """
        disk_name = partition.disk.name
        disk_spaces = [s for s in spaces if s.disk_name == disk_name]
        disk_partitions = [p for p in planned_partitions if self._compatible_disk(p, disk_name)]
        disk_partitions += self._single_pv_partitions()
        disk_spaces = self._with_growing_space(disk_spaces, partition)

        size = self._missing_in_growing_space(disk_partitions, disk_spaces)
        if size is None:
            return partition.size
        return size

    @staticmethod
    def _with_growing_space(spaces, partition):
        result = []
        for space in spaces:
            if partition.end <= space.start < partition.end + ALIGNMENT_GRAIN and \
               space.in_extended == partition.is_logical:
                space = copy.copy(space)
                space.growing = True
            result.append(space)

        if not any(s.growing for s in result):
            space = FreeDiskSpace(partition.disk, partition.end, Size(0),
                                  in_extended=partition.is_logical)
            space.growing = True
            result.append(space)

        return result

    def _missing_in_growing_space(self, planned_partitions, spaces):
        try:
            hashes = self._distribute(planned_partitions, spaces)
        except NoDiskSpaceError:
            return None

        growing = next(s for s in spaces if s.growing)
        groups = []
        for hash_ in hashes:
            parts = hash_[growing]
            group = next((g for g in groups if g[0] == parts), None)
            if group is None:
                group = (parts, [])
                groups.append(group)
            group[1].append(hash_)

        groups.sort(key=lambda g: (int(aligned_min_sizes(g[0])), "".join(str(p.sid) for p in g[0])))
        for (parts, hashes) in groups:
            distributions = self._distributions_from_hashes(hashes)
            if not distributions:
                continue

            assigned = [d.space_at(growing) for d in distributions]
            if any(a is None for a in assigned):
                return Size(0)
            missing = min(a.total_missing_size for a in assigned)
            if missing <= 0:
                return Size(0)
            return missing.round_to_nearest(ALIGNMENT_GRAIN, rounding=ROUND_UP)

        return None
