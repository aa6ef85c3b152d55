# proposal/spacemaker.py
# Making room in the candidate disks for the planned partitions.
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

from ..errors import NoDiskSpaceError
from ..storage_log import log_method_call
from ..util import default_namedtuple
from .distribution import DistributionCalculator
from .prospects import SpaceMakerProspects, DeletePartition, ResizePartition, WipeDisk

import logging
log = logging.getLogger("autopart")

SpaceResult = default_namedtuple("SpaceResult",
                                 ["devicegraph", "deleted_partitions", "distribution"],
                                 doc="""The outcome of :meth:`SpaceMaker.provide_space`.

                                        :attr devicegraph: the devicegraph with enough room
                                        :attr deleted_partitions: partitions of the original
                                                                  devicegraph that were deleted
                                        :attr distribution: where the planned partitions go
                                     """)


class SpaceMaker(object):

    """ Deletes, shrinks and wipes until the planned partitions fit.

        The devicegraphs given to the space maker are never modified, the
        actions are performed on copies.
    """

    def __init__(self, settings, candidate_disks):
        """
            :param settings: the proposal settings
            :type settings: :class:`~.settings.ProposalSettings`
            :param candidate_disks: names of the disks the proposal may use
            :type candidate_disks: list of str
        """
        self.settings = settings
        self.candidate_disks = list(candidate_disks)

    def __repr__(self):
        return "SpaceMaker(candidate_disks=%s)" % self.candidate_disks

    def _disks(self, devicegraph, names=None):
        names = self.candidate_disks if names is None else names
        return [d for d in devicegraph.disks if d.name in names]

    def delete_unwanted_partitions(self, devicegraph):
        """ Return a copy of the devicegraph without the partitions whose
            delete mode is "all".
        """
        log_method_call(self)
        graph = devicegraph.copy()
        prospects = SpaceMakerProspects(self.settings, graph)
        for disk in self._disks(graph):
            for prospect in prospects.unwanted_partition_prospects(disk):
                partition = graph.find_by_sid(prospect.sid)
                if partition is None:
                    continue
                log.info("deleting unwanted partition %s", partition.name)
                graph.delete_partition(partition, self.candidate_disks)
        return graph

    def provide_space(self, devicegraph, planned_partitions, lvm_helper):
        """ Make room for the planned partitions.

            :param devicegraph: the starting devicegraph
            :param planned_partitions: the planned partitions, reused ones
                                       included
            :param lvm_helper: the planned volume group
            :type lvm_helper: :class:`~.lvmhelper.LvmHelper`
            :rtype: :class:`SpaceResult`
            :raises: :class:`~.errors.NoDiskSpaceError`
        """
        log_method_call(self, partitions=[str(p) for p in planned_partitions])
        graph = devicegraph.copy()

        keep_names = lvm_helper.partitions_in_vg
        partitions = []
        for partition in planned_partitions:
            if partition.reuse:
                log.info("%s reuses %s, no need to find space", partition, partition.reuse_name)
                keep_names.append(partition.reuse_name)
            else:
                partitions.append(partition)
        keep = [d.sid for d in (graph.find_by_name(n) for n in keep_names) if d is not None]

        disk_names = list(self.candidate_disks)
        for partition in partitions:
            if partition.disk and partition.disk not in disk_names:
                disk_names.append(partition.disk)
        self._force_ptables(graph, partitions)

        prospects = SpaceMakerProspects(self.settings, graph)
        for disk in self._disks(graph, disk_names):
            prospects.add_prospects(disk, lvm_helper, keep)

        calculator = DistributionCalculator(lvm_helper.volume_group, default_disks=self.candidate_disks)
        deleted_sids = []
        while True:
            spaces = self.free_spaces(graph, disk_names)
            distribution = calculator.best_distribution(partitions, spaces)
            if distribution is not None:
                break

            prospect = prospects.next_available_prospect()
            if prospect is None:
                log.info("no more actions to make space")
                raise NoDiskSpaceError()

            sids = self._execute(prospect, graph, calculator, partitions, spaces)
            prospects.mark_deleted(sids)
            deleted_sids.extend(sids)

        deleted = [p for p in devicegraph.partitions if p.sid in deleted_sids]
        return SpaceResult(graph, deleted, distribution)

    def free_spaces(self, devicegraph, disk_names=None):
        result = []
        for disk in self._disks(devicegraph, disk_names):
            result.extend(disk.free_spaces())
        return result

    @staticmethod
    def _force_ptables(graph, planned_partitions):
        for disk in graph.disks:
            disk.forced_ptable_type = None
        for partition in planned_partitions:
            if partition.disk and partition.ptable_type:
                disk = graph.find_by_name(partition.disk)
                if disk is not None:
                    disk.forced_ptable_type = partition.ptable_type

    def _execute(self, prospect, graph, calculator, planned_partitions, spaces):
        """ Perform the action and return the sids of the deleted devices. """
        log.info("space maker action: %r", prospect)
        device = graph.find_by_sid(prospect.sid)
        if isinstance(prospect, ResizePartition):
            # a partition is only shrunk once
            prospect.available = False
            self._shrink(device, calculator, planned_partitions, spaces)
            return []
        elif isinstance(prospect, DeletePartition):
            return graph.delete_partition(device, self.candidate_disks)
        elif isinstance(prospect, WipeDisk):
            prospect.available = False
            return graph.wipe_disk(device)

        raise ValueError("unknown prospect %r" % prospect)

    @staticmethod
    def _shrink(partition, calculator, planned_partitions, spaces):
        needed = calculator.resizing_size(partition, planned_partitions, spaces)
        reclaimed = min(needed, partition.recoverable_size)
        if reclaimed <= 0:
            log.info("nothing to gain shrinking %s", partition.name)
            return
        log.info("shrinking %s by %s", partition.name, reclaimed)
        partition.resize(partition.size - reclaimed)
