# proposal/generator.py
# Turning planned devices into a devicegraph.
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

from ..devices.lib import PartitionId, PartitionType, LOGICAL_OVERHEAD
from ..errors import NoDiskSpaceError
from ..formats.lvmpv import LVMPhysicalVolume
from ..partitioning import SpaceChunk
from ..storage_log import log_method_call
from .lvmhelper import LvmHelper

import logging
log = logging.getLogger("autopart")


class PartitionCreator(object):

    """ Creates the partitions of a distribution. """

    def __init__(self, devicegraph):
        self.original_devicegraph = devicegraph

    def create_partitions(self, distribution):
        """ Return a copy of the devicegraph with the new partitions.

            :param distribution: where to create the planned partitions
            :type distribution: :class:`~.distribution.PartitionsDistribution`
        """
        graph = self.original_devicegraph.copy()
        for assigned in distribution.spaces:
            self._process_space(graph, assigned)
        return graph

    def _process_space(self, graph, assigned):
        space = assigned.disk_space
        disk = graph.get_disk(space.disk_name)
        log.debug("creating %s in %s", [str(p) for p in assigned.partitions], space)

        chunk = SpaceChunk(assigned.usable_size)
        requests = [chunk.request_for(p) for p in assigned.partitions]
        for req in requests:
            chunk.add_request(req)
        if chunk.pool < 0:
            raise NoDiskSpaceError("the partitions do not fit in %s" % space)
        chunk.grow_requests()

        num_primary = len(requests) - assigned.num_logical
        pos = space.start
        for req in requests[:num_primary]:
            size = chunk.length_to_size(req.units)
            self._create_partition(graph, disk, req.device, pos, size, PartitionType.primary)
            pos += size

        if not assigned.num_logical:
            return

        if not space.in_extended:
            log.info("creating extended partition on %s", disk.name)
            graph.create_partition(disk, pos, space.end - pos, part_type=PartitionType.extended,
                                   part_id=PartitionId.extended)

        for req in requests[num_primary:]:
            size = chunk.length_to_size(req.units)
            start = pos + LOGICAL_OVERHEAD
            self._create_partition(graph, disk, req.device, start, size, PartitionType.logical)
            pos = start + size

    @staticmethod
    def _partition_id(planned):
        if planned.partition_id is not None:
            return planned.partition_id
        if planned.lvm_pv:
            return PartitionId.lvm
        if planned.swap:
            return PartitionId.swap
        return PartitionId.linux

    def _create_partition(self, graph, disk, planned, start, size, part_type):
        partition = graph.create_partition(disk, start, size, part_type=part_type,
                                           part_id=self._partition_id(planned),
                                           fmt=planned.new_format())
        partition.bootable = planned.bootable
        log.info("created %s (%s) for %s", partition.name, partition.size, planned)
        return partition


class DevicegraphGenerator(object):

    """ Builds the devicegraph for a list of planned devices. """

    def __init__(self, settings):
        """
            :param settings: the proposal settings
            :type settings: :class:`~.settings.ProposalSettings`
        """
        self.settings = settings

    def devicegraph(self, planned_devices, devicegraph, space_maker):
        """ Return a new devicegraph with the planned devices.

            :param planned_devices: the devices to create or reuse
            :type planned_devices: list of :class:`~.planned.PlannedDevice`
            :param devicegraph: the starting devicegraph, left untouched
            :param space_maker: makes room for the new partitions
            :type space_maker: :class:`~.spacemaker.SpaceMaker`
            :raises: :class:`~.errors.NoDiskSpaceError`
        """
        log_method_call(self, devices=[str(d) for d in planned_devices])
        planned_devices = copy.deepcopy(planned_devices)
        partitions = [d for d in planned_devices if d.is_partition]
        lvs = [d for d in planned_devices if d.is_lv]

        lvm_helper = LvmHelper(lvs, self.settings)
        result = self._provide_space(partitions, devicegraph, lvm_helper, space_maker)

        self._refine_swaps(partitions, result.deleted_partitions)
        graph = PartitionCreator(result.devicegraph).create_partitions(result.distribution)
        self._reuse_partitions(partitions, graph)

        if lvs:
            graph = lvm_helper.create_volumes(graph, self._new_pvs(result.devicegraph, graph))
        return graph

    @staticmethod
    def _provide_space(partitions, devicegraph, lvm_helper, space_maker):
        for vg in lvm_helper.reusable_volume_groups(devicegraph):
            lvm_helper.reuse_volume_group(vg)
            try:
                return space_maker.provide_space(devicegraph, partitions, lvm_helper)
            except NoDiskSpaceError:
                log.info("no room reusing %s", vg.name)

        lvm_helper.reuse_volume_group(None)
        return space_maker.provide_space(devicegraph, partitions, lvm_helper)

    @staticmethod
    def _refine_swaps(partitions, deleted_partitions):
        """ New swaps inherit the UUID and label of the deleted ones. """
        deleted = [p for p in deleted_partitions
                   if p.part_id == PartitionId.swap and p.format is not None]
        new = [p for p in partitions if p.swap and not p.reuse]
        for (planned, old) in zip(new, deleted):
            planned.uuid = old.format.uuid
            planned.label = old.format.label

    @staticmethod
    def _reuse_partitions(partitions, graph):
        for planned in partitions:
            if not planned.reuse:
                continue
            partition = graph.find_by_name(planned.reuse_name)
            if partition is None:
                raise NoDiskSpaceError("%s cannot be reused, it does not exist" %
                                       planned.reuse_name)
            if planned.reformat or partition.format is None:
                partition.format = planned.new_format()
            elif partition.filesystem is not None and planned.mount_point:
                partition.filesystem.mountpoint = planned.mount_point
            if planned.bootable:
                partition.bootable = True
            log.info("reusing %s for %s", partition.name, planned)

    @staticmethod
    def _new_pvs(old_graph, new_graph):
        old_sids = set(p.sid for p in old_graph.partitions)
        return [p.name for p in new_graph.partitions
                if p.sid not in old_sids and p.format is not None and
                isinstance(p.format.innermost, LVMPhysicalVolume)]
