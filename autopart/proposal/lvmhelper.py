# proposal/lvmhelper.py
# The volume group of the proposal: planning, reusing and creating it.
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
from ..partitioning import VGChunk
from ..size import size_sum
from ..storage_log import log_method_call, log_method_return
from .planned import PlannedVg, DEFAULT_VG_NAME

import logging
log = logging.getLogger("autopart")

DEFAULT_LV_NAME = "lv"


class LvmHelper(object):

    """ Knows the planned logical volumes and the volume group for them. """

    def __init__(self, planned_lvs, settings):
        """
            :param planned_lvs: the planned logical volumes
            :type planned_lvs: list of :class:`~.planned.PlannedDevice`
            :param settings: the proposal settings
            :type settings: :class:`~.settings.ProposalSettings`
        """
        self.planned_lvs = list(planned_lvs)
        self.settings = settings
        self._volume_group = None
        self._reused_pv_names = []

    def __repr__(self):
        return "LvmHelper(lvs=%s, vg=%r)" % ([lv.mount_point for lv in self.planned_lvs],
                                              self.volume_group)

    def _new_volume_group(self):
        return PlannedVg(volume_group_name=DEFAULT_VG_NAME, lvs=self.planned_lvs,
                         pvs_encryption_password=self.settings.encryption_password,
                         size_strategy=self.settings.lvm_vg_strategy,
                         vg_size=self.settings.lvm_vg_size)

    @property
    def volume_group(self):
        """ The planned VG, None with no planned LVs. """
        if not self.planned_lvs:
            return None
        if self._volume_group is None:
            self._volume_group = self._new_volume_group()
        return self._volume_group

    def reuse_volume_group(self, vg):
        """ Use the given existing VG (None to go back to a new one). """
        self._volume_group = None
        self._reused_pv_names = []
        if vg is None:
            return

        planned_vg = self._new_volume_group()
        planned_vg.reuse(vg)
        self._volume_group = planned_vg
        self._reused_pv_names = [pv.name for pv in vg.pvs]
        log.info("planning to reuse volume group %s", vg.name)

    @property
    def partitions_in_vg(self):
        """ Names of the PVs of the reused VG, they must be kept. """
        return list(self._reused_pv_names)

    def vg_to_reuse(self, vg):
        planned = self.volume_group
        return planned is not None and planned.reuse_name == vg.name

    def _try_to_reuse(self):
        if not self.settings.lvm_vg_reuse:
            return False
        if self.settings.use_encryption:
            return False
        return not any(lv.disk for lv in self.planned_lvs)

    def reusable_volume_groups(self, devicegraph):
        """ Existing VGs worth reusing, the most convenient first.

            VGs big enough for the planned LVs go first, the smallest of them
            before. The others follow, the biggest before.
        """
        if not self.planned_lvs or not self._try_to_reuse():
            return []

        target = self._new_volume_group().target_size
        key = lambda vg: (int(vg.size), vg.name)
        big = sorted([vg for vg in devicegraph.vgs if vg.size >= target], key=key)
        small = sorted([vg for vg in devicegraph.vgs if vg.size < target], key=key, reverse=True)
        result = big + small
        log_method_return(self, [vg.name for vg in result])
        return result

    def create_volumes(self, devicegraph, pv_names=None):
        """ Return a copy of the devicegraph with the VG and its LVs. """
        if not self.planned_lvs:
            return devicegraph.copy()
        return LvmCreator(devicegraph).create_volumes(self.volume_group, pv_names or [])


class LvmCreator(object):

    """ Creates the planned volume group and logical volumes. """

    def __init__(self, devicegraph):
        self.original_devicegraph = devicegraph

    def create_volumes(self, planned_vg, pv_names):
        """
            :param planned_vg: the planned volume group
            :type planned_vg: :class:`~.planned.PlannedVg`
            :param pv_names: names of the new partitions to add as PVs
            :type pv_names: list of str
            :returns: a new devicegraph
            :raises: :class:`~.errors.NoDiskSpaceError`
        """
        log_method_call(self, planned_vg.volume_group_name, pvs=pv_names)
        graph = self.original_devicegraph.copy()

        if planned_vg.reuse_name:
            vg = next(vg for vg in graph.vgs if vg.name == planned_vg.reuse_name)
        else:
            name = self._available_name(planned_vg.volume_group_name,
                                        [vg.name for vg in graph.vgs])
            vg = graph.create_vg(name, [], extent_size=planned_vg.extent_size)

        for partition in graph.partitions:
            if partition.name in pv_names:
                vg.add_pv(partition)

        self._make_space(graph, vg, planned_vg.lvs)
        self._create_lvs(graph, vg, planned_vg.lvs)
        return graph

    def _make_space(self, graph, vg, planned_lvs):
        """ Delete LVs of a reused VG until the planned ones fit. """
        needed = size_sum(lv.min_size for lv in planned_lvs)
        missing = needed - vg.free_space
        while missing > 0:
            lv = self._delete_candidate(vg, missing)
            if lv is None:
                raise NoDiskSpaceError("the volume group %s is not big enough" % vg.name)
            log.info("deleting %s to make room in %s", lv.name, vg.name)
            vg.lvs.remove(lv)
            missing = needed - vg.free_space

    @staticmethod
    def _delete_candidate(vg, missing):
        """ The smallest LV freeing enough space, else the biggest one. """
        if not vg.lvs:
            return None
        big = [lv for lv in vg.lvs if lv.size >= missing]
        if big:
            return min(big, key=lambda lv: int(lv.size))
        return max(vg.lvs, key=lambda lv: int(lv.size))

    def _create_lvs(self, graph, vg, planned_lvs):
        chunk = VGChunk(vg.free_space, vg.extent_size)
        requests = [chunk.request_for(lv) for lv in planned_lvs]
        for req in requests:
            chunk.add_request(req)
        if chunk.pool < 0:
            raise NoDiskSpaceError("the volume group %s is not big enough" % vg.name)
        chunk.grow_requests()

        for req in requests:
            planned = req.device
            name = self._available_name(planned.lv_name or self._lv_name(planned),
                                        [lv.lv_name for lv in vg.lvs])
            lv = graph.create_lv(vg, name, chunk.length_to_size(req.units),
                                 fmt=planned.new_format())
            log.info("created %s (%s) for %s", lv.name, lv.size, planned.mount_point)

    @staticmethod
    def _lv_name(planned):
        mount_point = planned.mount_point
        if not mount_point:
            return DEFAULT_LV_NAME
        if mount_point == "/":
            return "root"
        return mount_point.strip("/").replace("/", "_")

    @staticmethod
    def _available_name(name, taken):
        if name not in taken:
            return name
        suffix = 0
        while "%s%d" % (name, suffix) in taken:
            suffix += 1
        return "%s%d" % (name, suffix)
