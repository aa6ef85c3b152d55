# proposal/guided.py
# The guided proposal: the outer loop trying settings, disks and sizes.
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

from ..errors import NoDiskSpaceError, ProposalError
from ..flags import flags
from ..i18n import _
from ..storage_log import log_method_call, log_exception_info
from .. import util
from .context import PlanningContext
from .devicesplanner import devices_planner
from .generator import DevicegraphGenerator
from .planned import Target
from .settings import SettingsAdjustment, apply_adjustment
from .settingsgenerator import settings_generator
from .spacemaker import SpaceMaker

import logging
log = logging.getLogger("autopart")

TARGET_SIZES = (Target.desired, Target.min)


class GuidedProposal(object):

    """ A proposal of the devices to install a system on.

        The result is either complete or failed: after :meth:`propose`,
        :attr:`devicegraph` holds the proposed devicegraph or is None.

        :attr settings: the settings used for the proposed devicegraph
        :attr devicegraph: the proposed devicegraph (None if failed)
        :attr planned_devices: the devices the devicegraph was built for
        :attr adjustments: changes made to the original settings
        :type adjustments: :class:`~.settings.SettingsAdjustment`
    """

    def __init__(self, settings, devicegraph=None, context=None):
        """
            :param settings: the proposal settings
            :type settings: :class:`~.settings.ProposalSettings`
            :keyword devicegraph: the devicegraph to start from
            :type devicegraph: :class:`~.devicegraph.Devicegraph`
            :keyword context: architecture facts and RAM, with the
                              devicegraph if none is given
            :type context: :class:`~.context.PlanningContext`
        """
        if context is None:
            if devicegraph is None:
                raise ValueError("a devicegraph or a planning context is needed")
            context = PlanningContext(devicegraph)
        elif devicegraph is not None:
            context = context.with_devicegraph(devicegraph)

        self.context = context
        self.initial_settings = settings
        self.settings = settings
        self.devicegraph = None
        self.planned_devices = None
        self.adjustments = SettingsAdjustment()
        self.error = None
        self._proposed = False

    def __repr__(self):
        return ("%s(proposed=%s, failed=%s, adjustments=%r)" %
                (self.__class__.__name__, self.proposed, self.failed, self.adjustments))

    @property
    def initial_devicegraph(self):
        return self.context.devicegraph

    @property
    def proposed(self):
        return self._proposed

    @property
    def failed(self):
        return self.devicegraph is None

    @classmethod
    def initial(cls, settings, devicegraph=None, context=None):
        """ Calculate the initial proposal, never raising proposal errors.

            :returns: the proposal, check :attr:`failed`
            :rtype: :class:`InitialGuidedProposal`
        """
        proposal = InitialGuidedProposal(settings, devicegraph=devicegraph, context=context)
        try:
            proposal.propose()
        except ProposalError:
            log_exception_info(log.error, "initial proposal failed")
        return proposal

    def propose(self):
        """ Calculate the proposal.

            :raises: :class:`~.errors.ProposalError` if there is no way to
                     accommodate the devices
        """
        log_method_call(self, settings=self.initial_settings)
        if self._proposed:
            raise RuntimeError("the proposal has already been calculated")

        try:
            self._try_proposal()
        except ProposalError as e:
            log.info("no proposal: %s", e)
            self.error = e
            self.devicegraph = None
            self.planned_devices = None
            raise
        finally:
            self._proposed = True

    def _try_proposal(self):
        settings = self._complete_settings(self.settings)
        self._try_with_each_target_size(settings)

    def candidate_devices(self):
        """ Names of the disks to use when the settings name none.

            USB disks go last.
        """
        if self.initial_settings.candidate_devices:
            return list(self.initial_settings.candidate_devices)

        disks = sorted(self.initial_devicegraph.disks, key=lambda d: d.sort_key())
        return [d.name for d in disks if not d.usb] + [d.name for d in disks if d.usb]

    def _complete_settings(self, settings):
        candidates = self.candidate_devices()
        if not candidates:
            raise NoDiskSpaceError(_("No usable disks detected"))
        return settings.copy(candidate_devices=settings.candidate_devices or candidates,
                             root_device=settings.root_device or candidates[0])

    def _clean_graph(self, settings, space_maker):
        """ Copy of the initial devicegraph ready for an attempt.

            Candidate disks lose their empty partition tables and the
            partitions that are to be deleted in any case.
        """
        graph = self.initial_devicegraph.copy()
        ptable_type = "gpt" if flags.gpt else self.context.arch.preferred_ptable_type
        for disk in graph.disks:
            disk.default_ptable_type = ptable_type
            if disk.name not in settings.candidate_devices:
                continue
            if disk.partition_table is not None and not disk.partitions:
                log.info("removing empty partition table of %s", disk.name)
                disk.delete_partition_table()
        return space_maker.delete_unwanted_partitions(graph)

    def _try_with_each_target_size(self, settings):
        space_maker = SpaceMaker(settings, settings.candidate_devices)
        graph = self._clean_graph(settings, space_maker)
        context = self.context.with_devicegraph(graph)

        error = None
        for target in TARGET_SIZES:
            log.info("trying to make a proposal with target size %s", target.value)
            try:
                planned = devices_planner(settings, context).planned_devices(target)
                result = DevicegraphGenerator(settings).devicegraph(planned, graph, space_maker)
            except ProposalError as e:
                log.info("failed to make a proposal with target size %s: %s", target.value, e)
                error = e
                continue

            self.settings = settings
            self.planned_devices = planned
            self.devicegraph = result
            return

        raise error


class InitialGuidedProposal(GuidedProposal):

    """ The proposal trying everything before giving up.

        The candidate disks are tried one by one first and then all
        together (only all together with ``multidisk_first``). For every
        group, the settings are relaxed step by step by the settings
        generator, and for every settings value each disk of the group is
        tried as root device.
    """

    def _try_proposal(self):
        candidates = self.candidate_devices()
        if not candidates:
            raise NoDiskSpaceError(_("No usable disks detected"))

        error = None
        for group in self.candidate_groups(candidates):
            log.info("trying candidate disks %s", group)
            settings = self.initial_settings.copy(candidate_devices=group)
            try:
                return self._try_with_different_settings(settings)
            except ProposalError as e:
                error = e
        raise error

    def candidate_groups(self, candidates):
        """ The groups of candidate disks to try, in order. """
        if self.initial_settings.multidisk_first:
            return [list(candidates)]
        groups = [[name] for name in candidates]
        if len(candidates) > 1:
            groups.append(list(candidates))
        return groups

    def _try_with_different_settings(self, settings):
        generator = settings_generator(settings)
        error = NoDiskSpaceError()
        while True:
            step = generator.next_settings()
            if step is None:
                raise error

            (current, adjustments) = step
            self.adjustments = adjustments
            try:
                return self._try_with_different_root_devices(current)
            except ProposalError as e:
                error = e

    def candidate_roots(self, settings):
        """ Disks to try as root device, only the given one if there is any. """
        if self.initial_settings.root_device:
            return [self.initial_settings.root_device]
        return [n for n in settings.candidate_devices
                if self.initial_devicegraph.find_by_name(n) is not None]

    def _try_with_different_root_devices(self, settings):
        error = NoDiskSpaceError()
        for root_device in self.candidate_roots(settings):
            log.info("trying %s as root device", root_device)
            try:
                return self._try_with_each_permutation(settings.copy(root_device=root_device))
            except ProposalError as e:
                error = e
        raise error

    def _try_with_each_permutation(self, settings):
        """ In "device" allocate mode, try every assignment of disks to the
            volumes other than root.
        """
        if settings.legacy or settings.allocate_volume_mode != "device":
            return self._try_with_each_target_size(settings)

        if settings.root_volume is not None:
            settings = apply_adjustment(settings, "/", "device", settings.root_device)
        volumes = [v for v in settings.volumes if v.proposed and not v.root]

        error = NoDiskSpaceError()
        for permutation in self.devices_permutations(settings, len(volumes)):
            current = settings
            for (volume, disk_name) in zip(volumes, permutation):
                current = apply_adjustment(current, volume.mount_point, "device", disk_name)
            try:
                return self._try_with_each_target_size(current)
            except ProposalError as e:
                error = e
        raise error

    @staticmethod
    def devices_permutations(settings, size):
        """ Every way of assigning candidate disks to size volumes.

            Assignments spreading over more disks go first.
        """
        def key(permutation):
            used = util.dedup_list([settings.root_device] + list(permutation))
            return (-len(used), "".join(used))

        permutations = itertools.product(settings.candidate_devices, repeat=size)
        return sorted(permutations, key=key)


def initial_proposal(settings, devicegraph=None, context=None):
    """ Shortcut for :meth:`GuidedProposal.initial`. """
    return GuidedProposal.initial(settings, devicegraph=devicegraph, context=context)
