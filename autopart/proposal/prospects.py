# proposal/prospects.py
# Destructive actions the space maker may perform to make room.
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

from ..devices.partition import WINDOWS, LINUX, OTHER
from .settings import DeleteMode

import logging
log = logging.getLogger("autopart")


class Prospect(object):

    """ A possible action on a device of the original devicegraph.

        Prospects only remember the sid and the name of the device, the
        space maker looks the device up in the devicegraph it is working on.
    """

    def __init__(self, device):
        self.sid = device.sid
        self.name = device.name
        self.available = True

    def __repr__(self):
        return "%s(name=%s, sid=%d, available=%s)" % \
            (self.__class__.__name__, self.name, self.sid, self.available)


class PartitionProspect(Prospect):

    def __init__(self, partition, devicegraph):
        super(PartitionProspect, self).__init__(partition)
        self.disk_name = partition.disk.name
        self.region_start = partition.start
        self.classification = partition.classification
        self.last_resort = self._spans_other_disks(partition, devicegraph)

    @staticmethod
    def _spans_other_disks(partition, devicegraph):
        """ Whether the partition is a PV of a VG living in other disks too.

            Deleting such a partition destroys data outside the disk, so it
            is only considered after everything else.
        """
        vg = devicegraph.vg_of(partition)
        if vg is None:
            return False
        disks = set(d.name for pv in vg.pvs for d in devicegraph.disks_of(pv))
        return disks != set([partition.disk.name])


class DeletePartition(PartitionProspect):

    def allowed(self, settings, keep=None, for_delete_all=False):
        """ Whether the settings allow deleting the partition.

            :param settings: the proposal settings
            :param keep: sids of the partitions that must not be deleted
            :param bool for_delete_all: only allow it when the delete mode of
                                        its classification is "all"
        """
        if keep and self.sid in keep:
            return False
        mode = settings.delete_mode(self.classification)
        if for_delete_all:
            return mode == DeleteMode.all
        return mode != DeleteMode.none


class ResizePartition(PartitionProspect):

    def __init__(self, partition, devicegraph):
        super(ResizePartition, self).__init__(partition, devicegraph)
        self.recoverable_size = partition.recoverable_size
        self.linux_in_disk = any(p.linux_system for p in partition.disk.partitions)

    def allowed(self, settings):
        return settings.resize_windows


class WipeDisk(Prospect):
    pass


class SpaceMakerProspects(object):

    """ All the prospects of the candidate disks and the order to use them.

        The prospects are built once when the space maker starts and are
        then only marked as not available while actions are performed.
    """

    def __init__(self, settings, devicegraph):
        """
            :param settings: the proposal settings
            :type settings: :class:`~.settings.ProposalSettings`
            :param devicegraph: the devicegraph the prospects refer to
            :type devicegraph: :class:`~.devicegraph.Devicegraph`
        """
        self.settings = settings
        self.devicegraph = devicegraph
        self._delete = {LINUX: [], WINDOWS: [], OTHER: []}
        self._resize_without_linux = []
        self._resize_with_linux = []
        self._wipe = []

    def __repr__(self):
        return "SpaceMakerProspects(delete=%s, resize=%s, wipe=%s)" % \
            (self.delete_prospects, self.resize_prospects, self._wipe)

    @property
    def delete_prospects(self):
        return self._delete[LINUX] + self._delete[OTHER] + self._delete[WINDOWS]

    @property
    def resize_prospects(self):
        return self._resize_without_linux + self._resize_with_linux

    def add_prospects(self, disk, lvm_helper=None, keep=None):
        """ Add the prospects for the given disk.

            :param disk: the disk
            :param lvm_helper: tells which volume groups are to be reused
            :type lvm_helper: :class:`~.lvmhelper.LvmHelper`
            :param keep: sids of the partitions that must not be deleted
        """
        self._add_delete_prospects(disk, keep)
        self._add_resize_prospects(disk)
        self._add_wipe_prospect(disk, lvm_helper)

    def _delete_prospects_for_disk(self, disk, keep=None, for_delete_all=False):
        result = []
        for part in disk.partitions:
            if part.is_extended:
                continue
            prospect = DeletePartition(part, self.devicegraph)
            allowed = prospect.allowed(self.settings, keep, for_delete_all)
            log.debug("delete %s allowed: %s", part.name, allowed)
            if allowed:
                result.append(prospect)
        return result

    def _add_delete_prospects(self, disk, keep=None):
        prospects = self._delete_prospects_for_disk(disk, keep=keep)
        for (classification, bucket) in self._delete.items():
            selected = [p for p in prospects if p.classification == classification]
            # partitions closer to the end of the disk go first, last
            # resort ones after all the others
            selected.sort(key=lambda p: int(p.region_start), reverse=True)
            selected.sort(key=lambda p: p.last_resort)
            bucket.extend(selected)

    def _add_resize_prospects(self, disk):
        windows = [p for p in disk.partitions if p.windows_system]
        if not windows:
            return

        log.info("evaluating windows partitions %s", [p.name for p in windows])
        for part in windows:
            prospect = ResizePartition(part, self.devicegraph)
            if not prospect.allowed(self.settings):
                log.info("resizing %s is not allowed", part.name)
                continue
            if prospect.linux_in_disk:
                self._resize_with_linux.append(prospect)
            else:
                self._resize_without_linux.append(prospect)

    def _add_wipe_prospect(self, disk, lvm_helper):
        if not disk.has_children or disk.partition_table is not None:
            return

        log.info("%s holds something that is not a partition table", disk.name)
        vg = self.devicegraph.vg_of(disk)
        if vg is not None and lvm_helper is not None and lvm_helper.vg_to_reuse(vg):
            log.info("not wiping %s, its volume group is to be reused", disk.name)
            return

        self._wipe.append(WipeDisk(disk))

    def next_available_prospect(self):
        """ The next action the space maker should perform, if any.

            Windows systems sharing a disk with Linux were probably already
            resized once, so they are only resized when nothing but deleting
            Windows (or last resort partitions) is left.
        """
        resize = self._next_resize(allow_linux_in_disk=False)
        if resize is not None:
            return resize

        delete = self._next_delete()
        if delete is not None and not self._after_resizing_everything(delete):
            return delete

        wipe = next((p for p in self._wipe if p.available), None)
        if wipe is not None:
            return wipe

        resize = self._next_resize()
        if resize is not None:
            return resize

        return delete

    def mark_deleted(self, sids):
        """ Make the prospects on the given devices unavailable. """
        sids = set(sids)
        for prospect in self.delete_prospects + self.resize_prospects + self._wipe:
            if prospect.sid in sids:
                prospect.available = False

    def unwanted_partition_prospects(self, disk):
        """ Delete prospects for the partitions whose delete mode is "all". """
        return self._delete_prospects_for_disk(disk, for_delete_all=True)

    def _next_delete(self):
        for last_resort in (False, True):
            for classification in (LINUX, OTHER, WINDOWS):
                prospect = next((p for p in self._delete[classification]
                                 if p.available and p.last_resort == last_resort), None)
                if prospect is not None:
                    return prospect
        return None

    def _next_resize(self, allow_linux_in_disk=True):
        prospect = self._best_resize(self._resize_without_linux)
        if prospect is None and allow_linux_in_disk:
            prospect = self._best_resize(self._resize_with_linux)
        return prospect

    @staticmethod
    def _best_resize(prospects):
        """ The one recovering more space, the last added one on ties. """
        best = None
        for prospect in prospects:
            if not prospect.available or prospect.recoverable_size <= 0:
                continue
            if best is None or prospect.recoverable_size >= best.recoverable_size:
                best = prospect
        return best

    @staticmethod
    def _after_resizing_everything(prospect):
        return prospect.last_resort or prospect.classification == WINDOWS

