# proposal/settingsgenerator.py
# Relaxing the proposal settings after failed attempts.
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

from .settings import SettingsAdjustment, apply_adjustment

import logging
log = logging.getLogger("autopart")


def settings_generator(settings):
    """ Return the generator for the format of the settings. """
    if settings.legacy:
        return LegacySettingsGenerator(settings)
    return NgSettingsGenerator(settings)


class SettingsGenerator(object):

    """ Produces the settings for each attempt of the initial proposal.

        The first call to :meth:`next_settings` returns the original
        settings. Every later call returns a reduced version of the
        previous settings, or None when nothing else can be disabled.
        Properties are only ever disabled, so the sequence is finite.
    """

    def __init__(self, settings):
        """
            :param settings: the settings of the first attempt
            :type settings: :class:`~.settings.ProposalSettings`
        """
        self.initial_settings = settings
        self.settings = None
        self.adjustments = SettingsAdjustment()

    def __repr__(self):
        return "%s(adjustments=%r)" % (self.__class__.__name__, self.adjustments)

    def next_settings(self):
        """ The settings for the next attempt.

            :returns: a (settings, adjustments) pair, or None when exhausted
        """
        if self.settings is None:
            self.settings = self.initial_settings
        else:
            settings = self._calculate_next_settings()
            if settings is None:
                log.info("no more settings to try")
                return None
            self.settings = settings
        return (self.settings, self.adjustments)

    def _calculate_next_settings(self):
        raise NotImplementedError()

    def _disable(self, mount_point, attr, label=None):
        log.info("disabling '%s' for '%s'", attr, label or mount_point)
        settings = apply_adjustment(self.settings, mount_point, attr, False)
        self.adjustments = self.adjustments.add(label or mount_point, attr, False)
        return settings


def _active_and_configurable(volume, attr):
    return bool(getattr(volume, attr)) and bool(getattr(volume, "%s_configurable" % attr))


def adjust_by_ram_active_and_configurable(volume):
    return _active_and_configurable(volume, "adjust_by_ram")


def snapshots_active_and_configurable(volume):
    return volume.btrfs and _active_and_configurable(volume, "snapshots")


def proposed_active_and_configurable(volume):
    return _active_and_configurable(volume, "proposed")


def configurable_volume(volume):
    """ Whether the generator may change something in the volume.

        Volumes with no disable_order are never touched, only the user
        may change them.
    """
    if not volume.proposed or volume.disable_order is None:
        return False
    return (proposed_active_and_configurable(volume) or
            adjust_by_ram_active_and_configurable(volume) or
            snapshots_active_and_configurable(volume))


class NgSettingsGenerator(SettingsGenerator):

    """ Disables properties of the volumes following their disable_order.

        For the first configurable volume, adjust_by_ram goes first, then
        the snapshots, and finally the whole volume.
    """

    def first_configurable_volume(self):
        volumes = [v for v in self.settings.volumes if configurable_volume(v)]
        if not volumes:
            return None
        return min(volumes, key=lambda v: v.disable_order)

    def _calculate_next_settings(self):
        volume = self.first_configurable_volume()
        if volume is None:
            return None

        if adjust_by_ram_active_and_configurable(volume):
            return self._disable(volume.mount_point, "adjust_by_ram")
        if snapshots_active_and_configurable(volume):
            return self._disable(volume.mount_point, "snapshots")
        return self._disable(volume.mount_point, "proposed")


class LegacySettingsGenerator(SettingsGenerator):

    """ Tries without a separate /home, then without snapshots. """

    def _calculate_next_settings(self):
        if self.settings.use_separate_home:
            return self._disable(None, "use_separate_home", label="/home")
        if self.settings.snapshots_active:
            return self._disable(None, "use_snapshots", label="/")
        return None
