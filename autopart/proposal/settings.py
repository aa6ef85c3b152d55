# proposal/settings.py
# Settings for the guided proposal.
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

""" Proposal settings.

    Settings objects are values: they cannot be modified once built.
    :meth:`ProposalSettings.copy` and :func:`apply_adjustment` return new
    objects instead, so a settings value handed to one planning attempt is
    never affected by what another attempt does.
"""

import copy
from enum import Enum

import yaml

from ..errors import SettingsError
from ..i18n import _, N_
from ..size import Size, UNLIMITED
from .. import util

import logging
log = logging.getLogger("autopart")


class DeleteMode(str, Enum):
    none = "none"
    ondemand = "ondemand"
    all = "all"


class LvmVgStrategy(str, Enum):
    use_available = "use_available"
    use_needed = "use_needed"
    use_vg_size = "use_vg_size"


class SettingsFormat(str, Enum):
    ng = "ng"
    legacy = "legacy"


# subvolumes of a btrfs root when the product does not list any
DEFAULT_SUBVOLUMES = ("home", "opt", "root", "srv", "tmp", "usr/local", "var")


class _FrozenValue(object):

    """ A set of named fields that refuses modification after creation.

        Subclasses list their fields with the default values in
        ``_fields``. Fields named in ``_size_fields`` are converted to
        :class:`~.size.Size` and those in ``_tuple_fields`` to tuples.
    """
    _fields = ()
    _size_fields = ()
    _tuple_fields = ()
    _frozen = False

    def __init__(self, **kwargs):
        unknown = set(kwargs) - set(name for (name, _default) in self._fields)
        if unknown:
            raise SettingsError("unknown %s attributes: %s" %
                                (self.__class__.__name__, ", ".join(sorted(unknown))))

        for (name, default) in self._fields:
            object.__setattr__(self, name, self._convert(name, kwargs.get(name, default)))
        self._check()
        object.__setattr__(self, "_frozen", True)

    def __setattr__(self, name, value):
        if self._frozen:
            raise AttributeError("%s objects cannot be modified, use copy()" %
                                 self.__class__.__name__)
        object.__setattr__(self, name, value)

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for (name, _default) in self._fields)

    def __ne__(self, other):
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self):
        return hash(tuple(getattr(self, name) for (name, _default) in self._fields))

    def _convert(self, name, value):
        if value is None:
            return None
        if name in self._size_fields:
            try:
                return Size(value)
            except ValueError as e:
                raise SettingsError("invalid value for %s: %s" % (name, e))
        if name in self._tuple_fields:
            return tuple(value)
        return value

    def _check(self):
        pass

    def copy(self, **changes):
        """ Return a copy of this value with the given fields changed. """
        unknown = set(changes) - set(name for (name, _default) in self._fields)
        if unknown:
            raise SettingsError("unknown %s attributes: %s" %
                                (self.__class__.__name__, ", ".join(sorted(unknown))))

        new = copy.copy(self)
        object.__setattr__(new, "_frozen", False)
        for (name, value) in changes.items():
            setattr(new, name, self._convert(name, value))
        new._check()
        object.__setattr__(new, "_frozen", True)
        return new

    def to_dict(self):
        return dict((name, getattr(self, name)) for (name, _default) in self._fields)


class VolumeSpecification(_FrozenValue):

    """ Specification of one volume (a mount point or swap) of the product. """

    _fields = (("mount_point", None),
               ("fs_type", None),
               ("fs_types", ()),
               ("proposed", True),
               ("proposed_configurable", False),
               ("desired_size", Size(0)),
               ("min_size", Size(0)),
               ("max_size", UNLIMITED),
               ("max_size_lvm", Size(0)),
               ("weight", 0),
               ("adjust_by_ram", False),
               ("adjust_by_ram_configurable", False),
               ("snapshots", False),
               ("snapshots_configurable", False),
               ("snapshots_size", Size(0)),
               ("snapshots_percentage", 0),
               ("fallback_for_min_size", None),
               ("fallback_for_desired_size", None),
               ("fallback_for_max_size", None),
               ("fallback_for_max_size_lvm", None),
               ("fallback_for_weight", None),
               ("ignore_fallback_sizes", False),
               ("ignore_snapshots_sizes", False),
               ("ignore_adjust_by_ram", False),
               ("subvolumes", None),
               ("btrfs_default_subvolume", None),
               ("btrfs_read_only", False),
               ("disable_order", None),
               ("device", None),
               ("reuse_name", None),
               ("partition_id", None))
    _size_fields = ("desired_size", "min_size", "max_size", "max_size_lvm", "snapshots_size")
    _tuple_fields = ("fs_types", "subvolumes")

    def __init__(self, **kwargs):
        mount_point = util.clean_mount_point(kwargs.get("mount_point"))
        if not mount_point:
            raise SettingsError("volumes need a mount point")
        kwargs["mount_point"] = mount_point

        if mount_point == "swap":
            kwargs.setdefault("fs_type", "swap")
        fs_types = list(kwargs.get("fs_types") or [])
        if not kwargs.get("fs_type"):
            kwargs["fs_type"] = fs_types[0] if fs_types else "ext4"
        if kwargs["fs_type"] not in fs_types:
            fs_types.insert(0, kwargs["fs_type"])
        kwargs["fs_types"] = fs_types

        # a root volume with no subvolumes key gets the default list, an
        # empty list means no subvolumes at all
        if kwargs.get("subvolumes") is None:
            kwargs["subvolumes"] = DEFAULT_SUBVOLUMES if mount_point == "/" else ()

        super(VolumeSpecification, self).__init__(**kwargs)

    def __repr__(self):
        return ("VolumeSpecification(mount_point=%s, fs_type=%s, proposed=%s, "
                "min=%s, desired=%s, max=%s, disable_order=%s)" %
                (self.mount_point, self.fs_type, self.proposed,
                 self.min_size, self.desired_size, self.max_size, self.disable_order))

    def _check(self):
        if self.min_size > self.max_size:
            raise SettingsError("min_size of %s is bigger than its max_size" % self.mount_point)

    @classmethod
    def from_dict(cls, data):
        """ Build a volume from a dict read from a product definition. """
        if not isinstance(data, dict):
            raise SettingsError("invalid volume specification: %s" % data)
        data = dict(data)
        if "subvolumes" in data and data["subvolumes"] is not None:
            data["subvolumes"] = [_subvolume_path(s) for s in data["subvolumes"]]
        return cls(**data)

    @property
    def root(self):
        return self.mount_point == "/"

    @property
    def swap(self):
        return self.mount_point == "swap"

    @property
    def btrfs(self):
        return self.fs_type == "btrfs"

    @property
    def reuse(self):
        """ Whether the volume reuses an existing device. """
        return bool(self.reuse_name)

    @property
    def fs_type_configurable(self):
        return len(self.fs_types) > 1

    @property
    def configurable(self):
        """ Whether the user (or the settings generator) may change the volume. """
        return (self.proposed_configurable or self.fs_type_configurable or
                self.adjust_by_ram_configurable or self.snapshots_configurable)

    @property
    def min_size_with_snapshots(self):
        """ Minimal size of the volume taking the snapshots into account. """
        if not (self.btrfs and self.snapshots):
            return self.min_size
        if self.snapshots_size > Size(0):
            return self.min_size + self.snapshots_size
        return self.min_size * (1 + self.snapshots_percentage / 100.0)


def _subvolume_path(entry):
    """ Subvolumes are listed either as paths or as dicts with a path. """
    if isinstance(entry, dict):
        path = entry.get("path")
    else:
        path = entry
    if not path:
        raise SettingsError("invalid subvolume: %s" % entry)
    return str(path).strip("/")


class ProposalSettings(_FrozenValue):

    """ Settings of the guided proposal.

        Two formats are supported. The ``ng`` format describes every volume
        with a :class:`VolumeSpecification`. The ``legacy`` format only
        knows about root, swap and home and sizes them from a handful of
        flat fields.
    """

    _fields = (("format", SettingsFormat.ng),
               ("use_lvm", False),
               ("encryption_password", None),
               ("resize_windows", True),
               ("windows_delete_mode", DeleteMode.ondemand),
               ("linux_delete_mode", DeleteMode.ondemand),
               ("other_delete_mode", DeleteMode.ondemand),
               ("candidate_devices", None),
               ("root_device", None),
               ("multidisk_first", False),
               ("allocate_volume_mode", "auto"),
               ("lvm_vg_strategy", LvmVgStrategy.use_available),
               ("lvm_vg_size", Size(0)),
               ("lvm_vg_reuse", True),
               ("volumes", ()),
               # legacy format
               ("root_base_size", Size("3 GiB")),
               ("root_max_size", Size("10 GiB")),
               ("root_space_percent", 40),
               ("btrfs_increase_percentage", 300),
               ("min_size_to_use_separate_home", Size("5 GiB")),
               ("home_min_size", Size("10 GiB")),
               ("home_max_size", UNLIMITED),
               ("root_filesystem_type", "btrfs"),
               ("home_filesystem_type", "xfs"),
               ("use_snapshots", True),
               ("use_separate_home", True),
               ("enlarge_swap_for_suspend", False),
               ("subvolumes", DEFAULT_SUBVOLUMES),
               ("btrfs_default_subvolume", None))
    _size_fields = ("lvm_vg_size", "root_base_size", "root_max_size",
                    "min_size_to_use_separate_home", "home_min_size", "home_max_size")
    _tuple_fields = ("volumes", "subvolumes", "candidate_devices")

    def __repr__(self):
        return ("ProposalSettings(format=%s, use_lvm=%s, use_encryption=%s, "
                "candidate_devices=%s, root_device=%s, volumes=%s)" %
                (self.format.value, self.use_lvm, self.use_encryption,
                 self.candidate_devices, self.root_device,
                 [v.mount_point for v in self.volumes]))

    def _convert(self, name, value):
        try:
            if name == "format" and value is not None:
                return SettingsFormat(value)
            if name.endswith("_delete_mode") and value is not None:
                return DeleteMode(value)
            if name == "lvm_vg_strategy" and value is not None:
                return LvmVgStrategy(value)
        except ValueError:
            raise SettingsError("invalid value for %s: %s" % (name, value))

        if name == "allocate_volume_mode" and value not in ("auto", "device"):
            raise SettingsError("invalid value for %s: %s" % (name, value))

        return super(ProposalSettings, self)._convert(name, value)

    def _check(self):
        if not 0 <= self.root_space_percent <= 100:
            raise SettingsError("root_space_percent must be between 0 and 100")
        mount_points = [v.mount_point for v in self.volumes]
        if len(mount_points) != len(set(mount_points)):
            raise SettingsError("duplicate volumes in the settings")

    @property
    def legacy(self):
        return self.format == SettingsFormat.legacy

    @property
    def use_encryption(self):
        return bool(self.encryption_password)

    def delete_mode(self, classification):
        """ Delete mode for partitions of the given classification.

            :param str classification: "windows", "linux" or "other"
        """
        return getattr(self, "%s_delete_mode" % classification)

    def delete_forbidden(self, classification):
        return self.delete_mode(classification) == DeleteMode.none

    def delete_forced(self, classification):
        return self.delete_mode(classification) == DeleteMode.all

    def volume(self, mount_point):
        """ Return the volume for the given mount point, or None. """
        mount_point = util.clean_mount_point(mount_point)
        return next((v for v in self.volumes if v.mount_point == mount_point), None)

    @property
    def root_volume(self):
        return self.volume("/")

    @property
    def snapshots_active(self):
        if self.legacy:
            return self.use_snapshots and self.root_filesystem_type == "btrfs"
        root = self.root_volume
        return root is not None and root.btrfs and root.snapshots

    #
    # loading
    #
    @classmethod
    def from_dict(cls, data):
        """ Build settings from the ``partitioning`` section of a product
            definition.

            The section holds a ``proposal`` dict with the global options and
            a ``volumes`` list. With no volumes, or with ``format: legacy``
            in the proposal dict, the legacy format is used and the flat
            fields of the proposal dict apply.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise SettingsError("the partitioning section must be a mapping")
        if "partitioning" in data:
            data = data["partitioning"] or {}

        proposal = dict(data.get("proposal") or {})
        volumes = data.get("volumes") or []

        # names used by product definitions
        renames = {"lvm": "use_lvm", "proposal_lvm": "use_lvm",
                   "try_separate_home": "use_separate_home",
                   "proposal_snapshots": "use_snapshots",
                   "limit_try_home": "min_size_to_use_separate_home",
                   "root_space_percentage": "root_space_percent",
                   "vm_home_max_size": "home_max_size"}
        for (old, new) in renames.items():
            if old in proposal:
                proposal.setdefault(new, proposal.pop(old))

        encryption = proposal.pop("encryption", None)
        if isinstance(encryption, dict) and encryption.get("password"):
            proposal.setdefault("encryption_password", str(encryption["password"]))

        if "subvolumes" in proposal and proposal["subvolumes"] is not None:
            proposal["subvolumes"] = [_subvolume_path(s) for s in proposal["subvolumes"]]

        if not volumes:
            proposal.setdefault("format", SettingsFormat.legacy)
        proposal["volumes"] = [VolumeSpecification.from_dict(v) for v in volumes]

        settings = cls(**proposal)
        log.debug("loaded proposal settings: %r", settings)
        return settings

    @classmethod
    def from_yaml(cls, stream):
        """ Build settings from a YAML document (text or open file). """
        try:
            data = yaml.safe_load(stream)
        except yaml.YAMLError as e:
            raise SettingsError("invalid YAML: %s" % e)
        return cls.from_dict(data)


def load_settings(path):
    """ Read the proposal settings from a YAML product definition file. """
    log.info("loading proposal settings from %s", path)
    with open(path, "r") as f:
        return ProposalSettings.from_yaml(f)


def apply_adjustment(settings, mount_point, attr, value):
    """ Return new settings with one attribute changed.

        :param settings: the original settings, left untouched
        :type settings: :class:`ProposalSettings`
        :param mount_point: mount point of the volume to change, or None to
                            change a global attribute
        :type mount_point: str or NoneType
        :param str attr: name of the attribute
        :param value: the new value
        :rtype: :class:`ProposalSettings`
    """
    if mount_point is None:
        return settings.copy(**{attr: value})

    volume = settings.volume(mount_point)
    if volume is None:
        raise SettingsError("no volume for %s in the settings" % mount_point)

    new_volume = volume.copy(**{attr: value})
    volumes = [new_volume if v is volume else v for v in settings.volumes]
    return settings.copy(volumes=volumes)


class SettingsAdjustment(object):

    """ Ordered record of the changes made to the original settings.

        Adding an entry returns a new object, the original one stays as it
        was.
    """

    # descriptions of disabling the given attribute
    _descriptions = {"adjust_by_ram": N_("not adjust size of %s based on RAM"),
                     "snapshots": N_("not enable snapshots for %s"),
                     "proposed": N_("not propose a separate %s"),
                     "use_separate_home": N_("not propose a separate /home"),
                     "use_snapshots": N_("not enable snapshots for /")}

    def __init__(self, entries=None):
        self._entries = tuple(entries or ())

    def __repr__(self):
        return "SettingsAdjustment(%s)" % list(self._entries)

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __eq__(self, other):
        if not isinstance(other, SettingsAdjustment):
            return NotImplemented
        return self._entries == other._entries

    def __ne__(self, other):
        return not self == other

    def __hash__(self):
        return hash(self._entries)

    @property
    def empty(self):
        return not self._entries

    @property
    def entries(self):
        """ Tuple of (volume, attribute, value) triples. """
        return self._entries

    def add(self, volume, attr, value):
        """ Return a new adjustment with one more entry.

            :param str volume: mount point of the volume (or "swap")
            :param str attr: the attribute that changed
            :param value: its new value
        """
        return SettingsAdjustment(self._entries + ((volume, attr, value),))

    @property
    def descriptions(self):
        """ Human readable descriptions of the entries, in order. """
        result = []
        for (volume, attr, value) in self._entries:
            template = self._descriptions.get(attr)
            if template is not None and value is False:
                text = _(template)
                result.append(text % volume if "%s" in text else text)
            else:
                result.append(_("set %(attr)s of %(volume)s to %(value)s") %
                              {"attr": attr, "volume": volume, "value": value})
        return result
