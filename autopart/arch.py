#
# arch.py
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

import os

from .size import Size
from .storage_log import log_exception_info
from . import util

import logging
log = logging.getLogger("autopart")

DEVICE_TREE_MODEL = "/proc/device-tree/model"
EFI_FIRMWARE_DIR = "/sys/firmware/efi"

# bootloaders that boot entries following the Boot Loader Specification
# straight from the ESP
BLS_BOOTLOADERS = ("systemd-boot", "grub2-bls")


def get_ppc_machine():
    """
    :return: The PPC machine type, or None if not PPC.
    :rtype: string

    """
    if not is_ppc():
        return None

    # Note: This is a substring match!
    ppc_type = {'CHRP': 'pSeries',
                'iSeries': 'iSeries',
                'pSeries': 'pSeries',
                'PReP': 'PReP',
                'Maple': 'pSeries',
                'Cell': 'pSeries',
                'PowerNV': 'PowerNV'
                }
    machine = None
    platform = None

    with open('/proc/cpuinfo', 'r') as f:
        for line in f:
            if 'machine' in line:
                machine = line.split(':')[1]
            elif 'platform' in line:
                platform = line.split(':')[1]

    for part in (machine, platform):
        if part is None:
            continue

        for _type in ppc_type.items():
            if _type[0] in part:
                return _type[1]

    log.warning("Unknown PowerPC machine type: %s platform: %s", machine, platform)

    return None


def is_aarch64():
    return os.uname()[4] == 'aarch64'


def is_arm():
    return os.uname()[4].startswith('arm')


def is_efi():
    """
    :return: True if the hardware supports EFI, False otherwise.
    :rtype: boolean

    """
    return os.path.exists(EFI_FIRMWARE_DIR)


def is_x86():
    arch = os.uname()[4]
    return (arch.startswith('i') and arch.endswith('86')) or \
        arch.startswith('athlon') or arch.startswith('amd') or \
        arch == 'x86_64' or arch == 'ia32e'


def is_ppc():
    return os.uname()[4] in ('ppc', 'ppc64', 'ppc64le')


def is_powernv():
    return is_ppc() and get_ppc_machine() == "PowerNV"


def is_raspberry_pi():
    """
    :return: True if the device tree says we run on a Raspberry Pi.
    :rtype: boolean

    """
    if not (is_aarch64() or is_arm()):
        return False

    try:
        with open(DEVICE_TREE_MODEL, "r") as f:
            model = f.read()
    except OSError:
        return False

    return model.startswith("Raspberry Pi")


def get_arch():
    """
    :return: The hardware architecture
    :rtype: string

    """
    if is_x86():
        return 'x86_64' if os.uname()[4] in ('x86_64', 'ia32e') else 'i386'
    return os.uname()[4]


class ArchFacts(object):
    """ Architecture and firmware facts the proposal needs.

        Instances are plain values. Use :meth:`probe` to read them from
        the running system or build them directly, e.g. in tests.
    """

    def __init__(self, arch="x86_64", efiboot=False, powernv=False,
                 raspberry_pi=False, ram_size=None, bootloader=None,
                 nfs_root=False):
        """
            :keyword str arch: architecture name as returned by :func:`get_arch`
            :keyword bool efiboot: whether the system boots via EFI
            :keyword bool powernv: whether this is a PowerNV machine
            :keyword bool raspberry_pi: whether this is a Raspberry Pi
            :keyword ram_size: size of the RAM
            :type ram_size: :class:`~.size.Size`
            :keyword str bootloader: name of the preferred bootloader
            :keyword bool nfs_root: whether the root filesystem is on NFS
        """
        self.arch = arch
        self.efiboot = efiboot
        self.powernv = powernv
        self.raspberry_pi = raspberry_pi
        self.ram_size = Size(ram_size) if ram_size is not None else Size("1 GiB")
        self.bootloader = bootloader
        self.nfs_root = nfs_root

    def __repr__(self):
        return ("ArchFacts(arch=%s, efiboot=%s, powernv=%s, raspberry_pi=%s, "
                "ram_size=%s, bootloader=%s, nfs_root=%s)" %
                (self.arch, self.efiboot, self.powernv, self.raspberry_pi,
                 self.ram_size, self.bootloader, self.nfs_root))

    @classmethod
    def probe(cls, bootloader=None, nfs_root=False):
        """ Build the facts from the running system. """
        try:
            ram_size = util.total_memory()
        except (OSError, RuntimeError):
            log_exception_info(log.error, "failed to read the amount of RAM")
            ram_size = None

        facts = cls(arch=get_arch(), efiboot=is_efi(), powernv=is_powernv(),
                    raspberry_pi=is_raspberry_pi(), ram_size=ram_size,
                    bootloader=bootloader, nfs_root=nfs_root)
        log.info("probed architecture facts: %s", facts)
        return facts

    @property
    def x86(self):
        return self.arch in ("i386", "x86_64")

    @property
    def ppc(self):
        return self.arch.startswith("ppc")

    @property
    def s390(self):
        return self.arch.startswith("s390")

    @property
    def arm(self):
        return self.arch == "aarch64" or self.arch.startswith("arm")

    @property
    def bls_bootloader(self):
        return self.bootloader in BLS_BOOTLOADERS

    @property
    def preferred_ptable_type(self):
        """ Partition table type used for disks that have none yet. """
        if self.raspberry_pi and not self.efiboot:
            return "msdos"
        return "gpt"
