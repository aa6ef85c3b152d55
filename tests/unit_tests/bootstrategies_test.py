import unittest

from autopart.arch import ArchFacts
from autopart.devicegraph import Devicegraph
from autopart.devices.lib import PartitionId, PartitionTableType
from autopart.errors import BootRequirementsError
from autopart.proposal.bootanalyzer import BootAnalyzer
from autopart.proposal.bootstrategies import BootStrategy, boot_strategy_for, needed_partitions
from autopart.proposal.context import PlanningContext
from autopart.proposal.planned import PlannedDevice, Target
from autopart.size import Size

EMPTY_DISK = """
- disk:
    name: /dev/sda
    size: 50 GiB
"""

GPT_WITH_BIOS_BOOT = """
- disk:
    name: /dev/sda
    size: 50 GiB
    partition_table: gpt
    partitions:
    - partition:
        size: 1 MiB
        id: bios_boot
"""

GPT_WITH_ESP = """
- disk:
    name: /dev/sda
    size: 50 GiB
    partition_table: gpt
    partitions:
    - partition:
        size: 100 MiB
        name: /dev/sda1
        id: esp
        file_system: vfat
    - partition:
        size: 300 MiB
        name: /dev/sda2
        id: esp
        file_system: vfat
"""

MSDOS_GAP = """
- disk:
    name: /dev/sda
    size: 50 GiB
    partition_table: msdos
    mbr_gap: %s
    partitions:
    - partition:
        size: 10 GiB
        file_system: ntfs
        id: ntfs
"""

FBA_DASD = """
- dasd:
    name: /dev/dasda
    size: 10 GiB
    type: fba
"""

RASPI_FIRMWARE = """
- disk:
    name: /dev/mmcblk0
    size: 32 GiB
    partition_table: msdos
    partitions:
    - partition:
        size: 256 MiB
        id: dos32
        file_system: vfat
        content: [rpi_firmware]
"""


def root_partition(fs_type="btrfs", disk="/dev/sda", **kwargs):
    return PlannedDevice.partition("/", fs_type, min_size=Size("5 GiB"), weight=100,
                                   disk=disk, **kwargs)


class BootStrategyForTestCase(unittest.TestCase):

    def _strategy(self, **kwargs):
        return boot_strategy_for(PlanningContext(Devicegraph(), arch=ArchFacts(**kwargs)))

    def test_strategies(self):
        self.assertEqual(self._strategy(), BootStrategy.legacy)
        self.assertEqual(self._strategy(efiboot=True), BootStrategy.uefi)
        self.assertEqual(self._strategy(efiboot=True, bootloader="systemd-boot"), BootStrategy.bls)
        self.assertEqual(self._strategy(arch="ppc64le"), BootStrategy.prep)
        self.assertEqual(self._strategy(arch="s390x"), BootStrategy.zipl)
        self.assertEqual(self._strategy(arch="aarch64", raspberry_pi=True), BootStrategy.raspi)
        self.assertEqual(self._strategy(nfs_root=True, efiboot=True), BootStrategy.nfs_root)

    def test_arch_facts(self):
        facts = ArchFacts(arch="aarch64", raspberry_pi=True)
        self.assertTrue(facts.arm)
        self.assertFalse(facts.x86)
        self.assertEqual(facts.preferred_ptable_type, "msdos")
        self.assertEqual(ArchFacts(arch="aarch64", raspberry_pi=True, efiboot=True).preferred_ptable_type,
                         "gpt")
        self.assertEqual(ArchFacts().ram_size, Size("1 GiB"))

    def test_context_only(self):
        context = PlanningContext(Devicegraph(), arch=ArchFacts(efiboot=True))
        self.assertEqual(boot_strategy_for(context), BootStrategy.uefi)
        # the strategy depends on the architecture, not on the planned devices
        with self.assertRaises(TypeError):
            boot_strategy_for(context, BootAnalyzer(Devicegraph(), []))


class BootStrategiesTestCase(unittest.TestCase):

    def _needed(self, strategy, yaml_text, planned, target=Target.desired, arch=None):
        graph = Devicegraph.from_yaml(yaml_text)
        context = PlanningContext(graph, arch=arch)
        analyzer = BootAnalyzer(graph, planned, boot_disk_name=graph.disks[0].name)
        return needed_partitions(strategy, analyzer, target, context)

    def test_legacy_gpt(self):
        devices = self._needed(BootStrategy.legacy, EMPTY_DISK, [root_partition()])
        self.assertEqual(len(devices), 1)
        bios_boot = devices[0]
        self.assertEqual(bios_boot.partition_id, PartitionId.bios_boot)
        self.assertEqual(bios_boot.min_size, Size("1 MiB"))
        self.assertEqual(bios_boot.max_size, Size("8 MiB"))
        self.assertTrue(bios_boot.keep_size)
        self.assertEqual(bios_boot.disk, "/dev/sda")
        self.assertIsNone(bios_boot.mount_point)

        devices = self._needed(BootStrategy.legacy, EMPTY_DISK, [root_partition()], target=Target.min)
        self.assertEqual(devices[0].min_size, Size("256 KiB"))

    def test_legacy_no_disks(self):
        graph = Devicegraph()
        analyzer = BootAnalyzer(graph, [root_partition()])
        self.assertIsNone(analyzer.boot_disk)
        self.assertFalse(analyzer.boot_ptable_type(PartitionTableType.gpt))
        devices = needed_partitions(BootStrategy.legacy, analyzer, Target.desired,
                                    PlanningContext(graph))
        self.assertEqual(devices, [])

    def test_legacy_gpt_existing_bios_boot(self):
        devices = self._needed(BootStrategy.legacy, GPT_WITH_BIOS_BOOT, [root_partition()])
        self.assertEqual(devices, [])

    def test_legacy_msdos(self):
        # enough room for GRUB before the first partition
        devices = self._needed(BootStrategy.legacy, MSDOS_GAP % "1 MiB", [root_partition("ext4")])
        self.assertEqual(devices, [])

        # room for GRUB but not for its environment block
        devices = self._needed(BootStrategy.legacy, MSDOS_GAP % "256.5 KiB", [root_partition("ext4")])
        self.assertEqual([d.mount_point for d in devices], ["/boot"])
        self.assertEqual(devices[0].min_size, Size("200 MiB"))

        with self.assertRaises(BootRequirementsError) as ctx:
            self._needed(BootStrategy.legacy, MSDOS_GAP % "128 KiB", [root_partition("ext4")])
        self.assertEqual(ctx.exception.suggestion, "/boot")

        # btrfs can hold GRUB itself
        devices = self._needed(BootStrategy.legacy, MSDOS_GAP % "128 KiB", [root_partition()])
        self.assertEqual(devices, [])

    def test_uefi(self):
        arch = ArchFacts(efiboot=True)
        devices = self._needed(BootStrategy.uefi, EMPTY_DISK, [root_partition()], arch=arch)
        self.assertEqual(len(devices), 1)
        efi = devices[0]
        self.assertEqual(efi.mount_point, "/boot/efi")
        self.assertEqual(efi.fs_type, "vfat")
        self.assertEqual(efi.partition_id, PartitionId.esp)
        self.assertEqual(efi.min_size, Size("500 MiB"))
        self.assertEqual(efi.mkfs_options, "-F32")
        self.assertEqual(efi.max_start_offset, Size("2 TiB"))
        self.assertFalse(efi.reuse)

        devices = self._needed(BootStrategy.uefi, EMPTY_DISK, [root_partition()],
                               target=Target.min, arch=arch)
        self.assertEqual(devices[0].min_size, Size("33 MiB"))
        self.assertIsNone(devices[0].mkfs_options)

    def test_uefi_reuse(self):
        devices = self._needed(BootStrategy.uefi, GPT_WITH_ESP, [root_partition()])
        self.assertEqual(len(devices), 1)
        self.assertEqual(devices[0].reuse_name, "/dev/sda2")
        self.assertEqual(devices[0].min_size, Size("300 MiB"))

    def test_uefi_already_planned(self):
        efi = PlannedDevice.partition("/boot/efi", "vfat", min_size=Size("1 GiB"))
        devices = self._needed(BootStrategy.uefi, EMPTY_DISK, [root_partition(), efi])
        self.assertEqual(devices, [])

    def test_bls(self):
        devices = self._needed(BootStrategy.bls, EMPTY_DISK, [root_partition()])
        self.assertEqual(devices[0].min_size, Size("1 GiB"))
        self.assertEqual(devices[0].max_size, Size("1 GiB"))

    def test_prep(self):
        arch = ArchFacts(arch="ppc64le")
        devices = self._needed(BootStrategy.prep, EMPTY_DISK, [root_partition()], arch=arch)
        self.assertEqual(devices, [])

        root_lv = PlannedDevice.logical_volume("/", "xfs", min_size=Size("5 GiB"))
        devices = self._needed(BootStrategy.prep, EMPTY_DISK, [root_lv], arch=arch)
        self.assertEqual(len(devices), 1)
        self.assertEqual(devices[0].partition_id, PartitionId.prep)
        self.assertTrue(devices[0].bootable)
        self.assertTrue(devices[0].keep_size)

        encrypted = root_partition(encryption_password="secret")
        devices = self._needed(BootStrategy.prep, EMPTY_DISK, [encrypted], arch=arch)
        self.assertEqual(len(devices), 1)

        arch = ArchFacts(arch="ppc64le", powernv=True)
        devices = self._needed(BootStrategy.prep, EMPTY_DISK, [root_lv], arch=arch)
        self.assertEqual(devices, [])

    def test_zipl(self):
        arch = ArchFacts(arch="s390x")
        devices = self._needed(BootStrategy.zipl, EMPTY_DISK, [root_partition()], arch=arch)
        self.assertEqual([d.mount_point for d in devices], ["/boot/zipl"])
        self.assertEqual(devices[0].fs_type, "ext2")

        with self.assertRaises(BootRequirementsError):
            self._needed(BootStrategy.zipl, FBA_DASD, [root_partition(disk="/dev/dasda")], arch=arch)

    def test_raspi(self):
        arch = ArchFacts(arch="aarch64", raspberry_pi=True)
        devices = self._needed(BootStrategy.raspi, EMPTY_DISK, [root_partition()], arch=arch)
        self.assertEqual(len(devices), 1)
        efi = devices[0]
        self.assertEqual(efi.mount_point, "/boot/efi")
        self.assertEqual(efi.ptable_type, PartitionTableType.msdos)
        self.assertEqual(efi.partition_id, PartitionId.dos32)
        self.assertEqual(efi.max_start_offset, Size("1 MiB"))

    def test_raspi_firmware(self):
        arch = ArchFacts(arch="aarch64", raspberry_pi=True)
        devices = self._needed(BootStrategy.raspi, RASPI_FIRMWARE,
                               [root_partition(disk="/dev/mmcblk0")], arch=arch)
        self.assertEqual([d.mount_point for d in devices], ["/boot/vc", "/boot/efi"])
        self.assertEqual(devices[0].reuse_name, "/dev/mmcblk0p1")
        self.assertIsNone(devices[1].ptable_type)

    def test_nfs_root(self):
        devices = self._needed(BootStrategy.nfs_root, EMPTY_DISK, [root_partition()])
        self.assertEqual(devices, [])


class BootAnalyzerTestCase(unittest.TestCase):

    TWO_DISKS = """
- disk:
    name: /dev/sda
    size: 50 GiB
- disk:
    name: /dev/sdb
    size: 50 GiB
    partition_table: gpt
    partitions:
    - partition:
        size: 10 GiB
        name: /dev/sdb1
        file_system: ext4
        mount_point: /
        encryption:
          password: secret
"""

    def setUp(self):
        self.graph = Devicegraph.from_yaml(self.TWO_DISKS)

    def test_boot_disk(self):
        analyzer = BootAnalyzer(self.graph, [root_partition(disk="/dev/sda")])
        self.assertEqual(analyzer.boot_disk.name, "/dev/sda")

        # the existing root decides when nothing is planned
        analyzer = BootAnalyzer(self.graph, [])
        self.assertEqual(analyzer.boot_disk.name, "/dev/sdb")
        self.assertTrue(analyzer.encrypted_root)
        self.assertFalse(analyzer.btrfs_root)
        self.assertFalse(analyzer.root_in_lvm)
        self.assertFalse(analyzer.free_mountpoint("/"))
        self.assertTrue(analyzer.free_mountpoint("/boot"))
        self.assertTrue(analyzer.boot_ptable_type(PartitionTableType.gpt))

        analyzer = BootAnalyzer(self.graph, [], boot_disk_name="/dev/sda")
        self.assertEqual(analyzer.boot_disk.name, "/dev/sda")

    def test_planned_root(self):
        root = PlannedDevice.logical_volume("/", "btrfs", min_size=Size("5 GiB"), weight=40)
        pv = PlannedDevice.partition(lvm_volume_group_name="system", disk="/dev/sdb")
        analyzer = BootAnalyzer(self.graph, [root, pv])
        self.assertTrue(analyzer.root_in_lvm)
        self.assertTrue(analyzer.btrfs_root)
        self.assertFalse(analyzer.encrypted_root)
        self.assertEqual(analyzer.boot_disk.name, "/dev/sdb")
        self.assertEqual(analyzer.max_planned_weight, 40)
