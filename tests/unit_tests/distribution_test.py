import unittest

from autopart.devicegraph import Devicegraph
from autopart.devices import Disk, FreeDiskSpace
from autopart.devices.lib import PartitionType
from autopart.errors import NoDiskSpaceError, NoMorePartitionSlotError
from autopart.proposal.distribution import AssignedSpace, PartitionsDistribution
from autopart.proposal.distribution import DistributionCalculator, best_of, partitions_in_new_extended
from autopart.proposal.planned import PlannedDevice
from autopart.size import Size

THREE_PRIMARIES = """
- disk:
    name: /dev/sda
    size: 50 GiB
    partition_table: msdos
    partitions:
    - partition:
        size: 5 GiB
        name: /dev/sda1
    - partition:
        size: 5 GiB
        name: /dev/sda2
    - partition:
        size: 5 GiB
        name: /dev/sda3
"""

FOUR_PRIMARIES_AND_A_GAP = """
- disk:
    name: /dev/sda
    size: 50 GiB
    partition_table: msdos
    partitions:
    - partition:
        size: 5 GiB
        name: /dev/sda1
    - free:
        size: 5 GiB
    - partition:
        size: 5 GiB
        name: /dev/sda2
    - partition:
        size: 5 GiB
        name: /dev/sda3
    - partition:
        size: 5 GiB
        name: /dev/sda4
"""

WINDOWS = """
- disk:
    name: /dev/sda
    size: 50 GiB
    partition_table: gpt
    partitions:
    - partition:
        size: 40 GiB
        name: /dev/sda1
        id: windows_basic_data
        file_system: ntfs
        min_size: 10 GiB
"""


def _empty_disk_space(name, size):
    return Disk(name, size=Size(size)).free_spaces()[0]


class AssignedSpaceTestCase(unittest.TestCase):

    def test_empty_gpt_disk(self):
        space = _empty_disk_space("/dev/sda", "20 GiB")
        # 1 MiB at the start, the backup GPT at the end
        self.assertEqual(space.start, Size("1 MiB"))
        self.assertEqual(space.disk_size, Size("20 GiB") - Size("2 MiB"))

        root = PlannedDevice.partition("/", "ext4", min_size=Size("5 GiB"))
        swap = PlannedDevice.partition("swap", "swap", min_size=Size("2 GiB"), max_size=Size("2 GiB"))
        assigned = AssignedSpace(space, [root, swap])
        self.assertEqual(assigned.partition_type, PartitionType.primary)
        self.assertTrue(assigned.valid)
        # root can take everything
        self.assertEqual(assigned.unused, Size(0))
        self.assertEqual(assigned.total_needed_size, Size("7 GiB"))
        self.assertEqual(assigned.extra_size, space.disk_size - Size("7 GiB"))

    def test_max_start_offset_first(self):
        space = _empty_disk_space("/dev/sda", "20 GiB")
        root = PlannedDevice.partition("/", "ext4", min_size=Size("5 GiB"))
        efi = PlannedDevice.partition("/boot/efi", "vfat", min_size=Size("33 MiB"),
                                      max_start_offset=Size("2 TiB"))
        assigned = AssignedSpace(space, [root, efi])
        self.assertEqual(assigned.partitions, [efi, root])

    def test_aligned_min_sizes(self):
        space = FreeDiskSpace(Disk("/dev/sda", size=Size("10 GiB")), Size("1 MiB"), Size("2 MiB"))
        # 1.5 MiB is rounded up to 2 MiB, twice
        parts = [PlannedDevice.partition(min_size=Size("1.5 MiB")) for _i in range(2)]
        self.assertFalse(AssignedSpace(space, parts).valid)
        self.assertTrue(AssignedSpace(space, parts[:1]).valid)


class PartitionsDistributionTestCase(unittest.TestCase):

    def test_partitions_in_new_extended(self):
        disk = Disk("/dev/sda", size=Size("10 GiB"))
        table = disk.create_partition_table("msdos")
        self.assertEqual(partitions_in_new_extended(3, table), 0)
        self.assertEqual(partitions_in_new_extended(4, table), 0)
        self.assertEqual(partitions_in_new_extended(5, table), 2)

        disk = Disk("/dev/sdb", size=Size("10 GiB"))
        table = disk.create_partition_table("gpt")
        self.assertEqual(partitions_in_new_extended(5, table), 0)

    def test_new_extended(self):
        graph = Devicegraph.from_yaml(THREE_PRIMARIES)
        spaces = graph.get_disk("/dev/sda").free_spaces()
        self.assertEqual(len(spaces), 1)

        parts = [PlannedDevice.partition(min_size=Size("5 GiB")) for _i in range(2)]
        distribution = PartitionsDistribution({spaces[0]: parts})
        assigned = distribution.space_at(spaces[0])
        self.assertIsNone(assigned.partition_type)
        # the fourth slot goes to the extended partition
        self.assertEqual(assigned.num_logical, 2)
        self.assertEqual(assigned.usable_size, spaces[0].disk_size - Size("2 MiB"))
        self.assertEqual(distribution.partitions, parts)

        # a partition that must be primary cannot be logical
        parts = [PlannedDevice.partition(min_size=Size("5 GiB"), primary=True) for _i in range(2)]
        with self.assertRaises(NoDiskSpaceError):
            PartitionsDistribution({spaces[0]: parts})

        # a single partition fits in the last primary slot
        distribution = PartitionsDistribution({spaces[0]: parts[:1]})
        self.assertEqual(distribution.space_at(spaces[0]).num_logical, 0)

    def test_no_slot_left(self):
        graph = Devicegraph.from_yaml(FOUR_PRIMARIES_AND_A_GAP)
        spaces = graph.get_disk("/dev/sda").free_spaces()
        self.assertEqual(spaces[0].start, Size("5 GiB") + Size("1 MiB"))
        self.assertEqual(spaces[0].disk_size, Size("5 GiB"))

        part = PlannedDevice.partition(min_size=Size("1 GiB"))
        with self.assertRaises(NoMorePartitionSlotError):
            PartitionsDistribution({spaces[0]: [part]})

        calculator = DistributionCalculator()
        self.assertIsNone(calculator.best_distribution([part], spaces))

    def test_add_partitions(self):
        space = _empty_disk_space("/dev/sda", "20 GiB")
        other = _empty_disk_space("/dev/sdb", "20 GiB")
        root = PlannedDevice.partition("/", "ext4", min_size=Size("5 GiB"))
        distribution = PartitionsDistribution({space: [root], other: []})
        self.assertEqual(distribution.unassigned_spaces, [other])

        pv = PlannedDevice.partition(min_size=Size("1 GiB"))
        bigger = distribution.add_partitions({other: pv})
        self.assertEqual(bigger.partitions_count, 2)
        self.assertEqual(bigger.unassigned_spaces, [])
        # the original distribution is not modified
        self.assertEqual(distribution.partitions_count, 1)

        with self.assertRaises(NoDiskSpaceError):
            distribution.add_partitions({space: PlannedDevice.partition(min_size=Size("20 GiB"))})

    def test_comparison(self):
        # two empty disks providing spaces of exactly 5 GiB and 10 GiB
        small = _empty_disk_space("/dev/sda", Size("5 GiB") + Size("2 MiB"))
        big = _empty_disk_space("/dev/sdb", Size("10 GiB") + Size("2 MiB"))
        self.assertEqual(small.disk_size, Size("5 GiB"))
        self.assertEqual(big.disk_size, Size("10 GiB"))

        part = PlannedDevice.partition("/", "ext4", min_size=Size("1 GiB"), max_size=Size("5 GiB"))
        in_small = PartitionsDistribution({small: [part], big: []})
        in_big = PartitionsDistribution({small: [], big: [part]})

        # both leave 10 GiB unused, but in_small in a single gap
        self.assertEqual(in_small.gaps_total_size, Size("10 GiB"))
        self.assertEqual(in_big.gaps_total_size, Size("10 GiB"))
        self.assertEqual(in_small.gaps_count, 1)
        self.assertEqual(in_big.gaps_count, 2)

        self.assertEqual(in_small.better_than(in_big), -1)
        self.assertEqual(in_big.better_than(in_small), 1)
        self.assertEqual(in_small.better_than(in_small), 0)
        self.assertIs(best_of([in_big, in_small]), in_small)
        self.assertIsNone(best_of([]))

        calculator = DistributionCalculator()
        best = calculator.best_distribution([part], [small, big])
        self.assertIsNotNone(best.space_at(small))
        self.assertIsNone(best.space_at(big))

    def test_weight_space_deviation(self):
        space = _empty_disk_space("/dev/sda", "20 GiB")
        part = PlannedDevice.partition(min_size=Size("1 GiB"))
        distribution = PartitionsDistribution({space: [part]})
        self.assertEqual(distribution.weight_space_deviation, 0.0)

        part.weight = 100
        self.assertEqual(distribution.weight_space_deviation, 0.0)


class DistributionCalculatorTestCase(unittest.TestCase):

    def setUp(self):
        self.sda = _empty_disk_space("/dev/sda", "10 GiB")
        self.sdb = _empty_disk_space("/dev/sdb", "20 GiB")
        self.spaces = [self.sda, self.sdb]

    def test_impossible(self):
        calculator = DistributionCalculator()
        parts = [PlannedDevice.partition(min_size=Size("15 GiB")),
                 PlannedDevice.partition(min_size=Size("15 GiB"))]
        self.assertTrue(calculator.impossible(parts, self.spaces))
        self.assertIsNone(calculator.best_distribution(parts, self.spaces))

        parts = [PlannedDevice.partition(min_size=Size("15 GiB"), disk="/dev/sda")]
        self.assertTrue(calculator.impossible(parts, self.spaces))

        parts = [PlannedDevice.partition(min_size=Size("15 GiB"), disk="/dev/sdb")]
        self.assertFalse(calculator.impossible(parts, self.spaces))
        best = calculator.best_distribution(parts, self.spaces)
        self.assertIsNotNone(best.space_at(self.sdb))

    def test_suitable_space(self):
        calculator = DistributionCalculator()
        part = PlannedDevice.partition(min_size=Size("1 GiB"), disk="/dev/sdb")
        self.assertFalse(calculator.suitable_space(self.sda, part))
        self.assertTrue(calculator.suitable_space(self.sdb, part))

        part = PlannedDevice.partition(min_size=Size("15 GiB"))
        self.assertFalse(calculator.suitable_space(self.sda, part))

        far = FreeDiskSpace(self.sda.disk, Size("5 GiB"), Size("5 GiB") - Size("1 MiB"))
        part = PlannedDevice.partition(min_size=Size("1 GiB"), max_start_offset=Size("1 GiB"))
        self.assertFalse(calculator.suitable_space(far, part))
        self.assertTrue(calculator.suitable_space(self.sda, part))

        part = PlannedDevice.partition(min_size=Size("1 GiB"), ptable_type="msdos")
        self.assertTrue(calculator.suitable_space(self.sda, part))
        self.sda.disk.create_partition_table("gpt")
        self.assertFalse(calculator.suitable_space(self.sda, part))

    def test_default_disks(self):
        calculator = DistributionCalculator(default_disks=["/dev/sda"])
        part = PlannedDevice.partition(min_size=Size("1 GiB"))
        self.assertTrue(calculator.suitable_space(self.sda, part))
        self.assertFalse(calculator.suitable_space(self.sdb, part))

        best = calculator.best_distribution([part], self.spaces)
        self.assertIsNotNone(best.space_at(self.sda))

        # an explicit disk wins over the default ones
        part = PlannedDevice.partition(min_size=Size("1 GiB"), disk="/dev/sdb")
        self.assertTrue(calculator.suitable_space(self.sdb, part))

    def test_no_lvm(self):
        self.assertFalse(DistributionCalculator().lvm)

    def test_resizing_size(self):
        graph = Devicegraph.from_yaml(WINDOWS)
        disk = graph.get_disk("/dev/sda")
        windows = graph.find_by_name("/dev/sda1")
        spaces = disk.free_spaces()
        self.assertEqual(spaces[0].start, windows.end)
        self.assertEqual(spaces[0].disk_size, Size("10 GiB") - Size("2 MiB"))

        calculator = DistributionCalculator()
        root = PlannedDevice.partition("/", "ext4", min_size=Size("15 GiB"))
        self.assertEqual(calculator.resizing_size(windows, [root], spaces),
                         Size("5 GiB") + Size("2 MiB"))

        # nothing to reclaim if the partitions already fit
        root = PlannedDevice.partition("/", "ext4", min_size=Size("5 GiB"))
        self.assertEqual(calculator.resizing_size(windows, [root], spaces), Size(0))

        # partitions for other disks do not need space here
        root = PlannedDevice.partition("/", "ext4", min_size=Size("15 GiB"), disk="/dev/sdb")
        self.assertEqual(calculator.resizing_size(windows, [root], spaces), Size(0))
