import unittest

from autopart.arch import ArchFacts
from autopart.devicegraph import Devicegraph
from autopart.devices.lib import PartitionId
from autopart.errors import NotBootableError
from autopart.proposal.context import PlanningContext
from autopart.proposal.devicesplanner import devices_planner, NgDevicesPlanner, LegacyDevicesPlanner
from autopart.proposal.planned import PlannedDevice, Target, ensure_size_bounds, remove_shadowed_subvolumes
from autopart.proposal.settings import ProposalSettings, VolumeSpecification
from autopart.size import Size, UNLIMITED

ONE_DISK = """
- disk:
    name: /dev/sda
    size: 100 GiB
"""

SWAPS = """
- disk:
    name: /dev/sda
    size: 100 GiB
    partition_table: gpt
    partitions:
    - partition:
        size: 2 GiB
        name: /dev/sda1
        file_system: swap
    - partition:
        size: 1 GiB
        name: /dev/sda2
        file_system: swap
- disk:
    name: /dev/sdb
    size: 100 GiB
    partition_table: gpt
    partitions:
    - partition:
        size: 1 GiB
        name: /dev/sdb1
        file_system: swap
    - partition:
        size: 4 GiB
        name: /dev/sdb2
        file_system: swap
"""

FBA_DASD = """
- dasd:
    name: /dev/dasda
    size: 100 GiB
    type: fba
"""


def ng_volumes(**root_changes):
    root = VolumeSpecification(mount_point="/", fs_type="btrfs", desired_size="10 GiB",
                               min_size="5 GiB", max_size="unlimited", weight=60,
                               snapshots=True, snapshots_percentage=100)
    swap = VolumeSpecification(mount_point="swap", desired_size="2 GiB", min_size="1 GiB",
                               max_size="2 GiB", adjust_by_ram=True)
    home = VolumeSpecification(mount_point="/home", fs_type="xfs", desired_size="10 GiB",
                               min_size="5 GiB", weight=40)
    return [root.copy(**root_changes), swap, home]


def by_mount_point(devices):
    return dict((d.mount_point, d) for d in devices)


class NgDevicesPlannerTestCase(unittest.TestCase):

    def setUp(self):
        self.graph = Devicegraph.from_yaml(ONE_DISK)
        self.context = PlanningContext(self.graph, arch=ArchFacts(), ram_size=Size("4 GiB"))
        self.settings = ProposalSettings(volumes=ng_volumes(), root_device="/dev/sda",
                                         candidate_devices=["/dev/sda"])

    def test_desired(self):
        planner = devices_planner(self.settings, self.context)
        self.assertIsInstance(planner, NgDevicesPlanner)
        devices = planner.planned_devices(Target.desired)

        # the boot devices go first
        self.assertEqual(devices[0].partition_id, PartitionId.bios_boot)
        planned = by_mount_point(devices[1:])
        self.assertEqual(sorted(planned), ["/", "/home", "swap"])

        root = planned["/"]
        self.assertTrue(root.is_partition)
        self.assertEqual(root.disk, "/dev/sda")
        self.assertEqual(root.weight, 60)
        # snapshots double the size
        self.assertEqual(root.min_size, Size("20 GiB"))
        self.assertEqual(root.max_size, UNLIMITED)
        self.assertTrue(root.snapshots)
        # /home is a separate device, so is not a subvolume
        self.assertNotIn("home", root.subvolumes)
        self.assertIn("var", root.subvolumes)

        # swap follows the RAM
        swap = planned["swap"]
        self.assertEqual(swap.min_size, Size("4 GiB"))
        self.assertEqual(swap.max_size, Size("4 GiB"))
        self.assertIsNone(swap.reuse_name)
        self.assertIsNone(swap.disk)

        self.assertEqual(planned["/home"].min_size, Size("10 GiB"))
        self.assertEqual(planned["/home"].fs_type, "xfs")

    def test_min(self):
        devices = devices_planner(self.settings, self.context).planned_devices(Target.min)
        planned = by_mount_point(devices)
        self.assertEqual(planned["/"].min_size, Size("10 GiB"))
        self.assertEqual(planned["swap"].min_size, Size("4 GiB"))
        self.assertEqual(planned["/home"].min_size, Size("5 GiB"))
        self.assertEqual(devices[0].min_size, Size("256 KiB"))

        for device in devices:
            self.assertLessEqual(device.min_size, device.max_size)

    def test_settings_untouched(self):
        settings = self.settings
        devices_planner(settings, self.context).planned_devices(Target.desired)
        self.assertEqual(settings, ProposalSettings(volumes=ng_volumes(), root_device="/dev/sda",
                                                    candidate_devices=["/dev/sda"]))

    def test_ignore_adjust_by_ram(self):
        volumes = ng_volumes()
        volumes[1] = volumes[1].copy(ignore_adjust_by_ram=True)
        settings = self.settings.copy(volumes=volumes)
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.desired))
        self.assertEqual(planned["swap"].min_size, Size("2 GiB"))
        self.assertEqual(planned["swap"].max_size, Size("2 GiB"))

    def test_snapshots_size(self):
        settings = self.settings.copy(volumes=ng_volumes(snapshots_size="5 GiB"))
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.min))
        self.assertEqual(planned["/"].min_size, Size("10 GiB"))

        settings = self.settings.copy(volumes=ng_volumes(snapshots=False))
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.min))
        self.assertEqual(planned["/"].min_size, Size("5 GiB"))
        self.assertFalse(planned["/"].snapshots)

    def test_fallbacks(self):
        volumes = ng_volumes()
        volumes[2] = volumes[2].copy(proposed=False, fallback_for_min_size="/",
                                     fallback_for_desired_size="/", fallback_for_weight="/")
        settings = self.settings.copy(volumes=volumes)
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.desired))

        self.assertNotIn("/home", planned)
        # (10 GiB + 10 GiB) * 2 for the snapshots
        self.assertEqual(planned["/"].min_size, Size("40 GiB"))
        self.assertEqual(planned["/"].weight, 100)
        # the home subvolume is back
        self.assertIn("home", planned["/"].subvolumes)

        volumes[0] = volumes[0].copy(ignore_fallback_sizes=True)
        settings = self.settings.copy(volumes=volumes)
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.desired))
        self.assertEqual(planned["/"].min_size, Size("20 GiB"))

    def test_lvm(self):
        volumes = ng_volumes(max_size_lvm="30 GiB")
        settings = self.settings.copy(volumes=volumes, use_lvm=True)
        devices = devices_planner(settings, self.context).planned_devices(Target.desired)
        planned = by_mount_point(devices)

        self.assertTrue(planned["/"].is_lv)
        self.assertEqual(planned["/"].max_size, Size("60 GiB"))
        self.assertIsNone(planned["/"].disk)
        self.assertEqual(planned["swap"].lv_name, "swap")

    def test_allocate_by_device(self):
        volumes = ng_volumes()
        volumes[2] = volumes[2].copy(device="/dev/sdb")
        settings = self.settings.copy(volumes=volumes, allocate_volume_mode="device")
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.desired))
        self.assertEqual(planned["/home"].disk, "/dev/sdb")
        self.assertEqual(planned["/"].disk, "/dev/sda")

        # the device is only honored in "device" mode
        settings = settings.copy(allocate_volume_mode="auto")
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.desired))
        self.assertIsNone(planned["/home"].disk)

    def test_not_bootable(self):
        graph = Devicegraph.from_yaml(FBA_DASD)
        context = PlanningContext(graph, arch=ArchFacts(arch="s390x"))
        settings = self.settings.copy(root_device="/dev/dasda", candidate_devices=["/dev/dasda"])
        with self.assertRaises(NotBootableError):
            devices_planner(settings, context).planned_devices(Target.desired)


class LegacyDevicesPlannerTestCase(unittest.TestCase):

    def setUp(self):
        self.graph = Devicegraph.from_yaml(ONE_DISK)
        self.context = PlanningContext(self.graph, arch=ArchFacts(), ram_size=Size("8 GiB"))
        self.settings = ProposalSettings.from_dict({}).copy(root_device="/dev/sda")

    def test_desired(self):
        planner = devices_planner(self.settings, self.context)
        self.assertIsInstance(planner, LegacyDevicesPlanner)
        planned = by_mount_point(planner.planned_devices(Target.desired))

        root = planned["/"]
        self.assertEqual(root.fs_type, "btrfs")
        self.assertEqual(root.weight, 40)
        # the maximum, four times for the snapshots
        self.assertEqual(root.min_size, Size("40 GiB"))
        self.assertEqual(root.max_size, Size("40 GiB"))
        self.assertTrue(root.snapshots)

        swap = planned["swap"]
        self.assertEqual(swap.min_size, Size("2 GiB"))
        self.assertEqual(swap.max_size, Size("2 GiB"))

        home = planned["/home"]
        self.assertEqual(home.fs_type, "xfs")
        self.assertEqual(home.min_size, Size("10 GiB"))
        self.assertEqual(home.max_size, UNLIMITED)
        self.assertEqual(home.weight, 60)

    def test_min(self):
        planned = by_mount_point(devices_planner(self.settings, self.context).planned_devices(Target.min))
        self.assertEqual(planned["/"].min_size, Size("12 GiB"))
        self.assertEqual(planned["/"].max_size, Size("40 GiB"))
        self.assertEqual(planned["swap"].min_size, Size("512 MiB"))
        self.assertEqual(planned["swap"].max_size, Size("2 GiB"))

    def test_no_room_for_home(self):
        graph = Devicegraph.from_yaml("- disk:\n    name: /dev/sda\n    size: 4 GiB\n")
        context = self.context.with_devicegraph(graph)
        planned = by_mount_point(devices_planner(self.settings, context).planned_devices(Target.min))
        self.assertNotIn("/home", planned)

        settings = self.settings.copy(use_separate_home=False)
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.min))
        self.assertNotIn("/home", planned)

    def test_suspend(self):
        settings = self.settings.copy(enlarge_swap_for_suspend=True)
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.min))
        self.assertEqual(planned["swap"].min_size, Size("8 GiB"))
        self.assertEqual(planned["swap"].max_size, Size("8 GiB"))

    def test_ext4_root(self):
        settings = self.settings.copy(root_filesystem_type="ext4")
        planned = by_mount_point(devices_planner(settings, self.context).planned_devices(Target.min))
        self.assertEqual(planned["/"].min_size, Size("3 GiB"))
        self.assertEqual(planned["/"].max_size, Size("10 GiB"))
        self.assertFalse(planned["/"].snapshots)


class ReusableSwapTestCase(unittest.TestCase):

    def setUp(self):
        self.graph = Devicegraph.from_yaml(SWAPS)
        self.context = PlanningContext(self.graph, arch=ArchFacts(), ram_size=Size("1 GiB"))
        self.settings = ProposalSettings.from_dict({}).copy(root_device="/dev/sda")

    def test_smallest_big_enough(self):
        planner = devices_planner(self.settings, self.context)
        # ties are broken by the name
        self.assertEqual(planner.reusable_swap(Size("1 GiB")).name, "/dev/sda2")
        self.assertEqual(planner.reusable_swap(Size("3 GiB")).name, "/dev/sdb2")
        self.assertIsNone(planner.reusable_swap(Size("5 GiB")))

    def test_planned_swap(self):
        planned = by_mount_point(devices_planner(self.settings, self.context).planned_devices(Target.desired))
        self.assertEqual(planned["swap"].reuse_name, "/dev/sda1")

    def test_lvm(self):
        settings = self.settings.copy(use_lvm=True)
        planner = devices_planner(settings, self.context)
        self.assertIsNone(planner.reusable_swap(Size("1 GiB")))

    def test_encryption(self):
        settings = self.settings.copy(encryption_password="secret")
        planner = devices_planner(settings, self.context)
        self.assertIsNone(planner.reusable_swap(Size("1 GiB")))


class PlannedDeviceTestCase(unittest.TestCase):

    def test_size_bounds(self):
        device = PlannedDevice.partition("/", "ext4", min_size=Size("2 GiB"), max_size=Size("1 GiB"))
        ensure_size_bounds([device])
        self.assertEqual(device.max_size, Size("2 GiB"))

    def test_shadowed_subvolumes(self):
        root = PlannedDevice.partition("/", "btrfs", subvolumes=["home", "var", "var/lib/mysql", "srv"])
        var = PlannedDevice.partition("/var", "xfs")
        remove_shadowed_subvolumes([root, var])
        self.assertEqual(root.subvolumes, ["home", "srv"])

    def test_new_format(self):
        device = PlannedDevice.partition("/", "btrfs", subvolumes=["home"], snapshots=True,
                                         encryption_password="secret")
        fmt = device.new_format()
        self.assertEqual(fmt.type, "luks")
        self.assertEqual(fmt.content.type, "btrfs")
        self.assertEqual(fmt.content.mountpoint, "/")
        self.assertTrue(fmt.content.snapshots)

        pv = PlannedDevice.partition(lvm_volume_group_name="system")
        self.assertTrue(pv.lvm_pv)
        self.assertEqual(pv.new_format().type, "lvmpv")

        self.assertEqual(PlannedDevice.partition("swap", "swap").new_format().type, "swap")
        self.assertIsNone(PlannedDevice.partition(partition_id="bios_boot").new_format())

        with self.assertRaises(TypeError):
            PlannedDevice.partition("/", "ext4", color="blue")
