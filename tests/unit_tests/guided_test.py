import unittest

from autopart.arch import ArchFacts
from autopart.devicegraph import Devicegraph
from autopart.devices.lib import PartitionId
from autopart.errors import NoDiskSpaceError
from autopart.proposal.context import PlanningContext
from autopart.proposal.guided import GuidedProposal, InitialGuidedProposal, initial_proposal
from autopart.proposal.settings import ProposalSettings, VolumeSpecification
from autopart.size import Size


def _disk(size, name="/dev/sda", usb=False):
    return """
- disk:
    name: %s
    size: %s
    usb: %s
""" % (name, size, "true" if usb else "false")


WINDOWS = """
- disk:
    name: /dev/sda
    size: 100 GiB
    partition_table: gpt
    partitions:
    - partition:
        size: 90 GiB
        name: /dev/sda1
        id: windows_basic_data
        file_system: ntfs
        content: [windows]
        min_size: 20 GiB
"""


def _volumes():
    root = VolumeSpecification(mount_point="/", fs_type="ext4", desired_size="10 GiB",
                               min_size="5 GiB", max_size="unlimited", weight=60)
    swap = VolumeSpecification(mount_point="swap", desired_size="2 GiB", min_size="1 GiB",
                               max_size="2 GiB", adjust_by_ram=True,
                               adjust_by_ram_configurable=True, proposed_configurable=True,
                               disable_order=1)
    home = VolumeSpecification(mount_point="/home", fs_type="xfs", desired_size="10 GiB",
                               min_size="5 GiB", max_size="unlimited", weight=40,
                               proposed_configurable=True, disable_order=2)
    return [root, swap, home]


def _context(yaml, ram_size):
    graph = Devicegraph.from_yaml(yaml)
    return PlanningContext(graph, arch=ArchFacts(), ram_size=Size(ram_size))


def _swap_of(graph):
    return next(d for d in graph.blk_devices if d.format is not None and d.format.type == "swap")


class GuidedProposalTestCase(unittest.TestCase):

    def setUp(self):
        self.settings = ProposalSettings(volumes=_volumes())

    def test_desired_sizes(self):
        context = _context(_disk("50 GiB"), "4 GiB")
        proposal = GuidedProposal(self.settings, context=context)
        proposal.propose()

        self.assertTrue(proposal.proposed)
        self.assertFalse(proposal.failed)
        self.assertTrue(proposal.adjustments.empty)
        graph = proposal.devicegraph

        parts = graph.get_disk("/dev/sda").partitions
        self.assertEqual(parts[0].part_id, PartitionId.bios_boot)
        self.assertEqual(parts[0].size, Size("1 MiB"))
        # 60/40 split of what is left after the desired sizes
        self.assertEqual(graph.find_by_mount_point("/").size, Size("26213 MiB"))
        self.assertEqual(graph.find_by_mount_point("/home").size, Size("20888 MiB"))
        self.assertEqual(_swap_of(graph).size, Size("4 GiB"))

        # the completed settings are kept
        self.assertEqual(proposal.settings.candidate_devices, ("/dev/sda",))
        self.assertEqual(proposal.settings.root_device, "/dev/sda")
        self.assertEqual(proposal.initial_devicegraph.partitions, [])

    def test_min_sizes(self):
        context = _context(_disk("20 GiB"), "4 GiB")
        proposal = GuidedProposal(self.settings, context=context)
        proposal.propose()
        graph = proposal.devicegraph
        # desired sizes need more than 24 GiB
        self.assertGreaterEqual(graph.find_by_mount_point("/").size, Size("5 GiB"))
        self.assertEqual(_swap_of(graph).size, Size("4 GiB"))

    def test_failure(self):
        context = _context(_disk("10 GiB"), "4 GiB")
        proposal = GuidedProposal(self.settings, context=context)
        with self.assertRaises(NoDiskSpaceError):
            proposal.propose()
        self.assertTrue(proposal.proposed)
        self.assertTrue(proposal.failed)
        self.assertIsInstance(proposal.error, NoDiskSpaceError)

        with self.assertRaises(RuntimeError):
            proposal.propose()

    def test_no_disks(self):
        proposal = GuidedProposal(self.settings, devicegraph=Devicegraph())
        with self.assertRaises(NoDiskSpaceError):
            proposal.propose()

        proposal = initial_proposal(self.settings, devicegraph=Devicegraph())
        self.assertTrue(proposal.failed)
        self.assertEqual(str(proposal.error), "No usable disks detected")

    def test_missing_devicegraph(self):
        with self.assertRaises(ValueError):
            GuidedProposal(self.settings)

    def test_candidate_devices(self):
        context = _context(_disk("20 GiB", usb=True) + _disk("20 GiB", name="/dev/sdb"), "1 GiB")
        proposal = GuidedProposal(self.settings, context=context)
        # usb disks go last
        self.assertEqual(proposal.candidate_devices(), ["/dev/sdb", "/dev/sda"])

        settings = self.settings.copy(candidate_devices=["/dev/sda"])
        proposal = GuidedProposal(settings, context=context)
        self.assertEqual(proposal.candidate_devices(), ["/dev/sda"])

    def test_windows_resize(self):
        context = _context(WINDOWS, "4 GiB")
        proposal = GuidedProposal(self.settings, context=context)
        proposal.propose()
        graph = proposal.devicegraph

        # shrunk just enough for the desired sizes
        windows = graph.find_by_name("/dev/sda1")
        self.assertEqual(windows.size, Size("76 GiB") - Size("3 MiB"))
        self.assertEqual(graph.find_by_mount_point("/").size, Size("10 GiB"))
        self.assertEqual(graph.find_by_mount_point("/home").size, Size("10 GiB"))
        self.assertEqual(context.devicegraph.find_by_name("/dev/sda1").size, Size("90 GiB"))

    def test_lvm(self):
        context = _context(_disk("50 GiB"), "4 GiB")
        settings = self.settings.copy(use_lvm=True)
        proposal = GuidedProposal(settings, context=context)
        proposal.propose()
        graph = proposal.devicegraph

        self.assertEqual([vg.name for vg in graph.vgs], ["system"])
        self.assertEqual(sorted(lv.lv_name for lv in graph.lvs), ["home", "root", "swap"])
        self.assertEqual(_swap_of(graph).size, Size("4 GiB"))
        pv = next(p for p in graph.partitions if p.part_id == PartitionId.lvm)
        self.assertEqual(graph.vg_of(pv).name, "system")

    def test_legacy(self):
        context = _context(_disk("50 GiB"), "4 GiB")
        proposal = GuidedProposal(ProposalSettings.from_dict({}), context=context)
        proposal.propose()
        graph = proposal.devicegraph

        root = graph.find_by_mount_point("/")
        self.assertEqual(root.format.type, "btrfs")
        # desired sizes (40 GiB root) do not fit with /home
        self.assertGreaterEqual(root.size, Size("12 GiB"))
        self.assertLessEqual(root.size, Size("40 GiB"))
        self.assertEqual(graph.find_by_mount_point("/home").format.type, "xfs")


class InitialGuidedProposalTestCase(unittest.TestCase):

    def setUp(self):
        self.settings = ProposalSettings(volumes=_volumes())

    def test_no_adjustments(self):
        proposal = initial_proposal(self.settings, context=_context(_disk("50 GiB"), "4 GiB"))
        self.assertIsInstance(proposal, InitialGuidedProposal)
        self.assertFalse(proposal.failed)
        self.assertTrue(proposal.adjustments.empty)

    def test_adjust_by_ram(self):
        # 8 GiB of swap only fits once it does not follow the RAM
        proposal = initial_proposal(self.settings, context=_context(_disk("15 GiB"), "8 GiB"))
        self.assertFalse(proposal.failed)
        self.assertEqual(proposal.adjustments.descriptions, ["not adjust size of swap based on RAM"])
        self.assertFalse(proposal.settings.volume("swap").adjust_by_ram)

        graph = proposal.devicegraph
        self.assertEqual(_swap_of(graph).size, Size("1 GiB"))
        self.assertEqual(graph.find_by_mount_point("/").size, Size("7576 MiB"))
        self.assertEqual(graph.find_by_mount_point("/home").size, Size("6757 MiB"))

    def test_always_failing(self):
        proposal = initial_proposal(self.settings, context=_context(_disk("5 GiB"), "8 GiB"))
        self.assertTrue(proposal.failed)
        self.assertIsInstance(proposal.error, NoDiskSpaceError)
        self.assertEqual(proposal.adjustments.entries,
                         (("swap", "adjust_by_ram", False),
                          ("swap", "proposed", False),
                          ("/home", "proposed", False)))

    def test_candidate_groups(self):
        context = _context(_disk("20 GiB") + _disk("20 GiB", name="/dev/sdb"), "1 GiB")
        proposal = InitialGuidedProposal(self.settings, context=context)
        candidates = ["/dev/sda", "/dev/sdb"]
        self.assertEqual(proposal.candidate_groups(candidates),
                         [["/dev/sda"], ["/dev/sdb"], ["/dev/sda", "/dev/sdb"]])
        self.assertEqual(proposal.candidate_groups(candidates[:1]), [["/dev/sda"]])

        proposal = InitialGuidedProposal(self.settings.copy(multidisk_first=True), context=context)
        self.assertEqual(proposal.candidate_groups(candidates), [candidates])

    def test_candidate_roots(self):
        context = _context(_disk("20 GiB") + _disk("20 GiB", name="/dev/sdb"), "1 GiB")
        settings = self.settings.copy(candidate_devices=["/dev/sda", "/dev/sdb", "/dev/sdz"])
        proposal = InitialGuidedProposal(settings, context=context)
        self.assertEqual(proposal.candidate_roots(settings), ["/dev/sda", "/dev/sdb"])

        settings = settings.copy(root_device="/dev/sdb")
        proposal = InitialGuidedProposal(settings, context=context)
        self.assertEqual(proposal.candidate_roots(settings), ["/dev/sdb"])

    def test_devices_permutations(self):
        settings = self.settings.copy(candidate_devices=["/dev/sda", "/dev/sdb"],
                                      root_device="/dev/sda")
        permutations = InitialGuidedProposal.devices_permutations(settings, 2)
        # spreading over both disks first
        self.assertEqual(permutations, [("/dev/sda", "/dev/sdb"), ("/dev/sdb", "/dev/sda"),
                                        ("/dev/sdb", "/dev/sdb"), ("/dev/sda", "/dev/sda")])

    def test_device_mode(self):
        context = _context(_disk("30 GiB") + _disk("30 GiB", name="/dev/sdb"), "1 GiB")
        settings = self.settings.copy(allocate_volume_mode="device", multidisk_first=True)
        proposal = initial_proposal(settings, context=context)
        self.assertFalse(proposal.failed)

        graph = proposal.devicegraph
        # root and /home end up in different disks
        root_disk = graph.find_by_mount_point("/").disk.name
        home_disk = graph.find_by_mount_point("/home").disk.name
        self.assertNotEqual(root_disk, home_disk)
        self.assertEqual(proposal.settings.root_volume.device, root_disk)


class ScenariosTestCase(unittest.TestCase):

    """ A 25 GiB empty disk, 8 GiB of RAM and legacy x86 boot. """

    def setUp(self):
        self.context = _context(_disk("25 GiB"), "8 GiB")

    @staticmethod
    def _swap(**kwargs):
        return VolumeSpecification(mount_point="swap", desired_size="2 GiB", min_size="1 GiB",
                                   max_size="10 GiB", adjust_by_ram=True,
                                   adjust_by_ram_configurable=True, proposed_configurable=True,
                                   disable_order=1, **kwargs)

    def test_snapshots_fit(self):
        root = VolumeSpecification(mount_point="/", fs_type="btrfs", desired_size="10 GiB",
                                   min_size="5 GiB", max_size="unlimited", snapshots=True,
                                   snapshots_size="5 GiB")
        proposal = initial_proposal(ProposalSettings(volumes=[root]), context=self.context)
        self.assertFalse(proposal.failed)
        self.assertTrue(proposal.adjustments.empty)
        self.assertTrue(proposal.settings.volume("/").snapshots)

        graph = proposal.devicegraph
        root_device = graph.find_by_mount_point("/")
        self.assertEqual(root_device.format.type, "btrfs")
        self.assertTrue(root_device.format.snapshots)
        # desired size plus the snapshots
        self.assertGreaterEqual(root_device.size, Size("15 GiB"))
        self.assertIsNone(graph.find_by_mount_point("/home"))

    def test_swap_stops_following_ram(self):
        root = VolumeSpecification(mount_point="/", fs_type="btrfs", desired_size="20 GiB",
                                   min_size="15 GiB", max_size="unlimited", snapshots=True,
                                   snapshots_size="5 GiB", weight=60)
        settings = ProposalSettings(volumes=[root, self._swap()])
        proposal = initial_proposal(settings, context=self.context)
        self.assertFalse(proposal.failed)
        self.assertEqual(proposal.adjustments.entries, (("swap", "adjust_by_ram", False),))

        swap = proposal.settings.volume("swap")
        self.assertTrue(swap.proposed)
        self.assertFalse(swap.adjust_by_ram)
        self.assertTrue(proposal.settings.volume("/").snapshots)

        graph = proposal.devicegraph
        swap_size = _swap_of(graph).size
        self.assertGreaterEqual(swap_size, Size("1 GiB"))
        self.assertLessEqual(swap_size, Size("10 GiB"))
        # minimal root plus the snapshots
        self.assertGreaterEqual(graph.find_by_mount_point("/").size, Size("20 GiB"))

    def test_root_never_fits(self):
        root = VolumeSpecification(mount_point="/", fs_type="ext4", desired_size="30 GiB",
                                   min_size="25 GiB", max_size="unlimited", weight=60)
        home = VolumeSpecification(mount_point="/home", fs_type="xfs", desired_size="10 GiB",
                                   min_size="5 GiB", max_size="unlimited", weight=40,
                                   proposed_configurable=True, disable_order=2)
        settings = ProposalSettings(volumes=[root, self._swap(), home])
        proposal = initial_proposal(settings, context=self.context)
        self.assertTrue(proposal.failed)
        self.assertIsNone(proposal.devicegraph)
        self.assertIsInstance(proposal.error, NoDiskSpaceError)
        self.assertEqual(proposal.adjustments.entries,
                         (("swap", "adjust_by_ram", False),
                          ("swap", "proposed", False),
                          ("/home", "proposed", False)))
