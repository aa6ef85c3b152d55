import copy
import logging
import os
import tempfile
import unittest
from unittest import mock

from autopart import util
from autopart.size import Size


class MiscTest(unittest.TestCase):

    def test_clean_mount_point(self):
        self.assertEqual(util.clean_mount_point("/boot//efi/"), "/boot/efi")
        self.assertEqual(util.clean_mount_point("//"), "/")
        self.assertEqual(util.clean_mount_point("/"), "/")
        self.assertEqual(util.clean_mount_point("swap"), "swap")
        self.assertIsNone(util.clean_mount_point(""))
        self.assertIsNone(util.clean_mount_point(None))

    def test_path_is_under(self):
        self.assertTrue(util.path_is_under("/boot/efi", "/boot"))
        self.assertTrue(util.path_is_under("/boot", "/"))
        self.assertTrue(util.path_is_under("/boot//efi/", "/boot/"))
        self.assertFalse(util.path_is_under("/boot", "/boot"))
        self.assertFalse(util.path_is_under("/bootx", "/boot"))
        self.assertFalse(util.path_is_under("/", "/"))
        self.assertFalse(util.path_is_under("swap", "/"))
        self.assertFalse(util.path_is_under(None, "/"))

    def test_dedup_list(self):
        self.assertEqual(util.dedup_list([]), [])
        self.assertEqual(util.dedup_list([1, 2, 3, 4]), [1, 2, 3, 4])
        self.assertEqual(util.dedup_list([1, 2, 3, 4, 2, 1]), [1, 2, 3, 4])
        self.assertEqual(util.dedup_list(["/dev/sdb", "/dev/sda", "/dev/sdb"]),
                         ["/dev/sdb", "/dev/sda"])

    def test_natural_sort_key(self):
        names = ["/dev/sda10", "/dev/sda2", "/dev/sdb", "/dev/sda1"]
        self.assertEqual(sorted(names, key=util.natural_sort_key),
                         ["/dev/sda1", "/dev/sda2", "/dev/sda10", "/dev/sdb"])
        self.assertEqual(util.natural_sort_key(None), [""])

    def test_default_namedtuple(self):
        TestTuple = util.default_namedtuple("TestTuple", ["x", "y", ("z", 5), "w"])
        dnt = TestTuple(1, 2, 3, 6)
        self.assertEqual(dnt, (1, 2, 3, 6))
        self.assertEqual(dnt.x, 1)
        self.assertEqual(dnt.z, 3)

        dnt = TestTuple(1, 2)
        self.assertEqual(dnt, (1, 2, 5, None))

        dnt = TestTuple(1, w=4)
        self.assertEqual(dnt, (1, None, 5, 4))
        self.assertEqual(TestTuple.__name__, "TestTuple")

    @mock.patch("builtins.open", mock.mock_open(read_data="MemTotal:        3952348 kB\n"))
    def test_total_memory(self):
        # rounded up to the next 128 MiB
        self.assertEqual(util.total_memory(), Size("3968 MiB"))

    @mock.patch("builtins.open", mock.mock_open(read_data="MemFree: 1 kB\n"))
    def test_total_memory_missing(self):
        with self.assertRaises(RuntimeError):
            util.total_memory()


class _Identified(util.ObjectID):

    def __init__(self, name):
        self.name = name


class ObjectIDTestCase(unittest.TestCase):

    def test_sid(self):
        first = _Identified("first")
        second = _Identified("second")
        self.assertNotEqual(first.sid, second.sid)
        self.assertGreater(second.sid, first.sid)

        # copies keep the id
        self.assertEqual(copy.deepcopy(first).sid, first.sid)
        self.assertEqual(copy.copy(second).sid, second.sid)


class LoggingTestCase(unittest.TestCase):

    def test_set_up_logging(self):
        handlers = list(util.log.handlers)
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = os.path.join(tmpdir, "autopart.log")
            try:
                util.set_up_logging(log_file=log_file)
                util.log.info("proposal started")
                for handler in util.log.handlers:
                    handler.flush()
                with open(log_file) as fobj:
                    self.assertIn("proposal started", fobj.read())
            finally:
                for handler in list(util.log.handlers):
                    if handler not in handlers:
                        handler.close()
                        util.log.removeHandler(handler)
                        util.program_log.removeHandler(handler)
                        logging.getLogger("py.warnings").removeHandler(handler)
