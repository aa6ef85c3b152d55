import functools
import itertools
import logging
import os
import re
import sys
from collections import namedtuple

log = logging.getLogger("autopart")
program_log = logging.getLogger("program")
console_log = logging.getLogger("autopart.console")


def total_memory():
    """Return the amount of system RAM.

        Returns total system RAM in kB (given to us by /proc/meminfo).

        :rtype: :class:`~.size.Size`
    """
    # import locally to avoid a cycle with size importing util
    from .size import Size

    with open("/proc/meminfo", "r") as fobj:
        for line in fobj:
            if not line.startswith("MemTotal"):
                # we are only interested in the MemTotal: line
                continue

            fields = line.split()
            if len(fields) != 3:
                log.warning("unknown format for MemTotal line in /proc/meminfo: %s", line.rstrip())
                continue

            try:
                mem = Size("%s KiB" % fields[1])
            except ValueError:
                log.warning("invalid value of MemTotal /proc/meminfo: %s", fields[1])
                continue

            # /proc/meminfo does not count the memory used by the kernel
            # binary, round up assuming the real amount is a multiple of
            # 128 MiB
            bs = Size("128MiB")
            mem = (mem // bs + 1) * bs
            return mem

        raise RuntimeError("no valid line with MemTotal found in /proc/meminfo")


def normalize_path_slashes(path):
    """ Normalize the slashes in a filesystem path.
        Does not actually examine the filesystem in any way.
    """
    while "//" in path:
        path = path.replace("//", "/")
    return path


def clean_mount_point(path):
    """ Return a canonical form of a mount point, or None.

        Repeated and trailing slashes are dropped, so "/boot//efi/" and
        "/boot/efi" compare equal. "swap" is kept as is.
    """
    if not path:
        return None
    if not path.startswith("/"):
        return path
    path = normalize_path_slashes(path)
    return path.rstrip("/") or "/"


def path_is_under(path, parent):
    """ Return True if path lies strictly below parent. """
    path = clean_mount_point(path)
    parent = clean_mount_point(parent)
    if not path or not parent or path == parent:
        return False
    if parent == "/":
        return path.startswith("/")
    return path.startswith(parent + "/")


def dedup_list(alist):
    """Deduplicates the given list by removing duplicates while preserving the order"""
    seen = set()
    ret = []
    for item in alist:
        if item not in seen:
            ret.append(item)
        seen.add(item)
    return ret


def natural_sort_key(name):
    """ Sorting key for device names which makes sure partitions are sorted
        in natural way, e.g. 'sda1, sda2, ..., sda10' and not like
        'sda1, sda10, sda2, ...'
    """
    return [int(chunk) if chunk.isdigit() else chunk
            for chunk in re.split(r"(\d+)", name or "")]


def default_namedtuple(name, fields, doc=""):
    """Create a namedtuple class

    The difference between a namedtuple class and this class is that default
    values may be specified for fields and fields with missing values on
    initialization being initialized to None.

    :param str name: name of the new class
    :param fields: field descriptions - an iterable of either "name" or ("name", default_value)
    :type fields: list of str or (str, object) objects
    :param str doc: the docstring for the new class (should at least describe the meanings and
                    types of fields)
    :returns: a new default namedtuple class
    :rtype: type

    """
    field_names = list()
    for field in fields:
        if isinstance(field, tuple):
            field_names.append(field[0])
        else:
            field_names.append(field)
    nt = namedtuple(name, field_names)

    class TheDefaultNamedTuple(nt):
        if doc:
            __doc__ = doc

        def __new__(cls, *args, **kwargs):
            args_list = list(args)
            sorted_kwargs = sorted(kwargs.keys(), key=field_names.index)
            for i in range(len(args), len(field_names)):
                if field_names[i] in sorted_kwargs:
                    args_list.append(kwargs[field_names[i]])
                elif isinstance(fields[i], tuple):
                    args_list.append(fields[i][1])
                else:
                    args_list.append(None)

            return nt.__new__(cls, *args_list)

    TheDefaultNamedTuple.__name__ = name
    return TheDefaultNamedTuple


##
# Convenience functions for examples and tests
##
def set_up_logging(log_file=None, console_logs=None):
    """ Configure the autopart logger to write out a log file.

        :keyword str log_file: path of the log file (defaults to flags.log_file)
        :keyword list console_logs: list of log names to output on the console
    """
    from .flags import flags

    log.setLevel(logging.DEBUG)
    program_log.setLevel(logging.DEBUG)

    log_file = os.path.realpath(log_file or flags.log_file)
    handler = logging.FileHandler(log_file)
    handler.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    handler.setFormatter(formatter)

    log.addHandler(handler)
    program_log.addHandler(handler)

    # capture python warnings in our logs
    warning_log = logging.getLogger("py.warnings")
    warning_log.addHandler(handler)

    if console_logs:
        set_up_console_log(log_names=console_logs)

    log.info("sys.argv = %s", sys.argv)


def set_up_console_log(log_names=None):
    log_names = log_names or []
    handler = logging.StreamHandler()
    console_log.setLevel(logging.DEBUG)
    handler.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    handler.setFormatter(formatter)
    console_log.addHandler(handler)
    for name in log_names:
        logging.getLogger(name).addHandler(handler)


class ObjectID(object):

    """This class is meant to be extended by other classes which require
       an ID which is preserved when an object copy is made.
       The value returned by the builtin function id() is not adequate:
       that value represents object identity so it is not in general
       preserved when the object is copied.

       The name of the identifier property is sid, its type is int. It is
       what the proposal uses to follow a device from one devicegraph to
       a copy of it.
    """
    _newid_gen = functools.partial(next, itertools.count(1))

    def __new__(cls, *args, **kwargs):
        # pylint: disable=unused-argument
        self = super(ObjectID, cls).__new__(cls)
        self.sid = self._newid_gen()  # pylint: disable=attribute-defined-outside-init,assignment-from-no-return
        return self
