# storage_log.py
# Logging helpers shared by the devicegraph model and the proposal.
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

import inspect
import logging
import sys
import traceback

from .flags import flags

log = logging.getLogger("autopart")
log.addHandler(logging.NullHandler())

_IGNORED_FUNCS = ("_caller_and_depth",
                  "log_method_call",
                  "log_method_return",
                  "log_exception_info")


def _caller_and_depth():
    """ Name of the first frame outside this module and the stack depth there. """
    stack = inspect.stack()
    for i, frame in enumerate(stack):
        if frame[3] not in _IGNORED_FUNCS:
            return (frame[3], len(stack) - i)

    return ("unknown function?", 0)


def _hide_secret(key, value):
    # encryption passwords must never end up in the logs
    if value and ("pass" in key.lower() or "password" in key.lower()):
        return "Skipped"
    return value


def log_method_call(d, *args, **kwargs):
    """ Log a method call with its arguments, indented by call depth.

        Only logs with :attr:`~.flags.Flags.debug` set.
    """
    if not flags.debug:
        return

    (methodname, depth) = _caller_and_depth()
    fmt = "%s%s.%s:"
    fmt_args = [depth * ' ', d.__class__.__name__, methodname]

    for arg in args:
        fmt += " %s ;"
        fmt_args.append(arg)

    for k, v in kwargs.items():
        fmt += " %s: %s ;"
        fmt_args.extend([k, _hide_secret(k, v)])

    log.debug(fmt, *fmt_args)


def log_method_return(d, retval):
    if not flags.debug:
        return

    (methodname, depth) = _caller_and_depth()
    log.debug("%s%s.%s returned %s", depth * ' ', d.__class__.__name__, methodname, retval)


def log_exception_info(log_func=log.debug, fmt_str=None, fmt_args=None):
    """Log detailed exception information.

       :param log_func: the desired logging function
       :param str fmt_str: a format string for any additional message
       :param fmt_args: arguments for the format string
       :type fmt_args: a list of str

       The logging function sets the severity. The proposal catches its
       own errors while searching for a layout, so the default is
       log.debug.
    """
    fmt_args = fmt_args or []
    (_methodname, depth) = _caller_and_depth()
    spaces = depth * ' '
    log_func("%sCaught exception, continuing.", spaces)
    if fmt_str:
        log_func("%sProblem description: " + fmt_str, spaces, *fmt_args)
    log_func("%sBegin exception details.", spaces)
    tb = traceback.format_exception(*sys.exc_info())
    for line in (l.rstrip() for entry in tb for l in entry.split("\n") if l):
        log_func("%s    %s", spaces, line)
    log_func("%sEnd exception details.", spaces)


def log_planned_devices(devices, title="planned devices"):
    """ Log one line per planned device. """
    log.info("%s:", title)
    for device in devices:
        log.info("  %r", device)


def log_distribution(distribution, title="distribution"):
    """ Log how planned partitions are spread over the free spaces.

        Skipped unless :attr:`~.flags.Flags.debug_distributions` is set,
        the calculator compares a lot of them.
    """
    if not flags.debug_distributions:
        return

    log.debug("%s:", title)
    for assigned in distribution.spaces:
        log.debug("  %s -> %s", assigned.disk_space,
                  ", ".join(str(p) for p in assigned.partitions) or "-")
