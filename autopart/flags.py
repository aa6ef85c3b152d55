# flags.py
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

class Flags(object):

    def __init__(self):
        #
        # mode of operation
        #
        self.testing = False
        self.debug = False

        # where util.set_up_logging writes to unless told otherwise
        self.log_file = "/tmp/autopart.log"

        #
        # enable/disable functionality
        #

        # create GPT on disks without a partition table even where the
        # architecture would prefer msdos
        self.gpt = False

        # number of space combinations the LVM physical volume search may
        # look at before giving up (see proposal.physvol)
        self.max_pv_permutations = 5040

        # log every distribution the calculator compares
        self.debug_distributions = False


flags = Flags()
