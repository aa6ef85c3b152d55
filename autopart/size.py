# size.py
# Python module to represent storage sizes
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

import re
from collections import namedtuple
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from decimal import ROUND_HALF_UP as DEC_ROUND_HALF_UP

from .errors import SizePlacesError
from .i18n import _, N_

_Unit = namedtuple("_Unit", ["factor", "prefix", "abbr"])

B = _Unit(1, "", "")
KiB = _Unit(1024 ** 1, N_("kibi"), N_("Ki"))
MiB = _Unit(1024 ** 2, N_("mebi"), N_("Mi"))
GiB = _Unit(1024 ** 3, N_("gibi"), N_("Gi"))
TiB = _Unit(1024 ** 4, N_("tebi"), N_("Ti"))
PiB = _Unit(1024 ** 5, N_("pebi"), N_("Pi"))
EiB = _Unit(1024 ** 6, N_("exbi"), N_("Ei"))
KB = _Unit(1000 ** 1, N_("kilo"), N_("k"))
MB = _Unit(1000 ** 2, N_("mega"), N_("M"))
GB = _Unit(1000 ** 3, N_("giga"), N_("G"))
TB = _Unit(1000 ** 4, N_("tera"), N_("T"))
PB = _Unit(1000 ** 5, N_("peta"), N_("P"))
EB = _Unit(1000 ** 6, N_("exa"), N_("E"))

_BINARY_PREFIXES = [KiB, MiB, GiB, TiB, PiB, EiB]
_DECIMAL_PREFIXES = [KB, MB, GB, TB, PB, EB]
_EMPTY_PREFIX = B

ROUND_UP = "up"
ROUND_DOWN = "down"
ROUND_HALF_UP = "half-up"

# anything this big (16 EiB) is treated as "no limit"
_UNLIMITED_BYTES = 1024 ** 6 * 16

_SIZE_RE = re.compile(r"^\s*(?P<value>-?[0-9]*\.?[0-9]+)\s*(?P<unit>[A-Za-z]*)\s*$")


def unit_str(unit, xlate=False):
    """ Return a string representation of unit.

        :param unit: a named unit, e.g., KiB
        :param bool xlate: if True, translate to current locale
        :rtype: some kind of string type
        :returns: string representation of unit
    """
    if unit == B:
        return _("B") if xlate else "B"
    abbr = _(unit.abbr) if xlate else unit.abbr
    return abbr + (_("B") if xlate else "B")


def _parse_unit(spec):
    """ Return the unit matching a string like "GiB", "g", "kb" or "". """
    lower = spec.lower()
    if lower in ("", "b", "byte", "bytes"):
        return B

    for unit in _BINARY_PREFIXES + _DECIMAL_PREFIXES:
        names = (unit.abbr.lower() + "b", unit.prefix.lower() + "byte",
                 unit.prefix.lower() + "bytes")
        if lower in names:
            return unit

    # a bare "k", "m", "g"... is understood as a binary unit
    for unit in _BINARY_PREFIXES:
        if lower == unit.abbr[0].lower() or lower == unit.abbr.lower():
            return unit

    raise ValueError("invalid size unit: %s" % spec)


def _parse_spec(spec):
    if spec.strip().lower() in ("unlimited", "infinity", "inf"):
        return _UNLIMITED_BYTES

    m = _SIZE_RE.match(spec)
    if not m:
        raise ValueError("invalid size specification: %s" % spec)

    unit = _parse_unit(m.group("unit"))
    value = Decimal(m.group("value")) * unit.factor
    return int(value.to_integral_value(rounding=DEC_ROUND_HALF_UP))


class Size(int):
    """ Common class to represent storage device and filesystem sizes.
        Can handle parsing strings such as 45MB or 6.7GB to initialize
        itself, or can be initialized with a numerical size in bytes.
        Also generates human readable strings to a specified number of
        decimal places.

        Sizes are whole numbers of bytes. Any size at or above
        :const:`UNLIMITED` stands for "no limit" and stays unlimited through
        additions, subtractions and multiplications.
    """

    def __new__(cls, value=0):
        if isinstance(value, str):
            num = _parse_spec(value)
        elif isinstance(value, Decimal):
            num = int(value.to_integral_value(rounding=DEC_ROUND_HALF_UP))
        elif isinstance(value, float):
            num = int(round(value))
        else:
            num = int(value)

        num = min(num, _UNLIMITED_BYTES)
        return super(Size, cls).__new__(cls, num)

    def __repr__(self):
        return "Size (%s)" % self.human_readable(xlate=False)

    def __str__(self):
        return self.human_readable()

    def __deepcopy__(self, memo_dict):
        return self

    def __copy__(self):
        return self

    @property
    def unlimited(self):
        return int(self) >= _UNLIMITED_BYTES

    def __abs__(self):
        return Size(abs(int(self)))

    def __neg__(self):
        return Size(-int(self))

    def __add__(self, other):
        if self.unlimited or (isinstance(other, Size) and other.unlimited):
            return UNLIMITED
        return Size(int(self) + int(other))

    # needed to make sum() work with Size arguments
    def __radd__(self, other):
        return self.__add__(other)

    def __sub__(self, other):
        if self.unlimited:
            return UNLIMITED
        return Size(int(self) - int(other))

    def __rsub__(self, other):
        return Size(int(other)).__sub__(self)

    def __mul__(self, other):
        if isinstance(other, Size):
            raise TypeError("cannot multiply two sizes")
        if self.unlimited:
            return UNLIMITED
        if isinstance(other, int):
            return Size(int(self) * other)
        return Size(Decimal(int(self)) * Decimal(str(other)))
    __rmul__ = __mul__

    def __truediv__(self, other):
        """ Size / Size is a ratio, Size / number is a Size. """
        if isinstance(other, Size):
            return Decimal(int(self)) / Decimal(int(other))
        return Size(Decimal(int(self)) / Decimal(str(other)))

    def __floordiv__(self, other):
        if isinstance(other, Size):
            return int(self) // int(other)
        return Size(int(self) // int(other))

    def __mod__(self, other):
        return Size(int(self) % int(other))

    def convert_to(self, spec=None):
        """ Return the size in the units indicated by the specifier.

            :param spec: a units specifier
            :type spec: a units specifier or :class:`Size`
            :returns: a numeric value in the units indicated by the specifier
            :rtype: Decimal
            :raises ValueError: if Size unit specifier is non-positive
        """
        if isinstance(spec, Size):
            if spec == Size(0):
                raise ValueError("cannot convert to 0 size")
            return Decimal(int(self)) / Decimal(int(spec))

        spec = B if spec is None else spec
        return Decimal(int(self)) / Decimal(spec.factor)

    def human_readable(self, min_unit=B, max_places=2, xlate=True):
        """ Return a string representation of this size with appropriate
            size specifier and in the specified number of decimal places.
            Values are always represented using binary not decimal units.
            For example, if the number of bytes represented by this size
            is 65531, expect the representation to be something like
            64 KiB, not 65.53 KB.

            :param min_unit: the smallest unit the returned representation should use
            :type min_unit: one of the B, KiB, MiB,... (binary) units from this module
            :param max_places: number of decimal places to use
            :type max_places: an integer type or NoneType
            :param bool xlate: If True, translate for current locale
            :returns: a representation of the size
            :rtype: str
        """
        if max_places is not None and max_places < 0:
            raise SizePlacesError("max_places must be None or a non-negative integer")

        if self.unlimited:
            return _("unlimited") if xlate else "unlimited"

        if min_unit not in [B] + _BINARY_PREFIXES:
            raise ValueError("min_unit must be one of the binary units")

        value = Decimal(int(self))
        unit = B
        for candidate in [B] + _BINARY_PREFIXES:
            if candidate.factor < min_unit.factor:
                continue
            unit = candidate
            if abs(value) / candidate.factor < 1024:
                break

        num = value / unit.factor
        if max_places is not None:
            num = num.quantize(Decimal(1).scaleb(-max_places), rounding=DEC_ROUND_HALF_UP)
        num_str = "{:f}".format(num.normalize() if num == num.to_integral_value() else num)
        if "." in num_str:
            num_str = num_str.rstrip("0").rstrip(".")

        return "%s %s" % (num_str, unit_str(unit, xlate))

    def round_to_nearest(self, size, rounding):
        """ Rounds to nearest unit specified as a named constant or a Size.

            :param size: a size specifier
            :type size: a named constant like KiB, or any non-negative Size
            :keyword rounding: which direction to round
            :type rounding: one of ROUND_UP, ROUND_DOWN, or ROUND_HALF_UP
            :returns: Size rounded to nearest whole specified unit
            :rtype: :class:`Size`

            If size is Size(0), returns Size(0).
        """
        if rounding not in (ROUND_UP, ROUND_DOWN, ROUND_HALF_UP):
            raise ValueError("invalid rounding specifier")

        if isinstance(size, Size):
            if int(size) == 0:
                return Size(0)
            elif size < Size(0):
                raise ValueError("invalid rounding size: %s" % size)
            factor = int(size)
        else:
            factor = size.factor

        if self.unlimited:
            return UNLIMITED

        modes = {ROUND_UP: ROUND_CEILING, ROUND_DOWN: ROUND_FLOOR,
                 ROUND_HALF_UP: DEC_ROUND_HALF_UP}
        units = (Decimal(int(self)) / factor).to_integral_value(rounding=modes[rounding])
        return Size(int(units) * factor)

    def ensure_percent_reserve(self, percent):
        """Get a new size with given space reserve.

            :param percent: number of percent to reserve
            :returns: a new size with :param:`percent` space reserve
            :rtype: :class:`Size`

            Best described with an example:
            >>> Size("80 GiB").ensure_percent_reserve(20)
            Size (100 GiB)
        """
        return Size(Decimal(int(self)) / (1 - (Decimal(str(percent)) / 100)))


UNLIMITED = Size(_UNLIMITED_BYTES)


def size_sum(sizes):
    """ Sum a sequence of sizes, returning Size(0) for an empty one. """
    return sum(sizes, Size(0))
