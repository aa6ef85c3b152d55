import pytest

from autopart.flags import flags


@pytest.fixture(autouse=True)
def testing_flags():
    # every test starts with the default flags and testing mode on
    saved = dict(vars(flags))
    flags.testing = True
    yield flags
    vars(flags).clear()
    vars(flags).update(saved)
