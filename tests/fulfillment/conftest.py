import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def fulfillment_bed():
    from fulfillment.domain import fulfillment

    bed = DomainFixture(fulfillment)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(fulfillment_bed):
    with fulfillment_bed.domain_context():
        yield


@pytest.fixture()
def directory():
    """The in-memory merchant directory, empty at the start of every test."""
    from fulfillment.directory import get_directory

    return get_directory()


@pytest.fixture()
def settings():
    """The in-memory settings source, holding the default pricing config."""
    from fulfillment.settings import get_settings_source

    return get_settings_source()
