import pytest

from database import DocumentStore
from library import Library


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def store(db_file):
    store = DocumentStore(db_file=db_file).open()
    yield store
    store.close()


@pytest.fixture
def lib(store):
    return Library(store=store)
