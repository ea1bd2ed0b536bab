import mongomock
import pytest

from database import MongoStore, create_document
from schemas import Product
from tests.helpers import FakeClient, SessionRecordingDatabase


@pytest.fixture
def mongo_db():
    client = mongomock.MongoClient()
    return client["storefront_test"]


@pytest.fixture
def store(mongo_db):
    s = MongoStore(SessionRecordingDatabase(mongo_db), FakeClient())
    s.ensure_indexes()
    return s


@pytest.fixture
def make_product(store):
    def _make(name="Beach Shirt", price="29.99", stock=10, threshold=10):
        product = Product(
            name=name,
            description="A cool beach-themed t-shirt",
            price=price,
            image_url="/images/shirt.jpg",
            available_sizes=["S", "M", "L"],
            available_colors=["Blue", "White"],
            stock_quantity=stock,
            low_stock_threshold=threshold,
        )
        return create_document("product", product, database=store.db)
    return _make
