"""
Database Helper Functions

MongoDB connection and helpers used by the API endpoints.
The connection is configured from the DATABASE_URL and DATABASE_NAME
environment variables; when either is missing `db` stays None.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def create_document(collection_name: str, data: Union[BaseModel, dict], database=None):
    """Insert a document with created_at/updated_at stamps and return its id as str."""
    database = db if database is None else database
    if database is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, database=None):
    database = db if database is None else database
    if database is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def to_object_id(id_str: str) -> Optional[ObjectId]:
    if isinstance(id_str, ObjectId):
        return id_str
    if not id_str or not ObjectId.is_valid(id_str):
        return None
    return ObjectId(id_str)


# ----------------------- Unit of work -----------------------
class TransientStoreError(Exception):
    """The store aborted a transaction that may succeed if retried."""


class TransactionsUnavailableError(Exception):
    """The server cannot run multi-document transactions."""


class MongoUnitOfWork:
    """Reads and writes of one transaction; every call carries the session."""

    def __init__(self, database, session):
        self.db = database
        self.session = session

    def get_product(self, product_id: str) -> Optional[dict]:
        _id = to_object_id(product_id)
        if _id is None:
            return None
        return self.db["product"].find_one({"_id": _id}, session=self.session)

    def find_order(self, order_number: str) -> Optional[dict]:
        return self.db["order"].find_one({"order_number": order_number}, session=self.session)

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Take `quantity` units; False if the stock no longer covers it."""
        _id = to_object_id(product_id)
        res = self.db["product"].update_one(
            {"_id": _id, "stock_quantity": {"$gte": quantity}},
            {"$inc": {"stock_quantity": -quantity}, "$set": {"updated_at": datetime.now(timezone.utc)}},
            session=self.session,
        )
        return res.modified_count == 1

    def insert_order(self, order_doc: dict) -> dict:
        doc = dict(order_doc)
        now = datetime.now(timezone.utc)
        doc["created_at"] = now
        doc["updated_at"] = now
        result = self.db["order"].insert_one(doc, session=self.session)
        doc["_id"] = result.inserted_id
        return doc


class MongoStore:
    """Runs units of work inside MongoDB multi-document transactions.

    `client` is None when the server is a standalone mongod; such a store
    still serves reads but refuses `run`.
    """

    def __init__(self, database, client):
        self.db = database
        self.client = client

    def ensure_indexes(self):
        self.db["order"].create_index([("order_number", ASCENDING)], unique=True)

    def run(self, work):
        """Call work(uow) in one transaction and return its result.

        pymongo's with_transaction retries the whole callback on
        TransientTransactionError and only the commit on
        UnknownTransactionCommitResult. Errors still carrying either label
        after its own retries surface as TransientStoreError.
        """
        if self.client is None:
            raise TransactionsUnavailableError("Checkout requires a MongoDB replica set with transaction support")
        with self.client.start_session() as session:
            try:
                return session.with_transaction(lambda s: work(MongoUnitOfWork(self.db, s)))
            except DuplicateKeyError:
                raise
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError") or e.has_error_label("UnknownTransactionCommitResult"):
                    raise TransientStoreError(str(e)) from e
                raise


def supports_transactions(client) -> bool:
    """True for replica set members and mongos routers."""
    try:
        hello = client.admin.command("hello")
    except PyMongoError as e:
        logger.warning("Could not query MongoDB topology: %s", e)
        return False
    return bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"


def get_default_store() -> Optional[MongoStore]:
    if db is None:
        return None
    if not supports_transactions(_client):
        logger.warning(
            "MongoDB at DATABASE_URL is not a replica set; orders cannot be placed "
            "until it runs with transaction support"
        )
        return MongoStore(db, None)
    return MongoStore(db, _client)
