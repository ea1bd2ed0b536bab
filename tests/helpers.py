from database import to_object_id
from schemas import OrderCreate


def stock_of(store, product_id):
    return store.db["product"].find_one({"_id": to_object_id(product_id)})["stock_quantity"]


def order_payload(items, **overrides):
    data = {
        "customer_name": "John Doe",
        "customer_email": "john@example.com",
        "customer_phone": "555-0100",
        "shipping_address": "123 Beach Ave",
        "shipping_city": "Ocean City",
        "shipping_state": "NJ",
        "shipping_zip": "08226",
        "items": items,
    }
    data.update(overrides)
    return data


def line(product_id, quantity=1, size="M", color="Blue", price="29.99", name="Beach Shirt"):
    return {
        "product_id": product_id,
        "product_name": name,
        "price": price,
        "size": size,
        "color": color,
        "quantity": quantity,
    }


def make_order(items, **overrides):
    return OrderCreate(**order_payload(items, **overrides))


# ----------------------- Transaction doubles -----------------------
# mongomock does not take a `session` argument, so the wrappers below strip
# it before forwarding, record who passed it, and keep enough of a journal
# for FakeSession to undo an aborted transaction.
class SessionRecordingCollection:
    def __init__(self, collection, calls):
        self._collection = collection
        self._calls = calls

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            session = kwargs.pop("session", None)
            self._calls.append((self._collection.name, name, session))
            before = None
            if session is not None and name == "update_one":
                before = self._collection.find_one(args[0])
            result = attr(*args, **kwargs)
            if session is not None and name in ("update_one", "insert_one"):
                session.record_write(self._collection, name, before, result)
            return result

        return call


class SessionRecordingDatabase:
    def __init__(self, database):
        self._database = database
        self.calls = []

    def __getitem__(self, name):
        return SessionRecordingCollection(self._database[name], self.calls)

    def __getattr__(self, name):
        return getattr(self._database, name)


class FakeSession:
    """Runs with_transaction callbacks and undoes their writes when they raise.

    `client.start_errors` are raised before the callback runs,
    `client.commit_errors` after it ran and its writes landed.
    """

    def __init__(self, client):
        self.client = client
        self.writes = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def record_write(self, collection, method, before, result):
        self.writes.append((collection, method, before, result))

    def with_transaction(self, callback):
        if self.client.start_errors:
            raise self.client.start_errors.pop(0)
        self.writes = []
        try:
            result = callback(self)
        except Exception:
            self._abort()
            raise
        if self.client.commit_errors:
            raise self.client.commit_errors.pop(0)
        return result

    def _abort(self):
        for collection, method, before, result in reversed(self.writes):
            if method == "insert_one":
                collection.delete_one({"_id": result.inserted_id})
            elif before is not None and result.modified_count:
                collection.replace_one({"_id": before["_id"]}, before)
        self.writes = []


class FakeClient:
    def __init__(self):
        self.sessions = []
        self.start_errors = []
        self.commit_errors = []

    def start_session(self):
        session = FakeSession(self)
        self.sessions.append(session)
        return session
