from bson import ObjectId
from bson.errors import InvalidId

from gig_server.repository.mongo_helper import MongoRepositorySingleton


def to_object_id(value):
    """Return ``value`` as an ObjectId, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def session_kwargs(session):
    """Only pass ``session`` through when one is active."""
    return {'session': session} if session is not None else {}


class BaseRepository:
    collection_name = None

    def __init__(self, db=None, collection_name=None):
        if collection_name:
            self.collection_name = collection_name
        self.collection = MongoRepositorySingleton.get_collection(self.collection_name, db)

    def create(self, data, session=None):
        """Insert a new document into the collection and return its id."""
        return self.collection.insert_one(data, **session_kwargs(session)).inserted_id

    def find(self, query=None, session=None):
        return list(self.collection.find(query or {}, **session_kwargs(session)))

    def find_one(self, query, session=None):
        return self.collection.find_one(query, **session_kwargs(session))

    def update(self, query, update_fields, session=None):
        return self.collection.update_one(query, {'$set': update_fields}, **session_kwargs(session)).modified_count

    def delete(self, query, session=None):
        return self.collection.delete_one(query, **session_kwargs(session)).deleted_count
