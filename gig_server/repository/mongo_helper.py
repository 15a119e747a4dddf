from pymongo import MongoClient, ASCENDING, DESCENDING
import logging
import threading

from config import config

logger = logging.getLogger(__name__)

MESSAGES = 'messages'
EVENTS = 'events'
LISTINGS = 'listings'
NOTIFICATIONS = 'notifications'
USERS = 'users'


class MongoRepositorySingleton:
    _db_instance = None
    _lock = threading.Lock()

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses config.MONGO_URI and config.MONGO_DB (MONGO_URI / MONGO_DB env
        vars). Tests and alternative runners install their own database with
        set_db().
        """
        if cls._db_instance is not None:
            return cls._db_instance
        with cls._lock:
            if cls._db_instance is None:
                mongo_uri = config.MONGO_URI
                db_name = config.MONGO_DB
                logger.info("Connecting to MongoDB DB: %s", db_name)
                client = MongoClient(mongo_uri, tz_aware=False)
                db = client[db_name]
                cls.ensure_indexes(db)
                cls._db_instance = db
        return cls._db_instance

    @classmethod
    def set_db(cls, db):
        """Install an already-built database object (mongomock in tests)."""
        with cls._lock:
            cls.ensure_indexes(db)
            cls._db_instance = db
        return db

    @classmethod
    def reset(cls):
        with cls._lock:
            cls._db_instance = None

    @classmethod
    def get_collection(cls, collection_name, db=None):
        """Get a collection, creating it if it does not exist.

        Collections are created up front because multi-document transactions
        cannot create them implicitly on older servers.
        """
        if db is None:
            db = cls.get_db()
        if collection_name not in db.list_collection_names():
            db.create_collection(collection_name)
            logger.info("Created '%s' collection in DB.", collection_name)
        return db[collection_name]

    @classmethod
    def ensure_indexes(cls, db):
        """Create indexes used by query paths and uniqueness rules (idempotent)."""
        for name in (MESSAGES, EVENTS, LISTINGS, NOTIFICATIONS, USERS):
            cls.get_collection(name, db)
        db[MESSAGES].create_index([('sender_id', ASCENDING), ('created_at', DESCENDING)], name='messages_sender_created_at')
        db[MESSAGES].create_index([('receiver_id', ASCENDING), ('status', ASCENDING)], name='messages_receiver_status')
        db[LISTINGS].create_index([('source_message_id', ASCENDING)], unique=True, name='listings_source_message')
        db[NOTIFICATIONS].create_index([('recipient_id', ASCENDING), ('created_at', DESCENDING)], name='notifications_recipient_created_at')
        db[EVENTS].create_index([('professionals.professional', ASCENDING)], name='events_professional')
        db[USERS].create_index([('user_id', ASCENDING)], unique=True, name='users_user_id')
        logger.debug('Ensured DB indexes')
