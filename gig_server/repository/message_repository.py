from pymongo import ASCENDING

from gig_server.messaging.models import CONVERSATION_KINDS, REQUEST_KINDS, MessageStatus
from gig_server.repository.base_repository import BaseRepository, session_kwargs, to_object_id
from gig_server.repository.mongo_helper import MESSAGES
from gig_server.utils.time_utils import utc_now
from gig_server.utils.versioning import VERSION_FIELD, versioned_update

_CONVERSATION_KIND_VALUES = [k.value for k in CONVERSATION_KINDS]
_REQUEST_KIND_VALUES = [k.value for k in REQUEST_KINDS]


class MessageRepository(BaseRepository):
    collection_name = MESSAGES

    def insert(self, doc, session=None):
        return self.create(doc, session=session)

    def get(self, message_id, session=None):
        oid = to_object_id(message_id)
        if oid is None:
            return None
        return self.find_one({'_id': oid}, session=session)

    def remove(self, message_id, session=None):
        """Physically remove a message. Only used to compensate an insert that never committed."""
        return self.delete({'_id': to_object_id(message_id)}, session=session)

    def update_versioned(self, message_id, expected_version, update_doc, session=None):
        return versioned_update(
            self.collection,
            {'_id': to_object_id(message_id)},
            update_doc,
            expected_version=expected_version,
            session=session,
        )

    def set_status(self, message_id, expected_version, status, session=None):
        return self.update_versioned(message_id, expected_version, {'$set': {'status': status}}, session=session)

    def restore_status(self, message_id, status, updated_at, session=None):
        """Put a status back after a failed unit of work; still bumps the version."""
        return self.collection.update_one(
            {'_id': to_object_id(message_id)},
            {'$set': {'status': status, 'updated_at': updated_at}, '$inc': {VERSION_FIELD: 1}},
            **session_kwargs(session)
        ).modified_count

    def find_for_user(self, user_id, include_deleted=False):
        query = {'$or': [{'sender_id': user_id}, {'receiver_id': user_id}]}
        if not include_deleted:
            query['is_deleted'] = {'$ne': True}
        return list(self.collection.find(query))

    def find_between(self, user_id, partner_id):
        query = {
            '$or': [
                {'sender_id': user_id, 'receiver_id': partner_id},
                {'sender_id': partner_id, 'receiver_id': user_id},
            ],
            'is_deleted': {'$ne': True},
        }
        return list(self.collection.find(query).sort([('created_at', ASCENDING), ('_id', ASCENDING)]))

    def mark_read_from(self, user_id, counterpart_id):
        """Set every unread plain/hire message from counterpart to user as read; returns the count."""
        result = self.collection.update_many(
            {
                'sender_id': counterpart_id,
                'receiver_id': user_id,
                'status': MessageStatus.UNREAD.value,
                'kind': {'$in': _CONVERSATION_KIND_VALUES},
                'is_deleted': {'$ne': True},
            },
            {'$set': {'status': MessageStatus.READ.value, 'updated_at': utc_now()}, '$inc': {VERSION_FIELD: 1}},
        )
        return result.modified_count

    def find_request(self, sender_id, receiver_id, event_id):
        cursor = self.collection.find({
            'sender_id': sender_id,
            'receiver_id': receiver_id,
            'related_event_id': str(event_id),
            'kind': {'$in': _REQUEST_KIND_VALUES},
            'is_deleted': {'$ne': True},
        }).sort([('created_at', -1), ('_id', -1)]).limit(1)
        docs = list(cursor)
        return docs[0] if docs else None
