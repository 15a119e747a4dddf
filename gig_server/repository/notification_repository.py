from pymongo import DESCENDING

from gig_server.repository.base_repository import BaseRepository, to_object_id
from gig_server.repository.mongo_helper import NOTIFICATIONS
from gig_server.utils.time_utils import utc_now


class NotificationRepository(BaseRepository):
    collection_name = NOTIFICATIONS

    def _query(self, recipient_id, unread_only=False, notification_type=None):
        query = {'recipient_id': recipient_id}
        if unread_only:
            query['read'] = False
        if notification_type:
            query['type'] = notification_type
        return query

    def list_for(self, recipient_id, unread_only=False, notification_type=None, limit=50, skip=0):
        cursor = self.collection.find(self._query(recipient_id, unread_only, notification_type))
        cursor = cursor.sort([('created_at', DESCENDING), ('_id', DESCENDING)]).skip(skip).limit(limit)
        return list(cursor)

    def count_for(self, recipient_id, unread_only=False, notification_type=None):
        return self.collection.count_documents(self._query(recipient_id, unread_only, notification_type))

    def get_for(self, notification_id, recipient_id):
        oid = to_object_id(notification_id)
        if oid is None:
            return None
        return self.find_one({'_id': oid, 'recipient_id': recipient_id})

    def mark_read(self, notification_id, recipient_id):
        return self.collection.update_one(
            {'_id': to_object_id(notification_id), 'recipient_id': recipient_id, 'read': False},
            {'$set': {'read': True, 'read_at': utc_now()}},
        ).modified_count

    def mark_all_read(self, recipient_id):
        return self.collection.update_many(
            {'recipient_id': recipient_id, 'read': False},
            {'$set': {'read': True, 'read_at': utc_now()}},
        ).modified_count

    def delete_for(self, notification_id, recipient_id):
        oid = to_object_id(notification_id)
        if oid is None:
            return 0
        return self.delete({'_id': oid, 'recipient_id': recipient_id})
