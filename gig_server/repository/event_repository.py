"""Access to Event records and their embedded engagements.

Engagements live in the event's ``professionals`` array, one entry per
professional. Inserting an entry is a single conditional update that only
matches when the professional is not in the array yet, so concurrent
acceptances cannot produce duplicates.
"""
from gig_server.repository.base_repository import BaseRepository, session_kwargs, to_object_id
from gig_server.repository.mongo_helper import EVENTS
from gig_server.utils.time_utils import utc_now


class EventRepository(BaseRepository):
    collection_name = EVENTS

    def get(self, event_id, session=None):
        oid = to_object_id(event_id)
        if oid is None:
            return None
        return self.find_one({'_id': oid}, session=session)

    def add_professional(self, event_id, professional_id, services, status, source_message_id=None, session=None) -> bool:
        """Append an engagement unless one exists for the professional. Returns True if appended."""
        now = utc_now()
        entry = {
            'professional': professional_id,
            'services': list(services),
            'status': status,
            'joined_at': now,
            'updated_at': now,
        }
        if source_message_id:
            entry['source_message_id'] = source_message_id
        result = self.collection.update_one(
            {'_id': to_object_id(event_id), 'professionals.professional': {'$ne': professional_id}},
            {'$push': {'professionals': entry}, '$set': {'updated_at': now}},
            **session_kwargs(session)
        )
        return result.modified_count == 1

    def set_professional(self, event_id, professional_id, status, services=None, session=None) -> bool:
        fields = {
            'professionals.$.status': status,
            'professionals.$.updated_at': utc_now(),
        }
        if services is not None:
            fields['professionals.$.services'] = list(services)
        result = self.collection.update_one(
            {'_id': to_object_id(event_id), 'professionals.professional': professional_id},
            {'$set': fields},
            **session_kwargs(session)
        )
        return result.modified_count == 1

    def remove_professional(self, event_id, professional_id, session=None) -> bool:
        result = self.collection.update_one(
            {'_id': to_object_id(event_id), 'professionals.professional': professional_id},
            {'$pull': {'professionals': {'professional': professional_id}}, '$set': {'updated_at': utc_now()}},
            **session_kwargs(session)
        )
        return result.modified_count == 1

    def update_fields(self, event_id, fields):
        fields = {**fields, 'updated_at': utc_now()}
        return self.update({'_id': to_object_id(event_id)}, fields)

    def change_status(self, event_id, from_status, to_status) -> bool:
        """Conditionally move an event between statuses; False when it was not in ``from_status``."""
        result = self.collection.update_one(
            {'_id': to_object_id(event_id), 'status': from_status},
            {'$set': {'status': to_status, 'updated_at': utc_now()}},
        )
        return result.modified_count == 1


def find_engagement(event_doc, professional_id):
    for entry in (event_doc or {}).get('professionals', []) or []:
        if entry.get('professional') == professional_id:
            return entry
    return None
