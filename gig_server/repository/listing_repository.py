from pymongo.errors import DuplicateKeyError

from gig_server.exception.NegotiationError import InvalidStateTransition
from gig_server.repository.base_repository import BaseRepository, to_object_id
from gig_server.repository.mongo_helper import LISTINGS


class ListingRepository(BaseRepository):
    collection_name = LISTINGS

    def insert(self, doc, session=None):
        try:
            return self.create(doc, session=session)
        except DuplicateKeyError:
            raise InvalidStateTransition('A listing already exists for this request')

    def remove(self, listing_id, session=None):
        return self.delete({'_id': to_object_id(listing_id)}, session=session)
