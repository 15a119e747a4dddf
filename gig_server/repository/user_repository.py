from gig_server.repository.base_repository import BaseRepository
from gig_server.repository.mongo_helper import USERS


class UserRepository(BaseRepository):
    collection_name = USERS

    def get_by_user_id(self, user_id):
        return self.find_one({'user_id': user_id})

    def find_many_by_user_ids(self, user_ids):
        return list(self.collection.find({'user_id': {'$in': list(user_ids)}}))

    def set_presence(self, user_id, is_online, last_seen):
        """Persist the online flag and last-seen time; creates a stub user record if needed."""
        return self.collection.update_one(
            {'user_id': user_id},
            {'$set': {'is_online': is_online, 'last_seen': last_seen}},
            upsert=True,
        )
