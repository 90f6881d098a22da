"""
Chatroom administration and onboarding
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from topichat.config import Settings
from topichat.errors import NotFoundError, PermissionDeniedError, StoreError
from topichat.models import Chatroom, Participant, Profile
from topichat.services.entities import RoomAccess
from topichat.services.store import as_uuid

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ("name", "persona", "idle_threshold_minutes", "enable_article_summary")


class ChatroomService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def list_rooms(self, interest: Optional[str] = None) -> List[Chatroom]:
        query = self.db.query(Chatroom).filter(Chatroom.is_active == True)
        if interest:
            query = query.filter(Chatroom.interest == interest)
        return query.order_by(Chatroom.last_message_at.desc(), Chatroom.created_at.desc()).all()

    def get_room(self, room_id) -> Chatroom:
        room = self.db.query(Chatroom).filter(Chatroom.id == as_uuid(room_id)).first()
        if not room:
            raise NotFoundError("Chatroom not found")
        return room

    def create_room(self, creator_id, name: str, interest: Optional[str] = None,
                    description: Optional[str] = None) -> Chatroom:
        """Create a room; the creator becomes its admin"""
        room = Chatroom(
            name=name,
            description=description,
            interest=interest,
            idle_threshold_minutes=self.settings.default_idle_threshold_minutes,
        )
        self.db.add(room)
        self.db.flush()  # Get the room ID
        self.db.add(Participant(chatroom_id=room.id, user_id=as_uuid(creator_id), is_admin=True))
        self._commit()
        self.db.refresh(room)
        logger.info("Chatroom %s created by %s", room.id, creator_id)
        return room

    def join(self, room_id, user_id) -> Participant:
        room = self.get_room(room_id)
        participant = self.db.query(Participant).filter(
            Participant.chatroom_id == room.id,
            Participant.user_id == as_uuid(user_id),
        ).first()
        if participant:
            return participant
        participant = Participant(chatroom_id=room.id, user_id=as_uuid(user_id))
        self.db.add(participant)
        self._commit()
        return participant

    def update_settings(self, access: RoomAccess, **changes) -> Chatroom:
        """Admin-only settings change; unknown fields are ignored"""
        if not access.is_admin:
            raise PermissionDeniedError("Only a room admin can change settings")
        room = self.get_room(access.room_id)
        for key, value in changes.items():
            if key in SETTINGS_FIELDS:
                setattr(room, key, value)
        self._commit()
        self.db.refresh(room)
        return room

    def assign_interest_rooms(self, user_id) -> List[Chatroom]:
        """
        Put a user into the room for each of their interests, creating
        missing rooms. A missing profile or empty interest list is a no-op.
        """
        profile = self.db.query(Profile).filter(Profile.id == as_uuid(user_id)).first()
        if not profile or not profile.interests:
            return []

        rooms = []
        for interest in profile.interests:
            room = self.db.query(Chatroom).filter(Chatroom.interest == interest).first()
            if not room:
                room = Chatroom(
                    name=interest,
                    description=f"A chatroom for {interest}",
                    interest=interest,
                    idle_threshold_minutes=self.settings.default_idle_threshold_minutes,
                )
                self.db.add(room)
                self.db.flush()

            exists = self.db.query(Participant.id).filter(
                Participant.chatroom_id == room.id,
                Participant.user_id == profile.id,
            ).first()
            if not exists:
                self.db.add(Participant(chatroom_id=room.id, user_id=profile.id))
            rooms.append(room)

        self._commit()
        return rooms

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(str(e)) from e
