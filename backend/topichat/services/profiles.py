"""
Profile setup: nickname and interest selection
"""
import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from topichat.errors import ConflictError, NotFoundError, StoreError
from topichat.models import Profile
from topichat.services.store import as_uuid

logger = logging.getLogger(__name__)


def clean_interests(interests: Sequence[str]) -> List[str]:
    """Trimmed, non-empty tags in first-seen order"""
    cleaned = []
    for interest in interests:
        interest = interest.strip()
        if interest and interest not in cleaned:
            cleaned.append(interest)
    return cleaned


class ProfileService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id) -> Profile:
        profile = self.db.query(Profile).filter(Profile.id == as_uuid(user_id)).first()
        if not profile:
            raise NotFoundError("Profile not found")
        return profile

    def upsert(self, user_id, nickname: Optional[str] = None,
               interests: Optional[Sequence[str]] = None) -> Profile:
        """
        Create the profile on first call, then update only the fields given.
        Nicknames are unique across users.
        """
        user_uuid = as_uuid(user_id)
        profile = self.db.query(Profile).filter(Profile.id == user_uuid).first()
        if not profile:
            profile = Profile(id=user_uuid, interests=[])
            self.db.add(profile)

        if nickname is not None:
            nickname = nickname.strip()
            taken = self.db.query(Profile.id).filter(
                Profile.nickname == nickname,
                Profile.id != user_uuid,
            ).first()
            if taken:
                raise ConflictError("Nickname already taken")
            profile.nickname = nickname or None
        if interests is not None:
            profile.interests = clean_interests(interests)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(str(e)) from e
        self.db.refresh(profile)
        logger.info("Profile %s saved", profile.id)
        return profile
