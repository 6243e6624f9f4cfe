from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.database import get_session
from rentmatch.services.preferences_store import PreferencesStore, SqlAlchemyPreferencesStore
from rentmatch.services.property_store import PropertyStore, SqlAlchemyPropertyStore


def get_preferences_store(db: AsyncSession = Depends(get_session)) -> PreferencesStore:
    return SqlAlchemyPreferencesStore(db)


def get_property_store(db: AsyncSession = Depends(get_session)) -> PropertyStore:
    return SqlAlchemyPropertyStore(db)
