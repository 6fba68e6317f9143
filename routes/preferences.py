from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Any
from database import get_db
from utils.dependencies import Actor, get_actor
from utils.preferences import PreferenceStore
from utils.responses import success_response

router = APIRouter(prefix="/preferences", tags=["Preferences"])


class PreferenceValue(BaseModel):
    value: Any = None


@router.get("/{key}")
def get_preference(
    key: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    store = PreferenceStore(db, actor.user_id)
    return success_response(data={"key": key, "value": store.get(key)}, message="Preference retrieved")


@router.put("/{key}")
def set_preference(
    key: str,
    request: PreferenceValue,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    store = PreferenceStore(db, actor.user_id)
    value = store.set(key, request.value)
    return success_response(data={"key": key, "value": value}, message="Preference saved")
