"""Emergency contact endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from safeguard.api.v1.deps import get_engine
from safeguard.models.contact import EmergencyContact
from safeguard.services.engine import SOSEngine

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.get("", response_model=list[EmergencyContact])
async def list_contacts(engine: SOSEngine = Depends(get_engine)) -> list[EmergencyContact]:
    return engine.contacts.all()


@router.post("", response_model=EmergencyContact, status_code=201)
async def add_contact(
    body: EmergencyContact, engine: SOSEngine = Depends(get_engine)
) -> EmergencyContact:
    """Add a contact.  Flagging it primary demotes the previous primary."""
    return engine.contacts.add(body)


@router.put("/{contact_id}", response_model=EmergencyContact)
async def update_contact(
    contact_id: int, body: EmergencyContact, engine: SOSEngine = Depends(get_engine)
) -> EmergencyContact:
    try:
        return engine.contacts.update(body.model_copy(update={"id": contact_id}))
    except KeyError:
        raise HTTPException(status_code=404, detail="Contact not found") from None


@router.delete("/{contact_id}", status_code=204)
async def delete_contact(contact_id: int, engine: SOSEngine = Depends(get_engine)) -> None:
    if not engine.contacts.remove(contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
