from pydantic import BaseModel
import uuid


class TokenData(BaseModel):
    """Inhalt eines Access-Tokens; die Nutzerverwaltung liegt außerhalb des Moduls."""
    user_id: str
    tenant_id: uuid.UUID
    role: str
