from enum import Enum
from pydantic import BaseModel, ConfigDict

class NewsItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    link: str  # usado como chave única (absoluto)
    title: str
    first_seen_at: str  # ISO UTC do ciclo que gravou o snapshot

class SubscriberState(str, Enum):
    pending = "PendingVerification"
    active = "Active"

class Subscriber(BaseModel):
    email: str  # chave única, como informado (trim apenas)
    state: SubscriberState = SubscriberState.pending  # só vira Active via verify / activate_trusted
    created_at: str
