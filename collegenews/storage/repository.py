from typing import Dict, List, Iterable, Optional, Set

from collegenews.storage.document_store import DocumentStore
from collegenews.storage.models import NewsItem, Subscriber, SubscriberState
from collegenews.utils.tz_utils import utc_now

NEWS_COLLECTION = "news"
SUBSCRIBERS_COLLECTION = "subscribers"


def normalize_email(email: str) -> str:
    # só trim: o endereço é case-sensitive como informado
    return (email or "").strip()


class NewsRepository:
    """Snapshot da última raspagem que encontrou novidades."""

    def __init__(self, store: DocumentStore):
        self._col = store.collection(NEWS_COLLECTION, unique=("link",))

    def read_all(self) -> List[NewsItem]:
        return [NewsItem(**d) for d in self._col.find()]

    def links(self) -> Set[str]:
        return {d["link"] for d in self._col.find(projection=["link"]) if d.get("link")}

    def replace_all(self, items: Iterable[Dict], seen_at: Optional[str] = None) -> List[NewsItem]:
        """
        Substitui o snapshot inteiro pelos itens raspados agora.
        Levanta PersistenceError sem tocar no snapshot anterior se a gravação falhar.
        """
        seen_at = seen_at or utc_now().isoformat()
        # links que continuam na página mantêm o instante em que foram vistos pela 1ª vez
        previous = {n.link: n.first_seen_at for n in self.read_all()}

        snapshot: List[NewsItem] = []
        links: Set[str] = set()
        for i in items:
            link = i["link"]
            if link in links:
                continue
            links.add(link)
            snapshot.append(NewsItem(title=i["title"], link=link, first_seen_at=previous.get(link, seen_at)))
        self._col.replace_all(n.model_dump() for n in snapshot)
        return snapshot


class SubscriberRepository:
    def __init__(self, store: DocumentStore):
        self._col = store.collection(SUBSCRIBERS_COLLECTION, unique=("email",), recover_corrupt=False)

    def find(self, email: str) -> Optional[Subscriber]:
        doc = self._col.find_one({"email": normalize_email(email)})
        return Subscriber(**doc) if doc else None

    def is_active(self, email: str) -> bool:
        sub = self.find(email)
        return sub is not None and sub.state == SubscriberState.active

    def insert(self, subscriber: Subscriber) -> Subscriber:
        """Levanta DuplicateKeyError se o e-mail já existir."""
        subscriber = subscriber.model_copy(update={"email": normalize_email(subscriber.email)})
        self._col.insert_one(subscriber.model_dump(mode="json"))
        return subscriber

    def delete(self, email: str) -> bool:
        return self._col.delete_many({"email": normalize_email(email)}) > 0

    def list_all(self) -> List[Subscriber]:
        return [Subscriber(**d) for d in self._col.find()]

    def list_active(self) -> List[Subscriber]:
        return [s for s in self.list_all() if s.state == SubscriberState.active]
