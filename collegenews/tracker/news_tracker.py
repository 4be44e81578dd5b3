from typing import Dict, Iterable, List, Optional, Set
from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import Lock
from enum import Enum
import logging
import time

from pydantic import BaseModel

from collegenews.errors import FetchError, PersistenceError
from collegenews.feeds.base import BaseFeed
from collegenews.notifier.news_notifier import Notifier, SendResult
from collegenews.storage.models import NewsItem
from collegenews.storage.repository import NewsRepository, SubscriberRepository

logger = logging.getLogger(__name__)


class CycleStatus(str, Enum):
    skipped = "skipped"                # outro ciclo está atualizando o store
    fetch_failed = "fetch_failed"
    empty = "empty"                    # estrutura ausente / nada extraído
    unchanged = "unchanged"
    persist_failed = "persist_failed"
    updated = "updated"                # snapshot trocado; fan-out disparado


class CycleResult(BaseModel):
    status: CycleStatus
    new_items: List[NewsItem] = []
    sends: List[SendResult] = []
    error: Optional[str] = None


def detect_new_items(fresh: Iterable[Dict], known_links: Set[str]) -> List[Dict]:
    """Itens cujo link não está no snapshot; mudança só de título não conta."""
    return [item for item in fresh if item.get("link") and item["link"] not in known_links]


class NewsTracker:
    def __init__(
        self,
        feed: BaseFeed,
        news_repo: NewsRepository,
        subscriber_repo: SubscriberRepository,
        notifier: Notifier,
    ):
        self.feed = feed
        self.news_repo = news_repo
        self.subscriber_repo = subscriber_repo
        self.notifier = notifier
        self.last_updated: Optional[int] = None
        self._lock = Lock()  # serializa fetch -> diff -> replace entre ciclos
        # envios de um ciclo nunca seguram o próximo tick do scheduler
        self._fanout = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fanout")
        self._pending: Set[Future] = set()
        self._pending_lock = Lock()

    def _update_store(self) -> CycleResult:
        try:
            fresh = self.feed.fetch()
        except FetchError as e:
            logger.warning("Fetch failed, waiting for next cycle: %s", e)
            return CycleResult(status=CycleStatus.fetch_failed, error=str(e))

        # página sem a lista != todas as notícias removidas: nunca apaga o snapshot
        if not fresh:
            logger.info("No items extracted this cycle.")
            return CycleResult(status=CycleStatus.empty)

        try:
            known = self.news_repo.links()
            delta = detect_new_items(fresh, known)
            if not delta:
                return CycleResult(status=CycleStatus.unchanged)
            snapshot = self.news_repo.replace_all(fresh)
        except PersistenceError as e:
            # não notifica o que não ficou gravado como visto
            logger.error("Could not persist news snapshot, aborting cycle: %s", e)
            return CycleResult(status=CycleStatus.persist_failed, error=str(e))

        delta_links = {item["link"] for item in delta}
        new_items = [n for n in snapshot if n.link in delta_links]
        logger.info("Found %d new item(s); snapshot now has %d.", len(new_items), len(snapshot))
        return CycleResult(status=CycleStatus.updated, new_items=new_items)

    def _fan_out(self, result: CycleResult) -> CycleResult:
        try:
            subscribers = self.subscriber_repo.list_active()
            result.sends = self.notifier.notify(result.new_items, subscribers)
        except Exception as e:
            # snapshot já gravado: o item não será reenviado no próximo ciclo
            logger.error("Notification fan-out failed: %s", e)
            result.error = str(e)
        return result

    def _dispatch(self, result: CycleResult) -> Future:
        fut = self._fanout.submit(self._fan_out, result)
        with self._pending_lock:
            self._pending.add(fut)

        def _done(f: Future):
            with self._pending_lock:
                self._pending.discard(f)
        fut.add_done_callback(_done)
        return fut

    def run_cycle(self) -> CycleResult:
        """
        Um ciclo completo: fetch -> extract -> diff -> replace -> notify.

        O trecho até o replace roda sob lock; se outro ciclo estiver nele,
        este é pulado (o próximo tick refaz o diff). O fan-out vai para o
        executor do tracker e o ciclo retorna sem esperar os envios;
        `result.sends` é preenchido quando o fan-out termina (ver drain()).
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Previous cycle still updating the store; skipping.")
            return CycleResult(status=CycleStatus.skipped)
        try:
            result = self._update_store()
        finally:
            self._lock.release()

        if result.status == CycleStatus.updated:
            self._dispatch(result)

        self.last_updated = int(time.time())
        return result

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Espera os fan-outs em andamento; False se o timeout estourar."""
        with self._pending_lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_sends: bool = False) -> None:
        self._fanout.shutdown(wait=wait_for_sends)
