import logging
import warnings
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import InsecureRequestWarning
from urllib3.util import Retry

from collegenews.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "CollegeNewsAlerts/1.0 (+https://localhost)"


def build_session() -> requests.Session:
    """Sessão com pool, mas sem retry automático: o fallback é o único retry do ciclo."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=4, pool_maxsize=8, max_retries=Retry(total=0, raise_on_status=False))
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})
    return session


class PageFetcher:
    TIMEOUT = 15

    def __init__(
        self,
        timeout: float = TIMEOUT,
        fallback_proxy: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.fallback_proxy = fallback_proxy
        self.session = session or build_session()

    def _get(self, url: str, **kwargs) -> str:
        response = self.session.get(url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response.text

    def fetch(self, url: str) -> str:
        """
        Baixa `url` direto (TLS verificado). Se falhar, tenta exatamente uma vez
        pelo caminho alternativo: via proxy se configurado, senão sem verificar
        o certificado (o site da faculdade já teve cadeia TLS quebrada).
        """
        try:
            return self._get(url)
        except requests.RequestException as e:
            logger.warning("Direct fetch failed for %s: %s", url, e)
            primary_error = e

        if self.fallback_proxy:
            kwargs = {"proxies": {"http": self.fallback_proxy, "https": self.fallback_proxy}}
        else:
            kwargs = {"verify": False}
        try:
            with warnings.catch_warnings():
                # sem verify o urllib3 avisaria a cada ciclo; a falha direta já foi logada
                warnings.simplefilter("ignore", InsecureRequestWarning)
                return self._get(url, **kwargs)
        except requests.RequestException as e:
            logger.warning("Fallback fetch failed for %s: %s", url, e)
            raise FetchError(f"could not fetch {url}: {primary_error}; fallback: {e}") from e
