from abc import ABC, abstractmethod
from typing import List, Dict

class BaseFeed(ABC):
    @abstractmethod
    def fetch(self) -> List[Dict]:
        """Itens {title, link} na ordem da página. Levanta FetchError se a fonte estiver fora."""
