from abc import ABC, abstractmethod
from typing import List
import logging

from digest.models import RawCandidate

logger = logging.getLogger(__name__)


class BaseCollector(ABC):
    def __init__(self):
        self.name = self.__class__.__name__

    @abstractmethod
    async def collect(self) -> List[RawCandidate]:
        """
        Main entry point for the collector.
        Returns raw candidates; per-source failures contribute nothing
        instead of raising.
        """
        pass
