"""Extractor interface: rendered text in, candidate tasks out."""

from abc import ABC, abstractmethod

from tasks.models import CandidateTask


class ExtractionError(Exception):
    """Extraction could not produce a result for this text."""


class Extractor(ABC):
    @abstractmethod
    def extract(self, text: str, source: str) -> list[CandidateTask]:
        """Extract candidate tasks from text.

        Returns an empty list when the text holds nothing actionable.

        Raises:
            ExtractionError: the collaborator failed or its reply was unusable
        """
        ...
