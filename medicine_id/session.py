"""Scan session: selected photo, current result and history for one user."""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from .errors import AnalysisInProgressError, NoImageSelectedError
from .history.cache import RecentHistoryCache
from .inference_service.client import IdentificationClient
from .preprocessing.image_utils import EncodedImage, preprocess, preprocess_file
from .records import MedicineRecord

logger = logging.getLogger(__name__)


class ScanSession:
    """Drives one user's select -> analyze -> history flow.

    Errors propagate to the caller, which is expected to show them; the
    session state is left as it was before the failing step.
    """

    def __init__(self, client: IdentificationClient, history: RecentHistoryCache):
        self.client = client
        self.history = history
        self.selected_image: Optional[EncodedImage] = None
        self.result: Optional[MedicineRecord] = None
        self.is_analyzing = False

        self.history.load()

    @property
    def recent_scans(self) -> Tuple[MedicineRecord, ...]:
        return self.history.entries

    def _accept(self, image: EncodedImage) -> EncodedImage:
        self.selected_image = image
        self.result = None
        return image

    def select_image(self, data: bytes, content_type: str) -> EncodedImage:
        return self._accept(preprocess(data, content_type))

    def select_file(self, file_path: Union[str, Path]) -> EncodedImage:
        return self._accept(preprocess_file(file_path))

    def analyze(self) -> MedicineRecord:
        """
        Identify the selected photo and store the result in history.

        Returns:
            The result as stored in history (with its capture time)

        Raises:
            NoImageSelectedError: nothing selected yet
            AnalysisInProgressError: a previous call has not settled
            IdentificationError: the identification call failed
        """
        if self.selected_image is None:
            raise NoImageSelectedError("Select an image before analyzing")
        if self.is_analyzing:
            raise AnalysisInProgressError("An analysis is already running")

        self.is_analyzing = True
        self.result = None
        try:
            record = self.client.identify(self.selected_image)
            self.history.record(record)
            self.result = self.history.entries[0]
        finally:
            self.is_analyzing = False

        logger.info(f"Identified '{self.result.medicine_name}' ({self.result.confidence} confidence)")
        return self.result

    def show_history(self, index: int) -> MedicineRecord:
        self.result = self.history.select(index)
        return self.result
