"""Streaming channel: sample batches over the bulk data endpoint."""

from __future__ import annotations

import logging
from typing import Sequence

from .constants import SAMPLES_PER_BATCH, TIMEOUT_MS
from .errors import IncompleteWrite
from .sample import Sample, batches, pack_samples
from .usb_transport import Endpoints, UsbTransport

log = logging.getLogger(__name__)


class StreamingChannel:
    """Writes serialized samples to the data OUT endpoint.

    ``send`` is one bulk transfer and does not chunk; callers keep each call
    within SAMPLES_PER_BATCH samples or use ``stream``, which does the
    chunking in order.
    """

    def __init__(self, transport: UsbTransport, endpoints: Endpoints):
        self.transport = transport
        self._data_ep = endpoints.data_write.address

    def send_bytes(self, data: bytes) -> None:
        """One bulk write of raw bytes.

        Raises:
            IncompleteWrite: the transport accepted fewer bytes than submitted.
        """
        written = self.transport.write(self._data_ep, data, TIMEOUT_MS)
        if written != len(data):
            raise IncompleteWrite(written, len(data))

    def send(self, samples: Sequence[Sample]) -> None:
        """Serialize *samples* and write them in one bulk transfer."""
        self.send_bytes(pack_samples(samples))

    def stream(self, samples: Sequence[Sample],
               batch_size: int = SAMPLES_PER_BATCH) -> int:
        """Send *samples* as consecutive batches, in order.

        *batch_size* may be smaller than SAMPLES_PER_BATCH but never larger:
        a batch must fit one 64-byte packet.  Returns the number of batches
        written.
        """
        if not 1 <= batch_size <= SAMPLES_PER_BATCH:
            raise ValueError(
                f"batch_size must be in 1..{SAMPLES_PER_BATCH}, got {batch_size}")
        count = 0
        for batch in batches(samples, batch_size):
            self.send(batch)
            count += 1
        log.debug("Streamed %d samples in %d batches", len(samples), count)
        return count
