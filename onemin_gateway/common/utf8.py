"""
UTF-8 Streaming Decoder

Upstream chunk boundaries do not respect character boundaries; multi-byte
sequences split across reads are buffered until complete.
"""

import codecs


class StreamingUTF8Decoder:
    """
    Incremental UTF-8 decoder.

    `final=True` must only be passed once the upstream stream has ended; before
    that, an incomplete trailing sequence is held back for the next chunk.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, chunk: bytes, final: bool = False) -> str:
        return self._decoder.decode(chunk, final)

    def reset(self) -> None:
        self._decoder.reset()
