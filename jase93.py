"""JSON-string-safe base-93 encoding for binary data.

Input bits are packed into 13 bit words. A word small enough to stay below
WORD_MAX with one more bit on top takes a 14th bit, so on average every two
output symbols carry a little over 13 bits. Words are written as two base-93
symbols, low symbol first.
"""
import io
import logging
import math
from typing import Optional, Union

logger = logging.getLogger(__name__)

# Printable ASCII without '"' and '\', so the output never needs escaping in a JSON string
ALPHABET = " !#$%&'()*+,-./0123456789:;<=>?@ABCDEFGHIJKLMNOPQRSTUVWXYZ[]^_`abcdefghijklmnopqrstuvwxyz{|}~"
ENCODE_TABLE = ALPHABET.encode('ascii')


def _invert(alphabet: bytes) -> tuple:
    table = [-1] * 256
    for i, c in enumerate(alphabet):
        table[c] = i
    return tuple(table)


DECODE_TABLE = _invert(ENCODE_TABLE)

BASE = len(ENCODE_TABLE)              # 93
WORD_MAX = BASE * BASE - 1            # 8648
WORD_BITS = int(math.log2(WORD_MAX))  # 13
WORD_MASK = (1 << WORD_BITS) - 1      # 0x1fff
WORD_FULL = WORD_MAX - WORD_MASK      # 457, words below this can take one more bit

MASK_8_BITS = 0xFF

DEFAULT_CHUNK_SIZE = io.DEFAULT_BUFFER_SIZE

BytesLike = Union[bytes, bytearray, memoryview]


class InvalidDataError(ValueError):
    """A byte outside the alphabet was found while decoding."""

    def __init__(self, char: int, position: int):
        super().__init__(f"jase93: invalid data {bytes([char])!r} at offset {position}")
        self.char = char
        self.position = position


def max_encoded_len(n: int) -> int:
    """Returns the maximum number of symbols needed to encode n source bytes."""
    if n < 0:
        raise ValueError(f"negative length: {n}")
    return (n * 16 + WORD_BITS - 1) // WORD_BITS


class Encoder:
    """Incremental encoder.

    Concatenating the output of several `write` calls followed by one `flush`
    gives the same symbols as encoding all the input at once.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.state = 0
        self.state_bits = 0

    def write(self, src: BytesLike, dst: Optional[bytearray] = None) -> bytearray:
        """Encodes src and appends the symbols to dst."""
        if dst is None:
            dst = bytearray()
        state = self.state
        bits = self.state_bits
        for c in src:
            state |= c << bits
            bits += 8
            # Keep one spare bit around in case the word can take it
            while bits > WORD_BITS:
                word = state & WORD_MASK
                state >>= WORD_BITS
                bits -= WORD_BITS
                if word < WORD_FULL:
                    word |= (state & 1) << WORD_BITS
                    state >>= 1
                    bits -= 1
                div, mod = divmod(word, BASE)
                dst.append(ENCODE_TABLE[mod])
                dst.append(ENCODE_TABLE[div])
        self.state = state
        self.state_bits = bits
        return dst

    def flush(self, dst: Optional[bytearray] = None) -> bytearray:
        """Appends the final partial word to dst and clears the state."""
        if dst is None:
            dst = bytearray()
        if self.state_bits > 0:
            div, mod = divmod(self.state, BASE)
            dst.append(ENCODE_TABLE[mod])
            # A lone low symbol is read back as a single byte below BASE
            if self.state_bits > 8 or self.state >= BASE:
                dst.append(ENCODE_TABLE[div])
        self.reset()
        return dst


class Decoder:
    """Incremental decoder, the inverse of `Encoder`.

    `word` holds the low symbol of a pair while its high symbol is awaited,
    and is None otherwise.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.word: Optional[int] = None
        self.state = 0
        self.state_bits = 0

    def write(self, src: Union[BytesLike, str], dst: Optional[bytearray] = None) -> bytearray:
        """Decodes src and appends the bytes to dst.

        Raises InvalidDataError on the first byte outside the alphabet. The
        contents of dst and the decoder state are undefined after that.
        """
        if dst is None:
            dst = bytearray()
        if isinstance(src, str):
            src = src.encode('utf-8')
        word = self.word
        state = self.state
        bits = self.state_bits
        for position, c in enumerate(src):
            value = DECODE_TABLE[c]
            if value < 0:
                logger.debug("invalid symbol %r at offset %d", c, position)
                raise InvalidDataError(c, position)

            if word is None:
                word = value
                continue

            word += value * BASE

            # Low bits below WORD_FULL mean the encoder packed an extra bit into this word
            word_bits = WORD_BITS
            if (word & WORD_MASK) < WORD_FULL:
                word_bits += 1

            state |= word << bits
            bits += word_bits
            while bits >= 8:
                dst.append(state & MASK_8_BITS)
                state >>= 8
                bits -= 8
            word = None
        self.word = word
        self.state = state
        self.state_bits = bits
        return dst

    def flush(self, dst: Optional[bytearray] = None) -> bytearray:
        """Appends the byte held by a lone trailing symbol to dst and clears the state.

        The trailing symbol is not validated: a stray symbol after a
        complete stream still produces one byte.
        """
        if dst is None:
            dst = bytearray()
        if self.word is not None:
            dst.append((self.state | self.word << self.state_bits) & MASK_8_BITS)
        self.reset()
        return dst


def encode(src: BytesLike, dst: Optional[bytearray] = None) -> bytearray:
    """Encodes src and appends it to dst."""
    enc = Encoder()
    dst = enc.write(src, dst)
    return enc.flush(dst)


def decode(src: Union[BytesLike, str], dst: Optional[bytearray] = None) -> bytearray:
    """Decodes src and appends it to dst. Raises InvalidDataError."""
    dec = Decoder()
    dst = dec.write(src, dst)
    return dec.flush(dst)


def encode_string(data: BytesLike) -> str:
    return encode(data).decode('ascii')


def decode_string(text: str) -> bytes:
    return bytes(decode(text))


class StreamEncoder:
    """Encodes everything written to it into `sink`.

    `sink` is any object with a `write(bytes)` method. Symbols are forwarded
    as soon as they are produced; `close` writes the final partial word and
    leaves `sink` open.
    """

    def __init__(self, sink):
        self._enc = Encoder()
        self._buf = bytearray()
        self.reset(sink)

    def reset(self, sink) -> "StreamEncoder":
        """Rebinds to sink and clears the encoding state."""
        logger.debug("stream encoder reset")
        self._sink = sink
        self._enc.reset()
        self._buf.clear()
        self.closed = False
        return self

    def writable(self) -> bool:
        return True

    def write(self, data: BytesLike) -> int:
        if self.closed:
            raise ValueError("write to closed StreamEncoder")
        self._buf.clear()
        self._enc.write(data, self._buf)
        if self._buf:
            self._sink.write(bytes(self._buf))
        return len(data)

    def close(self):
        if self.closed:
            return
        self._buf.clear()
        self._enc.flush(self._buf)
        if self._buf:
            self._sink.write(bytes(self._buf))
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class StreamDecoder:
    """Decodes symbols read from `source`.

    `source` is any blocking object with a `read(n)` method that returns an
    empty result at end of data. Decoded bytes that do not fit the caller's
    buffer are kept for the next read.
    """

    def __init__(self, source, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size
        self._dec = Decoder()
        self._buf = bytearray()
        self.reset(source)

    def reset(self, source) -> "StreamDecoder":
        """Rebinds to source and clears the decoding state and buffered output."""
        logger.debug("stream decoder reset")
        self._source = source
        self._eof = False
        self._dec.reset()
        self._buf.clear()
        return self

    def readable(self) -> bool:
        return True

    def _fill(self):
        # A chunk may end mid-word and yield nothing, so keep pulling
        while not self._buf and not self._eof:
            chunk = self._source.read(self.chunk_size)
            if chunk:
                try:
                    self._dec.write(chunk, self._buf)
                except InvalidDataError:
                    self._buf.clear()
                    raise
            else:
                logger.debug("source exhausted, flushing decoder")
                self._eof = True
                self._dec.flush(self._buf)

    def readinto(self, b) -> int:
        """Reads decoded bytes into b. Returns 0 only at end of data."""
        view = memoryview(b).cast('B')
        if not len(view):
            return 0
        self._fill()
        n = min(len(view), len(self._buf))
        view[:n] = self._buf[:n]
        del self._buf[:n]
        return n

    def read(self, size: Optional[int] = -1) -> bytes:
        if size is None or size < 0:
            out = bytearray()
            while True:
                self._fill()
                if not self._buf:
                    return bytes(out)
                out += self._buf
                self._buf.clear()
        buf = bytearray(size)
        n = self.readinto(buf)
        return bytes(buf[:n])
