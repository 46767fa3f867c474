from amaranth import *
from amaranth.lib import wiring
from amaranth.lib.wiring import Component, In, Out
from .types import (ByteStream, stream_signature, frame_record_layout, FOREIGN_ADDRESS_WIDTH,
                    CommandBytes, ResponseBytes, ResponseRecord)


__all__ = ["Packer", "Unpacker", "CommandEncoder", "CommandDecoder", "ResponseEncoder", "ResponseDecoder"]


def _byte_count(layout):
    if layout.size % 8 != 0:
        raise ValueError(f"Layout size must be a multiple of 8 bits, not {layout.size!r}")
    return layout.size // 8


class Packer(Component):
    """Splits one wide word into bytes, least significant byte first."""
    def __init__(self, layout):
        self._layout = layout
        self._n_bytes = _byte_count(layout)

        super().__init__({
            "word": In(stream_signature(layout)),
            "bytes": Out(ByteStream),
        })

    def elaborate(self, platform):
        m = Module()

        shreg = Signal(self._layout.size)
        remaining = Signal(range(self._n_bytes + 1))

        m.d.comb += self.bytes.data.eq(shreg[:8])

        with m.If(remaining == 0):
            m.d.comb += self.word.ready.eq(1)
            with m.If(self.word.valid):
                m.d.sync += [
                    shreg.eq(self.word.data),
                    remaining.eq(self._n_bytes),
                ]
        with m.Else():
            m.d.comb += self.bytes.valid.eq(1)
            with m.If(self.bytes.ready):
                m.d.sync += [
                    shreg.eq(shreg >> 8),
                    remaining.eq(remaining - 1),
                ]

        return m


class Unpacker(Component):
    """Collects bytes, least significant byte first, into one wide word."""
    def __init__(self, layout):
        self._layout = layout
        self._n_bytes = _byte_count(layout)

        super().__init__({
            "bytes": In(ByteStream),
            "word": Out(stream_signature(layout)),
        })

    def elaborate(self, platform):
        m = Module()

        shreg = Signal(self._layout.size)
        received = Signal(range(self._n_bytes + 1))

        m.d.comb += self.word.data.eq(shreg)

        with m.If(received == self._n_bytes):
            m.d.comb += self.word.valid.eq(1)
            with m.If(self.word.ready):
                m.d.sync += received.eq(0)
        with m.Else():
            m.d.comb += self.bytes.ready.eq(1)
            with m.If(self.bytes.valid):
                if self._n_bytes > 1:
                    m.d.sync += shreg.eq(Cat(shreg[8:], self.bytes.data))
                else:
                    m.d.sync += shreg.eq(self.bytes.data)
                m.d.sync += received.eq(received + 1)

        return m


class CommandEncoder(Component):
    """
    Re-frames a local transaction record into a foreign command.

    The 4 byte command is ``addr_low, addr_high, data, flags``, with ``is_write`` in bit 0
    of ``flags``. Local addresses narrower than the foreign one are zero-extended.
    """
    def __init__(self, address_width: int):
        if address_width > FOREIGN_ADDRESS_WIDTH:
            raise ValueError(f"Address width {address_width} does not fit the "
                             f"{FOREIGN_ADDRESS_WIDTH} bit foreign address")
        self._address_width = address_width

        super().__init__({
            "record": In(stream_signature(frame_record_layout(address_width))),
            "bytes": Out(ByteStream),
        })

    def elaborate(self, platform):
        m = Module()

        m.submodules.packer = packer = Packer(CommandBytes)
        wiring.connect(m, packer.bytes, wiring.flipped(self.bytes))

        m.d.comb += [
            packer.word.valid.eq(self.record.valid),
            self.record.ready.eq(packer.word.ready),

            packer.word.data.address.eq(self.record.data.address),
            packer.word.data.data.eq(self.record.data.data),
            packer.word.data.flags.is_write.eq(self.record.data.mode),
        ]

        return m


class CommandDecoder(Component):
    """Reassembles a foreign command into a transaction record with a 16 bit address."""
    bytes: In(ByteStream)
    record: Out(stream_signature(frame_record_layout(FOREIGN_ADDRESS_WIDTH)))

    def elaborate(self, platform):
        m = Module()

        m.submodules.unpacker = unpacker = Unpacker(CommandBytes)
        wiring.connect(m, wiring.flipped(self.bytes), unpacker.bytes)

        m.d.comb += [
            self.record.valid.eq(unpacker.word.valid),
            unpacker.word.ready.eq(self.record.ready),

            self.record.data.address.eq(unpacker.word.data.address),
            self.record.data.data.eq(unpacker.word.data.data),
            self.record.data.mode.eq(unpacker.word.data.flags.is_write),
        ]

        return m


class ResponseEncoder(Component):
    """Frames a read result as the 2 byte foreign response ``data, flags``."""
    response: In(stream_signature(ResponseRecord))
    bytes: Out(ByteStream)

    def elaborate(self, platform):
        m = Module()

        m.submodules.packer = packer = Packer(ResponseBytes)
        wiring.connect(m, packer.bytes, wiring.flipped(self.bytes))

        m.d.comb += [
            packer.word.valid.eq(self.response.valid),
            self.response.ready.eq(packer.word.ready),

            packer.word.data.data.eq(self.response.data.data),
            packer.word.data.flags.error.eq(self.response.data.error),
        ]

        return m


class ResponseDecoder(Component):
    """Turns a 2 byte foreign response into a single read result once both bytes arrived."""
    bytes: In(ByteStream)
    response: Out(stream_signature(ResponseRecord))

    def elaborate(self, platform):
        m = Module()

        m.submodules.unpacker = unpacker = Unpacker(ResponseBytes)
        wiring.connect(m, wiring.flipped(self.bytes), unpacker.bytes)

        m.d.comb += [
            self.response.valid.eq(unpacker.word.valid),
            unpacker.word.ready.eq(self.response.ready),

            self.response.data.data.eq(unpacker.word.data.data),
            self.response.data.error.eq(unpacker.word.data.flags.error),
        ]

        return m
