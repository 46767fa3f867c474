from enum import Enum

from amaranth import *
from amaranth.lib.data import StructLayout
from amaranth.lib.wiring import In, Out, Signature


__all__ = [
    "BitOrder", "SerialField", "SELECTOR_ORDER", "OFFSET_ORDER", "DATA_ORDER",
    "MasterBus", "SlaveBus", "device_signature", "storage_signature", "stream_signature", "ByteStream",
    "FOREIGN_ADDRESS_WIDTH", "frame_record_layout", "CommandFlags", "CommandBytes",
    "ResponseRecord", "ResponseFlags", "ResponseBytes",
]


class BitOrder(Enum):
    MSB_FIRST = "msb_first"
    LSB_FIRST = "lsb_first"


class SerialField:
    """Shift register for one field of a serial transaction.

    The bit order is fixed per field, so the sending and receiving ends of a field
    agree by construction instead of by matching up bit indices.
    """
    def __init__(self, width: int, order: BitOrder, *, name=None):
        if not isinstance(order, BitOrder):
            raise TypeError(f"Bit order must be a BitOrder, not {order!r}")
        self.order = order
        self.reg = Signal(width, name=name)

    def __len__(self):
        return len(self.reg)

    def load(self, value):
        return self.reg.eq(value)

    def head(self):
        """The bit that goes on the wire next."""
        if self.order is BitOrder.MSB_FIRST:
            return self.reg[-1]
        return self.reg[0]

    def shift_out(self):
        if self.order is BitOrder.MSB_FIRST:
            return self.reg.eq(self.reg << 1)
        return self.reg.eq(self.reg >> 1)

    def shift_in(self, bit):
        if self.order is BitOrder.MSB_FIRST:
            return self.reg.eq(Cat(bit, self.reg[:-1]))
        return self.reg.eq(Cat(self.reg[1:], bit))


SELECTOR_ORDER = BitOrder.MSB_FIRST
OFFSET_ORDER = BitOrder.LSB_FIRST
DATA_ORDER = BitOrder.LSB_FIRST


# Seen from the master; the bus uses the flipped form.
MasterBus = Signature({
    "wdata": Out(1),        # serial data towards the slave
    "mode": Out(1),         # 1 = write
    "mvalid": Out(1),       # `wdata`/`mode` carry a bit this cycle
    "breq": Out(1),

    "rdata": In(1),         # serial data from the slave
    "svalid": In(1),        # `rdata` is stable and should be sampled this cycle
    "bgrant": In(1),
    "ack": In(1),
    "split": In(1),
    "split_grant": In(1),
})


# Seen from the slave; the bus uses the flipped form.
SlaveBus = Signature({
    "wdata": In(1),
    "mode": In(1),
    "mvalid": In(1),        # only driven for the slave currently selected by the decoder
    "split_grant": In(1),

    "rdata": Out(1),
    "svalid": Out(1),
    "ready": Out(1),        # can accept a new transaction
    "split": Out(1),
})


def device_signature(address_width):
    # Seen from the device; master ports use the flipped form.
    return Signature({
        "addr": Out(address_width),
        "wdata": Out(8),
        "mode": Out(1),
        "valid": Out(1),    # assert for one cycle while `ready` to submit
        "rdata": In(8),
        "ready": In(1),
    })


def storage_signature(addr_width):
    # Seen from the slave port; storage uses the flipped form.
    return Signature({
        "we": Out(1),       # `addr` and `wdata` are valid in the same cycle
        "re": Out(1),
        "addr": Out(addr_width),
        "wdata": Out(8),
        "rdata": In(8),
        "rvalid": In(1),    # a fixed number of cycles after `re`
        "ready": In(1),
    })


def stream_signature(shape):
    return Signature({
        "valid": Out(1),
        "ready": In(1),
        "data": Out(shape),
    })


ByteStream = stream_signature(8)


FOREIGN_ADDRESS_WIDTH = 16


def frame_record_layout(address_width):
    return StructLayout({
        "mode": 1,
        "address": address_width,
        "data": 8,
    })


CommandFlags = StructLayout({
    "is_write": 1,
    "reserved": 7,
})


# Transmitted in field order, low byte first: addr_low, addr_high, data, flags.
CommandBytes = StructLayout({
    "address": FOREIGN_ADDRESS_WIDTH,
    "data": 8,
    "flags": CommandFlags,
})


ResponseRecord = StructLayout({
    "data": 8,
    "error": 1,
})


ResponseFlags = StructLayout({
    "error": 1,
    "reserved": 7,
})


# Transmitted as data, flags.
ResponseBytes = StructLayout({
    "data": 8,
    "flags": ResponseFlags,
})
