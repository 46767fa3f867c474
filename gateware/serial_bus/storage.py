from amaranth import *
from amaranth.lib.memory import Memory
from amaranth.lib.wiring import Component, In
from .types import storage_signature


__all__ = ["Storage"]


class Storage(Component):
    """
    Byte-addressed block RAM behind a slave port.

    ``rvalid`` asserts ``read_latency`` cycles after ``re``, together with ``rdata``. Writes
    take effect at the end of the cycle ``we`` is asserted in.
    """
    def __init__(self, addr_width: int, *, read_latency: int = 1, init=()):
        if read_latency not in (1, 2):
            raise ValueError(f"Read latency must be 1 or 2 cycles, not {read_latency!r}")
        if len(init) > 2 ** addr_width:
            raise ValueError(f"Initial contents of {len(init)} bytes do not fit in {2 ** addr_width} bytes")

        self._addr_width = addr_width
        self._read_latency = read_latency
        self._init = list(init)

        super().__init__({
            "port": In(storage_signature(addr_width)),
        })

    def elaborate(self, platform):
        m = Module()

        m.submodules.mem = mem = Memory(shape=unsigned(8), depth=2 ** self._addr_width, init=self._init)
        wp = mem.write_port()
        rp = mem.read_port()

        m.d.comb += [
            self.port.ready.eq(1),

            wp.addr.eq(self.port.addr),
            wp.data.eq(self.port.wdata),
            wp.en.eq(self.port.we),

            rp.addr.eq(self.port.addr),
            rp.en.eq(self.port.re),
        ]

        s1_valid = Signal()
        m.d.sync += s1_valid.eq(self.port.re)

        if self._read_latency == 1:
            m.d.comb += [
                self.port.rdata.eq(rp.data),
                self.port.rvalid.eq(s1_valid),
            ]
        else:
            s2_data = Signal(8)
            s2_valid = Signal()
            m.d.sync += [
                s2_data.eq(rp.data),
                s2_valid.eq(s1_valid),
            ]
            m.d.comb += [
                self.port.rdata.eq(s2_data),
                self.port.rvalid.eq(s2_valid),
            ]

        return m
