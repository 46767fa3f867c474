from amaranth import *
from amaranth.lib import wiring
from amaranth.lib.wiring import Component, In, Out
from .params import BusParams, SlaveParams
from .storage import Storage
from .types import SlaveBus, SerialField, OFFSET_ORDER, DATA_ORDER, storage_signature


__all__ = ["SlavePort", "Slave"]


class SlavePort(Component):
    """
    Slave transaction engine.

    Receives the memory offset (LSB first, mode latched with the first bit) while ``mvalid``
    is asserted. Writes then receive 8 data bits and issue a single-cycle write to ``mem``
    once ``mem.ready``. Reads issue ``mem.re`` and send the result back LSB first, two cycles
    per bit: the bit is put on ``rdata`` with ``svalid`` low, then held for another cycle
    with ``svalid`` high.

    A split-capable port is always ready in idle, whatever the state of ``mem``. It answers
    reads by asserting ``split`` for at least ``params.split_latency`` cycles and until the
    read data is back, and then waits for ``split_grant`` before sending it. A write that
    arrives while ``mem`` is not ready is split on its last data bit and held until ``mem``
    takes it. ``ready`` is low for the whole split, so it cannot be re-entered by another
    master.
    """
    def __init__(self, params: BusParams, mem_addr_width: int, *, split: bool = False):
        if mem_addr_width > params.offset_width:
            raise ValueError(f"Memory address width {mem_addr_width} is wider than the "
                             f"{params.offset_width} bit offset")

        self._params = params
        self._mem_addr_width = mem_addr_width
        self._split = split

        super().__init__({
            "bus": Out(SlaveBus),
            "mem": Out(storage_signature(mem_addr_width)),
        })

    def elaborate(self, platform):
        m = Module()

        params = self._params

        offset = SerialField(params.offset_width, OFFSET_ORDER, name="offset")
        data = SerialField(8, DATA_ORDER, name="data")
        mode = Signal()
        hold = Signal()
        count = Signal(range(max(params.offset_width, 8)))
        window = Signal(range(params.split_latency))

        m.d.comb += [
            self.mem.addr.eq(offset.reg[:self._mem_addr_width]),
            self.mem.wdata.eq(data.reg),
        ]

        with m.FSM():
            with m.State("IDLE"):
                if self._split:
                    m.d.comb += self.bus.ready.eq(1)
                else:
                    m.d.comb += self.bus.ready.eq(self.mem.ready)
                with m.If(self.bus.mvalid):
                    m.d.sync += [
                        mode.eq(self.bus.mode),
                        offset.shift_in(self.bus.wdata),
                        count.eq(1),
                    ]
                    m.next = "RECEIVE_ADDRESS"
            with m.State("RECEIVE_ADDRESS"):
                with m.If(self.bus.mvalid):
                    m.d.sync += [
                        offset.shift_in(self.bus.wdata),
                        count.eq(count + 1),
                    ]
                    with m.If(count == params.offset_width - 1):
                        m.d.sync += count.eq(0)
                        with m.If(mode):
                            m.next = "RECEIVE_DATA"
                        with m.Else():
                            m.next = "READ"
            with m.State("RECEIVE_DATA"):
                with m.If(self.bus.mvalid):
                    m.d.sync += [
                        data.shift_in(self.bus.wdata),
                        count.eq(count + 1),
                    ]
                    with m.If(count == 7):
                        m.next = "WRITE"
                if self._split:
                    with m.If(self.bus.mvalid & (count == 7) & ~self.mem.ready):
                        m.d.comb += self.bus.split.eq(1)
                        m.d.sync += window.eq(params.split_latency - 2)
                        m.next = "WRITE_SPLIT"
            with m.State("WRITE"):
                # Address and data are already stable, so the write enable goes out with them.
                m.d.comb += self.mem.we.eq(self.mem.ready)
                with m.If(self.mem.ready):
                    m.next = "IDLE"

            if self._split:
                self._elaborate_split(m, mode, data, window)
            else:
                with m.State("READ"):
                    m.d.comb += self.mem.re.eq(1)
                    m.next = "READ_WAIT"
                with m.State("READ_WAIT"):
                    with m.If(self.mem.rvalid):
                        m.d.sync += data.load(self.mem.rdata)
                        m.next = "SEND_DATA"

            with m.State("SEND_DATA"):
                m.d.comb += [
                    self.bus.rdata.eq(data.head()),
                    self.bus.svalid.eq(hold),
                ]
                m.d.sync += hold.eq(~hold)
                with m.If(hold):
                    m.d.sync += [
                        data.shift_out(),
                        count.eq(count + 1),
                    ]
                    with m.If(count == 7):
                        m.next = "IDLE"

        return m

    def _elaborate_split(self, m, mode, data, window):
        issued = Signal()
        captured = Signal()

        with m.State("WRITE_SPLIT"):
            m.d.comb += self.bus.split.eq(1)
            with m.If(window != 0):
                m.d.sync += window.eq(window - 1)
            with m.Elif(self.mem.ready):
                m.d.comb += self.mem.we.eq(1)
                m.next = "AWAIT_GRANT"

        with m.State("READ"):
            m.d.comb += self.bus.split.eq(1)
            with m.If(self.mem.ready):
                m.d.comb += self.mem.re.eq(1)
                m.d.sync += [
                    window.eq(self._params.split_latency - 2),
                    issued.eq(1),
                    captured.eq(0),
                ]
                m.next = "SPLIT_WAIT"
        with m.State("SPLIT_WAIT"):
            m.d.comb += self.bus.split.eq(1)
            with m.If(window != 0):
                m.d.sync += window.eq(window - 1)
            with m.If(self.mem.rvalid & issued):
                m.d.sync += [
                    data.load(self.mem.rdata),
                    captured.eq(1),
                    issued.eq(0),
                ]
            with m.If((window == 0) & (captured | (self.mem.rvalid & issued))):
                m.next = "AWAIT_GRANT"
        with m.State("AWAIT_GRANT"):
            with m.If(self.bus.split_grant):
                with m.If(mode):
                    m.next = "IDLE"
                with m.Else():
                    m.next = "SEND_DATA"


class Slave(Component):
    """Slave port with its own block RAM."""
    def __init__(self, params: BusParams, slave: SlaveParams, *, init=()):
        slave.check(params)

        self._params = params
        self._slave = slave
        self._init = init

        super().__init__({
            "bus": Out(SlaveBus),
        })

    def elaborate(self, platform):
        m = Module()

        m.submodules.port = port = SlavePort(self._params, self._slave.mem_addr_width,
                                             split=self._slave.split)
        m.submodules.storage = storage = Storage(self._slave.mem_addr_width,
                                                 read_latency=self._slave.read_latency,
                                                 init=self._init)

        wiring.connect(m, wiring.flipped(self.bus), port.bus)
        wiring.connect(m, port.mem, storage.port)

        return m
