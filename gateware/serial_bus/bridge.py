from amaranth import *
from amaranth.lib import wiring
from amaranth.lib.fifo import SyncFIFOBuffered
from amaranth.lib.wiring import Component, In, Out
from .codec import CommandEncoder, CommandDecoder, ResponseEncoder, ResponseDecoder
from .link import ByteLink
from .master import MasterPort
from .params import BusParams
from .slave import SlavePort
from .types import MasterBus, SlaveBus, frame_record_layout, FOREIGN_ADDRESS_WIDTH


__all__ = ["BridgeSlave", "BridgeMaster"]


class BridgeSlave(Component):
    """
    Split-capable slave that forwards every transaction over a byte link.

    Writes are posted: the command is queued and the master is released at once. If the
    queue is full, the write is split until the oldest command has gone out on the link.
    Reads are split on the local bus until the response from the other end of the link has
    arrived, so the bus stays free for the whole round trip.

    The full memory offset is sent as the foreign address, zero-extended to 16 bits.
    """
    def __init__(self, params: BusParams, *, bit_cyc: int, fifo_depth: int = 4):
        if fifo_depth < 2:
            raise ValueError(f"FIFO depth must be at least 2, not {fifo_depth!r}")

        self._params = params
        self._fifo_depth = fifo_depth

        self.port = SlavePort(params, params.offset_width, split=True)
        self.link = ByteLink(bit_cyc)

        super().__init__({
            "bus": Out(SlaveBus),
            "tx_o": Out(1, init=1),
            "rx_i": In(1, init=1),
        })

    def elaborate(self, platform):
        m = Module()

        m.submodules.port = port = self.port
        m.submodules.link = link = self.link

        layout = frame_record_layout(self._params.offset_width)
        m.submodules.fifo = fifo = SyncFIFOBuffered(width=layout.size, depth=self._fifo_depth)
        m.submodules.encoder = encoder = CommandEncoder(self._params.offset_width)
        m.submodules.decoder = decoder = ResponseDecoder()

        wiring.connect(m, wiring.flipped(self.bus), port.bus)
        m.d.comb += [
            self.tx_o.eq(link.tx_o),
            link.rx_i.eq(self.rx_i),
        ]

        record = Signal(layout)
        m.d.comb += [
            record.mode.eq(port.mem.we),
            record.address.eq(port.mem.addr),
            record.data.eq(port.mem.wdata),

            fifo.w_data.eq(record),
            fifo.w_en.eq(port.mem.we | port.mem.re),

            encoder.record.valid.eq(fifo.r_rdy),
            encoder.record.data.eq(fifo.r_data),
            fifo.r_en.eq(encoder.record.ready),
        ]

        wiring.connect(m, encoder.bytes, link.tx)
        wiring.connect(m, link.rx, decoder.bytes)

        # Responses only ever answer reads; one read is outstanding at most.
        pending_read = Signal()
        with m.If(port.mem.re):
            m.d.sync += pending_read.eq(1)
        with m.Elif(decoder.response.valid):
            m.d.sync += pending_read.eq(0)

        m.d.comb += [
            decoder.response.ready.eq(1),

            port.mem.rdata.eq(decoder.response.data.data),
            port.mem.rvalid.eq(decoder.response.valid & pending_read),
            port.mem.ready.eq(fifo.w_rdy),
        ]

        return m


class BridgeMaster(Component):
    """
    Master that executes commands received over a byte link on the local bus.

    Received bytes are buffered, so a command may arrive while the previous one is still
    on the bus. Every read is answered with a response; writes are not answered.

    Commands whose 16 bit address does not fit the local address width are rejected: they
    are not issued on the bus, and reads are answered with data 0 and the error flag set.
    Reads that are not acknowledged on the local bus are answered with data 0 and the error
    flag set as well.
    """
    def __init__(self, params: BusParams, *, bit_cyc: int, fifo_depth: int = 8):
        if fifo_depth < 4:
            raise ValueError(f"FIFO depth must hold at least one 4 byte command, not {fifo_depth!r}")

        self._params = params
        self._fifo_depth = fifo_depth

        self.port = MasterPort(params)
        self.link = ByteLink(bit_cyc)

        super().__init__({
            "bus": Out(MasterBus),
            "tx_o": Out(1, init=1),
            "rx_i": In(1, init=1),
        })

    def elaborate(self, platform):
        m = Module()

        m.submodules.port = port = self.port
        m.submodules.link = link = self.link
        m.submodules.fifo = fifo = SyncFIFOBuffered(width=8, depth=self._fifo_depth)
        m.submodules.decoder = decoder = CommandDecoder()
        m.submodules.encoder = encoder = ResponseEncoder()

        wiring.connect(m, port.bus, wiring.flipped(self.bus))
        m.d.comb += [
            self.tx_o.eq(link.tx_o),
            link.rx_i.eq(self.rx_i),

            fifo.w_data.eq(link.rx.data),
            fifo.w_en.eq(link.rx.valid),
            link.rx.ready.eq(fifo.w_rdy),

            decoder.bytes.valid.eq(fifo.r_rdy),
            decoder.bytes.data.eq(fifo.r_data),
            fifo.r_en.eq(decoder.bytes.ready),
        ]

        wiring.connect(m, encoder.bytes, link.tx)

        address_width = self._params.address_width
        command = decoder.record
        if address_width < FOREIGN_ADDRESS_WIDTH:
            fits = command.data.address[address_width:] == 0
        else:
            fits = C(1)

        is_write = Signal()
        acked = Signal()
        rdata = Signal(8)
        error = Signal()

        m.d.comb += [
            port.device.addr.eq(command.data.address[:address_width]),
            port.device.wdata.eq(command.data.data),
            port.device.mode.eq(command.data.mode),

            encoder.response.data.data.eq(rdata),
            encoder.response.data.error.eq(error),
        ]

        with m.FSM():
            with m.State("IDLE"):
                with m.If(command.valid & ~fits):
                    m.d.comb += command.ready.eq(1)
                    with m.If(~command.data.mode):
                        m.d.sync += [
                            rdata.eq(0),
                            error.eq(1),
                        ]
                        m.next = "RESPOND"
                with m.Elif(command.valid & port.device.ready):
                    m.d.comb += [
                        command.ready.eq(1),
                        port.device.valid.eq(1),
                    ]
                    m.d.sync += [
                        is_write.eq(command.data.mode),
                        acked.eq(0),
                    ]
                    m.next = "BUSY"
            with m.State("BUSY"):
                with m.If(self.bus.ack):
                    m.d.sync += acked.eq(1)
                with m.If(port.device.ready):
                    with m.If(is_write):
                        m.next = "IDLE"
                    with m.Else():
                        m.d.sync += [
                            rdata.eq(Mux(acked, port.device.rdata, 0)),
                            error.eq(~acked),
                        ]
                        m.next = "RESPOND"
            with m.State("RESPOND"):
                m.d.comb += encoder.response.valid.eq(1)
                with m.If(encoder.response.ready):
                    m.next = "IDLE"

        return m
