from amaranth import *
from amaranth.lib.cdc import FFSynchronizer
from amaranth.lib.wiring import Component, In, Out
from .types import ByteStream


__all__ = ["ByteLink"]


class ByteLink(Component):
    """
    Asynchronous serial byte transport, 8 data bits, no parity, 1 stop bit.

    Both directions are streams. A byte is taken from ``tx`` only while the transmitter is
    idle, i.e. after the stop bit of the previous frame has been fully sent. A received byte
    stays valid on ``rx`` until it is acknowledged with ``rx.ready``.

    :param bit_cyc:
        Bit time, expressed as a multiple of clock periods. Both ends of a link must agree
        on the bit time in absolute terms; a mismatch is not detected.

    :attr tx_o:
        Serial output, high while idle.
    :attr rx_i:
        Serial input. Passed through a synchronizer, so it may come from another clock domain.
    :attr tx_busy:
        Active from the start bit to the end of the stop bit.
    :attr rx_ferr:
        Active for one cycle when a frame without a valid stop bit was dropped.
    :attr rx_ovf:
        Active for one cycle when a start bit arrived before the previous byte was acknowledged.
        The unacknowledged byte is dropped.
    """
    def __init__(self, bit_cyc: int, data_bits: int = 8):
        if bit_cyc < 2:
            raise ValueError(f"Bit time must be at least 2 cycles, not {bit_cyc!r}")
        if data_bits != 8:
            raise ValueError(f"Only 8 data bits are supported, not {data_bits!r}")

        self._bit_cyc = bit_cyc
        self._data_bits = data_bits

        super().__init__({
            "tx": In(ByteStream),
            "rx": Out(ByteStream),
            "tx_o": Out(1, init=1),
            "rx_i": In(1, init=1),
            "tx_busy": Out(1),
            "rx_ferr": Out(1),
            "rx_ovf": Out(1),
        })

    def elaborate(self, platform):
        m = Module()

        rx_i = Signal(init=1)
        m.submodules.rx_sync = FFSynchronizer(self.rx_i, rx_i, init=1)

        rx_start = Signal()
        rx_timer = Signal(range(self._bit_cyc))
        rx_stb = Signal()
        rx_shreg = Signal(self._data_bits)
        rx_bitno = Signal(range(self._data_bits))

        # Sample in the middle of each bit, counting from the falling edge of the start bit.
        with m.If(rx_start):
            m.d.sync += rx_timer.eq(self._bit_cyc >> 1)
        with m.Elif(rx_timer == 0):
            m.d.sync += rx_timer.eq(self._bit_cyc - 1)
        with m.Else():
            m.d.sync += rx_timer.eq(rx_timer - 1)
        m.d.comb += rx_stb.eq(rx_timer == 0)

        with m.FSM(name="rx_fsm"):
            with m.State("IDLE"):
                with m.If(~rx_i):
                    m.d.comb += rx_start.eq(1)
                    m.next = "START"
            with m.State("START"):
                with m.If(rx_stb):
                    m.next = "DATA"
            with m.State("DATA"):
                with m.If(rx_stb):
                    m.d.sync += [
                        rx_shreg.eq(Cat(rx_shreg[1:], rx_i)),
                        rx_bitno.eq(rx_bitno + 1),
                    ]
                    with m.If(rx_bitno == self._data_bits - 1):
                        m.next = "STOP"
            with m.State("STOP"):
                with m.If(rx_stb):
                    with m.If(~rx_i):
                        m.d.comb += self.rx_ferr.eq(1)
                        m.next = "IDLE"
                    with m.Else():
                        m.d.sync += self.rx.data.eq(rx_shreg)
                        m.next = "READY"
            with m.State("READY"):
                m.d.comb += self.rx.valid.eq(1)
                with m.If(self.rx.ready):
                    m.next = "IDLE"
                with m.Elif(~rx_i):
                    m.d.comb += [
                        self.rx_ovf.eq(1),
                        rx_start.eq(1),
                    ]
                    m.next = "START"

        ###

        tx_start = Signal()
        tx_timer = Signal(range(self._bit_cyc))
        tx_stb = Signal()
        tx_shreg = Signal(self._data_bits)
        tx_bitno = Signal(range(self._data_bits))

        with m.If(tx_start | (tx_timer == 0)):
            m.d.sync += tx_timer.eq(self._bit_cyc - 1)
        with m.Else():
            m.d.sync += tx_timer.eq(tx_timer - 1)
        m.d.comb += tx_stb.eq(tx_timer == 0)

        with m.FSM(name="tx_fsm"):
            with m.State("IDLE"):
                m.d.comb += self.tx.ready.eq(1)
                with m.If(self.tx.valid):
                    m.d.comb += tx_start.eq(1)
                    m.d.sync += [
                        tx_shreg.eq(self.tx.data),
                        self.tx_o.eq(0),
                    ]
                    m.next = "START"
                with m.Else():
                    m.d.sync += self.tx_o.eq(1)
            with m.State("START"):
                m.d.comb += self.tx_busy.eq(1)
                with m.If(tx_stb):
                    m.d.sync += [
                        self.tx_o.eq(tx_shreg[0]),
                        tx_shreg.eq(tx_shreg >> 1),
                    ]
                    m.next = "DATA"
            with m.State("DATA"):
                m.d.comb += self.tx_busy.eq(1)
                with m.If(tx_stb):
                    m.d.sync += tx_bitno.eq(tx_bitno + 1)
                    with m.If(tx_bitno != self._data_bits - 1):
                        m.d.sync += [
                            self.tx_o.eq(tx_shreg[0]),
                            tx_shreg.eq(tx_shreg >> 1),
                        ]
                    with m.Else():
                        m.d.sync += self.tx_o.eq(1)
                        m.next = "STOP"
            with m.State("STOP"):
                m.d.comb += self.tx_busy.eq(1)
                with m.If(tx_stb):
                    m.next = "IDLE"

        return m
