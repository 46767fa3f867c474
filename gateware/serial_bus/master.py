from amaranth import *
from amaranth.lib.wiring import Component, In, Out
from .params import BusParams
from .types import MasterBus, SerialField, SELECTOR_ORDER, OFFSET_ORDER, DATA_ORDER, device_signature


__all__ = ["MasterPort"]


class MasterPort(Component):
    """
    Master transaction engine.

    Accepts one transaction from the device while ``device.ready``, then requests the bus,
    sends the device selector (MSB first), waits for the decoder's ack, sends the memory
    offset (LSB first) and either sends the write data (LSB first, after one setup cycle) or
    receives the read data (LSB first, one bit per ``svalid`` pulse).

    If no ack arrives within ``params.ack_timeout`` cycles the transaction is dropped and the
    port becomes ready again. If the slave splits a read, the port releases the bus, requests
    it again, and continues receiving where it left off once the arbiter resumes it. A slave
    that cannot take a write yet splits it on the last data bit; the write is complete once
    the arbiter resumes the port.
    """
    def __init__(self, params: BusParams = BusParams()):
        self._params = params

        super().__init__({
            "device": In(device_signature(params.address_width)),
            "bus": Out(MasterBus),
        })

    def elaborate(self, platform):
        m = Module()

        params = self._params

        selector = SerialField(params.selector_width, SELECTOR_ORDER, name="selector")
        offset = SerialField(params.offset_width, OFFSET_ORDER, name="offset")
        wdata = SerialField(8, DATA_ORDER, name="wdata")
        rdata = SerialField(8, DATA_ORDER, name="rdata")
        mode = Signal()
        setup = Signal()

        count = Signal(range(max(params.selector_width, params.offset_width, 8)))
        timeout = Signal(range(params.ack_timeout))

        m.d.comb += [
            self.device.rdata.eq(rdata.reg),
            self.bus.mode.eq(mode),
        ]

        with m.FSM():
            with m.State("IDLE"):
                m.d.comb += self.device.ready.eq(1)
                with m.If(self.device.valid):
                    m.d.sync += [
                        selector.load(self.device.addr[params.offset_width:]),
                        offset.load(self.device.addr[:params.offset_width]),
                        wdata.load(self.device.wdata),
                        mode.eq(self.device.mode),
                    ]
                    m.next = "REQUEST"
            with m.State("REQUEST"):
                m.d.comb += self.bus.breq.eq(1)
                with m.If(self.bus.bgrant):
                    m.d.sync += count.eq(0)
                    m.next = "SEND_SELECTOR"
            with m.State("SEND_SELECTOR"):
                m.d.comb += [
                    self.bus.breq.eq(1),
                    self.bus.mvalid.eq(1),
                    self.bus.wdata.eq(selector.head()),
                ]
                m.d.sync += [
                    selector.shift_out(),
                    count.eq(count + 1),
                ]
                with m.If(count == params.selector_width - 1):
                    m.d.sync += timeout.eq(0)
                    m.next = "AWAIT_ACK"
            with m.State("AWAIT_ACK"):
                m.d.comb += self.bus.breq.eq(1)
                with m.If(self.bus.ack):
                    m.d.sync += count.eq(0)
                    m.next = "SEND_ADDRESS"
                with m.Elif(timeout == params.ack_timeout - 1):
                    m.next = "IDLE"
                with m.Else():
                    m.d.sync += timeout.eq(timeout + 1)
            with m.State("SEND_ADDRESS"):
                m.d.comb += [
                    self.bus.breq.eq(1),
                    self.bus.mvalid.eq(1),
                    self.bus.wdata.eq(offset.head()),
                ]
                m.d.sync += [
                    offset.shift_out(),
                    count.eq(count + 1),
                ]
                with m.If(count == params.offset_width - 1):
                    m.d.sync += count.eq(0)
                    with m.If(mode):
                        m.d.sync += setup.eq(1)
                        m.next = "SEND_DATA"
                    with m.Else():
                        m.next = "RECEIVE_DATA"
            with m.State("SEND_DATA"):
                m.d.comb += [
                    self.bus.breq.eq(1),
                    self.bus.wdata.eq(wdata.head()),
                ]
                # One setup cycle without data between the address and the data.
                with m.If(setup):
                    m.d.sync += setup.eq(0)
                with m.Else():
                    m.d.comb += self.bus.mvalid.eq(1)
                    m.d.sync += [
                        wdata.shift_out(),
                        count.eq(count + 1),
                    ]
                    with m.If(count == 7):
                        with m.If(self.bus.split):
                            m.next = "SPLIT"
                        with m.Else():
                            m.next = "IDLE"
            with m.State("RECEIVE_DATA"):
                m.d.comb += self.bus.breq.eq(1)
                with m.If(self.bus.split):
                    m.next = "SPLIT"
                with m.Elif(self.bus.svalid):
                    m.d.sync += [
                        rdata.shift_in(self.bus.rdata),
                        count.eq(count + 1),
                    ]
                    with m.If(count == 7):
                        m.next = "IDLE"
            with m.State("SPLIT"):
                # Bus request is dropped for one cycle, then raised again to be resumed.
                m.next = "AWAIT_RESUME"
            with m.State("AWAIT_RESUME"):
                m.d.comb += self.bus.breq.eq(1)
                with m.If(self.bus.bgrant & self.bus.split_grant):
                    with m.If(mode):
                        m.next = "IDLE"
                    with m.Else():
                        m.next = "RECEIVE_DATA"

        return m
