from amaranth import *
from amaranth.lib.wiring import Component, In, Out
from .params import BusParams
from .types import SerialField, SELECTOR_ORDER


__all__ = ["AddressDecoder"]


class AddressDecoder(Component):
    """
    Device selector decoder.

    Collects the selector bits at the head of a transaction and acknowledges it only if the
    selector belongs to a slave that is currently ready. Once acknowledged, ``target`` and
    ``connected`` route the bus to that slave until the arbiter goes idle, or until the
    slave splits the transaction.

    The target of a split transaction is remembered, and routing to it is restored on the
    arbiter's ``split_grant`` pulse, without the master sending the selector again.
    """
    def __init__(self, params: BusParams, selectors):
        selectors = tuple(selectors)
        if not selectors:
            raise ValueError("At least one slave selector is required")
        if len(set(selectors)) != len(selectors):
            raise ValueError(f"Slave selectors must be unique, not {selectors!r}")
        for selector in selectors:
            if selector < 0 or selector >> params.selector_width:
                raise ValueError(f"Selector {selector!r} does not fit in {params.selector_width} bits")

        self._params = params
        self._selectors = selectors

        super().__init__({
            "wdata": In(1),
            "mvalid": In(1),
            "busy": In(1),
            "split": In(1),
            "split_grant": In(1),
            "ready": In(len(selectors)),

            "ack": Out(1),
            "target": Out(range(len(selectors))),
            "connected": Out(1),
        })

    def elaborate(self, platform):
        m = Module()

        width = self._params.selector_width
        selector = SerialField(width, SELECTOR_ORDER, name="selector")
        count = Signal(range(width + 1))
        split_target = Signal.like(self.target)

        with m.FSM():
            with m.State("IDLE"):
                with m.If(self.split_grant):
                    m.d.sync += self.target.eq(split_target)
                    m.next = "CONNECT"
                with m.Elif(self.mvalid):
                    m.d.sync += [
                        selector.shift_in(self.wdata),
                        count.eq(1),
                    ]
                    if width == 1:
                        m.next = "CHECK"
                    else:
                        m.next = "RECEIVE_SELECTOR"
            with m.State("RECEIVE_SELECTOR"):
                with m.If(self.mvalid):
                    m.d.sync += [
                        selector.shift_in(self.wdata),
                        count.eq(count + 1),
                    ]
                    with m.If(count == width - 1):
                        m.next = "CHECK"
            with m.State("CHECK"):
                with m.Switch(selector.reg):
                    for index, value in enumerate(self._selectors):
                        with m.Case(value):
                            m.d.comb += self.ack.eq(self.ready[index])
                            m.d.sync += self.target.eq(index)
                with m.If(self.ack):
                    m.next = "CONNECT"
                with m.Else():
                    m.next = "IDLE"
            with m.State("CONNECT"):
                m.d.comb += self.connected.eq(1)
                with m.If(self.split):
                    m.d.sync += split_target.eq(self.target)
                    m.next = "IDLE"
                with m.Elif(~self.busy):
                    m.next = "IDLE"

        return m
