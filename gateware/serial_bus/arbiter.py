from amaranth import *
from amaranth.lib.wiring import Component, In, Out


__all__ = ["Arbiter"]


class Arbiter(Component):
    """
    Fixed priority bus arbiter with split transaction ownership.

    Master 0 has the highest priority. A grant is held until the master drops its request,
    or until the split-capable slave asserts ``split_req``; in the latter case the master is
    parked as the split owner and the bus is free for the other masters. The owner is not
    granted again until ``split_req`` deasserts, at which point it is re-granted ahead of any
    other request together with a one cycle ``split_grant`` pulse.
    """
    def __init__(self, n_masters: int):
        if n_masters < 1:
            raise ValueError(f"At least one master is required, not {n_masters!r}")
        self._n_masters = n_masters

        super().__init__({
            "request": In(n_masters),
            "grant": Out(n_masters),
            "busy": Out(1),
            "split_req": In(1),
            "split_grant": Out(1),
            "split_owner": Out(range(n_masters)),
            "split_active": Out(1),
        })

    def elaborate(self, platform):
        m = Module()

        owner = Signal(range(self._n_masters))

        # Only one split may be outstanding; while it is, the owner's requests are ignored.
        parked = Signal(self._n_masters)
        masked = Signal(self._n_masters)
        m.d.comb += [
            parked.eq(Mux(self.split_active, 1 << self.split_owner, 0)),
            masked.eq(self.request & ~parked),
        ]

        m.d.sync += self.split_grant.eq(0)

        with m.FSM():
            with m.State("IDLE"):
                with m.If(self.split_active & ~self.split_req):
                    m.d.sync += [
                        owner.eq(self.split_owner),
                        self.split_active.eq(0),
                        self.split_grant.eq(1),
                    ]
                    m.next = "GRANTED"
                with m.Elif(masked.any()):
                    for i in reversed(range(self._n_masters)):
                        with m.If(masked[i]):
                            m.d.sync += owner.eq(i)
                    m.next = "GRANTED"
            with m.State("GRANTED"):
                m.d.comb += [
                    self.busy.eq(1),
                    self.grant.eq(1 << owner),
                ]
                with m.If(self.split_req & ~self.split_active):
                    m.d.sync += [
                        self.split_owner.eq(owner),
                        self.split_active.eq(1),
                    ]
                    m.next = "IDLE"
                with m.Elif(~self.request.bit_select(owner, 1)):
                    m.next = "IDLE"

        return m
