from amaranth import *
from amaranth.lib.wiring import Component, In
from .arbiter import Arbiter
from .decoder import AddressDecoder
from .params import BusParams
from .types import MasterBus, SlaveBus


__all__ = ["Bus"]


class Bus(Component):
    """
    Shared serial bus fabric for ``n_masters`` masters and one slave per selector.

    The granted master's wires are forwarded to every slave, with ``mvalid`` only going to
    the slave selected by the decoder. The selected slave's wires come back to the granted
    master; all other masters see an idle bus. At most one slave, ``split_slave``, may be
    split-capable.
    """
    def __init__(self, params: BusParams, *, n_masters: int, selectors, split_slave=None):
        selectors = tuple(selectors)
        if split_slave is not None and split_slave not in range(len(selectors)):
            raise ValueError(f"Split slave must be an index into {len(selectors)} slaves, "
                             f"not {split_slave!r}")

        self._split_slave = split_slave

        self.arbiter = Arbiter(n_masters)
        self.decoder = AddressDecoder(params, selectors)

        super().__init__({
            "masters": In(MasterBus).array(n_masters),
            "slaves": In(SlaveBus).array(len(selectors)),
        })

    def elaborate(self, platform):
        m = Module()

        m.submodules.arbiter = arbiter = self.arbiter
        m.submodules.decoder = decoder = self.decoder

        wdata = Signal()
        mode = Signal()
        mvalid = Signal()

        wdata_mux = 0
        mode_mux = 0
        mvalid_mux = 0
        for i, port in enumerate(self.masters):
            m.d.comb += arbiter.request[i].eq(port.breq)
            wdata_mux |= Mux(arbiter.grant[i], port.wdata, 0)
            mode_mux |= Mux(arbiter.grant[i], port.mode, 0)
            mvalid_mux |= Mux(arbiter.grant[i], port.mvalid, 0)

        m.d.comb += [
            wdata.eq(wdata_mux),
            mode.eq(mode_mux),
            mvalid.eq(mvalid_mux),

            decoder.wdata.eq(wdata),
            decoder.mvalid.eq(mvalid),
            decoder.busy.eq(arbiter.busy),
            decoder.split_grant.eq(arbiter.split_grant),
        ]

        rdata = Signal()
        svalid = Signal()
        split = Signal()

        for j, port in enumerate(self.slaves):
            selected = decoder.connected & (decoder.target == j)
            m.d.comb += [
                port.wdata.eq(wdata),
                port.mode.eq(mode),
                port.mvalid.eq(mvalid & selected),
                decoder.ready[j].eq(port.ready),
            ]
            with m.If(selected):
                m.d.comb += [
                    rdata.eq(port.rdata),
                    svalid.eq(port.svalid),
                    split.eq(port.split),
                ]
            if j == self._split_slave:
                m.d.comb += [
                    port.split_grant.eq(arbiter.split_grant),
                    arbiter.split_req.eq(port.split),
                ]

        m.d.comb += decoder.split.eq(split)

        for i, port in enumerate(self.masters):
            granted = arbiter.grant[i]
            m.d.comb += [
                port.bgrant.eq(granted),
                port.ack.eq(decoder.ack & granted),
                port.rdata.eq(rdata & granted),
                port.svalid.eq(svalid & granted),
                port.split.eq(split & granted),
                port.split_grant.eq(arbiter.split_grant & granted),
            ]

        return m
