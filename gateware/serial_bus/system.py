from amaranth import *
from amaranth.lib import wiring
from .bridge import BridgeMaster, BridgeSlave
from .interconnect import Bus
from .master import MasterPort
from .params import BusParams, DEFAULT_SLAVES
from .slave import Slave


__all__ = ["System", "DualSystem"]


class System(Elaboratable):
    """
    One bus with two device masters and one slave per ``slaves`` entry.

    With ``bridge=True`` the split-capable slave is replaced by a :class:`BridgeSlave`, and a
    :class:`BridgeMaster` is added as the lowest priority master. Their serial lines are left
    for the caller to connect.

    ``init`` maps slave indices to initial memory contents.
    """
    def __init__(self, params: BusParams = BusParams(), *, slaves=DEFAULT_SLAVES, bridge=False,
                 bit_cyc=8, init=None):
        slaves = tuple(slaves)
        init = dict(init or {})

        split_slaves = [index for index, slave in enumerate(slaves) if slave.split]
        if len(split_slaves) > 1:
            raise ValueError(f"At most one slave may be split capable, not {len(split_slaves)}")
        split_slave = split_slaves[0] if split_slaves else None
        if bridge and split_slave is None:
            raise ValueError("A bridged system needs a split capable slave to replace")
        for index in init:
            if index not in range(len(slaves)):
                raise ValueError(f"No slave with index {index!r} to initialize")

        self.params = params

        self.masters = [MasterPort(params) for _ in range(2)]
        self.devices = [master.device for master in self.masters]

        self.slaves = []
        self.bridge_master = None
        self.bridge_slave = None
        for index, slave in enumerate(slaves):
            if bridge and index == split_slave:
                if index in init:
                    raise ValueError(f"Bridged slave {index} has no memory to initialize")
                self.bridge_slave = BridgeSlave(params, bit_cyc=bit_cyc)
                self.slaves.append(self.bridge_slave)
            else:
                self.slaves.append(Slave(params, slave, init=init.get(index, ())))

        bus_masters = [master.bus for master in self.masters]
        if bridge:
            self.bridge_master = BridgeMaster(params, bit_cyc=bit_cyc)
            bus_masters.append(self.bridge_master.bus)
        self._bus_masters = bus_masters

        self.bus = Bus(params, n_masters=len(bus_masters),
                       selectors=[slave.selector for slave in slaves],
                       split_slave=split_slave)

    def ports(self):
        ports = []
        for device in self.devices:
            ports += [device.addr, device.wdata, device.mode, device.valid, device.rdata, device.ready]
        if self.bridge_slave is not None:
            ports += [self.bridge_slave.tx_o, self.bridge_slave.rx_i,
                      self.bridge_master.tx_o, self.bridge_master.rx_i]
        return ports

    def elaborate(self, platform):
        m = Module()

        m.submodules.bus = self.bus
        for index, master in enumerate(self.masters):
            m.submodules[f"master_{index}"] = master
        if self.bridge_master is not None:
            m.submodules.bridge_master = self.bridge_master
        for index, slave in enumerate(self.slaves):
            m.submodules[f"slave_{index}"] = slave

        for index, bus in enumerate(self._bus_masters):
            wiring.connect(m, bus, self.bus.masters[index])
        for index, slave in enumerate(self.slaves):
            wiring.connect(m, slave.bus, self.bus.slaves[index])

        return m


class DualSystem(Elaboratable):
    """
    Two bridged systems, each in its own clock domain, linked by two serial lines.

    The local system runs in ``sync``, the remote one in ``remote``. Each bridge slave talks to
    the other system's bridge master. Both ends must use the same bit time in absolute terms,
    e.g. 8 cycles of a 1 MHz clock on one side and 10 cycles of a 1.25 MHz clock on the other.
    """
    def __init__(self, params: BusParams = BusParams(), *, bit_cyc=8, remote_bit_cyc=None,
                 local_init=None, remote_init=None):
        if remote_bit_cyc is None:
            remote_bit_cyc = bit_cyc

        self.local = System(params, bridge=True, bit_cyc=bit_cyc, init=local_init)
        self.remote = System(params, bridge=True, bit_cyc=remote_bit_cyc, init=remote_init)

    def ports(self):
        ports = []
        for device in self.local.devices + self.remote.devices:
            ports += [device.addr, device.wdata, device.mode, device.valid, device.rdata, device.ready]
        return ports

    def elaborate(self, platform):
        m = Module()

        m.domains.remote = ClockDomain()

        m.submodules.local = self.local
        m.submodules.remote = DomainRenamer("remote")(self.remote)

        local, remote = self.local, self.remote
        m.d.comb += [
            remote.bridge_master.rx_i.eq(local.bridge_slave.tx_o),
            local.bridge_slave.rx_i.eq(remote.bridge_master.tx_o),

            local.bridge_master.rx_i.eq(remote.bridge_slave.tx_o),
            remote.bridge_slave.rx_i.eq(local.bridge_master.tx_o),
        ]

        return m
