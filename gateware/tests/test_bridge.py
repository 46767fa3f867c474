from amaranth import *
from amaranth.sim import Simulator
from serial_bus.bridge import BridgeMaster
from serial_bus.link import ByteLink
from serial_bus.params import BusParams
from serial_bus.sim import device_read, device_write, stream_get, stream_put
from serial_bus.system import DualSystem
import unittest


BIT_CYC = 8
# 8 us per bit on both sides.
LOCAL_PERIOD, LOCAL_BIT_CYC = 1e-6, 8
REMOTE_PERIOD, REMOTE_BIT_CYC = 0.8e-6, 10

LINK_TIMEOUT = 5000

PARAMS = BusParams()


def addr(selector, offset):
    return PARAMS.address(selector, offset)


class BridgeMasterHarness(Elaboratable):
    def __init__(self, params):
        self.host = ByteLink(BIT_CYC)
        self.bridge = BridgeMaster(params, bit_cyc=BIT_CYC)

    def elaborate(self, platform):
        m = Module()
        m.submodules.host = self.host
        m.submodules.bridge = self.bridge
        m.d.comb += [
            self.bridge.rx_i.eq(self.host.tx_o),
            self.host.rx_i.eq(self.bridge.tx_o),
        ]
        return m


class BridgeMasterTests(unittest.TestCase):
    def test_narrowing_rejected(self):
        # 14 bit local addresses; anything with bits 14 or 15 set does not fit.
        dut = BridgeMasterHarness(BusParams(selector_width=2, offset_width=12))
        requests = []
        received = []

        async def monitor(ctx):
            while True:
                await ctx.tick()
                if ctx.get(dut.bridge.port.bus.breq):
                    requests.append(True)

        async def host_tx(ctx):
            for command in [
                [0x00, 0x80, 0x00, 0x00],   # read 0x8000
                [0x00, 0x40, 0x12, 0x01],   # write 0x4000
                [0x23, 0xC1, 0x00, 0x00],   # read 0xC123
            ]:
                for byte in command:
                    await stream_put(ctx, dut.host.tx, byte)

        async def host_rx(ctx):
            for _ in range(4):
                received.append(await stream_get(ctx, dut.host.rx))

        sim = Simulator(dut)
        sim.add_clock(1e-6)
        sim.add_testbench(monitor, background=True)
        sim.add_testbench(host_tx)
        sim.add_testbench(host_rx)
        sim.run()

        self.assertEqual(received, [0x00, 0x01, 0x00, 0x01])
        self.assertEqual(requests, [])

    def test_unacknowledged_read_reports_error(self):
        # Nothing answers on the local bus, so the read times out waiting for an ack.
        dut = BridgeMasterHarness(PARAMS)
        received = []

        async def host_tx(ctx):
            ctx.set(dut.bridge.bus.bgrant, 1)
            for byte in [0x34, 0x12, 0x00, 0x00]:
                await stream_put(ctx, dut.host.tx, byte)

        async def host_rx(ctx):
            for _ in range(2):
                received.append(await stream_get(ctx, dut.host.rx))

        sim = Simulator(dut)
        sim.add_clock(1e-6)
        sim.add_testbench(host_tx)
        sim.add_testbench(host_rx)
        sim.run()

        self.assertEqual(received, [0x00, 0x01])

    def test_fifo_too_small(self):
        with self.assertRaises(ValueError):
            BridgeMaster(PARAMS, bit_cyc=BIT_CYC, fifo_depth=2)


class DualSystemTests(unittest.TestCase):
    def run_dual(self, dut, *, local=(), remote=()):
        sim = Simulator(dut)
        sim.add_clock(LOCAL_PERIOD)
        sim.add_clock(REMOTE_PERIOD, domain="remote")
        for tb in local:
            sim.add_testbench(tb)
        for tb in remote:
            sim.add_testbench(tb)
        sim.run()

    def test_local_to_remote(self):
        dut = DualSystem(PARAMS, bit_cyc=LOCAL_BIT_CYC, remote_bit_cyc=REMOTE_BIT_CYC,
                         remote_init={0: [0x00] * 0x20 + [0xD4]})
        local_m1, _ = dut.local.devices
        remote_m1, _ = dut.remote.devices
        state = {"written": False}
        results = {}

        async def local_tb(ctx):
            results["preloaded"] = await device_read(ctx, local_m1, addr(2, 0x020),
                                                     max_cycles=LINK_TIMEOUT)
            await device_write(ctx, local_m1, addr(2, 0x123), 0x5A, max_cycles=LINK_TIMEOUT)
            results["read_back"] = await device_read(ctx, local_m1, addr(2, 0x123),
                                                     max_cycles=LINK_TIMEOUT)
            state["written"] = True

        async def remote_tb(ctx):
            while not state["written"]:
                await ctx.tick("remote")
            results["remote"] = await device_read(ctx, remote_m1, addr(0, 0x123), domain="remote")

        self.run_dual(dut, local=[local_tb], remote=[remote_tb])
        self.assertEqual(results, {"preloaded": 0xD4, "read_back": 0x5A, "remote": 0x5A})

    def test_remote_to_local(self):
        dut = DualSystem(PARAMS, bit_cyc=LOCAL_BIT_CYC, remote_bit_cyc=REMOTE_BIT_CYC)
        _, local_m2 = dut.local.devices
        _, remote_m2 = dut.remote.devices
        state = {"written": False}
        results = {}

        async def remote_tb(ctx):
            await device_write(ctx, remote_m2, addr(2, 0x7F0), 0x99,
                               max_cycles=LINK_TIMEOUT, domain="remote")
            results["read_back"] = await device_read(ctx, remote_m2, addr(2, 0x7F0),
                                                     max_cycles=LINK_TIMEOUT, domain="remote")
            state["written"] = True

        async def local_tb(ctx):
            while not state["written"]:
                await ctx.tick()
            results["local"] = await device_read(ctx, local_m2, addr(0, 0x7F0))

        self.run_dual(dut, local=[local_tb], remote=[remote_tb])
        self.assertEqual(results, {"read_back": 0x99, "local": 0x99})

    def test_write_burst_past_queue_depth(self):
        dut = DualSystem(PARAMS, bit_cyc=LOCAL_BIT_CYC, remote_bit_cyc=REMOTE_BIT_CYC)
        local_m1, _ = dut.local.devices
        remote_m1, _ = dut.remote.devices
        # More writes than the bridge slave's 4 entry command queue holds.
        values = [0x10 + i for i in range(6)]
        state = {"written": False}
        results = {"local": [], "remote": []}

        async def local_tb(ctx):
            for i, value in enumerate(values):
                await device_write(ctx, local_m1, addr(2, 0x040 + i), value, max_cycles=LINK_TIMEOUT)
            await device_write(ctx, local_m1, addr(2, 0x123), 0x5A, max_cycles=LINK_TIMEOUT)
            results["last"] = await device_read(ctx, local_m1, addr(2, 0x123), max_cycles=LINK_TIMEOUT)
            for i in range(len(values)):
                results["local"].append(await device_read(ctx, local_m1, addr(2, 0x040 + i),
                                                          max_cycles=LINK_TIMEOUT))
            state["written"] = True

        async def remote_tb(ctx):
            while not state["written"]:
                await ctx.tick("remote")
            for i in range(len(values)):
                results["remote"].append(await device_read(ctx, remote_m1, addr(0, 0x040 + i),
                                                           domain="remote"))

        self.run_dual(dut, local=[local_tb], remote=[remote_tb])
        self.assertEqual(results, {"last": 0x5A, "local": values, "remote": values})

    def test_bus_free_during_link_round_trip(self):
        dut = DualSystem(PARAMS, bit_cyc=LOCAL_BIT_CYC, remote_bit_cyc=REMOTE_BIT_CYC,
                         local_init={1: [0x00, 0x00, 0x00, 0x3B]},
                         remote_init={0: [0x00, 0xAB]})
        local_m1, local_m2 = dut.local.devices
        order = []

        async def m1_tb(ctx):
            data = await device_read(ctx, local_m1, addr(2, 0x001), max_cycles=LINK_TIMEOUT)
            order.append(("bridged", data))

        async def m2_tb(ctx):
            # Give master 0 the bus first, so its read is split while this one runs.
            for _ in range(4):
                await ctx.tick()
            data = await device_read(ctx, local_m2, addr(1, 0x003))
            order.append(("local", data))

        self.run_dual(dut, local=[m1_tb, m2_tb])
        self.assertEqual(order, [("local", 0x3B), ("bridged", 0xAB)])


if __name__ == "__main__":
    unittest.main()
