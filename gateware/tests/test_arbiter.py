from amaranth.sim import Simulator
from serial_bus.arbiter import Arbiter
from serial_bus.sim import wait_until
import unittest


class ArbiterTests(unittest.TestCase):
    def test_priority(self):
        dut = Arbiter(3)

        async def tb(ctx):
            ctx.set(dut.request, 0b110)
            await wait_until(ctx, dut.busy, max_cycles=4)
            self.assertEqual(ctx.get(dut.grant), 0b010)

            # Master 0 joins late, but the grant is held until master 1 lets go.
            ctx.set(dut.request, 0b111)
            for _ in range(5):
                await ctx.tick()
                self.assertEqual(ctx.get(dut.grant), 0b010)

            ctx.set(dut.request, 0b101)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0)
            self.assertEqual(ctx.get(dut.busy), 0)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0b001)

            ctx.set(dut.request, 0b100)
            await ctx.tick()
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0b100)

            ctx.set(dut.request, 0)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.busy), 0)

        sim = Simulator(dut)
        sim.add_clock(1e-6)
        sim.add_testbench(tb)
        sim.run()

    def test_one_hot(self):
        dut = Arbiter(4)

        async def tb(ctx):
            for request in range(16):
                ctx.set(dut.request, request)
                for _ in range(3):
                    await ctx.tick()
                    grant = ctx.get(dut.grant)
                    self.assertIn(grant, (0, 1, 2, 4, 8))
                    if grant:
                        self.assertTrue(grant & request)
                if request:
                    lowest = request & -request
                    self.assertEqual(ctx.get(dut.grant), lowest)
                ctx.set(dut.request, 0)
                await ctx.tick()
                await ctx.tick()

        sim = Simulator(dut)
        sim.add_clock(1e-6)
        sim.add_testbench(tb)
        sim.run()

    def test_split(self):
        dut = Arbiter(2)

        async def tb(ctx):
            ctx.set(dut.request, 0b01)
            await wait_until(ctx, dut.busy, max_cycles=4)
            self.assertEqual(ctx.get(dut.grant), 0b01)

            ctx.set(dut.split_req, 1)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.split_active), 1)
            self.assertEqual(ctx.get(dut.split_owner), 0)
            self.assertEqual(ctx.get(dut.grant), 0)

            # The owner keeps requesting, but is parked while the split is outstanding.
            ctx.set(dut.request, 0b11)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0b10)
            for _ in range(4):
                await ctx.tick()
                self.assertEqual(ctx.get(dut.grant), 0b10)
                self.assertEqual(ctx.get(dut.split_grant), 0)

            # Split ends while master 1 owns the bus; master 0 is resumed once it is released.
            ctx.set(dut.split_req, 0)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0b10)
            ctx.set(dut.request, 0b01)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0b01)
            self.assertEqual(ctx.get(dut.split_grant), 1)
            self.assertEqual(ctx.get(dut.split_active), 0)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0b01)
            self.assertEqual(ctx.get(dut.split_grant), 0)

        sim = Simulator(dut)
        sim.add_clock(1e-6)
        sim.add_testbench(tb)
        sim.run()

    def test_resume_before_other_requests(self):
        dut = Arbiter(3)

        async def tb(ctx):
            ctx.set(dut.request, 0b010)
            await wait_until(ctx, dut.busy, max_cycles=4)
            ctx.set(dut.split_req, 1)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.split_owner), 1)

            ctx.set(dut.split_req, 0)
            ctx.set(dut.request, 0b111)
            await ctx.tick()
            self.assertEqual(ctx.get(dut.grant), 0b010)
            self.assertEqual(ctx.get(dut.split_grant), 1)

        sim = Simulator(dut)
        sim.add_clock(1e-6)
        sim.add_testbench(tb)
        sim.run()

    def test_no_masters(self):
        with self.assertRaises(ValueError):
            Arbiter(0)


if __name__ == "__main__":
    unittest.main()
