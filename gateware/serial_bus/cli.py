import argparse
import contextlib
import logging
import sys

from amaranth.back import rtlil, verilog
from amaranth.sim import Simulator

from .params import BusParams
from .sim import device_read, device_write
from .system import System, DualSystem


__all__ = ["main"]


logger = logging.getLogger(__name__)


def create_argparser():
    parser = argparse.ArgumentParser(prog="serial-bus")

    parser.add_argument(
        "-v", "--verbose", default=0, action="count",
        help="increase logging verbosity")
    parser.add_argument(
        "-q", "--quiet", default=0, action="count",
        help="decrease logging verbosity")

    subparsers = parser.add_subparsers(dest="action", metavar="COMMAND", required=True)

    p_generate = subparsers.add_parser(
        "generate", help="generate RTLIL or Verilog for a system")
    p_generate.add_argument(
        "-t", "--type", choices=("rtlil", "verilog"), default="rtlil",
        help="output language (default: %(default)s)")
    p_generate.add_argument(
        "--topology", choices=("single", "bridged", "dual"), default="single",
        help="system to generate (default: %(default)s)")
    p_generate.add_argument(
        "--bit-cyc", metavar="CYCLES", type=int, default=8,
        help="bridge link bit time in clock cycles (default: %(default)s)")
    p_generate.add_argument(
        "output", metavar="FILE", type=str, nargs="?", default=None,
        help="write output to FILE (default: stdout)")

    p_simulate = subparsers.add_parser(
        "simulate", help="run the two master scenario on a simulated system")
    p_simulate.add_argument(
        "--selector", metavar="SEL", type=int, default=1,
        help="slave selector to use (default: %(default)s)")
    p_simulate.add_argument(
        "--offset", metavar="OFFSET", type=lambda x: int(x, 0), default=0xD9C,
        help="memory offset to use (default: 0xd9c)")
    p_simulate.add_argument(
        "--data", metavar="DATA", type=lambda x: int(x, 0), default=0x4A,
        help="byte written by the second master (default: 0x4a)")
    p_simulate.add_argument(
        "--vcd", metavar="FILE", type=str, default=None,
        help="write a waveform dump to FILE")

    return parser


def configure_logger(args):
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(style="{", fmt="{levelname[0]:s}: {name:s}: {message:s}"))
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING + (args.quiet - args.verbose) * 10)


def generate(args):
    params = BusParams()
    if args.topology == "dual":
        design = DualSystem(params, bit_cyc=args.bit_cyc)
    else:
        design = System(params, bridge=args.topology == "bridged", bit_cyc=args.bit_cyc)

    logger.info("generating %s for %s system", args.type, args.topology)
    if args.type == "rtlil":
        output = rtlil.convert(design, ports=design.ports())
    else:
        output = verilog.convert(design, ports=design.ports())
    if args.output is None:
        sys.stdout.write(output)
    else:
        with open(args.output, "w") as f:
            f.write(output)
    return 0


def simulate(args):
    params = BusParams()
    address = params.address(args.selector, args.offset)
    design = System(params)
    m1, m2 = design.devices
    result = None

    async def second_master(ctx):
        logger.info("M2: write %#06x <- %#04x", address, args.data)
        await device_write(ctx, m2, address, args.data)
        logger.info("M2: write done")

    async def first_master(ctx):
        nonlocal result
        # Issue the read once the write owns the bus, so it is ordered after it.
        cycles = 0
        while not ctx.get(design.masters[1].bus.bgrant):
            await ctx.tick()
            cycles += 1
        logger.info("M1: read %#06x, %d cycles after M2", address, cycles)
        result = await device_read(ctx, m1, address)
        logger.info("M1: read done, got %#04x", result)

    sim = Simulator(design)
    sim.add_clock(1e-6)
    sim.add_testbench(second_master)
    sim.add_testbench(first_master)
    if args.vcd:
        context = sim.write_vcd(args.vcd)
    else:
        context = contextlib.nullcontext()
    with context:
        sim.run()

    if result != args.data:
        logger.error("read back %#04x, expected %#04x", result, args.data)
        return 1
    logger.info("read back %#04x as expected", result)
    return 0


def main(argv=None):
    args = create_argparser().parse_args(argv)
    configure_logger(args)

    try:
        if args.action == "generate":
            return generate(args)
        if args.action == "simulate":
            return simulate(args)
    except ValueError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
