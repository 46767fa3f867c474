from dataclasses import dataclass


__all__ = ["BusParams", "SlaveParams", "DEFAULT_SLAVES", "bit_cyc_for"]


@dataclass(frozen=True)
class BusParams:
    selector_width: int = 4
    offset_width: int = 12
    # Cycles a master waits for the decoder's ack before dropping the transaction.
    ack_timeout: int = 16
    # Minimum number of cycles a split-capable slave holds `split` asserted.
    split_latency: int = 4

    def __post_init__(self):
        if self.selector_width < 1:
            raise ValueError(f"Selector width must be at least 1, not {self.selector_width!r}")
        if self.offset_width < 2:
            raise ValueError(f"Offset width must be at least 2, not {self.offset_width!r}")
        if self.address_width > 16:
            raise ValueError(f"Address width must fit in 16 bits, not {self.address_width!r}")
        if self.ack_timeout < 4:
            raise ValueError(f"Ack timeout must be at least 4 cycles, not {self.ack_timeout!r}")
        if self.split_latency < 2:
            raise ValueError(f"Split latency must be at least 2 cycles, not {self.split_latency!r}")

    @property
    def address_width(self):
        return self.selector_width + self.offset_width

    def selector_of(self, address: int) -> int:
        return address >> self.offset_width

    def offset_of(self, address: int) -> int:
        return address & ((1 << self.offset_width) - 1)

    def address(self, selector: int, offset: int) -> int:
        if selector >> self.selector_width:
            raise ValueError(f"Selector {selector:#x} does not fit in {self.selector_width} bits")
        if offset >> self.offset_width:
            raise ValueError(f"Offset {offset:#x} does not fit in {self.offset_width} bits")
        return (selector << self.offset_width) | offset


@dataclass(frozen=True)
class SlaveParams:
    selector: int
    mem_addr_width: int
    read_latency: int = 1
    split: bool = False

    def __post_init__(self):
        if self.read_latency not in (1, 2):
            raise ValueError(f"Read latency must be 1 or 2 cycles, not {self.read_latency!r}")
        if self.mem_addr_width < 1:
            raise ValueError(f"Memory address width must be at least 1, not {self.mem_addr_width!r}")

    def check(self, params: BusParams):
        if self.selector >> params.selector_width:
            raise ValueError(f"Selector {self.selector:#x} does not fit in {params.selector_width} bits")
        if self.mem_addr_width > params.offset_width:
            raise ValueError(f"Memory address width {self.mem_addr_width} is wider than the "
                             f"{params.offset_width} bit offset")


DEFAULT_SLAVES = (
    SlaveParams(selector=0, mem_addr_width=11, read_latency=1),              # 2 KiB
    SlaveParams(selector=1, mem_addr_width=12, read_latency=1),              # 4 KiB
    SlaveParams(selector=2, mem_addr_width=12, read_latency=2, split=True),  # 4 KiB, split capable
)


def bit_cyc_for(clk_freq: float, baud: int) -> int:
    bit_cyc = round(clk_freq / baud)
    if bit_cyc < 6:
        raise ValueError(f"Clock {clk_freq} Hz is too slow for {baud} baud")
    error = abs(clk_freq / bit_cyc - baud) / baud
    if error > 0.02:
        raise ValueError(f"Baud rate error of {error:.1%} at {clk_freq} Hz / {baud} baud is too high")
    return bit_cyc
