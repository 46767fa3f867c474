import logging


__all__ = ["wait_until", "stream_put", "stream_get", "device_write", "device_read"]


logger = logging.getLogger(__name__)


async def wait_until(ctx, signal, *, max_cycles=1000, domain="sync"):
    for _ in range(max_cycles):
        if ctx.get(signal):
            return
        await ctx.tick(domain)
    raise TimeoutError(f"{signal!r} did not assert within {max_cycles} cycles")


async def stream_put(ctx, stream, data, *, domain="sync"):
    ctx.set(stream.data, data)
    ctx.set(stream.valid, 1)
    await ctx.tick(domain).until(stream.ready)
    ctx.set(stream.valid, 0)


async def stream_get(ctx, stream, *, domain="sync"):
    ctx.set(stream.ready, 1)
    data, = await ctx.tick(domain).sample(stream.data).until(stream.valid)
    ctx.set(stream.ready, 0)
    return data


async def _submit(ctx, device, *, address, wdata, mode, max_cycles, domain):
    await wait_until(ctx, device.ready, max_cycles=max_cycles, domain=domain)
    ctx.set(device.addr, address)
    ctx.set(device.wdata, wdata)
    ctx.set(device.mode, mode)
    ctx.set(device.valid, 1)
    await ctx.tick(domain)
    ctx.set(device.valid, 0)
    await wait_until(ctx, device.ready, max_cycles=max_cycles, domain=domain)


async def device_write(ctx, device, address, data, *, max_cycles=1000, domain="sync"):
    """
    Submits a write through a master port's device interface and waits until the port is
    ready again. A write to a missing or busy slave is dropped by the port, silently.
    """
    logger.debug("write %#06x <- %#04x", address, data)
    await _submit(ctx, device, address=address, wdata=data, mode=1,
                  max_cycles=max_cycles, domain=domain)


async def device_read(ctx, device, address, *, max_cycles=1000, domain="sync"):
    """
    Submits a read through a master port's device interface and returns the data once the
    port is ready again. A timed out read returns whatever the port last received.
    """
    await _submit(ctx, device, address=address, wdata=0, mode=0,
                  max_cycles=max_cycles, domain=domain)
    data = ctx.get(device.rdata)
    logger.debug("read  %#06x -> %#04x", address, data)
    return data
