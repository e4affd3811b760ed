import asyncio


class WithPromise:
    pass


async def with_promise():
    """@Provides name='withpromise' async='promise'"""
    await asyncio.sleep(0)
    return WithPromise()
