#!/usr/bin/env python3
"""
Example: Publishing a Campaign

Saves a small HLS rendition tree out of order into one campaign and
publishes it as a single content-addressed directory. Everything runs in
process: packing uses the Python UnixFS importer and archives go to an
in-memory archive service.

Run this example:
    python examples/publish_campaign.py
"""

import asyncio

from w3store.storage import InMemoryRemoteStore, InProcessPacker, Publisher
from w3store.utils import configure_logging


FILES = [
    ("/720p/", "seg1.ts", b"720p segment 1"),
    ("/360p/", "seg0.ts", b"360p segment 0"),
    ("/720p/", "seg0.ts", b"720p segment 0"),
    ("/360p/", "index.m3u8", b"#EXTM3U\n#EXTINF:2.0,\nseg0.ts\n"),
    ("", "master.m3u8", b"#EXTM3U\n360p/index.m3u8\n"),
]


async def main() -> None:
    print("=" * 60)
    print("w3store - Publishing a Campaign")
    print("=" * 60)
    print()

    configure_logging("INFO")

    remote = InMemoryRemoteStore()
    publisher = Publisher(InProcessPacker(), remote)
    handle = publisher.new_session("stream-42")

    # Saves may arrive concurrently and in any order
    cids = await asyncio.gather(
        *(handle.save_file(path, name, data) for path, name, data in FILES)
    )
    for (path, name, _), cid in zip(FILES, cids):
        print(f"[SAVE] {path or '/'}{name} -> {cid}")
    print()

    locator = await handle.finalize()
    print(f"[PUBLISH] {locator}")
    print(f"[PUBLISH] {remote.store_calls} archives stored")
    print()

    playlist = await remote.resolve(locator, "360p/index.m3u8")
    print("[READ] 360p/index.m3u8:")
    print(playlist.decode("utf-8"))


if __name__ == "__main__":
    asyncio.run(main())
