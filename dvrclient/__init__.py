"""DVR Client: per-server session engine.

Keeps a live, reconciled view of a DVR server's cameras and health status
and pins the server certificate on first use.

Quickstart::

    import asyncio
    from dvrclient.db import init_db
    from dvrclient.manager import ServerManager

    async def main():
        init_db()
        manager = ServerManager()
        for server in manager.load_servers():
            server.on("camera_added", lambda cam: print("camera", cam.name))
        await asyncio.Event().wait()

    asyncio.run(main())
"""

__version__ = "1.0.0"
