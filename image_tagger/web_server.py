"""
HTTP server exposing the tagger state as a small JSON API.
"""

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
import psutil
from aiohttp import web
from pydantic import ValidationError
from . import __version__
from .models import HealthStatus, UpdateRequest
from .query import parse_selection
from .state import TaggerState, TagValidationError
from .tag_store import TagStoreError
from .logging import get_logger


class WebServer:
    """aiohttp application serving the tagger state.

    Every state operation runs on the worker thread pool so blocking file and
    database access never stalls the event loop.
    """

    def __init__(self, state: TaggerState, image_dir, threads: int = 4):
        self.state = state
        self.image_dir = Path(image_dir)
        self.logger = get_logger("web_server")
        self.executor = ThreadPoolExecutor(max_workers=threads, thread_name_prefix="tagger")
        self.app = web.Application()
        self.app.on_cleanup.append(self._shutdown_executor)
        self.setup_routes()

    def setup_routes(self):
        """Setup HTTP routes."""
        self.app.router.add_get("/", self.root_handler)
        self.app.router.add_get("/list", self.list_handler)
        self.app.router.add_get("/query", self.query_handler)
        self.app.router.add_get("/stats", self.stats_handler)
        self.app.router.add_post("/update", self.update_handler)
        self.app.router.add_get("/images/{name}", self.image_handler)
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/metrics", self.metrics_handler)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(func, *args))

    async def _shutdown_executor(self, app):
        self.executor.shutdown(wait=True)

    async def root_handler(self, request):
        """Root endpoint with service information."""
        info = {
            "service": "Image Tagger",
            "version": __version__,
            "tags": self.state.tags,
            "multilabel": self.state.multilabel,
            "endpoints": {
                "/list": "All images with their checked tags",
                "/query": "Images matching tag=in|ex parameters",
                "/stats": "Image counts per tag combination",
                "/update": "Replace the checked tags of an image (POST)",
                "/images/{name}": "Image file",
                "/health": "Health check endpoint",
                "/metrics": "Request metrics",
            },
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

        return web.json_response(info)

    async def list_handler(self, request):
        items = await self._run(self.state.list_items)
        return web.json_response({"items": [item.model_dump() for item in items]})

    async def query_handler(self, request):
        """Filter images by the tag states given as query parameters."""
        try:
            selection = parse_selection(request.query)
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        items = await self._run(self.state.query, selection)
        return web.json_response({
            "selection": {tag: state.value for tag, state in selection.items()},
            "items": [item.model_dump() for item in items],
        })

    async def stats_handler(self, request):
        groups = await self._run(self.state.stats)
        return web.json_response({
            "total": sum(group.count for group in groups),
            "groups": [group.model_dump(mode="json") for group in groups],
        })

    async def update_handler(self, request):
        """Replace the checked tags of one image."""
        try:
            body = UpdateRequest.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            return web.json_response({"error": f"Invalid update request: {e}"}, status=400)

        try:
            updated = await self._run(self.state.update, body.name, body.tags)
        except TagValidationError as e:
            return web.json_response({"error": str(e)}, status=400)
        except TagStoreError as e:
            self.logger.error(f"❌ Failed to save tags for {body.name}: {e}")
            return web.json_response({"error": str(e)}, status=500)

        return web.json_response({"status": "ok", "name": body.name, "updated": updated})

    async def image_handler(self, request):
        """Serve an indexed image by file name."""
        name = request.match_info["name"]
        item = await self._run(self.state.find, name)
        if item is None:
            raise web.HTTPNotFound(text=f"No image named {name}")
        return web.FileResponse(self.image_dir / item.name)

    async def health_handler(self, request):
        """Health check endpoint."""
        health_status = HealthStatus(
            status="healthy",
            version=__version__,
            metrics={
                "images": len(self.state.index),
                "tag_store": self.state.store.kind,
                "requests": self.state.metrics.get_metrics(),
            }
        )
        return web.json_response(health_status.model_dump(mode="json"))

    async def metrics_handler(self, request):
        """Metrics endpoint."""
        metrics = self.state.metrics.get_metrics()
        metrics.update({
            "cpu_percent": psutil.cpu_percent(),
            "memory_percent": psutil.virtual_memory().percent,
        })
        return web.json_response(metrics)

    async def start(self, host: str, port: int):
        """Start the web server."""
        runner = web.AppRunner(self.app)
        await runner.setup()

        site = web.TCPSite(runner, host, port)
        await site.start()

        self.logger.info(f"🌐 Web server started on http://{host}:{port}")

        return runner

    async def stop(self, runner):
        """Stop the web server."""
        await runner.cleanup()
        self.logger.info("Web server stopped")


async def run_web_server(state: TaggerState, image_dir, host: str, port: int, threads: int = 4, on_started=None):
    """Run the web server until cancelled."""
    server = WebServer(state, image_dir, threads=threads)
    runner = await server.start(host, port)
    if on_started is not None:
        on_started()

    try:
        # Keep the server running
        while True:
            await asyncio.sleep(3600)
    finally:
        await server.stop(runner)
