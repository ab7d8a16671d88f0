"""
Settings API.

The config surface behind the settings window: list plugins, read and
write their config, toggle them, walk through Last.fm desktop auth and
list the audio outputs the pages can see.
Every write goes through the plugin host so running plugins see it.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI, HTTPException, status
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from tubeshell.errors import ConfigError, PluginNotFoundError, ProxyError
from tubeshell.obs import logger

if TYPE_CHECKING:
    from tubeshell.plugins.manager import PluginHost

TEMPLATES_DIR = Path(__file__).parent / "templates"

LASTFM_PLUGIN = "lastfm"
AUDIO_OUTPUT_PLUGIN = "audio-output"


# --- Request Models ---

class PluginConfigUpdate(BaseModel):
    config: dict[str, Any]


class LastFmSessionRequest(BaseModel):
    token: str


# --- API Router Factory ---

def create_settings_router(host: PluginHost) -> APIRouter:
    """
    Create the settings API router.

    Args:
        host: PluginHost owning the plugins and their config
    """
    router = APIRouter(prefix="/api", tags=["settings"])

    def require_plugin(name: str) -> Any:
        try:
            return host.get_plugin(name)
        except PluginNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plugin not found")

    # --- Plugins ---

    @router.get("/plugins")
    async def list_plugins() -> list[dict]:
        """List all registered plugins."""
        return host.get_plugins()

    @router.get("/plugins/{name}/config")
    async def get_plugin_config(name: str) -> dict:
        require_plugin(name)
        return host.get_plugin_config(name)

    @router.put("/plugins/{name}/config")
    async def set_plugin_config(name: str, request: PluginConfigUpdate) -> dict:
        require_plugin(name)
        try:
            return await host.set_plugin_config(name, request.config)
        except ConfigError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @router.put("/plugins/{name}/enable")
    async def enable_plugin(name: str) -> dict:
        require_plugin(name)
        enabled = await host.set_enabled(name, True)
        return {"status": "ok", "enabled": enabled}

    @router.put("/plugins/{name}/disable")
    async def disable_plugin(name: str) -> dict:
        require_plugin(name)
        enabled = await host.set_enabled(name, False)
        return {"status": "ok", "enabled": enabled}

    # --- Last.fm auth ---

    @router.get("/lastfm/auth-url")
    async def lastfm_auth_url() -> dict:
        """Step 1: get a token and the page where the user authorizes it."""
        plugin = require_plugin(LASTFM_PLUGIN)
        try:
            return await plugin.begin_auth()
        except ProxyError as e:
            logger.warning(f"Last.fm auth failed: {e}")
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    @router.post("/lastfm/session")
    async def lastfm_session(request: LastFmSessionRequest) -> dict:
        """Step 2: exchange the authorized token for a session key and store it."""
        plugin = require_plugin(LASTFM_PLUGIN)
        try:
            session = await plugin.complete_auth(request.token)
        except ProxyError as e:
            logger.warning(f"Last.fm auth failed: {e}")
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
        return {"status": "ok", "username": session["username"]}

    # --- Audio output ---

    @router.get("/audio-output/devices")
    async def audio_output_devices() -> list[dict]:
        """Output devices reported by the open pages."""
        return require_plugin(AUDIO_OUTPUT_PLUGIN).devices()

    return router


def create_settings_app(host: PluginHost) -> FastAPI:
    app = FastAPI(title="tubeshell settings", docs_url=None, redoc_url=None)
    app.include_router(create_settings_router(host))

    @app.get("/", response_class=HTMLResponse)
    async def index():
        """Serve the settings page."""
        return HTMLResponse(content=(TEMPLATES_DIR / "settings.html").read_text(encoding="utf-8"))

    return app
