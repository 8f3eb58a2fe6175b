"""
aiohttp application: JSON control endpoints and the SSE progress stream.

Handlers never talk to backends; they read the GameRecordStore, subscribe to
the ProgressHub and forward start/stop requests to the ScrapeSession.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

from aiohttp import web

from collie.config.scrape_config import ScrapeConfig, ScrapeConfigError
from collie.config.validator import validate_scrape_config
from collie.server.state import AppState
from collie.ui.events import KEEP_ALIVE
from collie.ui.progress_hub import with_keepalive
from collie.workflow.progress import SessionState
from collie.workflow.session import SessionBusy, SessionStartError
from collie.workflow.store import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

APP_STATE = web.AppKey("app_state", AppState)


class RequestError(Exception):
    """Malformed request; answered with HTTP 400."""
    pass


def success_response(message: str, **extra: Any) -> web.Response:
    return web.json_response({'success': True, 'message': message, **extra})


def error_response(message: str, status: int = 200, **extra: Any) -> web.Response:
    return web.json_response({'success': False, 'message': message, **extra}, status=status)


@web.middleware
async def request_errors(request: web.Request, handler):
    """Turn RequestError into a JSON 400."""
    try:
        return await handler(request)
    except RequestError as e:
        logger.debug(f"Bad request to {request.path}: {e}")
        return error_response(str(e), status=400)


async def read_json(request: web.Request) -> Dict[str, Any]:
    """
    Decode a JSON object body; an empty body is an empty object.

    Raises:
        RequestError: If the body is not a JSON object
    """
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RequestError(f"Invalid JSON: {e}")
    if not isinstance(data, dict):
        raise RequestError("Request body must be a JSON object")
    return data


def _query_int(request: web.Request, name: str, default: int) -> int:
    value = request.query.get(name)
    if value is None or value == '':
        return default
    try:
        return max(int(value), 0)
    except ValueError:
        raise RequestError(f"{name} must be an integer")


async def get_state(request: web.Request) -> web.Response:
    """POST /api/state: session state for a ROMs path."""
    app_state = request.app[APP_STATE]
    data = await read_json(request)
    roms_path = data.get('romsPath')

    if roms_path and not app_state.session.is_active:
        app_state.switch_roms_path(Path(roms_path))
    return web.json_response(app_state.session.state.to_dict())


async def update_settings(request: web.Request) -> web.Response:
    """POST /api/settings: select another ROMs path."""
    app_state = request.app[APP_STATE]
    data = await read_json(request)

    if app_state.session.is_active:
        return error_response(
            "Cannot change settings while scraping is in progress",
            state=SessionState().to_dict()
        )

    roms_path = data.get('romsPath')
    if not roms_path:
        raise RequestError("romsPath is required")

    path = Path(roms_path).expanduser()
    if not path.is_dir():
        return error_response(
            f"ROMs path is not a directory: {path}",
            state=app_state.session.state.to_dict()
        )

    try:
        state = app_state.switch_roms_path(path)
    except SessionBusy as e:
        return error_response(str(e), state=SessionState().to_dict())
    return success_response("Settings updated", state=state.to_dict())


async def start_scrape(request: web.Request) -> web.Response:
    """POST /api/scrape: start a session."""
    app_state = request.app[APP_STATE]
    data = await read_json(request)

    try:
        config = ScrapeConfig.from_dict(data, default_roms_path=app_state.roms_path)
    except ScrapeConfigError as e:
        raise RequestError(str(e))

    session = app_state.session
    if session.is_active:
        return error_response(str(SessionBusy()))

    errors = validate_scrape_config(config)
    if errors:
        return error_response("; ".join(errors))

    try:
        total = await session.start(config)
    except (SessionBusy, SessionStartError) as e:
        return error_response(str(e))

    # Progress and game listings follow the scraped path
    app_state.follow_session_path(config.roms_path)

    return success_response(f"Started scraping {total} ROMs")


async def stop_scrape(request: web.Request) -> web.Response:
    """POST /api/stop: request cancellation."""
    session = request.app[APP_STATE].session
    was_running = session.is_active
    await session.stop()
    if was_running:
        return success_response("Stopping scraping")
    return success_response("No scraping in progress")


async def list_games(request: web.Request) -> web.Response:
    """GET /api/games: one page of game keys, newest first."""
    store = request.app[APP_STATE].store
    offset = _query_int(request, 'offset', 0)
    limit = _query_int(request, 'limit', DEFAULT_PAGE_SIZE)

    names, total = store.list_names(offset, limit)
    return web.json_response({
        'games': names,
        'total': total,
        'offset': offset,
        'limit': limit,
    })


async def get_game(request: web.Request) -> web.Response:
    """GET /api/games/{key}: one GameRecord by its '<console>/<rom name>' key."""
    store = request.app[APP_STATE].store
    key = request.match_info['key']

    record = store.get(key)
    if record is None:
        return error_response(f"Game not found: {key}", status=404)
    return web.json_response(record.to_dict())


async def progress_stream(request: web.Request) -> web.StreamResponse:
    """GET /api/progress: server-sent events of ProgressEvent JSON."""
    app_state = request.app[APP_STATE]

    response = web.StreamResponse(headers={
        'Content-Type': 'text/event-stream',
        'Cache-Control': 'no-cache',
        'Connection': 'keep-alive',
    })
    await response.prepare(request)

    subscription = app_state.hub.subscribe()
    try:
        async for item in with_keepalive(subscription, app_state.keepalive_interval):
            payload = KEEP_ALIVE if item == KEEP_ALIVE else item.to_json()
            await response.write(f"data: {payload}\n\n".encode('utf-8'))
    except ConnectionResetError:
        logger.debug("Progress client disconnected")
    finally:
        app_state.hub.unsubscribe(subscription)

    return response


async def serve_image(request: web.Request) -> web.StreamResponse:
    """GET /api/images/{path}: a file under the selected ROMs path."""
    roms_path = request.app[APP_STATE].roms_path
    target = (roms_path / request.match_info['path']).resolve()

    if not target.is_relative_to(roms_path):
        return error_response("Access denied", status=403)
    if not target.is_file():
        return error_response("Image not found", status=404)
    return web.FileResponse(target)


async def _on_shutdown(app: web.Application) -> None:
    app_state = app[APP_STATE]
    app_state.hub.close_all()
    await app_state.session.stop()
    await app_state.session.wait()


def create_app(app_state: AppState) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        app_state: Shared state for the handlers

    Returns:
        Configured web.Application
    """
    app = web.Application(middlewares=[request_errors])
    app[APP_STATE] = app_state

    app.router.add_post('/api/state', get_state)
    app.router.add_post('/api/settings', update_settings)
    app.router.add_post('/api/scrape', start_scrape)
    app.router.add_post('/api/stop', stop_scrape)
    app.router.add_get('/api/games', list_games)
    app.router.add_get('/api/games/{key:.+}', get_game)
    app.router.add_get('/api/progress', progress_stream)
    app.router.add_get('/api/images/{path:.+}', serve_image)

    app.on_shutdown.append(_on_shutdown)
    return app
