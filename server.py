"""
server.py
HTTP front for the workday calendar simplifier.

    POST /generate            {"url": ..., "summary": "Jobb"} -> subscribe links
    GET  /calendar/<id>       rendered .ics
    GET  /update-calendars    ?apiKey=... refresh every saved feed in the background
    GET  /update-status
    GET  /generate-status

Usage:
    python3 server.py     (PORT from .env, default 3000)
"""

from __future__ import annotations

import hmac
import logging
import threading
import time
from typing import Callable, Optional
from urllib.parse import quote

from flask import Flask, Response, jsonify, request

from feed_store import FeedStore, utc_now_iso
from ical_feed import FeedFetchError, fetch_ical
from publish_github import PublishError
from refresh_feeds import RefreshStatus, generate_feed, refresh_all
from settings import Settings, load_settings
from workday_engine import InvalidTimezoneError, MalformedInputError

log = logging.getLogger(__name__)

STATE_KEY = "workday_calendar"


class AppState:
    """Per-app status, shared between request threads and the refresh thread."""

    def __init__(self, cfg: Settings, store: FeedStore, fetch: Callable[[str], str]):
        self.cfg = cfg
        self.store = store
        self.fetch = fetch
        self.lock = threading.Lock()
        self.update = RefreshStatus()
        self.generate = {
            "isGenerating": False,
            "lastGenerateStarted": None,
            "lastGenerateCompleted": None,
            "error": None,
            "uniqueId": None,
        }
        self.thread: Optional[threading.Thread] = None

    def try_begin_refresh(self) -> bool:
        with self.lock:
            if self.update.is_updating:
                return False
            self.update.begin()
            return True

    def run_refresh(self) -> None:
        try:
            refresh_all(self.cfg, self.store, self.update, fetch=self.fetch)
        except Exception as e:
            log.exception("Background refresh failed")
            self.update.finish(error=str(e))


def _generate_error(e: Exception):
    """Map a generate failure to (status code, error label)."""
    if isinstance(e, FeedFetchError):
        return 502, 'Could not fetch the calendar'
    if isinstance(e, PublishError):
        return 502, 'Could not publish the calendar'
    if isinstance(e, MalformedInputError):
        return 422, 'The feed is not a valid calendar'
    if isinstance(e, InvalidTimezoneError):
        return 500, 'Server timezone is misconfigured'
    if isinstance(e, ValueError):
        return 400, 'Invalid request'
    return 500, 'Error generating the calendar'


def create_app(cfg: Optional[Settings] = None, store: Optional[FeedStore] = None,
               fetch: Callable[[str], str] = fetch_ical) -> Flask:
    cfg = cfg or load_settings()
    state = AppState(cfg, store or FeedStore(cfg.feeds_file), fetch)

    app = Flask(__name__)
    app.extensions[STATE_KEY] = state

    @app.route('/')
    def index():
        return jsonify({'status': 'online', 'message': 'API is running'})

    @app.route('/generate', methods=['POST'])
    def generate():
        body = request.get_json(silent=True) or {}
        url = (body.get('url') or '').strip()
        summary = (body.get('summary') or '').strip() or cfg.summary
        if not url:
            return jsonify({'error': 'URL is missing'}), 400

        with state.lock:
            state.generate.update(isGenerating=True, lastGenerateStarted=utc_now_iso(),
                                  error=None, uniqueId=None)
        try:
            entry = generate_feed(url, summary, cfg, state.store, fetch=state.fetch)
        except Exception as e:
            code, label = _generate_error(e)
            if code == 500:
                log.exception("Generating %s failed", url)
            with state.lock:
                state.generate.update(isGenerating=False, lastGenerateCompleted=utc_now_iso(),
                                      error=str(e))
            return jsonify({'error': label, 'message': str(e)}), code

        with state.lock:
            state.generate.update(isGenerating=False, lastGenerateCompleted=utc_now_iso(),
                                  uniqueId=entry['uniqueId'])

        api_url = f"{request.host_url}calendar/{entry['uniqueId']}"
        return jsonify({
            'googleLink': f"https://www.google.com/calendar/render?cid={quote(api_url, safe='')}",
            'apiUrl': api_url,
            'publishedUrl': entry.get('publishedUrl'),
            'lastUpdated': entry['lastUpdated'],
        })

    @app.route('/generate-status')
    def generate_status():
        with state.lock:
            return jsonify(dict(state.generate))

    @app.route('/calendar/<unique_id>')
    def calendar(unique_id):
        entry = state.store.get(unique_id)
        if not entry or not entry.get('icalContent'):
            return jsonify({'error': 'Calendar not found'}), 404
        return Response(
            entry['icalContent'],
            content_type='text/calendar; charset=utf-8',
            headers={'Content-Disposition': 'attachment; filename=calendar.ics'},
        )

    @app.route('/update-calendars')
    def update_calendars():
        api_key = request.args.get('apiKey', '')
        if not cfg.update_api_key or not hmac.compare_digest(api_key, cfg.update_api_key):
            return jsonify({'error': 'Invalid API key'}), 401

        if not state.try_begin_refresh():
            return jsonify({'message': 'Update already running',
                            'updateStatus': state.update.as_dict()}), 202

        snapshot = state.update.as_dict()
        state.thread = threading.Thread(target=state.run_refresh, daemon=True,
                                        name="feed-refresh")
        state.thread.start()
        return jsonify({'message': 'Update started', 'updateStatus': snapshot})

    @app.route('/update-status')
    def update_status():
        return jsonify(state.update.as_dict())

    return app


def start_scheduler(app: Flask, interval: int) -> threading.Thread:
    """Refresh every saved feed every ``interval`` seconds in a daemon thread."""
    state: AppState = app.extensions[STATE_KEY]

    def loop():
        while True:
            time.sleep(interval)
            if state.try_begin_refresh():
                state.run_refresh()

    thread = threading.Thread(target=loop, daemon=True, name="feed-scheduler")
    thread.start()
    return thread


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    cfg = load_settings()
    app = create_app(cfg)
    if cfg.update_interval > 0:
        start_scheduler(app, cfg.update_interval)
    app.run(debug=False, host='0.0.0.0', port=cfg.port)


if __name__ == '__main__':
    main()
