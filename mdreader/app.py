"""
mdreader viewer host.
A small Flask application that shows one markdown document and exposes the
reader session (table of contents tracking, find, announcements) as JSON.
"""

from flask import Flask, render_template, send_from_directory, request, jsonify, abort
from pathlib import Path
from typing import Optional
import logging

from mdreader.core.assets import RouteAssetResolver
from mdreader.core.config import ReaderConfig
from mdreader.core.document import read_document
from mdreader.core.exceptions import DocumentTooLargeError, ReaderError
from mdreader.core.session import ReaderSession
from mdreader.features.search import SearchSnapshot
from mdreader.features.stats import word_count
from mdreader.features.toc import HeadingPosition, Viewport
from mdreader.version_info import __version__ as VERSION

logger = logging.getLogger(__name__)

ASSET_PREFIX = '/assets'

# Create Flask App (SINGLE INSTANCE)
app = Flask(__name__)
app.config['SEND_FILE_MAX_AGE_DEFAULT'] = 0

CONFIG = ReaderConfig()
SESSION: Optional[ReaderSession] = None


def configure(config: ReaderConfig) -> ReaderSession:
    """(Re)create the global session for `config`."""
    global CONFIG, SESSION
    CONFIG = config
    SESSION = ReaderSession(config=config, resolver=RouteAssetResolver(ASSET_PREFIX))
    app.config['DEBUG'] = config.debug
    return SESSION


def get_session() -> ReaderSession:
    if SESSION is None:
        return configure(CONFIG)
    return SESSION


def open_path(path) -> ReaderSession:
    """Read `path` and show it. Raises ReaderError; the current document stays on failure."""
    session = get_session()
    document = read_document(Path(path), max_file_size=CONFIG.max_file_size)
    session.open(document)
    return session


def _error(message: str, status: int):
    return jsonify({'error': message}), status


def _search_payload(snapshot: SearchSnapshot) -> dict:
    current = snapshot.current
    return {
        'query': snapshot.query,
        'total': snapshot.total,
        'current': current.index if current else 0,
        'element_id': current.element_id if current else None,
        'status': snapshot.status,
        'html': snapshot.html,
    }


@app.context_processor
def inject_global_context():
    return {'version': VERSION}


@app.errorhandler(404)
def not_found(error):
    if request.path.startswith('/api/'):
        return _error('Not found', 404)
    return f"Not Found: {request.path}", 404


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"500 Error: {error}", exc_info=True)
    return _error('Internal server error', 500)


@app.route('/')
def index():
    """Viewer page for the open document."""
    view = get_session().view()
    document, result = view.document, view.result
    return render_template(
        'view.html',
        name=document.name if document else 'No document',
        content=result.html if result else '',
        headings=result.headings if result else (),
        active_id=view.active_id,
        stats=word_count(document.raw_text) if document else None,
    )


@app.route('/api/version')
def get_version():
    return jsonify({'version': VERSION})


@app.route('/api/document')
def get_document():
    session = get_session()
    view = session.view()
    if view.document is None or view.result is None:
        return _error('No document is open', 404)
    stats = word_count(view.document.raw_text)
    return jsonify({
        'name': view.document.name,
        'html': view.html,
        'headings': [{'id': h.id, 'text': h.text, 'level': h.level} for h in view.result.headings],
        'active': view.active_id,
        'capabilities': sorted(session.loader.snapshot()),
        'word_count': {'words': stats.words, 'minutes': stats.minutes} if stats else None,
        'generation': view.generation,
    })


@app.route('/api/open', methods=['POST'])
def open_document():
    """Replace the displayed document with another local file."""
    data = request.get_json(silent=True) or {}
    path = data.get('path')
    if not path or not isinstance(path, str):
        return _error('Missing document path', 400)

    if not Path(path).exists():
        logger.warning(f"Open failed, file not found: {path}")
        return _error(f'File not found: {path}', 404)

    try:
        session = open_path(path)
    except DocumentTooLargeError as e:
        logger.warning(f"Open failed: {e}")
        return _error(str(e), 413)
    except ReaderError as e:
        logger.error(f"Open failed: {e}", exc_info=True)
        return _error(str(e), 400)

    return jsonify({'name': session.document.name, 'generation': session.generation})


@app.route('/api/toc/active', methods=['POST'])
def update_active_heading():
    """Geometry report from the page after layout and on scroll."""
    data = request.get_json(silent=True) or {}
    try:
        positions = [HeadingPosition(id=str(p['id']), top=float(p['top'])) for p in data.get('positions', [])]
        vp = data['viewport']
        viewport = Viewport(
            scroll_top=float(vp['scroll_top']),
            client_height=float(vp['client_height']),
            scroll_height=float(vp['scroll_height']),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.debug(f"Rejected geometry payload: {e}")
        return _error('Invalid geometry payload', 400)

    active = get_session().update_scroll(positions, viewport)
    return jsonify({'active': active})


@app.route('/api/toc/open', methods=['POST'])
def toggle_toc():
    data = request.get_json(silent=True) or {}
    session = get_session()
    session.set_toc_open(bool(data.get('open')))
    return jsonify({'open': session.toc_open})


@app.route('/api/search', methods=['POST'])
def search():
    data = request.get_json(silent=True) or {}
    query = data.get('query', '')
    if not isinstance(query, str):
        return _error('Query must be a string', 400)
    return jsonify(_search_payload(get_session().find(query)))


@app.route('/api/search/next', methods=['POST'])
def search_next():
    return jsonify(_search_payload(get_session().search_next()))


@app.route('/api/search/previous', methods=['POST'])
def search_previous():
    return jsonify(_search_payload(get_session().search_previous()))


@app.route('/api/search', methods=['DELETE'])
def close_search():
    return jsonify(_search_payload(get_session().close_search()))


@app.route('/api/announcements')
def announcements():
    return jsonify({'messages': get_session().announcer.drain()})


@app.route(f'{ASSET_PREFIX}/<path:filename>')
def serve_asset(filename):
    """Files next to the open document (images referenced relatively)."""
    document = get_session().document
    if document is None or document.directory is None:
        abort(404)
    # send_from_directory refuses paths that leave the directory
    return send_from_directory(document.directory, filename)


if __name__ == '__main__':
    app.run(debug=True, host='localhost', port=8000)
