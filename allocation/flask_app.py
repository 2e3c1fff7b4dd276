from datetime import date

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS

from . import commands, views
from .config import configure_logging, get_config
from .di import build_container
from .errors import CommandHandlerError

app = Flask(__name__)
CORS(app)


def create_app(container=None):
    """Return the Flask app wired to `container` (built from the environment if omitted).

    The app object is module level; this attaches the composition root so
    tests and WSGI servers get the same routes with different wiring.
    """
    app.extensions['allocation'] = container or build_container()
    return app


def _container():
    if 'allocation' not in current_app.extensions:
        current_app.extensions['allocation'] = build_container()
    return current_app.extensions['allocation']


def _handle(cmd):
    c = _container()
    c.bus.handle(cmd, c.uow())


@app.route('/ping')
def ping():
    return jsonify(message="pong")


@app.route('/add_batch', methods=['POST'])
def add_batch():
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return jsonify(error='Invalid JSON body'), 400
    missing = [k for k in ('ref', 'sku', 'qty') if payload.get(k) is None]
    if missing:
        return jsonify(error='Missing ' + ', '.join(missing)), 400
    eta = payload.get('eta')
    try:
        if eta is not None:
            eta = date.fromisoformat(eta)
        cmd = commands.CreateBatch(payload['ref'], payload['sku'], int(payload['qty']), eta)
    except (TypeError, ValueError) as e:
        return jsonify(error=str(e)), 400
    try:
        _handle(cmd)
    except CommandHandlerError as e:
        return jsonify(error=str(e)), 400
    return jsonify(message='OK'), 201


@app.route('/allocate', methods=['POST'])
def allocate_endpoint():
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return jsonify(error='Invalid JSON body'), 400
    missing = [k for k in ('orderid', 'sku', 'qty') if payload.get(k) is None]
    if missing:
        return jsonify(error='Missing ' + ', '.join(missing)), 400
    try:
        cmd = commands.Allocate(payload['orderid'], payload['sku'], int(payload['qty']))
    except (TypeError, ValueError) as e:
        return jsonify(error=str(e)), 400
    try:
        _handle(cmd)
    except CommandHandlerError as e:
        return jsonify(error=str(e)), 400
    return jsonify(message='OK'), 202


@app.route('/allocations/<string:orderid>', methods=['GET'])
def allocations_view_endpoint(orderid):
    result = views.allocations(orderid, _container().uow())
    if not result:
        return jsonify(error='not found'), 404
    return jsonify(result)


if __name__ == '__main__':
    cfg = get_config()
    configure_logging(cfg.LOG_LEVEL)
    create_app(build_container(cfg))
    app.run(host=cfg.API_HOST, port=cfg.API_PORT)
