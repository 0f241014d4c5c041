from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from flask import Flask, request, jsonify, current_app, g
import uuid
from flask_cors import CORS
from flask_socketio import SocketIO
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException as WerkzeugHTTPException
from http import HTTPStatus
import logging
from pythonjsonlogger import jsonlogger
from marshmallow import ValidationError
import click
from decimal import Decimal, InvalidOperation

from .exceptions import AppException
from .error_codes import ErrorCodes
from .models import db
from .config import Config
from .routes.slots import slots_bp
from .services.game_loop import GameLoop
from .services.websocket_manager import WebSocketManager
from .services.spin_history import SpinHistoryRecorder
from .services.simulation import run_simulation
from .utils.game_config import load_game_config


# Custom Logging Filter for Request ID
class RequestIdFilter(logging.Filter):
    def filter(self, record):
        try:
            record.request_id = g.get('request_id', 'N/A')
        except RuntimeError:
            # Outside a request (game loop thread)
            record.request_id = 'N/A'
        return True


def _error_response(error_code, status_message, status_code, details=None, action_button=None):
    return jsonify({
        'request_id': g.get('request_id', 'N/A'),
        'status': False,
        'error_code': error_code,
        'status_message': status_message,
        'details': details if details is not None else {},
        'action_button': action_button
    }), status_code


def create_app(config_class=Config):
    """Application factory."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # --- CORS Setup ---
    allowed_origins = []
    if app.debug:
        allowed_origins.extend([
            "http://localhost:8080",
            "http://127.0.0.1:8080",
        ])
    if app.config.get('CORS_ORIGINS_LIST'):
        allowed_origins.extend(app.config['CORS_ORIGINS_LIST'])

    if allowed_origins:
        CORS(app,
             origins=allowed_origins,
             methods=['GET', 'POST', 'PATCH', 'DELETE', 'OPTIONS'],
             allow_headers=['Content-Type', 'X-Request-ID'],
             max_age=86400)
        app.logger.info(f"CORS configured for origins: {allowed_origins}")
    else:
        app.logger.warning("No CORS origins configured - API will reject cross-origin requests")

    # --- Logging Configuration ---
    if not app.debug:
        logger = app.logger
        handler = logging.StreamHandler()
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(request_id)s %(name)s %(funcName)s %(lineno)d %(message)s'
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        if logger.hasHandlers():
            logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        # Engine modules log through the package logger
        package_logger = logging.getLogger('slots_be')
        if not package_logger.handlers:
            package_logger.addHandler(handler)
            package_logger.setLevel(logging.INFO)
    else:
        if not app.logger.handlers:
            logging.basicConfig(level=logging.DEBUG)

    # --- Request ID Middleware ---
    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())

    @app.after_request
    def echo_request_id(response):
        response.headers['X-Request-ID'] = g.get('request_id', 'N/A')
        return response

    # --- Database Setup ---
    db.init_app(app)
    with app.app_context():
        db.create_all()

    # --- Game Loop and WebSocket Setup ---
    game_loop = GameLoop(app)
    socketio = SocketIO(app,
                        cors_allowed_origins=allowed_origins or None,
                        async_mode='threading',
                        logger=app.logger,
                        engineio_logger=False)
    websocket_manager = WebSocketManager(app, socketio, game_loop)

    spin_history = None
    if app.config.get('SPIN_HISTORY_ENABLED', True):
        spin_history = SpinHistoryRecorder(app, game_loop)

    if not app.config.get('TESTING', False):
        game_loop.start()

    # Store services on the app for access in routes
    app.socketio = socketio
    app.game_loop = game_loop
    app.websocket_manager = websocket_manager
    app.spin_history = spin_history

    # --- Error Handlers ---
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        current_app.logger.warning(
            f"Request ID: {g.get('request_id', 'N/A')} - Validation error: {e.messages} - Error Code: {ErrorCodes.VALIDATION_ERROR}"
        )
        return _error_response(ErrorCodes.VALIDATION_ERROR, 'Input validation failed.',
                               HTTPStatus.UNPROCESSABLE_ENTITY, details={'errors': e.messages})

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        current_app.logger.error(
            f"Request ID: {g.get('request_id', 'N/A')} - Database error. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        db.session.rollback()
        return _error_response(ErrorCodes.INTERNAL_SERVER_ERROR,
                               'A database error occurred. Please try again later.',
                               HTTPStatus.INTERNAL_SERVER_ERROR)

    @app.errorhandler(WerkzeugHTTPException)
    def handle_werkzeug_http_exception(e):
        error_code = ErrorCodes.GENERIC_ERROR
        if e.code == 404:
            error_code = ErrorCodes.NOT_FOUND
        elif e.code >= 500:
            error_code = ErrorCodes.INTERNAL_SERVER_ERROR

        current_app.logger.warning(
            f"Request ID: {g.get('request_id', 'N/A')} - HTTPException: {e.code} - {e.name}: {e.description} - Error Code: {error_code}"
        )
        response, _ = _error_response(error_code, e.name, e.code, details={'description': e.description})
        return response, e.code

    @app.errorhandler(Exception)
    def handle_global_exception(e):
        if isinstance(e, AppException):
            current_app.logger.error(
                f"Request ID: {g.get('request_id', 'N/A')} - AppException: {e.error_code} - {e.status_message} - Details: {e.details}",
                exc_info=True if e.status_code >= 500 else False
            )
            return _error_response(e.error_code, e.status_message, e.status_code,
                                   details=e.details, action_button=e.action_button)

        if isinstance(e, WerkzeugHTTPException):
            return handle_werkzeug_http_exception(e)

        current_app.logger.critical(
            f"Request ID: {g.get('request_id', 'N/A')} - Unhandled Critical Exception. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        return _error_response(ErrorCodes.INTERNAL_SERVER_ERROR,
                               'An unexpected internal server error occurred. Please try again later.',
                               HTTPStatus.INTERNAL_SERVER_ERROR)

    # --- CLI ---
    @app.cli.command('simulate')
    @click.option('-s', '--slot', default=None, help='Slot short name (defaults to DEFAULT_SLOT)')
    @click.option('-n', '--spins', type=click.IntRange(min=1), default=1000, help='Number of paid spins')
    @click.option('-b', '--bet', type=str, default='1.00', help='Bet per spin')
    @click.option('--seed', type=int, default=None, help='RNG seed for a reproducible run')
    def simulate_command(slot, spins, bet, seed):
        """Plays a headless game and prints hit rate, RTP and bonus statistics."""
        slot = slot or app.config['DEFAULT_SLOT']
        try:
            game_config = load_game_config(slot, app.config.get('SLOT_CONFIG_DIR'))
        except (FileNotFoundError, ValueError) as e:
            raise click.ClickException(str(e))

        try:
            bet = Decimal(bet)
        except InvalidOperation:
            raise click.BadParameter(f"'{bet}' is not a valid amount", param_hint='--bet')
        if bet <= 0:
            raise click.BadParameter("bet must be positive", param_hint='--bet')

        click.echo(f"Simulating {spins} spins on '{slot}' at bet {bet}...")
        stats = run_simulation(game_config, spins, bet, seed)
        for key, value in stats.to_dict().items():
            click.echo(f"  {key:<16} {value}")

    # Register Blueprints
    app.register_blueprint(slots_bp)

    return app
