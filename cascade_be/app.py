from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from flask import Flask, request, jsonify, current_app, g, has_app_context
import uuid
import random
import logging
from http import HTTPStatus
from flask_cors import CORS
from werkzeug.exceptions import HTTPException as WerkzeugHTTPException # Renamed to avoid conflict
from pythonjsonlogger import jsonlogger
from marshmallow import ValidationError
import click # For CLI commands

from cascade_be.exceptions import AppException
from cascade_be.error_codes import ErrorCodes
from .config import Config
from .routes.slots import slots_bp
from .services.slot_session import SlotSession
from .utils.game_config_manager import GameConfigManager
from .utils.spin_handler import SpinHandler
from .utils.slot_tester import SlotTester


# Custom Logging Filter for Request ID
class RequestIdFilter(logging.Filter):
    def filter(self, record):
        record.request_id = g.get('request_id', 'N/A') if has_app_context() else 'N/A'
        return True


def configure_logging(app):
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    if not app.debug:
        handler = logging.StreamHandler()
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(request_id)s %(module)s %(funcName)s %(lineno)d %(message)s'
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        # Flask's app logger and the engine modules share one JSON handler
        for logger in (app.logger, logging.getLogger('cascade_be')):
            if logger.hasHandlers():
                logger.handlers.clear()
            logger.addHandler(handler)
            logger.setLevel(level)
            logger.propagate = False
    else:
        if not app.logger.handlers:
            logging.basicConfig(level=logging.DEBUG)


def build_slot_session(app):
    """Creates the single slot session this process serves."""
    definition = GameConfigManager.get_definition(
        app.config['SLOT_SHORT_NAME'], app.config.get('SLOT_CONFIG_BASE_PATH')
    )
    seed = app.config.get('SLOT_RNG_SEED')
    rng = random.Random(seed) if seed is not None else None
    handler = SpinHandler(
        definition,
        rng=rng,
        max_cascade_iterations=app.config['MAX_CASCADE_ITERATIONS'],
        max_free_spins_per_chain=app.config['MAX_FREE_SPINS_PER_CHAIN'],
    )
    return SlotSession(handler, app.config['SLOT_STARTING_BALANCE'])


def create_app(config_class=Config):
    """Application factory for the slot service."""
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json.ensure_ascii = app.config.get('JSON_AS_ASCII', False)

    configure_logging(app)

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
             methods=['GET', 'POST', 'OPTIONS'],
             allow_headers=['Content-Type'],
             max_age=86400)
        app.logger.info(f"CORS configured for origins: {allowed_origins}")
    else:
        app.logger.warning("No CORS origins configured - API will reject cross-origin requests")

    app.extensions['slot_session'] = build_slot_session(app)

    @app.before_request
    def assign_request_id():
        g.request_id = str(uuid.uuid4())

    # --- Error Handlers ---
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        request_id = g.get('request_id', 'N/A')
        current_app.logger.warning(
            f"Request ID: {request_id} - Validation error: {e.messages} - Error Code: {ErrorCodes.VALIDATION_ERROR}"
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.VALIDATION_ERROR,
            'status_message': 'Input validation failed.',
            'details': {'errors': e.messages},
            'action_button': None
        }), HTTPStatus.UNPROCESSABLE_ENTITY

    @app.errorhandler(WerkzeugHTTPException)
    def handle_werkzeug_http_exception(e):
        request_id = g.get('request_id', 'N/A')
        error_code = ErrorCodes.GENERIC_ERROR
        if e.code == 404:
            error_code = ErrorCodes.NOT_FOUND
        elif e.code == 405:
            error_code = ErrorCodes.METHOD_NOT_ALLOWED
        elif e.code >= 500:
            error_code = ErrorCodes.INTERNAL_SERVER_ERROR

        current_app.logger.warning(
            f"Request ID: {request_id} - Werkzeug HTTPException: {e.code} - {e.name}: {e.description} - Error Code: {error_code}"
        )
        response_data = {
            'request_id': request_id,
            'status': False,
            'error_code': error_code,
            'status_message': e.name,
            'details': {'description': e.description},
            'action_button': None
        }
        response = e.get_response()
        response.data = jsonify(response_data).data
        response.content_type = "application/json"
        return response

    # --- Global Error Handler (catch-all for general exceptions) ---
    @app.errorhandler(Exception)
    def handle_global_exception(e):
        request_id = g.get('request_id', 'N/A')

        if isinstance(e, AppException):
            current_app.logger.error(
                f"Request ID: {request_id} - AppException: {e.error_code} - {e.status_message} - Details: {e.details}",
                exc_info=True if e.status_code >= 500 else False # Log stack trace for server errors
            )
            return jsonify({
                'request_id': request_id,
                'status': False,
                'error_code': e.error_code,
                'status_message': e.status_message,
                'details': e.details,
                'action_button': e.action_button
            }), e.status_code

        if isinstance(e, WerkzeugHTTPException):
            return handle_werkzeug_http_exception(e)

        current_app.logger.critical(
            f"Request ID: {request_id} - Unhandled Critical Exception. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.INTERNAL_SERVER_ERROR,
            'status_message': 'An unexpected internal server error occurred. Please try again later.',
            'details': {},
            'action_button': None
        }), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(404) # Catches werkzeug.exceptions.NotFound
    def handle_flask_not_found(e):
        request_id = g.get('request_id', 'N/A')
        current_app.logger.warning(
            f"Request ID: {request_id} - HTTP 404 Not Found: {request.url} - Error Code: {ErrorCodes.NOT_FOUND}"
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.NOT_FOUND,
            'status_message': 'The requested resource was not found.',
            'details': {'path': request.path},
            'action_button': None
        }), HTTPStatus.NOT_FOUND

    # Register Blueprints
    app.register_blueprint(slots_bp)

    # --- CLI command for running the RTP simulator ---
    @app.cli.command("simulate-slot")
    @click.option('-n', '--spins', type=int, default=100_000, help='Number of paid spins (default: 100,000)')
    @click.option('-b', '--bet', type=float, default=1.0, help='Bet per paid spin (default: 1)')
    @click.option('-s', '--seed', type=int, default=None, help='Seed for a reproducible run')
    @click.option('--graphs', is_flag=True, default=False, help='Save RTP and win distribution graphs')
    def simulate_slot_command(spins, bet, seed, graphs):
        """Simulates the configured slot and prints an RTP report."""
        if spins < 1 or bet <= 0:
            click.echo("Error: --spins must be at least 1 and --bet must be positive.")
            return

        tester = SlotTester(
            app.config['SLOT_SHORT_NAME'], spins, bet, seed=seed,
            max_cascade_iterations=app.config['MAX_CASCADE_ITERATIONS'],
            max_free_spins_per_chain=app.config['MAX_FREE_SPINS_PER_CHAIN'],
        )
        if not tester.load_configuration(app.config.get('SLOT_CONFIG_BASE_PATH')):
            click.echo(f"Error: could not load slot '{app.config['SLOT_SHORT_NAME']}'.")
            return
        tester.initialize_simulation_state()
        tester.run_simulation()
        tester.print_summary_statistics()
        if graphs:
            tester.generate_graphs()

    return app


# Add main section to run the app
if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=app.debug)
